"""
API Routes for Assignment Runs and Delivery

POST /rounds/{id}/assignments triggers one run on a closed round. The
delivery collaborator reads the committed plan back with GET and confirms
with POST /rounds/{id}/delivered once every reviewer was notified.
"""

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from rating_exchange.database import get_session
from rating_exchange.services import round_state
from rating_exchange.services.assignment_service import get_round_assignments, run_assignment
from rating_exchange.services.errors import AssignmentError, RecordNotFound
from rating_exchange.services.exchanges import MAX_GAMES_PER_MEMBER
from rating_exchange.utils.http_errors import to_http_exception

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class AssignmentRunRequest(BaseModel):
    """Optional overrides for a run; the round's games_per_member is the default"""

    games_per_member: Optional[int] = Field(default=None, ge=1, le=MAX_GAMES_PER_MEMBER)
    seed: Optional[int] = None
    extra_reviewers: List[str] = []


class QuotaRelaxationResponse(BaseModel):
    reviewer: str
    requested: int
    granted: int


class AssignmentReportResponse(BaseModel):
    round_id: int
    plan_size: int
    committed_pairs: int
    plan: Dict[str, List[str]]
    relaxations: List[QuotaRelaxationResponse]
    unassignable: List[str]
    warnings: List[str]
    attempts: int
    seed: Optional[int] = None
    solver: Optional[str] = None
    is_partial: bool


class RoundAssignmentsResponse(BaseModel):
    round_id: int
    state: str
    assignments_sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    plan: Dict[str, List[str]]


def _assignments_response(session: Session, round_id: int) -> RoundAssignmentsResponse:
    exchange_round = round_state.get_round(session, round_id)
    return RoundAssignmentsResponse(
        round_id=round_id,
        state=exchange_round.state,
        assignments_sent_at=exchange_round.assignments_sent_at,
        delivered_at=exchange_round.delivered_at,
        plan=get_round_assignments(session, round_id),
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/rounds/{round_id}/assignments", response_model=AssignmentReportResponse, status_code=201)
def create_assignments(
    round_id: int,
    run_request: Optional[AssignmentRunRequest] = None,
    session: Session = Depends(get_session),
):
    """Run the assignment engine for a closed round and commit the plan"""
    run_request = run_request or AssignmentRunRequest()
    try:
        report = run_assignment(
            session,
            round_id,
            games_per_member=run_request.games_per_member,
            seed=run_request.seed,
            extra_reviewers=run_request.extra_reviewers,
        )
    except (AssignmentError, RecordNotFound, ValueError) as e:
        raise to_http_exception(e) from e
    return AssignmentReportResponse(**report.to_dict())


@router.get("/rounds/{round_id}/assignments", response_model=RoundAssignmentsResponse)
def get_assignments(round_id: int, session: Session = Depends(get_session)):
    """Committed plan of a round, ordered per reviewer (delivery retries read this)"""
    try:
        return _assignments_response(session, round_id)
    except RecordNotFound as e:
        raise to_http_exception(e) from e


@router.post("/rounds/{round_id}/delivered", response_model=RoundAssignmentsResponse)
def mark_delivered(round_id: int, session: Session = Depends(get_session)):
    """Confirm every reviewer was notified; repeating the confirmation is a no-op"""
    try:
        round_state.mark_delivered(session, round_id)
        return _assignments_response(session, round_id)
    except (AssignmentError, RecordNotFound) as e:
        raise to_http_exception(e) from e
