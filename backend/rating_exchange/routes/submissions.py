"""
API Routes for Submissions and Played Games
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, ConfigDict, field_validator
from sqlmodel import Session

from rating_exchange.database import get_session
from rating_exchange.services import submissions as submission_service
from rating_exchange.services.errors import RecordNotFound, SubmissionError
from rating_exchange.utils.http_errors import to_http_exception

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class SubmissionCreate(BaseModel):
    submitter: str
    link: str

    @field_validator("submitter", "link")
    @classmethod
    def validate_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class SubmissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    round_id: int
    link: str
    submitter: str
    submitted_at: datetime


class SubmitResult(BaseModel):
    submission: SubmissionResponse
    replaced_link: Optional[str] = None


class PlayedGameCreate(BaseModel):
    """Request model for "I already played this game" """

    member: str
    link: str

    @field_validator("member", "link")
    @classmethod
    def validate_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class PlayedGameResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    exchange_id: int
    link: str
    member: str
    is_manual: bool
    round_id: Optional[int] = None
    created_at: datetime


class PlayedGameResult(BaseModel):
    created: bool


# ============================================================================
# Submissions
# ============================================================================


@router.post("/rounds/{round_id}/submissions", response_model=SubmitResult, status_code=201)
def submit_entry(round_id: int, submission_data: SubmissionCreate, session: Session = Depends(get_session)):
    """Submit an entry; a member's earlier entry in the round is replaced"""
    try:
        submission, replaced_link = submission_service.submit_entry(
            session, round_id, submission_data.submitter, submission_data.link
        )
    except (RecordNotFound, SubmissionError) as e:
        raise to_http_exception(e) from e
    return SubmitResult(submission=SubmissionResponse.model_validate(submission), replaced_link=replaced_link)


@router.get("/rounds/{round_id}/submissions", response_model=List[SubmissionResponse])
def list_submissions(round_id: int, session: Session = Depends(get_session)):
    try:
        submissions = submission_service.list_submissions(session, round_id)
    except RecordNotFound as e:
        raise to_http_exception(e) from e
    return [SubmissionResponse.model_validate(s) for s in submissions]


@router.delete("/rounds/{round_id}/submissions/{submitter}", status_code=204)
def revoke_entry(round_id: int, submitter: str, session: Session = Depends(get_session)):
    try:
        removed = submission_service.revoke_entry(session, round_id, submitter)
    except (RecordNotFound, SubmissionError) as e:
        raise to_http_exception(e) from e
    if not removed:
        raise to_http_exception(RecordNotFound(f"{submitter} has no submission in round {round_id}"))
    return Response(status_code=204)


# ============================================================================
# Played games
# ============================================================================


@router.post("/exchanges/{exchange_id}/played", response_model=PlayedGameResult)
def record_manual_play(exchange_id: int, played_data: PlayedGameCreate, session: Session = Depends(get_session)):
    """Mark a game as already played so it is never assigned to the member"""
    try:
        created = submission_service.record_manual_play(session, exchange_id, played_data.member, played_data.link)
    except (RecordNotFound, SubmissionError) as e:
        raise to_http_exception(e) from e
    return PlayedGameResult(created=created)


@router.get("/exchanges/{exchange_id}/played", response_model=List[PlayedGameResponse])
def list_played_games(
    exchange_id: int, member: Optional[str] = Query(None), session: Session = Depends(get_session)
):
    try:
        played = submission_service.list_played_games(session, exchange_id, member)
    except RecordNotFound as e:
        raise to_http_exception(e) from e
    return [PlayedGameResponse.model_validate(p) for p in played]
