"""
API Routes for Rounds - submission windows and their lifecycle
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlmodel import Session

from rating_exchange.database import get_session
from rating_exchange.services import exchanges as exchange_service
from rating_exchange.services import round_state
from rating_exchange.services.errors import ExchangeError, InvalidStateTransition, RecordNotFound
from rating_exchange.services.exchanges import MAX_GAMES_PER_MEMBER
from rating_exchange.utils.http_errors import to_http_exception

router = APIRouter()


class RoundCreate(BaseModel):
    """Request model for opening a round"""

    submissions_start_at: datetime
    submissions_end_at: datetime
    games_per_member: int = Field(ge=1, le=MAX_GAMES_PER_MEMBER)

    @model_validator(mode="after")
    def validate_window(self):
        if self.submissions_end_at <= self.submissions_start_at:
            raise ValueError("submissions_end_at must be after submissions_start_at")
        return self


class RoundResponse(BaseModel):
    """Response model for round"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    exchange_id: int
    submissions_start_at: datetime
    submissions_end_at: datetime
    games_per_member: int
    state: str
    assignments_sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime


@router.post("/exchanges/{exchange_id}/rounds", response_model=RoundResponse, status_code=201)
def open_round(exchange_id: int, round_data: RoundCreate, session: Session = Depends(get_session)):
    try:
        exchange_round = exchange_service.open_round(
            session,
            exchange_id,
            submissions_start_at=round_data.submissions_start_at,
            submissions_end_at=round_data.submissions_end_at,
            games_per_member=round_data.games_per_member,
        )
    except (ExchangeError, RecordNotFound, ValueError) as e:
        raise to_http_exception(e) from e
    return RoundResponse.model_validate(exchange_round)


@router.get("/exchanges/{exchange_id}/rounds", response_model=List[RoundResponse])
def list_rounds(exchange_id: int, session: Session = Depends(get_session)):
    try:
        rounds = exchange_service.list_rounds(session, exchange_id)
    except RecordNotFound as e:
        raise to_http_exception(e) from e
    return [RoundResponse.model_validate(r) for r in rounds]


@router.post("/rounds/close-expired", response_model=List[RoundResponse])
def close_expired_rounds(session: Session = Depends(get_session)):
    """Close every open round whose submission window has ended (scheduler hook)"""
    return [RoundResponse.model_validate(r) for r in round_state.close_expired_rounds(session)]


@router.get("/rounds/{round_id}", response_model=RoundResponse)
def get_round(round_id: int, session: Session = Depends(get_session)):
    try:
        exchange_round = round_state.get_round(session, round_id)
    except RecordNotFound as e:
        raise to_http_exception(e) from e
    return RoundResponse.model_validate(exchange_round)


@router.post("/rounds/{round_id}/close", response_model=RoundResponse)
def close_round(round_id: int, session: Session = Depends(get_session)):
    """Stop accepting submissions; closing a closed round is a no-op"""
    try:
        exchange_round = round_state.close_round(session, round_id)
    except (RecordNotFound, InvalidStateTransition) as e:
        raise to_http_exception(e) from e
    return RoundResponse.model_validate(exchange_round)
