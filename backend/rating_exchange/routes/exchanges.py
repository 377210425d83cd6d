"""
API Routes for Exchanges - guild-scoped rating exchange identities
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, ConfigDict, field_validator
from sqlmodel import Session

from rating_exchange.database import get_session
from rating_exchange.models.exchange import JamType
from rating_exchange.services import exchanges as exchange_service
from rating_exchange.services.errors import ExchangeError, RecordNotFound
from rating_exchange.utils.http_errors import to_http_exception

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class ExchangeCreate(BaseModel):
    """Request model for creating an exchange"""

    guild: str
    jam_type: JamType
    jam_link: str
    display_name: str
    submission_channel: str
    slug: Optional[str] = None

    @field_validator("guild", "display_name", "submission_channel")
    @classmethod
    def validate_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class ExchangeUpdate(BaseModel):
    display_name: str


class ExchangeResponse(BaseModel):
    """Response model for exchange"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    guild: str
    jam_type: str
    jam_link: str
    slug: str
    display_name: str
    submission_channel: str
    created_at: datetime


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/exchanges", response_model=ExchangeResponse, status_code=201)
def create_exchange(exchange_data: ExchangeCreate, session: Session = Depends(get_session)):
    """Create an exchange; the slug is derived from the display name when omitted"""
    try:
        exchange = exchange_service.create_exchange(
            session,
            guild=exchange_data.guild,
            jam_type=exchange_data.jam_type,
            jam_link=exchange_data.jam_link,
            display_name=exchange_data.display_name,
            submission_channel=exchange_data.submission_channel,
            slug=exchange_data.slug,
        )
    except ExchangeError as e:
        raise to_http_exception(e) from e
    return ExchangeResponse.model_validate(exchange)


@router.get("/exchanges", response_model=List[ExchangeResponse])
def list_exchanges(guild: Optional[str] = Query(None), session: Session = Depends(get_session)):
    return [ExchangeResponse.model_validate(e) for e in exchange_service.list_exchanges(session, guild)]


@router.get("/exchanges/{exchange_id}", response_model=ExchangeResponse)
def get_exchange(exchange_id: int, session: Session = Depends(get_session)):
    try:
        exchange = exchange_service.get_exchange(session, exchange_id)
    except RecordNotFound as e:
        raise to_http_exception(e) from e
    return ExchangeResponse.model_validate(exchange)


@router.patch("/exchanges/{exchange_id}", response_model=ExchangeResponse)
def update_exchange(exchange_id: int, exchange_data: ExchangeUpdate, session: Session = Depends(get_session)):
    """Rename an exchange (display name is the only mutable field)"""
    try:
        exchange = exchange_service.rename_exchange(session, exchange_id, exchange_data.display_name)
    except (RecordNotFound, ValueError) as e:
        raise to_http_exception(e) from e
    return ExchangeResponse.model_validate(exchange)


@router.delete("/exchanges/{exchange_id}", status_code=204)
def delete_exchange(exchange_id: int, session: Session = Depends(get_session)):
    """Delete an exchange together with its rounds, submissions and play history"""
    try:
        exchange_service.delete_exchange(session, exchange_id)
    except RecordNotFound as e:
        raise to_http_exception(e) from e
    return Response(status_code=204)
