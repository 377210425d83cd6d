"""
Exchange Round Model

One submission-then-review cycle of an exchange. The lifecycle column is
driven exclusively through services/round_state.py.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import CheckConstraint, String
from sqlmodel import Column, Field, Relationship, SQLModel

from rating_exchange.utils.timeutil import utcnow

if TYPE_CHECKING:
    from rating_exchange.models.exchange import Exchange
    from rating_exchange.models.submission import Submission


class RoundState(str, Enum):
    open = "open"
    closed = "closed"
    assigned = "assigned"
    delivered = "delivered"


class ExchangeRound(SQLModel, table=True):
    __tablename__ = "exchange_round"

    __table_args__ = (
        CheckConstraint("games_per_member > 0", name="ck_round_games_per_member"),
        CheckConstraint("submissions_end_at > submissions_start_at", name="ck_round_window"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    exchange_id: int = Field(foreign_key="exchange.id", index=True, ondelete="CASCADE")
    submissions_start_at: datetime
    submissions_end_at: datetime
    games_per_member: int
    state: RoundState = Field(default=RoundState.open.value, sa_column=Column(String, nullable=False))
    assignments_sent_at: Optional[datetime] = Field(default=None)
    delivered_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)

    # Relationships
    exchange: "Exchange" = Relationship(back_populates="rounds")
    submissions: List["Submission"] = Relationship(
        back_populates="round",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "passive_deletes": True},
    )
