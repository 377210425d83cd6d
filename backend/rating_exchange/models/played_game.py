"""
Played Game Model

Durable fact that a member has played a submission link within an exchange.
Rows come either from an organizer/member entry (is_manual=True) or from a
committed assignment plan (is_manual=False, round_id and position set).

Constraint: one row per (exchange_id, link, member) regardless of source.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from rating_exchange.utils.timeutil import utcnow

if TYPE_CHECKING:
    from rating_exchange.models.exchange import Exchange


class PlayedGame(SQLModel, table=True):
    __tablename__ = "played_game"

    __table_args__ = (SAUniqueConstraint("exchange_id", "link", "member", name="uq_played_game_link_member"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    exchange_id: int = Field(foreign_key="exchange.id", index=True, ondelete="CASCADE")
    link: str
    member: str = Field(index=True)
    is_manual: bool = Field(default=False)
    round_id: Optional[int] = Field(default=None, foreign_key="exchange_round.id", index=True, ondelete="SET NULL")
    position: Optional[int] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)

    # Relationships
    exchange: "Exchange" = Relationship(back_populates="played_games")
