from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

from rating_exchange.utils.timeutil import utcnow

if TYPE_CHECKING:
    from rating_exchange.models.exchange_round import ExchangeRound
    from rating_exchange.models.played_game import PlayedGame


class JamType(str, Enum):
    itch = "itch"
    ludum_dare = "ludum_dare"


class Exchange(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("guild", "slug", name="uq_exchange_guild_slug"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    guild: str = Field(index=True)
    jam_type: JamType = Field(sa_column=Column(String, nullable=False))
    jam_link: str
    slug: str = Field(max_length=64)
    display_name: str
    submission_channel: str
    created_at: datetime = Field(default_factory=utcnow)

    # Relationships
    rounds: List["ExchangeRound"] = Relationship(
        back_populates="exchange",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "passive_deletes": True},
    )
    played_games: List["PlayedGame"] = Relationship(
        back_populates="exchange",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "passive_deletes": True},
    )
