from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from rating_exchange.utils.timeutil import utcnow

if TYPE_CHECKING:
    from rating_exchange.models.exchange_round import ExchangeRound


class Submission(SQLModel, table=True):
    __table_args__ = (
        SAUniqueConstraint("round_id", "link", name="uq_submission_round_link"),
        SAUniqueConstraint("round_id", "submitter", name="uq_submission_round_submitter"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    round_id: int = Field(foreign_key="exchange_round.id", index=True, ondelete="CASCADE")
    link: str
    submitter: str = Field(index=True)
    submitted_at: datetime = Field(default_factory=utcnow)

    # Relationships
    round: "ExchangeRound" = Relationship(back_populates="submissions")
