"""
Submissions and manual play history.

- submit_entry: one entry per member per open round; resubmitting replaces
  the member's previous entry (delete + create)
- revoke_entry: drop a member's entry while the round is open
- record_manual_play: "I already played this" facts, exchange-scoped
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlmodel import Session, select

from rating_exchange.models.exchange import Exchange
from rating_exchange.models.exchange_round import ExchangeRound, RoundState
from rating_exchange.models.played_game import PlayedGame
from rating_exchange.models.submission import Submission
from rating_exchange.services.errors import (
    InvalidEntryLink,
    LinkAlreadySubmitted,
    SubmissionWindowClosed,
)
from rating_exchange.services.exchanges import get_exchange
from rating_exchange.services.round_state import get_round
from rating_exchange.utils.jam_links import entry_link_example, normalize_entry_link
from rating_exchange.utils.sql import insert_ignoring_duplicates
from rating_exchange.utils.timeutil import as_utc_naive, utcnow

logger = logging.getLogger(__name__)


def _require_accepting(exchange_round: ExchangeRound, now: datetime) -> None:
    if RoundState(exchange_round.state) != RoundState.open:
        raise SubmissionWindowClosed(f"Round {exchange_round.id} is not accepting submissions")

    start = as_utc_naive(exchange_round.submissions_start_at)
    end = as_utc_naive(exchange_round.submissions_end_at)
    if not start <= now < end:
        raise SubmissionWindowClosed(
            f"Round {exchange_round.id} accepts submissions from {start.isoformat()} to {end.isoformat()} UTC"
        )


def submit_entry(
    session: Session,
    round_id: int,
    submitter: str,
    link: str,
    now: Optional[datetime] = None,
) -> Tuple[Submission, Optional[str]]:
    """
    Submit (or replace) a member's entry for an open round.

    Returns:
        (submission, replaced_link) - replaced_link is the member's previous
        link when this call replaced an earlier entry

    Raises:
        SubmissionWindowClosed, InvalidEntryLink, LinkAlreadySubmitted
    """
    now = as_utc_naive(now) or utcnow()
    exchange_round = get_round(session, round_id)
    _require_accepting(exchange_round, now)

    exchange: Exchange = get_exchange(session, exchange_round.exchange_id)
    normalized = normalize_entry_link(exchange.jam_type, exchange.jam_link, link)
    if not normalized:
        raise InvalidEntryLink(
            f"Entry link is invalid, it should look like {entry_link_example(exchange.jam_type, exchange.jam_link)}"
        )

    taken = session.exec(
        select(Submission).where(Submission.round_id == round_id, Submission.link == normalized)
    ).first()
    if taken and taken.submitter != submitter:
        raise LinkAlreadySubmitted(
            "Someone else has already submitted this link. In a team, only one member submits the entry."
        )
    if taken:
        return taken, None

    previous = session.exec(
        select(Submission).where(Submission.round_id == round_id, Submission.submitter == submitter)
    ).first()
    replaced_link = None
    if previous:
        replaced_link = previous.link
        session.delete(previous)
        session.flush()

    submission = Submission(round_id=round_id, link=normalized, submitter=submitter, submitted_at=now)
    session.add(submission)
    session.commit()
    session.refresh(submission)

    if replaced_link:
        logger.info("Round %s: %s replaced %s with %s", round_id, submitter, replaced_link, normalized)
    else:
        logger.info("Round %s: %s submitted %s", round_id, submitter, normalized)
    return submission, replaced_link


def revoke_entry(session: Session, round_id: int, submitter: str, now: Optional[datetime] = None) -> bool:
    """Remove a member's entry while the round is open. Returns whether one existed."""
    now = as_utc_naive(now) or utcnow()
    exchange_round = get_round(session, round_id)
    _require_accepting(exchange_round, now)

    submission = session.exec(
        select(Submission).where(Submission.round_id == round_id, Submission.submitter == submitter)
    ).first()
    if not submission:
        return False

    session.delete(submission)
    session.commit()
    logger.info("Round %s: %s revoked %s", round_id, submitter, submission.link)
    return True


def list_submissions(session: Session, round_id: int) -> List[Submission]:
    get_round(session, round_id)
    return list(
        session.exec(
            select(Submission).where(Submission.round_id == round_id).order_by(Submission.submitted_at, Submission.id)
        ).all()
    )


def record_manual_play(session: Session, exchange_id: int, member: str, link: str) -> bool:
    """
    Register that a member already played a game outside the exchange.

    Returns:
        True if a new row was written, False when the pair was already known
    """
    exchange: Exchange = get_exchange(session, exchange_id)
    normalized = normalize_entry_link(exchange.jam_type, exchange.jam_link, link)
    if not normalized:
        raise InvalidEntryLink(
            f"Entry link is invalid, it should look like {entry_link_example(exchange.jam_type, exchange.jam_link)}"
        )

    inserted = insert_ignoring_duplicates(
        session,
        PlayedGame,
        [
            {
                "exchange_id": exchange_id,
                "link": normalized,
                "member": member,
                "is_manual": True,
                "round_id": None,
                "position": None,
                "created_at": utcnow(),
            }
        ],
        ("exchange_id", "link", "member"),
    )
    session.commit()
    return inserted > 0


def list_played_games(session: Session, exchange_id: int, member: Optional[str] = None) -> List[PlayedGame]:
    get_exchange(session, exchange_id)
    query = select(PlayedGame).where(PlayedGame.exchange_id == exchange_id)
    if member is not None:
        query = query.where(PlayedGame.member == member)
    return list(session.exec(query.order_by(PlayedGame.member, PlayedGame.link)).all())
