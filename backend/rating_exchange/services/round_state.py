"""
Round State Machine

Lifecycle of an exchange round:

    open -> closed -> assigned -> delivered

- open -> closed: submission window ended or organizer closed the round.
  Re-closing a closed round is a no-op.
- closed -> assigned: only through a committed assignment run
  (see services/assignment_service.py).
- assigned -> delivered: delivery collaborator confirmed notifications.
  Re-confirming a delivered round is a no-op.

Nothing moves backward. Any other move raises InvalidStateTransition.
"""

import logging
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional

from sqlmodel import Session, select

from rating_exchange.models.exchange_round import ExchangeRound, RoundState
from rating_exchange.services.errors import InvalidStateTransition, RecordNotFound
from rating_exchange.utils.timeutil import as_utc_naive, utcnow

logger = logging.getLogger(__name__)

# Valid transitions: {current_state: {next_state, ...}}
TRANSITIONS: Dict[RoundState, FrozenSet[RoundState]] = {
    RoundState.open: frozenset({RoundState.closed}),
    RoundState.closed: frozenset({RoundState.assigned}),
    RoundState.assigned: frozenset({RoundState.delivered}),
    RoundState.delivered: frozenset(),
}

# Targets that may be re-applied to a round already in that state
IDEMPOTENT_TARGETS: FrozenSet[RoundState] = frozenset({RoundState.closed, RoundState.delivered})


def can_transition(current: RoundState, target: RoundState) -> bool:
    return RoundState(target) in TRANSITIONS[RoundState(current)]


def require_transition(exchange_round: ExchangeRound, target: RoundState) -> bool:
    """
    Validate a transition for a round.

    Returns:
        True if the transition must be applied, False if the round is already
        in an idempotent target state

    Raises:
        InvalidStateTransition: move not allowed from the current state
    """
    current = RoundState(exchange_round.state)
    target = RoundState(target)

    if current == target and target in IDEMPOTENT_TARGETS:
        return False

    if not can_transition(current, target):
        raise InvalidStateTransition(exchange_round.id, current.value, target.value)

    return True


def apply_transition(exchange_round: ExchangeRound, target: RoundState, now: Optional[datetime] = None) -> bool:
    """Move the round in memory, stamping lifecycle timestamps. Caller commits."""
    if not require_transition(exchange_round, target):
        return False

    now = as_utc_naive(now) or utcnow()
    target = RoundState(target)

    exchange_round.state = target.value
    if target == RoundState.assigned:
        exchange_round.assignments_sent_at = now
    elif target == RoundState.delivered:
        exchange_round.delivered_at = now

    logger.info("Round %s moved to %s", exchange_round.id, target.value)
    return True


def get_round(session: Session, round_id: int) -> ExchangeRound:
    exchange_round = session.get(ExchangeRound, round_id)
    if not exchange_round:
        raise RecordNotFound(f"Round {round_id} not found")
    return exchange_round


def close_round(session: Session, round_id: int, now: Optional[datetime] = None) -> ExchangeRound:
    """Stop accepting submissions. Idempotent on a closed round."""
    exchange_round = get_round(session, round_id)
    if apply_transition(exchange_round, RoundState.closed, now):
        session.add(exchange_round)
        session.commit()
        session.refresh(exchange_round)
    return exchange_round


def mark_delivered(session: Session, round_id: int, now: Optional[datetime] = None) -> ExchangeRound:
    """Record that the committed plan was sent out. Idempotent on a delivered round."""
    exchange_round = get_round(session, round_id)
    if apply_transition(exchange_round, RoundState.delivered, now):
        session.add(exchange_round)
        session.commit()
        session.refresh(exchange_round)
    return exchange_round


def close_expired_rounds(session: Session, now: Optional[datetime] = None) -> List[ExchangeRound]:
    """Close every open round whose submission window has ended."""
    now = as_utc_naive(now) or utcnow()

    expired = session.exec(
        select(ExchangeRound)
        .where(ExchangeRound.state == RoundState.open.value, ExchangeRound.submissions_end_at <= now)
        .order_by(ExchangeRound.submissions_end_at, ExchangeRound.id)
    ).all()

    for exchange_round in expired:
        apply_transition(exchange_round, RoundState.closed, now)
        session.add(exchange_round)

    if expired:
        session.commit()
        for exchange_round in expired:
            session.refresh(exchange_round)

    return list(expired)
