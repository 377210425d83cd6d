"""
Tests for the round state machine - transition table, idempotent repeats
and expiry-driven closing.
"""

from datetime import timedelta

import pytest

from rating_exchange.models.exchange_round import RoundState
from rating_exchange.services.errors import InvalidStateTransition, RecordNotFound
from rating_exchange.services.round_state import (
    TRANSITIONS,
    can_transition,
    close_expired_rounds,
    close_round,
    get_round,
    mark_delivered,
)
from rating_exchange.utils.timeutil import utcnow


class TestTransitionTable:
    def test_forward_only(self):
        assert can_transition(RoundState.open, RoundState.closed)
        assert can_transition(RoundState.closed, RoundState.assigned)
        assert can_transition(RoundState.assigned, RoundState.delivered)

        assert not can_transition(RoundState.open, RoundState.assigned)
        assert not can_transition(RoundState.assigned, RoundState.closed)
        assert not can_transition(RoundState.delivered, RoundState.open)

    def test_every_state_listed(self):
        assert set(TRANSITIONS) == set(RoundState)
        assert TRANSITIONS[RoundState.delivered] == frozenset()


class TestCloseRound:
    def test_open_to_closed(self, session, make_round):
        exchange_round = make_round(state=RoundState.open)
        closed = close_round(session, exchange_round.id)
        assert closed.state == RoundState.closed.value

    def test_close_is_idempotent(self, session, make_round):
        exchange_round = make_round(state=RoundState.closed)
        assert close_round(session, exchange_round.id).state == RoundState.closed.value

    def test_close_assigned_round_rejected(self, session, make_round):
        exchange_round = make_round(state=RoundState.assigned)
        with pytest.raises(InvalidStateTransition) as exc_info:
            close_round(session, exchange_round.id)
        assert exc_info.value.current == "assigned"
        assert exc_info.value.target == "closed"

    def test_missing_round(self, session):
        with pytest.raises(RecordNotFound):
            get_round(session, 999)


class TestMarkDelivered:
    def test_assigned_to_delivered_stamps_time(self, session, make_round):
        exchange_round = make_round(state=RoundState.assigned)
        delivered = mark_delivered(session, exchange_round.id)
        assert delivered.state == RoundState.delivered.value
        assert delivered.delivered_at is not None

    def test_repeat_confirmation_is_noop(self, session, make_round):
        exchange_round = make_round(state=RoundState.assigned)
        first = mark_delivered(session, exchange_round.id).delivered_at
        second = mark_delivered(session, exchange_round.id).delivered_at
        assert first == second

    def test_closed_round_cannot_be_delivered(self, session, make_round):
        exchange_round = make_round(state=RoundState.closed)
        with pytest.raises(InvalidStateTransition):
            mark_delivered(session, exchange_round.id)


class TestCloseExpiredRounds:
    def test_only_ended_open_rounds_close(self, session, make_round):
        expired = make_round(state=RoundState.open)
        running = make_round(state=RoundState.open)
        assigned = make_round(state=RoundState.assigned)

        now = utcnow()
        for exchange_round in (expired, assigned):
            exchange_round.submissions_start_at = now - timedelta(days=2)
            exchange_round.submissions_end_at = now - timedelta(days=1)
            session.add(exchange_round)
        session.commit()

        closed = close_expired_rounds(session, now)

        assert [r.id for r in closed] == [expired.id]
        assert get_round(session, expired.id).state == RoundState.closed.value
        assert get_round(session, running.id).state == RoundState.open.value
        assert get_round(session, assigned.id).state == RoundState.assigned.value

    def test_nothing_to_close(self, session, make_round):
        make_round(state=RoundState.open)
        assert close_expired_rounds(session) == []
