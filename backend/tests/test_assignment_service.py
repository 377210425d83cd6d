"""
Tests for the assignment run end to end: commit atomicity, idempotence,
concurrency guards and history carried across rounds.
"""

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from rating_exchange.models.exchange_round import ExchangeRound, RoundState
from rating_exchange.models.played_game import PlayedGame
from rating_exchange.services import assignment_service
from rating_exchange.services.assignment_service import (
    commit_plan,
    get_open_submissions,
    get_play_history,
    get_round_assignments,
    round_run_lock,
    run_assignment,
)
from rating_exchange.services.constraint_model import PlayedPair
from rating_exchange.services.errors import (
    AssignmentAlreadyInProgress,
    CommitError,
    InsufficientSubmissions,
    InvalidStateTransition,
)
from rating_exchange.services.round_state import get_round
from rating_exchange.services.submissions import record_manual_play
from tests.conftest import entry_link

MEMBERS = ["alice", "bob", "carol", "dave", "erin"]


def _played_rows(session: Session):
    return session.exec(select(PlayedGame).order_by(PlayedGame.member, PlayedGame.link)).all()


class TestReads:
    def test_submissions_snapshot_ordered(self, session, make_round):
        exchange_round = make_round(["bob", "alice", "carol"])
        entries = get_open_submissions(session, exchange_round.id)
        assert [e.submitter for e in entries] == ["bob", "alice", "carol"]
        assert entries[0].link == entry_link(1)

    def test_play_history_pairs(self, session, make_round, add_played):
        add_played("alice", entry_link(2), is_manual=True)
        add_played("bob", entry_link(1), is_manual=False)
        history = get_play_history(session, make_round(MEMBERS).exchange_id)
        assert history == {
            PlayedPair(entry_link(2), "alice", True),
            PlayedPair(entry_link(1), "bob", False),
        }


class TestRunAssignment:
    def test_five_members_two_games(self, session, make_round):
        exchange_round = make_round(MEMBERS, games_per_member=2)
        report = run_assignment(session, exchange_round.id, seed=42)

        assert report.plan_size == 10
        assert report.committed_pairs == 10
        assert not report.is_partial
        assert report.seed == 42

        session.expire_all()
        stored = get_round(session, exchange_round.id)
        assert stored.state == RoundState.assigned.value
        assert stored.assignments_sent_at is not None
        assert len(_played_rows(session)) == 10
        assert all(not row.is_manual and row.round_id == exchange_round.id for row in _played_rows(session))

    def test_plan_reads_back_in_order(self, session, make_round):
        exchange_round = make_round(MEMBERS, games_per_member=3)
        report = run_assignment(session, exchange_round.id, seed=5)
        assert get_round_assignments(session, exchange_round.id) == report.plan

    def test_run_overrides_games_per_member(self, session, make_round):
        exchange_round = make_round(MEMBERS, games_per_member=2)
        report = run_assignment(session, exchange_round.id, games_per_member=1, seed=1)
        assert report.plan_size == 5

    def test_three_members_relaxed(self, session, make_round):
        exchange_round = make_round(["alice", "bob", "carol"], games_per_member=3)
        report = run_assignment(session, exchange_round.id, seed=3)

        assert report.is_partial
        assert {r.reviewer for r in report.relaxations} == {"alice", "bob", "carol"}
        assert all(r.granted == 2 for r in report.relaxations)
        assert report.committed_pairs == 6

    def test_unassignable_member_rest_commits(self, session, make_round, add_played):
        exchange_round = make_round(["alice", "bob"], games_per_member=1)
        add_played("alice", entry_link(2))

        report = run_assignment(session, exchange_round.id, seed=1)

        assert report.unassignable == ["alice"]
        assert report.plan == {"bob": [entry_link(1)]}
        assert get_round(session, exchange_round.id).state == RoundState.assigned.value

    def test_open_round_rejected_without_history_change(self, session, make_round):
        exchange_round = make_round(MEMBERS, state=RoundState.open)
        with pytest.raises(InvalidStateTransition):
            run_assignment(session, exchange_round.id, seed=1)
        assert _played_rows(session) == []
        assert get_round(session, exchange_round.id).state == RoundState.open.value

    def test_assigned_round_rejected(self, session, make_round):
        exchange_round = make_round(MEMBERS)
        run_assignment(session, exchange_round.id, seed=1)
        with pytest.raises(InvalidStateTransition):
            run_assignment(session, exchange_round.id, seed=1)
        assert len(_played_rows(session)) == 10

    def test_insufficient_submissions(self, session, make_round):
        exchange_round = make_round(["alice"])
        with pytest.raises(InsufficientSubmissions):
            run_assignment(session, exchange_round.id, seed=1)
        assert get_round(session, exchange_round.id).state == RoundState.closed.value

    def test_history_carries_across_rounds(self, session, make_round):
        first = make_round(MEMBERS, games_per_member=2)
        first_report = run_assignment(session, first.id, seed=10)

        second = make_round(MEMBERS, games_per_member=2)
        second_report = run_assignment(session, second.id, seed=10)

        for reviewer, links in second_report.plan.items():
            assert not set(links) & set(first_report.plan[reviewer])

    def test_manual_play_after_assignment_is_noop(self, session, make_round):
        exchange_round = make_round(MEMBERS)
        report = run_assignment(session, exchange_round.id, seed=2)
        link = report.plan["alice"][0]

        assert record_manual_play(session, exchange_round.exchange_id, "alice", link) is False
        rows = session.exec(select(PlayedGame).where(PlayedGame.member == "alice", PlayedGame.link == link)).all()
        assert len(rows) == 1
        assert rows[0].is_manual is False


class TestCommitPlan:
    def test_same_plan_twice_is_noop(self, session, make_round):
        exchange_round = make_round(MEMBERS)
        report = run_assignment(session, exchange_round.id, seed=8)

        assert commit_plan(session, exchange_round.id, report.plan) == 0
        assert len(_played_rows(session)) == 10

    def test_different_plan_on_assigned_round_rejected(self, session, make_round):
        exchange_round = make_round(MEMBERS)
        run_assignment(session, exchange_round.id, seed=8)
        with pytest.raises(InvalidStateTransition):
            commit_plan(session, exchange_round.id, {"alice": [entry_link(2)]})

    def test_existing_pairs_absorbed(self, session, make_round, add_played):
        exchange_round = make_round(["alice", "bob"], games_per_member=1)
        add_played("alice", entry_link(2), is_manual=False)

        inserted = commit_plan(session, exchange_round.id, {"alice": [entry_link(2)], "bob": [entry_link(1)]})

        assert inserted == 1
        assert len(_played_rows(session)) == 2

    def test_recommit_with_absorbed_pair_is_noop(self, session, make_round, add_played):
        exchange_round = make_round(["alice", "bob"], games_per_member=1)
        add_played("alice", entry_link(2), is_manual=True)
        plan = {"alice": [entry_link(2)], "bob": [entry_link(1)]}

        assert commit_plan(session, exchange_round.id, plan) == 1
        assert commit_plan(session, exchange_round.id, plan) == 0
        assert len(_played_rows(session)) == 2

        with pytest.raises(InvalidStateTransition):
            commit_plan(session, exchange_round.id, {"bob": [entry_link(1)], "carol": [entry_link(1)]})

    def test_store_failure_rolls_back(self, session, make_round, monkeypatch):
        exchange_round = make_round(MEMBERS)

        def failing_insert(*args, **kwargs):
            raise OperationalError("INSERT INTO played_game", {}, Exception("disk I/O error"))

        monkeypatch.setattr(assignment_service, "insert_ignoring_duplicates", failing_insert)

        with pytest.raises(CommitError):
            run_assignment(session, exchange_round.id, seed=1)

        session.expire_all()
        assert get_round(session, exchange_round.id).state == RoundState.closed.value
        assert _played_rows(session) == []

    def test_lost_race_rolls_back(self, session, make_round):
        exchange_round = make_round(MEMBERS)

        with Session(session.get_bind(), expire_on_commit=False) as stale:
            assert stale.get(ExchangeRound, exchange_round.id).state == RoundState.closed.value

            session.execute(
                update(ExchangeRound)
                .where(ExchangeRound.id == exchange_round.id)
                .values(state=RoundState.assigned.value)
            )
            session.commit()

            with pytest.raises(AssignmentAlreadyInProgress):
                commit_plan(stale, exchange_round.id, {"alice": [entry_link(2)]})

        assert _played_rows(session) == []


class TestRunLock:
    def test_second_trigger_fails_fast(self, session, make_round):
        exchange_round = make_round(MEMBERS)
        with round_run_lock(exchange_round.id):
            with pytest.raises(AssignmentAlreadyInProgress):
                run_assignment(session, exchange_round.id, seed=1)

        assert get_round(session, exchange_round.id).state == RoundState.closed.value
        assert run_assignment(session, exchange_round.id, seed=1).committed_pairs == 10

    def test_locks_are_per_round(self, make_round):
        first = make_round(MEMBERS)
        second = make_round(MEMBERS)
        with round_run_lock(first.id):
            with round_run_lock(second.id):
                pass

    def test_running_rounds_released(self, make_round):
        exchange_round = make_round(MEMBERS)
        with pytest.raises(RuntimeError):
            with round_run_lock(exchange_round.id):
                raise RuntimeError("boom")

        assert exchange_round.id not in assignment_service._running_rounds
        with round_run_lock(exchange_round.id):
            assert exchange_round.id in assignment_service._running_rounds
        assert assignment_service._running_rounds == set()
