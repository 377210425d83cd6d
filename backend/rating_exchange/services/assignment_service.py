"""
Assignment Service - one assignment run for a round, end to end

Steps (in order):
0. Acquire the per-round run lock (AssignmentAlreadyInProgress if taken)
1. Validate: round exists and is closed
2. Load a stable snapshot of submissions and the exchange's play history
3. Build the constraint model and compute the plan (pure, no side effects)
4. Commit atomically: PlayedGame rows + closed -> assigned in one transaction
5. Return an AssignmentReport

A failed run leaves the round closed with nothing written. The conditional
UPDATE in step 4 is the cross-process mutual-exclusion point.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from rating_exchange.models.exchange_round import ExchangeRound, RoundState
from rating_exchange.models.played_game import PlayedGame
from rating_exchange.models.submission import Submission
from rating_exchange.services.assignment_engine import (
    DEFAULT_MAX_ATTEMPTS,
    Plan,
    QuotaRelaxation,
    compute_assignment_plan,
    plan_pairs,
    validate_plan,
)
from rating_exchange.services.constraint_model import PlayedPair, SubmissionEntry, build_constraint_model
from rating_exchange.services.errors import (
    AssignmentAlreadyInProgress,
    CommitError,
    InvalidStateTransition,
)
from rating_exchange.services.round_state import get_round, require_transition
from rating_exchange.utils.sql import insert_ignoring_duplicates
from rating_exchange.utils.timeutil import as_utc_naive, utcnow

logger = logging.getLogger(__name__)

PLAYED_GAME_CONFLICT_COLUMNS = ("exchange_id", "link", "member")

# ============================================================================
# Per-round run guard
# ============================================================================

_running_rounds: Set[int] = set()
_running_rounds_guard = threading.Lock()


@contextmanager
def round_run_lock(round_id: int) -> Iterator[None]:
    """Mark a round as running in this process; never waits for another run."""
    with _running_rounds_guard:
        if round_id in _running_rounds:
            raise AssignmentAlreadyInProgress(round_id)
        _running_rounds.add(round_id)
    try:
        yield
    finally:
        with _running_rounds_guard:
            _running_rounds.discard(round_id)


# ============================================================================
# Response Models
# ============================================================================


@dataclass
class AssignmentReport:
    """Outcome of a committed assignment run"""

    round_id: int
    plan: Plan
    committed_pairs: int = 0
    relaxations: List[QuotaRelaxation] = field(default_factory=list)
    unassignable: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    attempts: int = 0
    seed: Optional[int] = None
    solver: Optional[str] = None

    @property
    def plan_size(self) -> int:
        return sum(len(links) for links in self.plan.values())

    @property
    def is_partial(self) -> bool:
        return bool(self.relaxations or self.unassignable)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "round_id": self.round_id,
            "plan_size": self.plan_size,
            "committed_pairs": self.committed_pairs,
            "plan": {reviewer: list(links) for reviewer, links in sorted(self.plan.items())},
            "relaxations": [r.to_dict() for r in self.relaxations],
            "unassignable": list(self.unassignable),
            "warnings": list(self.warnings),
            "attempts": self.attempts,
            "seed": self.seed,
            "solver": self.solver,
            "is_partial": self.is_partial,
        }


# ============================================================================
# Collaborator reads
# ============================================================================


def get_open_submissions(session: Session, round_id: int) -> List[SubmissionEntry]:
    """Stable snapshot of a round's submissions, oldest first."""
    rows = session.exec(
        select(Submission)
        .where(Submission.round_id == round_id)
        .order_by(Submission.submitted_at, Submission.id)
    ).all()
    return [SubmissionEntry(link=row.link, submitter=row.submitter) for row in rows]


def get_play_history(session: Session, exchange_id: int) -> Set[PlayedPair]:
    rows = session.exec(select(PlayedGame).where(PlayedGame.exchange_id == exchange_id)).all()
    return {PlayedPair(link=row.link, member=row.member, is_manual=row.is_manual) for row in rows}


def get_round_assignments(session: Session, round_id: int) -> Plan:
    """Re-read the committed plan of a round (delivery retries read this)."""
    rows = session.exec(
        select(PlayedGame)
        .where(PlayedGame.round_id == round_id, PlayedGame.is_manual == False)  # noqa: E712
        .order_by(PlayedGame.member, PlayedGame.position, PlayedGame.id)
    ).all()

    plan: Plan = {}
    for row in rows:
        plan.setdefault(row.member, []).append(row.link)
    return plan


# ============================================================================
# Commit
# ============================================================================


def _already_committed(session: Session, exchange_round: ExchangeRound, plan: Plan) -> bool:
    """
    True when re-committing plan would change nothing.

    Pairs absorbed on the first commit (history already had them) carry no
    row for this round, so they are matched against the exchange history.
    """
    stored = get_round_assignments(session, exchange_round.id)
    committed = {(link, reviewer) for reviewer, links in stored.items() for link in links}
    wanted = {(link, reviewer) for reviewer, links in plan.items() for link in links}
    if not committed <= wanted:
        return False

    absorbed = wanted - committed
    if not absorbed:
        return True
    history = {(pair.link, pair.member) for pair in get_play_history(session, exchange_round.exchange_id)}
    return absorbed <= history


def commit_plan(session: Session, round_id: int, plan: Plan, now: Optional[datetime] = None) -> int:
    """
    Persist a plan and move the round closed -> assigned in one transaction.

    Re-committing the plan already stored for an assigned round is a no-op.
    Rows that already exist for (exchange, link, member) are skipped.

    Returns:
        Number of PlayedGame rows inserted

    Raises:
        InvalidStateTransition: round is not closed (and not a same-plan retry)
        AssignmentAlreadyInProgress: another run committed first
        CommitError: the store rejected the write; nothing was committed
    """
    exchange_round = get_round(session, round_id)
    state = RoundState(exchange_round.state)

    if state in (RoundState.assigned, RoundState.delivered) and _already_committed(session, exchange_round, plan):
        logger.info("Plan for round %s already committed, nothing to do", round_id)
        return 0

    require_transition(exchange_round, RoundState.assigned)

    now = as_utc_naive(now) or utcnow()
    exchange_id = exchange_round.exchange_id
    rows = [
        {
            "exchange_id": exchange_id,
            "link": link,
            "member": reviewer,
            "is_manual": False,
            "round_id": round_id,
            "position": position,
            "created_at": now,
        }
        for reviewer, link, position in plan_pairs(plan)
    ]

    try:
        claimed = session.execute(
            update(ExchangeRound)
            .where(ExchangeRound.id == round_id, ExchangeRound.state == RoundState.closed.value)
            .values(state=RoundState.assigned.value, assignments_sent_at=now)
        )
        if claimed.rowcount != 1:
            session.rollback()
            raise AssignmentAlreadyInProgress(round_id)

        inserted = insert_ignoring_duplicates(session, PlayedGame, rows, PLAYED_GAME_CONFLICT_COLUMNS)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Committing plan for round %s failed, transaction rolled back", round_id)
        raise CommitError(f"Could not commit plan for round {round_id}: {e}") from e

    session.refresh(exchange_round)

    if inserted != len(rows):
        logger.info(
            "Round %s: %d of %d pairs already in history, skipped", round_id, len(rows) - inserted, len(rows)
        )
    return inserted


# ============================================================================
# Main entry point
# ============================================================================


def run_assignment(
    session: Session,
    round_id: int,
    games_per_member: Optional[int] = None,
    seed: Optional[int] = None,
    extra_reviewers: Optional[Iterable[str]] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> AssignmentReport:
    """
    Compute and commit the assignment plan of a closed round.

    Args:
        session: Database session
        round_id: Round ID
        games_per_member: Target load; defaults to the round's stored value
        seed: Explicit seed for a reproducible plan
        extra_reviewers: Members who review without having submitted
        max_attempts: Bound on randomized construction attempts

    Returns:
        AssignmentReport

    Raises:
        InvalidStateTransition, InsufficientSubmissions, UnsatisfiableAssignment,
        AssignmentAlreadyInProgress, CommitError
    """
    with round_run_lock(round_id):
        exchange_round = get_round(session, round_id)

        if RoundState(exchange_round.state) != RoundState.closed:
            raise InvalidStateTransition(round_id, RoundState(exchange_round.state).value, RoundState.assigned.value)

        k = games_per_member if games_per_member is not None else exchange_round.games_per_member
        logger.info("Assignment run for round %s started (k=%s, seed=%s)", round_id, k, seed)

        submissions = get_open_submissions(session, round_id)
        history = get_play_history(session, exchange_round.exchange_id)

        model = build_constraint_model(submissions, history, k, extra_reviewers=extra_reviewers)
        result = compute_assignment_plan(model, seed=seed, max_attempts=max_attempts)

        violations = validate_plan(model, result.plan)
        if violations:
            raise RuntimeError(f"Engine produced an illegal plan for round {round_id}: {violations[:5]}")

        committed = commit_plan(session, round_id, result.plan)

        report = AssignmentReport(
            round_id=round_id,
            plan=result.plan,
            committed_pairs=committed,
            relaxations=result.relaxations,
            unassignable=result.unassignable,
            warnings=list(model.warnings),
            attempts=result.attempts,
            seed=result.seed,
            solver=result.solver,
        )

        logger.info(
            "Assignment run for round %s committed: %d pairs, %d relaxations, %d unassignable",
            round_id,
            report.plan_size,
            len(report.relaxations),
            len(report.unassignable),
        )
        return report
