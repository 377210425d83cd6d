"""
Assignment Engine - balanced reviewer -> game assignment

Given a ConstraintModel, produce an Assignment Plan: for every reviewer an
ordered list of distinct links it may legally receive, with review load
spread evenly across links.

Algorithm:
1. Quotas: each reviewer gets min(k, |eligible|). Reductions are reported
   as relaxations; reviewers left with 0 are Unassignable and skipped.
2. Link capacity: total demand D spread over n links, capped at ceil(D / n).
3. Randomized greedy: most-constrained reviewer first, random link among
   the least-reviewed available ones.
4. Dead end -> retry with a fresh seed drawn from the run RNG, bounded by
   max_attempts.
5. Attempts exhausted -> exact max-flow solve. If it is short, solve again
   with each link capped at max(ceil(D / n), k); if still short the run fails
   with UnsatisfiableAssignment naming the short reviewers.

Pure: no I/O, no database access. Same model + same seed = same plan.
"""

import logging
import os
import random
from dataclasses import dataclass, field
from math import ceil
from typing import Dict, List, Optional, Tuple

from rating_exchange.services.constraint_model import ConstraintModel
from rating_exchange.services.errors import UnsatisfiableAssignment
from rating_exchange.services.flow_solver import FlowNetwork

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = int(os.getenv("ASSIGNMENT_MAX_ATTEMPTS", "50"))

SOLVER_GREEDY = "greedy"
SOLVER_MAX_FLOW = "max_flow"

Plan = Dict[str, List[str]]


@dataclass(frozen=True)
class QuotaRelaxation:
    reviewer: str
    requested: int
    granted: int

    def to_dict(self):
        return {"reviewer": self.reviewer, "requested": self.requested, "granted": self.granted}


@dataclass
class EngineResult:
    plan: Plan
    relaxations: List[QuotaRelaxation] = field(default_factory=list)
    unassignable: List[str] = field(default_factory=list)
    attempts: int = 0
    seed: int = 0
    solver: str = SOLVER_GREEDY

    @property
    def pair_count(self) -> int:
        return sum(len(links) for links in self.plan.values())

    def review_counts(self) -> Dict[str, int]:
        return review_counts(self.plan)


def review_counts(plan: Plan) -> Dict[str, int]:
    """Number of reviewers assigned to each link."""
    counts: Dict[str, int] = {}
    for links in plan.values():
        for link in links:
            counts[link] = counts.get(link, 0) + 1
    return counts


def plan_pairs(plan: Plan) -> List[Tuple[str, str, int]]:
    """Flatten a plan into (reviewer, link, position) triples in stable order."""
    return [(reviewer, link, position) for reviewer in sorted(plan) for position, link in enumerate(plan[reviewer])]


def validate_plan(model: ConstraintModel, plan: Plan) -> List[str]:
    """
    Check a plan against the model's exclusion rules.

    Returns a list of human-readable violations (empty when the plan is legal).
    """
    violations: List[str] = []
    for reviewer in sorted(plan):
        links = plan[reviewer]
        if len(set(links)) != len(links):
            violations.append(f"{reviewer}: duplicate links")
        for link in links:
            if link not in model.submitter_of:
                violations.append(f"{reviewer}: unknown link {link}")
            elif model.is_excluded(reviewer, link):
                violations.append(f"{reviewer}: excluded link {link}")
    return violations


def compute_assignment_plan(
    model: ConstraintModel,
    seed: Optional[int] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> EngineResult:
    """
    Compute a balanced assignment plan.

    Args:
        model: Constraint model of the run
        seed: Explicit seed for reproducible plans; drawn from the OS when None
        max_attempts: Bound on randomized construction attempts

    Returns:
        EngineResult (plan + relaxations + unassignable reviewers + diagnostics)

    Raises:
        UnsatisfiableAssignment: no plan meets every reviewer's quota
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    if seed is None:
        seed = random.SystemRandom().randrange(2**63)

    k = model.games_per_member
    quotas: Dict[str, int] = {}
    relaxations: List[QuotaRelaxation] = []
    unassignable: List[str] = []

    for reviewer in model.reviewers:
        granted = model.max_load(reviewer)
        if granted == 0:
            unassignable.append(reviewer)
            continue
        if granted < k:
            relaxations.append(QuotaRelaxation(reviewer=reviewer, requested=k, granted=granted))
        quotas[reviewer] = granted

    if relaxations:
        logger.info("Relaxed quota for %d reviewer(s) below %d games", len(relaxations), k)
    if unassignable:
        logger.warning("Unassignable reviewers (no eligible games): %s", ", ".join(unassignable))

    result = EngineResult(plan={}, relaxations=relaxations, unassignable=unassignable, seed=seed)

    demand = sum(quotas.values())
    if demand == 0:
        return result

    link_capacity = ceil(demand / len(model.candidates))
    run_rng = random.Random(seed)

    stuck: List[str] = []
    for attempt in range(1, max_attempts + 1):
        attempt_rng = random.Random(run_rng.getrandbits(64))
        plan, stuck = _greedy_attempt(model, quotas, link_capacity, attempt_rng)
        if plan is not None:
            result.plan = plan
            result.attempts = attempt
            logger.info(
                "Assignment plan built: %d pairs, %d reviewers, attempt %d (seed %d)",
                result.pair_count,
                len(plan),
                attempt,
                seed,
            )
            return result
        logger.debug("Attempt %d hit a dead end for %s", attempt, ", ".join(stuck))

    logger.warning(
        "Randomized construction failed %d times (last stuck: %s); falling back to max-flow",
        max_attempts,
        ", ".join(stuck),
    )

    plan, short = _max_flow_plan(model, quotas, link_capacity, run_rng)

    # Balance is waived once quotas are relaxed; fall back to a per-link cap of k
    relaxed_capacity = max(link_capacity, k)
    if short and relaxed_capacity > link_capacity:
        logger.warning(
            "Max-flow short for %s at link cap %d; retrying with cap %d",
            ", ".join(short),
            link_capacity,
            relaxed_capacity,
        )
        plan, short = _max_flow_plan(model, quotas, relaxed_capacity, run_rng)

    if short:
        raise UnsatisfiableAssignment(short, max_attempts)

    result.plan = plan
    result.attempts = max_attempts
    result.solver = SOLVER_MAX_FLOW
    return result


def _greedy_attempt(
    model: ConstraintModel,
    quotas: Dict[str, int],
    link_capacity: int,
    rng: random.Random,
) -> Tuple[Optional[Plan], List[str]]:
    remaining = dict(quotas)
    available = {reviewer: set(model.eligible[reviewer]) for reviewer in quotas}
    received = {link: 0 for link in model.candidates}
    plan: Plan = {reviewer: [] for reviewer in sorted(quotas)}

    while True:
        pending = [r for r in sorted(remaining) if remaining[r] > 0]
        if not pending:
            return plan, []

        stuck = [r for r in pending if len(available[r]) < remaining[r]]
        if stuck:
            return None, stuck

        fewest = min(len(available[r]) for r in pending)
        reviewer = rng.choice([r for r in pending if len(available[r]) == fewest])

        options = sorted(available[reviewer])
        least = min(received[link] for link in options)
        link = rng.choice([candidate for candidate in options if received[candidate] == least])

        plan[reviewer].append(link)
        remaining[reviewer] -= 1
        received[link] += 1
        available[reviewer].discard(link)

        if received[link] >= link_capacity:
            for links in available.values():
                links.discard(link)


def _max_flow_plan(
    model: ConstraintModel,
    quotas: Dict[str, int],
    link_capacity: int,
    rng: random.Random,
) -> Tuple[Plan, List[str]]:
    reviewers = sorted(quotas)
    links = model.candidates

    source, sink = 0, 1
    reviewer_node = {reviewer: 2 + i for i, reviewer in enumerate(reviewers)}
    link_node = {link: 2 + len(reviewers) + i for i, link in enumerate(links)}
    network = FlowNetwork(2 + len(reviewers) + len(links))

    edges: List[Tuple[str, str, int]] = []
    for reviewer in reviewers:
        network.add_edge(source, reviewer_node[reviewer], quotas[reviewer])
        for link in model.eligible_links(reviewer):
            edges.append((reviewer, link, network.add_edge(reviewer_node[reviewer], link_node[link], 1)))
    for link in links:
        network.add_edge(link_node[link], sink, link_capacity)

    network.max_flow(source, sink)

    plan: Plan = {reviewer: [] for reviewer in reviewers}
    for reviewer, link, edge_id in edges:
        if network.flow(edge_id) > 0:
            plan[reviewer].append(link)
    for reviewer in reviewers:
        rng.shuffle(plan[reviewer])

    short = [reviewer for reviewer in reviewers if len(plan[reviewer]) < quotas[reviewer]]
    return plan, short
