"""
Constraint Model - inputs of a single assignment run

Builds, without side effects, the bipartite eligibility structure the
assignment engine consumes:
- candidates: the round's submission links
- reviewers: distinct submitters (plus explicitly allowed non-submitters)
- exclusion: own submission OR (link, member) already in play history
- target load: games_per_member

All collections exposed to the engine are sorted so that a run never
depends on set iteration order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from rating_exchange.services.errors import InsufficientSubmissions

logger = logging.getLogger(__name__)


class SubmissionLike(Protocol):
    link: str
    submitter: str


class PlayedLike(Protocol):
    link: str
    member: str


@dataclass(frozen=True)
class SubmissionEntry:
    """Lightweight submission snapshot for engine input."""
    link: str
    submitter: str


@dataclass(frozen=True)
class PlayedPair:
    link: str
    member: str
    is_manual: bool = False


@dataclass
class ConstraintModel:
    games_per_member: int
    candidates: List[str]
    reviewers: List[str]
    submitter_of: Dict[str, str]
    eligible: Dict[str, Set[str]]
    history: Set[Tuple[str, str]] = field(default_factory=set)
    warnings: List[str] = field(default_factory=list)

    @property
    def submission_count(self) -> int:
        return len(self.candidates)

    def is_excluded(self, reviewer: str, link: str) -> bool:
        """True when the reviewer may never receive this link."""
        return self.submitter_of.get(link) == reviewer or (link, reviewer) in self.history

    def eligible_links(self, reviewer: str) -> List[str]:
        return sorted(self.eligible.get(reviewer, ()))

    def max_load(self, reviewer: str) -> int:
        """Largest number of games this reviewer can legally receive."""
        return min(self.games_per_member, len(self.eligible.get(reviewer, ())))


def build_constraint_model(
    submissions: Sequence[SubmissionLike],
    played_games: Iterable[PlayedLike],
    games_per_member: int,
    extra_reviewers: Optional[Iterable[str]] = None,
) -> ConstraintModel:
    """
    Assemble the eligibility structure for one assignment run.

    Args:
        submissions: The round's submissions (anything with .link and .submitter)
        played_games: Play history of the exchange (anything with .link and .member)
        games_per_member: Target load per reviewer (k >= 1)
        extra_reviewers: Members allowed to review without submitting

    Returns:
        ConstraintModel

    Raises:
        ValueError: k < 1 or a link appears twice
        InsufficientSubmissions: fewer than two submissions
    """
    if games_per_member < 1:
        raise ValueError(f"games_per_member must be >= 1, got {games_per_member}")

    submitter_of: Dict[str, str] = {}
    for submission in submissions:
        if submission.link in submitter_of:
            raise ValueError(f"Duplicate submission link: {submission.link}")
        submitter_of[submission.link] = submission.submitter

    if len(submitter_of) <= 1:
        raise InsufficientSubmissions(len(submitter_of))

    history: Set[Tuple[str, str]] = {(played.link, played.member) for played in played_games}

    reviewer_set = set(submitter_of.values())
    if extra_reviewers:
        reviewer_set.update(extra_reviewers)

    candidates = sorted(submitter_of)
    reviewers = sorted(reviewer_set)

    eligible: Dict[str, Set[str]] = {}
    for reviewer in reviewers:
        eligible[reviewer] = {
            link
            for link in candidates
            if submitter_of[link] != reviewer and (link, reviewer) not in history
        }

    model = ConstraintModel(
        games_per_member=games_per_member,
        candidates=candidates,
        reviewers=reviewers,
        submitter_of=submitter_of,
        eligible=eligible,
        history=history,
    )

    short = [r for r in reviewers if len(eligible[r]) < games_per_member]
    if len(short) * 2 > len(reviewers):
        message = (
            f"{len(short)} of {len(reviewers)} reviewers have fewer than "
            f"{games_per_member} eligible games; quotas will be relaxed"
        )
        logger.warning(message)
        model.warnings.append(message)

    return model
