"""
Assignment and submission error taxonomy.

Services raise these; only the route layer turns them into HTTP responses.
"""

from typing import List, Optional


class AssignmentError(Exception):
    """Base exception for assignment run errors"""

    code = "ASSIGNMENT_ERROR"


class InsufficientSubmissions(AssignmentError):
    """Fewer than two submissions in the round"""

    code = "INSUFFICIENT_SUBMISSIONS"

    def __init__(self, submission_count: int):
        self.submission_count = submission_count
        super().__init__(
            f"At least 2 submissions are required to assign games, the round has {submission_count}"
        )


class UnsatisfiableAssignment(AssignmentError):
    """No feasible plan found within the attempt bound"""

    code = "UNSATISFIABLE_ASSIGNMENT"

    def __init__(self, reviewers: List[str], attempts: int):
        self.reviewers = sorted(reviewers)
        self.attempts = attempts
        super().__init__(
            f"Could not satisfy reviewers {', '.join(self.reviewers)} after {attempts} attempts"
        )


class AssignmentAlreadyInProgress(AssignmentError):
    """Another run holds this round"""

    code = "ASSIGNMENT_ALREADY_IN_PROGRESS"

    def __init__(self, round_id: int):
        self.round_id = round_id
        super().__init__(f"An assignment run for round {round_id} is already in progress")


class InvalidStateTransition(AssignmentError):
    """Round lifecycle ordering violated"""

    code = "INVALID_STATE_TRANSITION"

    def __init__(self, round_id: Optional[int], current: str, target: str):
        self.round_id = round_id
        self.current = current
        self.target = target
        super().__init__(f"Round {round_id} cannot move from '{current}' to '{target}'")


class CommitError(AssignmentError):
    """Store rejected the plan write; nothing was committed"""

    code = "COMMIT_ERROR"


class SubmissionError(Exception):
    """Base exception for submission bookkeeping"""

    code = "SUBMISSION_ERROR"


class SubmissionWindowClosed(SubmissionError):
    code = "SUBMISSION_WINDOW_CLOSED"


class LinkAlreadySubmitted(SubmissionError):
    code = "LINK_ALREADY_SUBMITTED"


class InvalidEntryLink(SubmissionError):
    code = "INVALID_ENTRY_LINK"


class RecordNotFound(LookupError):
    """Exchange, round or submission does not exist"""

    code = "NOT_FOUND"


class ExchangeError(Exception):
    """Base exception for exchange and round setup"""

    code = "EXCHANGE_ERROR"


class InvalidJamLink(ExchangeError):
    code = "INVALID_JAM_LINK"


class InvalidSlug(ExchangeError):
    code = "INVALID_SLUG"


class DuplicateExchangeSlug(ExchangeError):
    code = "DUPLICATE_EXCHANGE_SLUG"


class OverlappingRound(ExchangeError):
    code = "OVERLAPPING_ROUND"
