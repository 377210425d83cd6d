"""
Domain error -> HTTPException mapping shared by the routers.

Details carry the error code as an upper-snake prefix, e.g.
"INVALID_STATE_TRANSITION: Round 3 cannot move from 'open' to 'assigned'".
"""

from fastapi import HTTPException

from rating_exchange.services.errors import (
    AssignmentAlreadyInProgress,
    CommitError,
    DuplicateExchangeSlug,
    InsufficientSubmissions,
    InvalidEntryLink,
    InvalidJamLink,
    InvalidSlug,
    InvalidStateTransition,
    LinkAlreadySubmitted,
    OverlappingRound,
    RecordNotFound,
    SubmissionWindowClosed,
    UnsatisfiableAssignment,
)

STATUS_BY_ERROR = (
    (RecordNotFound, 404),
    (InvalidStateTransition, 400),
    (InsufficientSubmissions, 400),
    (SubmissionWindowClosed, 400),
    (InvalidEntryLink, 400),
    (InvalidJamLink, 400),
    (InvalidSlug, 400),
    (AssignmentAlreadyInProgress, 409),
    (LinkAlreadySubmitted, 409),
    (DuplicateExchangeSlug, 409),
    (OverlappingRound, 409),
    (UnsatisfiableAssignment, 422),
    (CommitError, 500),
)


def to_http_exception(exc: Exception) -> HTTPException:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            break
    else:
        status_code = 400 if isinstance(exc, ValueError) else 500

    code = getattr(exc, "code", "INVALID_REQUEST" if status_code == 400 else "INTERNAL_ERROR")
    return HTTPException(status_code=status_code, detail=f"{code}: {exc}")
