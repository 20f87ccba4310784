"""
Translation of round-engine errors into HTTP responses.

The response detail carries the human-readable reason and, where relevant,
the names of members whose contributions are missing or still processing.
"""

from fastapi import HTTPException

from domain.errors import (
    AlreadyDone,
    Forbidden,
    GatewayFailure,
    InsufficientFunds,
    InvalidState,
    NotFound,
    PoolError,
    Unauthorized,
    ValidationError,
)

_STATUS_CODES = (
    (NotFound, 404),
    (Unauthorized, 401),
    (Forbidden, 403),
    (ValidationError, 422),
    (GatewayFailure, 502),
    (AlreadyDone, 409),
    (InsufficientFunds, 409),
    (InvalidState, 409),
)


def status_code_for(error: PoolError) -> int:
    for error_class, status_code in _STATUS_CODES:
        if isinstance(error, error_class):
            return status_code
    return 400


def to_http_exception(error: PoolError) -> HTTPException:
    return HTTPException(
        status_code=status_code_for(error),
        detail={
            "error": error.reason,
            "type": type(error).__name__,
            "missing_members": error.missing_members,
        },
    )
