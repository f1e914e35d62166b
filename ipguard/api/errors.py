"""Domain error -> HTTP response mapping.

Details stay generic. Attempt counts, block reasons and account existence
never reach the client.
"""
from fastapi import HTTPException

from ipguard.domain.errors import (
    AlreadyBlockedError,
    BlockNotFoundError,
    InvalidCredentialsError,
    InvalidTokenError,
    IPBlockedError,
    StoreUnavailableError,
    TooManyAttemptsError,
    ValidationError,
)

FORBIDDEN_DETAIL = "Forbidden."

_STATUS = [
    (IPBlockedError, 403, FORBIDDEN_DETAIL),
    (TooManyAttemptsError, 429, "Too many login attempts. Try again later."),
    (InvalidCredentialsError, 401, "Invalid credentials."),
    (InvalidTokenError, 401, "Invalid or expired token."),
    (ValidationError, 422, None),
    (AlreadyBlockedError, 409, "IP address is already blocked."),
    (BlockNotFoundError, 404, "IP block not found."),
    (StoreUnavailableError, 503, "Service temporarily unavailable."),
]


def to_http_exception(exc: Exception) -> HTTPException:
    for exc_type, status_code, detail in _STATUS:
        if isinstance(exc, exc_type):
            return HTTPException(status_code=status_code, detail=detail or str(exc))
    return HTTPException(status_code=500, detail="Internal server error.")
