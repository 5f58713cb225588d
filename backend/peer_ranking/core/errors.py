# peer_ranking/core/errors.py
"""
Error taxonomy for the ranking/voting subsystem.

Validators return ``Decision`` objects; services turn a denied decision into
one of the ``RankingError`` subclasses below and the API layer maps the kind
to an HTTP status.
"""

import enum
from typing import Optional


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    NOT_ELIGIBLE = "not_eligible"
    INVALID_SHAPE = "invalid_shape"
    STATE_CONFLICT = "state_conflict"
    READ_ONLY = "read_only"


STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.NOT_ELIGIBLE: 403,
    ErrorKind.INVALID_SHAPE: 422,
    ErrorKind.STATE_CONFLICT: 409,
    ErrorKind.READ_ONLY: 503,
}


class RankingError(Exception):
    kind: ErrorKind = ErrorKind.STATE_CONFLICT

    def __init__(self, code: str, message: str):
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class NotFoundError(RankingError):
    kind = ErrorKind.NOT_FOUND


class NotEligibleError(RankingError):
    kind = ErrorKind.NOT_ELIGIBLE


class InvalidShapeError(RankingError):
    kind = ErrorKind.INVALID_SHAPE


class StateConflictError(RankingError):
    kind = ErrorKind.STATE_CONFLICT


class ReadOnlyModeError(RankingError):
    """Raised by the session guard when a write is attempted in maintenance mode."""

    kind = ErrorKind.READ_ONLY

    def __init__(self, message: str = "READ_ONLY_MODE: datastore is in read-only maintenance mode"):
        super().__init__("READ_ONLY_MODE", message)


_READ_ONLY_MARKERS = (
    "READ_ONLY_MODE",
    "attempt to write a readonly database",
    "read-only transaction",
)


def is_read_only_error(exc: Optional[BaseException]) -> bool:
    """Recognize a maintenance/read-only failure by type, name or message."""
    while exc is not None:
        if isinstance(exc, ReadOnlyModeError) or type(exc).__name__ == "ReadOnlyModeError":
            return True
        message = str(exc)
        if any(marker in message for marker in _READ_ONLY_MARKERS):
            return True
        exc = exc.__cause__ or exc.__context__
    return False
