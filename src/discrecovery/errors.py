"""Error taxonomy for the recovery engine.

Expected outcomes (NotFound, Forbidden, InvalidState, Conflict,
InvalidRequest) are user-facing and never retried. DependencyFailure
wraps datastore errors; on a primary write it aborts the operation, on a
secondary effect the caller logs and swallows it.

NotFound deliberately covers "exists but you cannot see it" so that the
existence of someone else's recovery cannot be discovered.
"""

from __future__ import annotations

import enum
from typing import Any, Optional


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    INVALID_STATE = "invalid_state"
    ALREADY_OWNED = "already_owned"
    DROP_OFF_MISSING = "drop_off_missing"
    INVALID_REQUEST = "invalid_request"
    CONFLICT = "conflict"
    DEPENDENCY_FAILURE = "dependency_failure"


HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.INVALID_STATE: 400,
    ErrorKind.ALREADY_OWNED: 400,
    ErrorKind.DROP_OFF_MISSING: 400,
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.DEPENDENCY_FAILURE: 500,
}


class RecoveryError(Exception):
    """Base class for every error the engine reports to a caller."""

    kind: ErrorKind = ErrorKind.DEPENDENCY_FAILURE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def http_status(self) -> int:
        return HTTP_STATUS[self.kind]

    def details(self) -> dict[str, Any]:
        """Extra fields surfaced to the client alongside the message."""
        return {}


class NotFound(RecoveryError):
    kind = ErrorKind.NOT_FOUND


class Forbidden(RecoveryError):
    kind = ErrorKind.FORBIDDEN


class InvalidRequest(RecoveryError):
    kind = ErrorKind.INVALID_REQUEST


class InvalidState(RecoveryError):
    """Action not legal from the current lifecycle state.

    Always carries the current state for client debugging.
    """
    kind = ErrorKind.INVALID_STATE

    def __init__(self, message: str, current_status: Optional[str] = None) -> None:
        super().__init__(message)
        self.current_status = current_status

    def details(self) -> dict[str, Any]:
        if self.current_status is None:
            return {}
        return {"current_status": self.current_status}


class AlreadyOwned(InvalidState):
    kind = ErrorKind.ALREADY_OWNED


class DropOffMissing(InvalidState):
    kind = ErrorKind.DROP_OFF_MISSING


class Conflict(InvalidState):
    """A conditional write affected zero rows: another request won the race."""
    kind = ErrorKind.CONFLICT


class DependencyFailure(RecoveryError):
    kind = ErrorKind.DEPENDENCY_FAILURE
