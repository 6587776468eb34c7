"""Domain error kinds raised by the focus-session core.

Every error carries a machine-readable ``kind`` and a human message; the HTTP
layer turns them into ``HTTPException`` details via :meth:`to_detail`.
``CLOCK_ANOMALY`` is only ever logged: the offending value is clamped and the
operation carries on.
"""
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_STATE = "invalid_state"
    CLOCK_ANOMALY = "clock_anomaly"


class FocusTrackError(Exception):
    kind: ErrorKind
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {"error": self.kind.value, "message": self.message}


class Unauthorized(FocusTrackError):
    kind = ErrorKind.UNAUTHORIZED
    status_code = 401


class NotFound(FocusTrackError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class Conflict(FocusTrackError):
    """An open session already exists; its id lets the caller resume or close it."""

    kind = ErrorKind.CONFLICT
    status_code = 409

    def __init__(self, message: str, active_session_id: str) -> None:
        super().__init__(message)
        self.active_session_id = active_session_id

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["active_session_id"] = self.active_session_id
        return detail


class InvalidState(FocusTrackError):
    kind = ErrorKind.INVALID_STATE
    status_code = 409


def require_user(user_id: str | None) -> str:
    if not user_id:
        raise Unauthorized("User not authenticated")
    return user_id
