from __future__ import annotations

from narrator.errors import NarratorError


class SessionBusyError(NarratorError):
    def __init__(self, message: str = "session is processing another request"):
        super().__init__(message, error_kind=SESSION_BUSY)


class SessionNotFoundError(NarratorError, LookupError):
    def __init__(self, session_id: str):
        super().__init__(f"session {session_id} not found", error_kind=SESSION_NOT_FOUND)
        self.session_id = session_id


class InvalidInputError(NarratorError, ValueError):
    def __init__(self, message: str):
        super().__init__(message, error_kind=INVALID_INPUT)


SESSION_BUSY = "SESSION_BUSY"
SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
INVALID_INPUT = "INVALID_INPUT"
