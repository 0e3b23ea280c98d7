"""Exceptions raised by session exchanges."""

from __future__ import annotations

from typing import Optional


class SessionError(RuntimeError):
    """Base class for every failure surfaced by a session exchange."""


class SessionTimeoutError(SessionError):
    """Raised when no reply arrives within the exchange timeout."""

    def __init__(self, message: str = "Session exchange timed out") -> None:
        super().__init__(message)


class SessionCancelError(SessionError):
    """Raised when the outstanding exchange is cancelled."""

    def __init__(self, message: str = "Session exchange cancelled") -> None:
        super().__init__(message)


class SessionAbortError(SessionError):
    """Raised when an exchange is aborted, optionally wrapping the underlying cause."""

    def __init__(self, cause: Optional[BaseException] = None, message: Optional[str] = None) -> None:
        if message is None:
            message = str(cause) if cause is not None and str(cause) else "Session exchange aborted"
        super().__init__(message)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class SessionInvalidError(SessionError):
    """Raised when an operation is attempted on a destroyed session."""

    def __init__(self, message: str = "Session has been destroyed") -> None:
        super().__init__(message)


class SessionOverflowError(SessionError):
    """Raised when the overflow policy returns an id outside the port's id space."""


__all__ = [
    "SessionError",
    "SessionTimeoutError",
    "SessionCancelError",
    "SessionAbortError",
    "SessionInvalidError",
    "SessionOverflowError",
]
