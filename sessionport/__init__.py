"""Request/response correlation over fire-and-forget message transports."""

from sessionport.config import SessionSettings, get_settings
from sessionport.errors import (
    SessionAbortError,
    SessionCancelError,
    SessionError,
    SessionInvalidError,
    SessionOverflowError,
    SessionTimeoutError,
)
from sessionport.exchange import PendingExchange
from sessionport.manager import SessionManager
from sessionport.options import PortOptions, SessionOptions
from sessionport.port import SessionPort
from sessionport.session import Session

__all__ = [
    "SessionManager",
    "SessionPort",
    "Session",
    "PendingExchange",
    "PortOptions",
    "SessionOptions",
    "SessionSettings",
    "get_settings",
    "SessionError",
    "SessionTimeoutError",
    "SessionCancelError",
    "SessionAbortError",
    "SessionInvalidError",
    "SessionOverflowError",
]
