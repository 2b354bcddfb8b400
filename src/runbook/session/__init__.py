"""Session primitives — lifecycle, events and errors shared by all session kinds."""

from runbook.session.base import Session, SessionKind, SessionOptions, SessionState
from runbook.session.errors import (
    CommandTimeoutError,
    PtyUnavailableError,
    SessionAlreadyRunningError,
    SessionError,
    SessionExitedError,
    SessionNotRunningError,
    SpawnError,
    UnsupportedLanguageError,
)
from runbook.session.events import EventChannel, SessionEvent, SessionEventType

__all__ = [
    "CommandTimeoutError",
    "EventChannel",
    "PtyUnavailableError",
    "Session",
    "SessionAlreadyRunningError",
    "SessionError",
    "SessionEvent",
    "SessionEventType",
    "SessionExitedError",
    "SessionKind",
    "SessionNotRunningError",
    "SessionOptions",
    "SessionState",
    "SpawnError",
    "UnsupportedLanguageError",
]
