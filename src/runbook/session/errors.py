"""Session errors — everything the engine raises to its callers."""

from __future__ import annotations


class SessionError(RuntimeError):
    """Base class for session failures."""


class SpawnError(SessionError):
    """The backing process (shell, interpreter or bridge) could not be started."""


class PtyUnavailableError(SpawnError):
    """No runtime able to host the PTY bridge helper was found."""


class SessionAlreadyRunningError(SessionError):
    """spawn() was called on a session that is still alive."""


class SessionNotRunningError(SessionError):
    """An operation needs a live process but the session is idle or dead."""


class SessionExitedError(SessionError):
    """The process exited while a command was waiting for its result."""


class CommandTimeoutError(SessionError, TimeoutError):
    """A command did not finish before the caller stopped waiting.

    The command itself is not interrupted; it keeps running in the session.
    """


class UnsupportedLanguageError(LookupError):
    """No interpreter descriptor matches the requested language."""

    def __init__(self, language: str) -> None:
        super().__init__(f"Unsupported language: {language!r}")
        self.language = language
