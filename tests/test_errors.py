"""Tests for runbook.session.errors."""

from __future__ import annotations

import pytest

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


class TestHierarchy:
    @pytest.mark.parametrize(
        "cls",
        [
            SpawnError,
            PtyUnavailableError,
            SessionAlreadyRunningError,
            SessionNotRunningError,
            SessionExitedError,
            CommandTimeoutError,
        ],
    )
    def test_session_errors(self, cls: type[Exception]) -> None:
        assert issubclass(cls, SessionError)
        assert issubclass(cls, RuntimeError)

    def test_pty_unavailable_is_spawn_error(self) -> None:
        assert issubclass(PtyUnavailableError, SpawnError)

    def test_timeout_catchable_as_builtin(self) -> None:
        with pytest.raises(TimeoutError):
            raise CommandTimeoutError("Command timed out after 1s")

    def test_unsupported_language(self) -> None:
        err = UnsupportedLanguageError("cobol")
        assert str(err) == "Unsupported language: 'cobol'"
        assert err.language == "cobol"
        assert isinstance(err, LookupError)
        assert not isinstance(err, SessionError)
