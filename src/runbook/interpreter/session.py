"""Interpreter session — a language REPL running inside a PTY terminal session."""

from __future__ import annotations

import logging
import shlex

from runbook.interpreter.languages import InterpreterDescriptor, LanguageRegistry
from runbook.interpreter.wrapping import wrap_code
from runbook.pty.session import TerminalSession
from runbook.session.base import SessionKind, SessionOptions
from runbook.session.events import EventChannel

logger = logging.getLogger(__name__)


class InterpreterSession(TerminalSession):
    """A persistent REPL for one language.

    Code is wrapped per the descriptor's strategy before it is written, so a
    multi-line block reaches the REPL as one evaluable unit. Results are
    never captured: the REPL's output is only surfaced as ``DATA`` events.
    """

    kind = SessionKind.INTERPRETER

    def __init__(
        self,
        descriptor: InterpreterDescriptor,
        options: SessionOptions | None = None,
        channel: EventChannel | None = None,
        title: str = "",
        bridge_python: str | None = None,
    ) -> None:
        super().__init__(
            command=list(descriptor.command),
            options=options,
            channel=channel,
            title=title or descriptor.display_name,
            bridge_python=bridge_python,
        )
        self.descriptor = descriptor

    @property
    def language(self) -> str:
        return self.descriptor.name

    @property
    def display_name(self) -> str:
        return self.descriptor.display_name

    @property
    def command(self) -> list[str]:
        # An override may carry its own flags, e.g. "python3 -q".
        if self.options.command_path:
            return shlex.split(self.options.command_path)
        return list(self.descriptor.command)

    def _extra_env(self) -> dict[str, str]:
        return dict(self.descriptor.env)

    def wrap_code(self, code: str) -> str:
        return wrap_code(code, self.descriptor.wrap_strategy)

    def run(self, code: str) -> None:
        """Write a wrapped block to the REPL. Fire and forget."""
        wrapped = self.wrap_code(code)
        if not wrapped:
            logger.debug("Session %s: nothing to run", self.id)
            return
        self.write(wrapped)


def create_interpreter_session(
    registry: LanguageRegistry,
    language: str,
    options: SessionOptions | None = None,
    channel: EventChannel | None = None,
    bridge_python: str | None = None,
) -> InterpreterSession:
    """Build an unspawned REPL session for ``language``.

    Raises:
        UnsupportedLanguageError: ``language`` is not registered.
        ValueError: ``language`` is a shell language (use a shell session).
    """
    descriptor = registry.require(language)
    if descriptor.shell:
        raise ValueError(
            f"{descriptor.display_name} runs in a shell session, not an interpreter"
        )
    return InterpreterSession(
        descriptor, options=options, channel=channel, bridge_python=bridge_python
    )
