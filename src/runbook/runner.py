"""Code runner — routes document code blocks to the right session.

Documents (notes, runbooks, ...) are identified by an opaque string. Each
document gets its own shell, its own PTY terminal and one REPL per language,
so state set by one block is visible to the next block of the same document.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from runbook.config import RunbookConfig
from runbook.interpreter.languages import LanguageRegistry
from runbook.interpreter.session import InterpreterSession
from runbook.multiplexer import SessionKey, SessionMultiplexer
from runbook.pty.session import TerminalSession
from runbook.session.base import Session
from runbook.session.events import EventChannel
from runbook.shell.session import ShellSession

logger = logging.getLogger(__name__)


@dataclass
class RunRequest:
    """One code block to run on behalf of a document."""

    code: str
    language: str
    document: str
    cwd: str | None = None
    interactive: bool = False  # Shell code goes to the PTY terminal instead
    interpreter_path: str | None = None


class CodeRunner:
    """Runs code blocks in per-document persistent sessions.

    Shell code run non-interactively returns its clean output. Everything
    else is fire and forget: output only arrives as ``DATA`` events on
    :attr:`channel`.
    """

    def __init__(
        self,
        config: RunbookConfig,
        registry: LanguageRegistry,
        channel: EventChannel | None = None,
    ) -> None:
        self.config = config
        self.registry = registry
        self.channel = channel or EventChannel()
        # Request being served while a factory runs; sessions are built lazily.
        self._current: RunRequest | None = None
        self.shells = SessionMultiplexer(
            self._make_shell, max_sessions=config.max_sessions
        )
        self.terminals = SessionMultiplexer(
            self._make_terminal, max_sessions=config.max_sessions
        )
        self.interpreters = SessionMultiplexer(
            self._make_interpreter, max_sessions=config.max_sessions
        )

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    def _cwd(self) -> str | None:
        return self._current.cwd if self._current else None

    def _make_shell(self, key: SessionKey) -> Session:
        return ShellSession(
            shell=self.config.shell.path,
            options=self.config.session_options(self._cwd()),
            channel=self.channel,
            title=self.shells.next_title("Shell"),
        )

    def _make_terminal(self, key: SessionKey) -> Session:
        command = [self.config.shell.path] if self.config.shell.path else None
        return TerminalSession(
            command=command,
            options=self.config.session_options(self._cwd()),
            channel=self.channel,
            title=self.terminals.next_title("Terminal"),
            bridge_python=self.config.terminal.python_path,
        )

    def _make_interpreter(self, key: SessionKey) -> Session:
        descriptor = self.registry.require(key.language or "")
        override = self._current.interpreter_path if self._current else None
        path = override or self.config.interpreters.path_for(descriptor.name)
        # The configured default equal to the built-in command is no override.
        if path and tuple(path.split()) == descriptor.command:
            path = None
        return InterpreterSession(
            descriptor,
            options=self.config.session_options(self._cwd(), command_path=path),
            channel=self.channel,
            title=self.interpreters.next_title(descriptor.display_name),
            bridge_python=self.config.terminal.python_path,
        )

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _route(self, request: RunRequest) -> tuple[SessionMultiplexer, SessionKey]:
        descriptor = self.registry.require(request.language)
        if descriptor.shell:
            mux = self.terminals if request.interactive else self.shells
            return mux, SessionKey(request.document)
        return self.interpreters, SessionKey(request.document, descriptor.name)

    async def _dispatch(self, session: Session, request: RunRequest) -> str | None:
        if isinstance(session, ShellSession):
            return await session.execute(
                request.code, timeout=self.config.shell.execute_timeout
            )
        if isinstance(session, InterpreterSession):
            session.run(request.code)
            return None
        if isinstance(session, TerminalSession):
            session.write(request.code + "\n")
            return None
        raise TypeError(f"Cannot run code in {session!r}")

    async def run(self, request: RunRequest) -> str | None:
        """Run one block in the document's shared session.

        Raises:
            UnsupportedLanguageError: Unknown language; no process is touched.
        """
        mux, key = self._route(request)
        self._current = request
        try:
            session = mux.get_or_create(key)
        finally:
            self._current = None
        logger.debug("Running %s block in session %s", request.language, session.id)
        return await self._dispatch(session, request)

    async def run_all(
        self, requests: list[RunRequest], settle: float = 0.0
    ) -> list[str | None]:
        """Run blocks in order, each in a fresh isolated session.

        Isolated sessions are killed once every block has been dispatched
        and ``settle`` seconds have passed.
        """
        routes = [self._route(request) for request in requests]
        used: list[tuple[SessionMultiplexer, Session]] = []
        results: list[str | None] = []
        try:
            for request, (mux, key) in zip(requests, routes):
                self._current = request
                try:
                    session = mux.create_isolated(key)
                finally:
                    self._current = None
                used.append((mux, session))
                results.append(await self._dispatch(session, request))
            if settle > 0:
                await asyncio.sleep(settle)
        finally:
            for mux, session in used:
                mux.release_isolated(session)
        return results

    def release(self, document: str) -> None:
        """Kill every session belonging to ``document``."""
        for mux in (self.shells, self.terminals, self.interpreters):
            mux.cleanup_document(document)

    def shutdown(self) -> None:
        for mux in (self.shells, self.terminals, self.interpreters):
            mux.cleanup_all()
        self.channel.close()
