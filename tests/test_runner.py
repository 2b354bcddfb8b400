"""Tests for runbook.runner (CodeRunner, RunRequest)."""

from __future__ import annotations

import asyncio
import shlex
import shutil
import sys

import pytest

from runbook.config import RunbookConfig
from runbook.interpreter.languages import default_registry
from runbook.interpreter.session import InterpreterSession
from runbook.multiplexer import SessionKey
from runbook.pty.bridge import is_pty_available
from runbook.pty.session import TerminalSession
from runbook.runner import CodeRunner, RunRequest
from runbook.session.base import Session
from runbook.session.errors import UnsupportedLanguageError
from runbook.shell.session import ShellSession

SHELL = shutil.which("bash") or shutil.which("sh")

needs_shell = pytest.mark.skipif(SHELL is None, reason="no POSIX shell available")
needs_pty = pytest.mark.skipif(
    SHELL is None or not is_pty_available(), reason="PTY bridge unavailable"
)


def make_runner() -> CodeRunner:
    config = RunbookConfig(
        shell={"path": SHELL, "execute_timeout": 10},
        terminal={"login_shell": False},
    )
    return CodeRunner(config, default_registry())


async def wait_for_text(session: Session, needle: str, timeout: float = 15.0) -> None:
    async with asyncio.timeout(timeout):
        while needle not in session.buffer.read_all():
            await asyncio.sleep(0.05)


class TestRouting:
    @pytest.mark.asyncio
    async def test_unsupported_language_touches_nothing(self) -> None:
        runner = make_runner()
        with pytest.raises(UnsupportedLanguageError):
            await runner.run(RunRequest(code="x", language="cobol", document="a.md"))
        assert len(runner.shells) == 0
        assert len(runner.terminals) == 0
        assert len(runner.interpreters) == 0

    @pytest.mark.asyncio
    async def test_run_all_validates_every_language_first(self) -> None:
        runner = make_runner()
        requests = [
            RunRequest(code="echo hi", language="bash", document="a.md"),
            RunRequest(code="x", language="cobol", document="a.md"),
        ]
        with pytest.raises(UnsupportedLanguageError):
            await runner.run_all(requests)
        assert len(runner.shells) == 0


@needs_shell
class TestShellBlocks:
    @pytest.mark.asyncio
    async def test_returns_clean_output(self) -> None:
        runner = make_runner()
        try:
            out = await runner.run(RunRequest(code="echo hello", language="sh", document="a.md"))
            assert out == "hello"
            session = runner.shells.get(SessionKey("a.md"))
            assert isinstance(session, ShellSession)
        finally:
            runner.shutdown()

    @pytest.mark.asyncio
    async def test_state_shared_within_document(self) -> None:
        runner = make_runner()
        try:
            await runner.run(RunRequest(code="export STEP=one", language="bash", document="a.md"))
            out = await runner.run(RunRequest(code="echo $STEP", language="bash", document="a.md"))
            assert out == "one"
        finally:
            runner.shutdown()

    @pytest.mark.asyncio
    async def test_documents_are_isolated(self) -> None:
        runner = make_runner()
        try:
            await runner.run(RunRequest(code="export STEP=one", language="bash", document="a.md"))
            out = await runner.run(
                RunRequest(code='echo "${STEP:-none}"', language="bash", document="b.md")
            )
            assert out == "none"
        finally:
            runner.shutdown()

    @pytest.mark.asyncio
    async def test_request_cwd(self, tmp_path) -> None:
        runner = make_runner()
        try:
            out = await runner.run(
                RunRequest(code="ls", language="bash", document="a.md", cwd=str(tmp_path))
            )
            assert out == ""
            (tmp_path / "marker.txt").write_text("x")
            out = await runner.run(RunRequest(code="ls", language="bash", document="a.md"))
            assert out == "marker.txt"
        finally:
            runner.shutdown()

    @pytest.mark.asyncio
    async def test_run_all_uses_isolated_sessions(self) -> None:
        runner = make_runner()
        try:
            results = await runner.run_all(
                [
                    RunRequest(code="export STEP=one", language="bash", document="a.md"),
                    RunRequest(code='echo "${STEP:-none}"', language="bash", document="a.md"),
                ]
            )
            assert results == ["", "none"]
            assert len(runner.shells) == 0
        finally:
            runner.shutdown()

    @pytest.mark.asyncio
    async def test_release_document(self) -> None:
        runner = make_runner()
        try:
            await runner.run(RunRequest(code="true", language="bash", document="a.md"))
            await runner.run(RunRequest(code="true", language="bash", document="b.md"))
            session = runner.shells.get(SessionKey("a.md"))
            assert session is not None
            runner.release("a.md")
            assert not session.alive
            assert runner.shells.keys() == [SessionKey("b.md")]
        finally:
            runner.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_closes_channel(self) -> None:
        runner = make_runner()
        await runner.run(RunRequest(code="true", language="bash", document="a.md"))
        session = runner.shells.get(SessionKey("a.md"))
        runner.shutdown()
        assert runner.channel.closed
        assert session is not None and not session.alive


@needs_pty
class TestFireAndForget:
    @pytest.mark.asyncio
    async def test_interactive_shell_goes_to_terminal(self) -> None:
        runner = make_runner()
        try:
            out = await runner.run(
                RunRequest(
                    code="echo term-$((3*3))",
                    language="bash",
                    document="a.md",
                    interactive=True,
                )
            )
            assert out is None
            session = runner.terminals.get(SessionKey("a.md"))
            assert isinstance(session, TerminalSession)
            await wait_for_text(session, "term-9")
        finally:
            runner.shutdown()

    @pytest.mark.asyncio
    async def test_interpreter_block(self) -> None:
        runner = make_runner()
        try:
            out = await runner.run(
                RunRequest(
                    code="print('res', 2121 * 2)",
                    language="py",
                    document="a.md",
                    interpreter_path=shlex.quote(sys.executable),
                )
            )
            assert out is None
            session = runner.interpreters.get(SessionKey("a.md", "python"))
            assert isinstance(session, InterpreterSession)
            assert session.command == [sys.executable]
            await wait_for_text(session, "res 4242")
        finally:
            runner.shutdown()
