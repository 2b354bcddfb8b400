"""Shell session — a piped (non-pty) shell with a marker-based execute protocol.

Shells never announce "command finished, here is its output", so every
command is bracketed by two unique marker lines printed with ``printf`` and
the output between them is cut out of the stream.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import time
import uuid
from dataclasses import dataclass

from runbook.pty.session import default_shell
from runbook.session.base import Session, SessionKind, SessionOptions, SessionState
from runbook.session.errors import (
    CommandTimeoutError,
    SessionAlreadyRunningError,
    SessionError,
    SessionExitedError,
    SessionNotRunningError,
)
from runbook.session.events import EventChannel, SessionEventType

logger = logging.getLogger(__name__)

MARKER_PREFIX = "RUNBOOK"


@dataclass(frozen=True)
class Markers:
    """Start/end sentinels for one execute() call."""

    start: str
    end: str

    @classmethod
    def generate(cls, prefix: str = MARKER_PREFIX) -> Markers:
        marker_id = f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
        return cls(start=f"{prefix}_S_{marker_id}", end=f"{prefix}_E_{marker_id}")


def wrap_command(command: str, markers: Markers) -> str:
    """The single line written to the shell for ``command``.

    ``;`` joins keep the end marker printing even when the command fails.
    Trailing whitespace is dropped: a trailing newline would leave the
    second ``;`` at the start of a line, which is a syntax error.
    """
    return (
        f"printf '%s\\n' '{markers.start}'; {command.rstrip()}; "
        f"printf '%s\\n' '{markers.end}'\n"
    )


def _looks_like_marker_echo(line: str) -> bool:
    return line.startswith(("echo ", "printf ")) and f"{MARKER_PREFIX}_" in line


def _marker_line(marker: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(marker)}\r?$", re.MULTILINE)


def find_output_span(raw: str, markers: Markers) -> tuple[int, int] | None:
    """Offsets of the text between the start and end marker lines.

    Markers only count as whole lines, so an echoed ``printf`` carrying a
    marker id never matches. Returns None until both lines are present.
    """
    start = _marker_line(markers.start).search(raw)
    if start is None:
        return None
    end = _marker_line(markers.end).search(raw, start.end())
    if end is None:
        return None
    return start.end(), end.start()


def extract_output(raw: str, command: str, markers: Markers) -> str:
    """Cut the clean command output out of the raw stream.

    Lines that are empty, equal to the submitted command, or that look like
    an echoed marker command are dropped. A genuine output line identical
    to the command text is dropped too.
    """
    span = find_output_span(raw, markers)
    if span is None:
        return raw

    content = raw[span[0] : span[1]]
    lines = [
        line
        for line in content.split("\n")
        if line != "" and line != command and not _looks_like_marker_echo(line)
    ]
    return "\n".join(lines)


def shell_args(shell: str) -> list[str]:
    """Arguments that keep the shell free of rc-file noise."""
    if os.name == "nt":
        return []
    name = os.path.basename(shell)
    if "bash" in name:
        return ["--norc", "--noprofile"]
    if "zsh" in name:
        return ["--no-rcs"]
    return []


class ShellSession(Session):
    """A persistent shell whose state (variables, cwd) survives between commands.

    Only one :meth:`execute` may be in flight at a time: output of
    overlapping commands lands in one stream and cannot be told apart.
    """

    kind = SessionKind.SHELL

    def __init__(
        self,
        shell: str | None = None,
        options: SessionOptions | None = None,
        channel: EventChannel | None = None,
        title: str = "",
    ) -> None:
        super().__init__(options=options, channel=channel, title=title)
        self._shell = shell

    @staticmethod
    def default_shell() -> str:
        return default_shell()

    @property
    def shell(self) -> str:
        return self.options.command_path or self._shell or default_shell()

    @property
    def output_buffer(self) -> str:
        """Everything the shell has printed since spawn or the last clear."""
        return self.buffer.read_all()

    def clear_output_buffer(self) -> None:
        self.buffer.clear()

    def spawn(self) -> None:
        """Start the shell process."""
        if self.alive:
            raise SessionAlreadyRunningError(
                "Shell session already running. Call kill() first."
            )
        shell = self.shell
        env = self._build_env({"TERM": "dumb", "PS1": "", "PS2": ""})
        proc = self._launch([shell, *shell_args(shell)], env)
        self.buffer.clear()
        self._attach(proc)

    def send_raw(self, text: str) -> None:
        """Write input to the shell without waiting for anything."""
        self._write_bytes(text.encode())

    async def execute(self, command: str, timeout: float = 30.0) -> str:
        """Run ``command`` and return its cleaned output.

        Args:
            command: Shell command text (may span several lines).
            timeout: Seconds to wait before giving up. The command is not
                interrupted; it keeps running in the shell.

        Raises:
            SessionNotRunningError: The shell is not alive.
            SessionExitedError: The shell exited before the command finished.
            CommandTimeoutError: ``timeout`` elapsed first.
            SessionError: The shell process reported an error.
        """
        if self._state is not SessionState.ALIVE:
            raise SessionNotRunningError(
                "Shell session not running. Call spawn() first."
                if self._state is SessionState.IDLE
                else f"Shell session is {self._state.value}. Cannot execute command."
            )
        if not command.strip():
            raise ValueError("Cannot execute an empty command")

        markers = Markers.generate()
        queue = self.channel.subscribe()
        try:
            self._write_bytes(wrap_command(command, markers).encode())
            logger.debug("Session %s executing %r (%s)", self.id, command, markers.end)
            try:
                async with asyncio.timeout(timeout if timeout > 0 else None):
                    return await self._collect(queue, command, markers)
            except TimeoutError:
                raise CommandTimeoutError(
                    f"Command timed out after {timeout}s"
                ) from None
        finally:
            self.channel.unsubscribe(queue)

    async def _collect(
        self, queue: asyncio.Queue, command: str, markers: Markers
    ) -> str:
        """Consume this session's events until the end marker shows up."""
        output = ""
        while True:
            event = await queue.get()
            if event is None:
                raise SessionExitedError("Shell exited unexpectedly")
            if event.session_id != self.id:
                continue

            if event.type is SessionEventType.DATA:
                output += event.data["text"]
                if find_output_span(output, markers) is not None:
                    return extract_output(output, command, markers)
            elif event.type is SessionEventType.ERROR:
                raise SessionError(event.data["error"])
            elif event.type is SessionEventType.EXIT:
                raise SessionExitedError("Shell exited unexpectedly")
            elif (
                event.type is SessionEventType.STATE_CHANGE
                and event.data["state"] is SessionState.DEAD
            ):
                raise SessionExitedError("Shell exited unexpectedly")
