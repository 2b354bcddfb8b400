"""Terminal session — an interactive command attached to a real pty.

The pty itself lives in the bridge helper process; this object only talks
to the helper's stdio pipes plus a control pipe used for resizing.
"""

from __future__ import annotations

import logging
import os

from runbook.pty.bridge import (
    CONTROL_FD_ENV,
    LOGIN_SHELL_ENV,
    build_bridge_argv,
    find_python,
    format_resize,
    is_pty_available,
)
from runbook.session.base import Session, SessionKind, SessionOptions
from runbook.session.errors import PtyUnavailableError, SessionAlreadyRunningError
from runbook.session.events import EventChannel

logger = logging.getLogger(__name__)


def default_shell() -> str:
    """The user's shell for the current platform."""
    if os.name == "nt":
        return os.environ.get("COMSPEC", "cmd.exe")
    return os.environ.get("SHELL", "/bin/bash")


class TerminalSession(Session):
    """A managed pseudo-terminal session.

    Output is surfaced raw (escape sequences included) as ``DATA`` events;
    interpreting it is the renderer's job.

    Args:
        command: argv to run inside the pty. Defaults to the user's shell.
        options: Launch options. ``command_path`` replaces ``command[0]``.
        channel: Event channel to publish on (one is created if omitted).
        title: Human-readable label.
        bridge_python: Python runtime for the helper (probed if omitted).
    """

    kind = SessionKind.TERMINAL

    def __init__(
        self,
        command: list[str] | None = None,
        options: SessionOptions | None = None,
        channel: EventChannel | None = None,
        title: str = "",
        bridge_python: str | None = None,
    ) -> None:
        super().__init__(options=options, channel=channel, title=title)
        self._command = list(command) if command else None
        self._bridge_python = bridge_python
        self._control_fd: int | None = None

    @property
    def command(self) -> list[str]:
        """The argv this session runs inside the pty."""
        command = self._command or [default_shell()]
        if self.options.command_path:
            return [self.options.command_path, *command[1:]]
        return command

    @property
    def dimensions(self) -> tuple[int, int]:
        return (self.options.cols or 80, self.options.rows or 24)

    def _extra_env(self) -> dict[str, str]:
        """Per-variant environment additions."""
        return {}

    def spawn(self) -> None:
        """Start the bridge helper with our command attached to its pty."""
        if self.alive:
            raise SessionAlreadyRunningError(
                "Terminal session already running. Call kill() first."
            )
        if not is_pty_available(self._bridge_python):
            raise PtyUnavailableError(
                "Python 3 not found (needed for the PTY bridge). Please install Python 3."
            )
        python = find_python(self._bridge_python)

        read_fd, write_fd = os.pipe()
        env = self._build_env(
            {
                "TERM": "xterm-256color",
                CONTROL_FD_ENV: str(read_fd),
                LOGIN_SHELL_ENV: "1" if self.options.login_shell else "0",
                **self._extra_env(),
            }
        )
        try:
            proc = self._launch(
                build_bridge_argv(python, self.command),  # type: ignore[arg-type]
                env,
                pass_fds=(read_fd,),
            )
        except BaseException:
            os.close(write_fd)
            raise
        finally:
            # The helper owns the read end now
            os.close(read_fd)

        self._control_fd = write_fd
        self._attach(proc)

        if self.options.cols and self.options.rows:
            self.resize(self.options.cols, self.options.rows)

    def write(self, data: str | bytes) -> None:
        """Send input to the process inside the pty."""
        if isinstance(data, str):
            data = data.encode()
        self._write_bytes(data)

    def resize(self, cols: int, rows: int) -> None:
        """Resize the pty. Best effort: silently ignored when not possible."""
        if not self.alive or self._control_fd is None or cols <= 0 or rows <= 0:
            return
        try:
            os.write(self._control_fd, format_resize(cols, rows))
        except OSError as e:
            logger.debug("Resize of session %s ignored: %s", self.id, e)
            self._close_control()

    def _release(self) -> None:
        self._close_control()

    def _close_control(self) -> None:
        if self._control_fd is None:
            return
        try:
            os.close(self._control_fd)
        except OSError:
            logger.debug("Control pipe of session %s already closed", self.id)
        self._control_fd = None
