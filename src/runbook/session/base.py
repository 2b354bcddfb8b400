"""Session base — lifecycle and process plumbing shared by every session kind.

A session owns exactly one backing OS process at a time. Output is read by
an asyncio reader task (blocking reads run in the default executor) and is
published on the session's :class:`EventChannel`. All state transitions
happen on the event loop thread, so no locking is needed.
"""

from __future__ import annotations

import asyncio
import codecs
import enum
import logging
import os
import signal
import subprocess
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from runbook.session.buffer import RollingBuffer
from runbook.session.errors import SessionNotRunningError, SpawnError
from runbook.session.events import EventChannel

logger = logging.getLogger(__name__)


class SessionState(enum.StrEnum):
    """Lifecycle states for a session."""

    IDLE = "idle"  # Never spawned
    ALIVE = "alive"
    DEAD = "dead"  # Exited on its own or killed


class SessionKind(enum.StrEnum):
    """The closed set of session variants."""

    TERMINAL = "terminal"
    SHELL = "shell"
    INTERPRETER = "interpreter"


@dataclass(frozen=True)
class SessionOptions:
    """Launch options common to all session kinds."""

    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    cols: int | None = None
    rows: int | None = None
    command_path: str | None = None
    login_shell: bool = False


class Session(ABC):
    """Base class for all sessions.

    Subclasses declare their ``kind`` and implement :meth:`spawn`, which
    must end with a call to :meth:`_attach`.
    """

    kind: SessionKind
    KILL_GRACE = 2.0  # Seconds between SIGTERM and SIGKILL
    READ_SIZE = 4096

    def __init__(
        self,
        options: SessionOptions | None = None,
        channel: EventChannel | None = None,
        title: str = "",
    ) -> None:
        self.id: str = uuid.uuid4().hex[:8]
        self.options = options or SessionOptions()
        self.channel = channel or EventChannel()
        self.title = title
        self.buffer = RollingBuffer()
        self._state = SessionState.IDLE
        self._proc: subprocess.Popen | None = None
        self._reader_task: asyncio.Task | None = None
        self._exit_code: int | None = None

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    @property
    def resizable(self) -> bool:
        return self.kind in (SessionKind.TERMINAL, SessionKind.INTERPRETER)

    @property
    def wraps_code(self) -> bool:
        return self.kind is SessionKind.INTERPRETER

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def alive(self) -> bool:
        return self._state is SessionState.ALIVE

    @property
    def pid(self) -> int | None:
        if self._state is SessionState.ALIVE and self._proc is not None:
            return self._proc.pid
        return None

    @property
    def exit_code(self) -> int | None:
        """Exit code of the last process, once it has exited on its own."""
        return self._exit_code

    def _set_state(self, state: SessionState) -> None:
        if self._state is not state:
            self._state = state
            self.channel.send_state(self.id, state)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @abstractmethod
    def spawn(self) -> None:
        """Start the backing process. Synchronous; needs a running loop."""

    def restart(self) -> None:
        """Kill the current process (if any) and start a brand-new one."""
        self.kill()
        self.spawn()

    def kill(self) -> None:
        """Terminate the process group and stop publishing its events."""
        proc = self._proc
        if proc is None:
            return

        # Detach first: the reader drops anything this process still emits.
        self._proc = None
        if proc.stdin is not None:
            try:
                proc.stdin.close()
            except OSError:
                logger.debug("stdin of session %s already broken", self.id)

        _signal_group(proc, signal.SIGTERM)
        try:
            proc.wait(timeout=self.KILL_GRACE)
        except subprocess.TimeoutExpired:
            logger.warning(
                "Session %s did not exit after SIGTERM, sending SIGKILL", self.id
            )
            _signal_group(proc, signal.SIGKILL)
            proc.wait()

        logger.info("Killed session %s (pid=%d)", self.id, proc.pid)
        self._release()
        self._set_state(SessionState.DEAD)

    # ------------------------------------------------------------------
    # Process plumbing for subclasses
    # ------------------------------------------------------------------

    def _release(self) -> None:
        """Free per-process resources other than the process itself."""

    def _build_env(self, overrides: dict[str, str] | None = None) -> dict[str, str]:
        env = {**os.environ, **self.options.env}
        if overrides:
            env.update(overrides)
        if self.options.cols:
            env["COLUMNS"] = str(self.options.cols)
        if self.options.rows:
            env["LINES"] = str(self.options.rows)
        return env

    def _launch(
        self,
        argv: list[str],
        env: dict[str, str],
        pass_fds: tuple[int, ...] = (),
    ) -> subprocess.Popen:
        """Start ``argv`` with piped stdio in its own process group."""
        # Fail before forking anything if there is no loop to read output on.
        asyncio.get_running_loop()
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                cwd=self.options.cwd or os.getcwd(),
                env=env,
                pass_fds=pass_fds,
                start_new_session=True,  # Own process group for tree-killing
            )
        except OSError as e:
            raise SpawnError(f"Failed to start {argv[0]!r}: {e}") from e
        return proc

    def _attach(self, proc: subprocess.Popen) -> None:
        """Adopt a freshly launched process and start reading its output."""
        self._proc = proc
        self._exit_code = None
        self._set_state(SessionState.ALIVE)
        self._reader_task = asyncio.get_running_loop().create_task(
            self._read_loop(proc)
        )
        logger.info(
            "%s session %s started: pid=%d cmd=%s",
            self.kind.value.capitalize(),
            self.id,
            proc.pid,
            " ".join(proc.args),  # type: ignore[arg-type]
        )

    def _write_bytes(self, data: bytes) -> None:
        proc = self._proc
        if self._state is not SessionState.ALIVE or proc is None or proc.stdin is None:
            raise SessionNotRunningError(
                f"{self.kind.value.capitalize()} session not running. Call spawn() first."
            )
        try:
            proc.stdin.write(data)
            proc.stdin.flush()
        except OSError as e:
            self._fail(proc, e)
            raise SessionNotRunningError(
                f"{self.kind.value.capitalize()} session {self.id} lost its process: {e}"
            ) from e

    def _fail(self, proc: subprocess.Popen, error: BaseException) -> None:
        """Runtime OS error after spawn: publish it and force the session dead."""
        if proc is not self._proc:
            return
        logger.warning("Session %s failed: %s", self.id, error)
        self.channel.send_error(self.id, str(error))
        self.kill()

    def _on_output(self, text: str) -> None:
        self.buffer.append_text(text)
        self.channel.send_data(self.id, text)

    async def _read_loop(self, proc: subprocess.Popen) -> None:
        """Continuously read the process's merged stdout/stderr."""
        loop = asyncio.get_running_loop()
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        fd = proc.stdout.fileno()  # type: ignore[union-attr]
        try:
            while True:
                try:
                    data = await loop.run_in_executor(
                        None, os.read, fd, self.READ_SIZE
                    )
                except OSError as e:
                    self._fail(proc, e)
                    break

                if not data:
                    break
                if proc is not self._proc:
                    continue  # Killed: drain silently until EOF

                text = decoder.decode(data)
                if text:
                    self._on_output(text)
        finally:
            proc.stdout.close()  # type: ignore[union-attr]

        if proc is not self._proc:
            return

        tail = decoder.decode(b"", final=True)
        if tail:
            self._on_output(tail)

        exit_code = await loop.run_in_executor(None, proc.wait)
        if proc is not self._proc:
            return  # Killed while we were reaping
        self._proc = None
        self._exit_code = exit_code
        logger.info("Session %s exited (code=%s)", self.id, exit_code)
        self._release()
        self.channel.send_exit(self.id, exit_code)
        self._set_state(SessionState.DEAD)

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} id={self.id} state={self._state.value} "
            f"pid={self.pid}>"
        )


def _signal_group(proc: subprocess.Popen, sig: signal.Signals) -> None:
    """Signal the process group led by ``proc``."""
    if os.name != "posix":
        proc.kill()
        return
    try:
        os.killpg(proc.pid, sig)
    except ProcessLookupError:
        logger.debug("Process group already gone: %d", proc.pid)
