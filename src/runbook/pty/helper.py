"""PTY bridge helper — runs a command inside a real pseudo-terminal.

Standalone program (standard library only) launched by
:class:`runbook.pty.session.TerminalSession` so the host process never needs
a native pty binding::

    python helper.py <command> [args...]

* bytes from our stdin are copied to the pty, bytes from the pty to our
  stdout;
* the descriptor named by ``RUNBOOK_CONTROL_FD`` (default 3) carries resize
  lines of the form ``<cols>x<rows>\\n``; malformed lines are ignored and a
  missing descriptor only disables resizing;
* with ``RUNBOOK_LOGIN_SHELL=1`` the command is started through the user's
  login shell so PATH from shell profiles applies;
* we exit when the child exits or the pty reaches EOF, mirroring the
  child's exit status.
"""

import fcntl
import os
import select
import shlex
import signal
import struct
import sys
import termios

STDIN = 0
STDOUT = 1
KNOWN_SHELLS = ("bash", "zsh", "sh", "fish", "ksh", "tcsh", "csh", "dash")
EXEC_FAILED = 127
DRAIN_QUIET = 0.5


def set_nonblocking(fd):
    flags = fcntl.fcntl(fd, fcntl.F_GETFL)
    fcntl.fcntl(fd, fcntl.F_SETFL, flags | os.O_NONBLOCK)


def set_winsize(fd, cols, rows):
    winsize = struct.pack("HHHH", rows, cols, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


def parse_resize(line):
    """Parse ``<cols>x<rows>``; returns None for anything malformed."""
    cols, sep, rows = line.strip().partition("x")
    if not sep:
        return None
    try:
        cols, rows = int(cols), int(rows)
    except ValueError:
        return None
    if cols <= 0 or rows <= 0:
        return None
    return cols, rows


def resolve_argv(cmd, login_shell, user_shell):
    """Final argv to exec inside the pty."""
    if not login_shell:
        return list(cmd)
    if len(cmd) == 1 and os.path.basename(cmd[0]) in KNOWN_SHELLS:
        return [cmd[0], "-l"]
    return [user_shell, "-l", "-c", "exec " + " ".join(shlex.quote(c) for c in cmd)]


def exit_status(status):
    if os.WIFEXITED(status):
        return os.WEXITSTATUS(status)
    if os.WIFSIGNALED(status):
        return 128 + os.WTERMSIG(status)
    return 1


def open_control(fd):
    try:
        set_nonblocking(fd)
    except OSError:
        return None
    return fd


def write_all(fd, data):
    """Write everything to a non-blocking fd, waiting while it is full."""
    view = memoryview(data)
    while view:
        try:
            written = os.write(fd, view)
        except BlockingIOError:
            select.select([], [fd], [], 0.1)
            continue
        view = view[written:]


def drain(fd, quiet=DRAIN_QUIET):
    """Forward the pty output still in flight after the child was reaped.

    Reads until the slave side is closed (EOF or EIO). If a leftover
    process keeps the slave open, stops after ``quiet`` seconds without
    output.
    """
    while True:
        try:
            readable, _, _ = select.select([fd], [], [], quiet)
        except InterruptedError:
            continue
        if not readable:
            return
        try:
            data = os.read(fd, 4096)
        except BlockingIOError:
            continue
        except OSError:
            return  # EIO: slave closed
        if not data:
            return
        os.write(STDOUT, data)


def _terminate(signum, frame):
    raise SystemExit(128 + signum)


def relay(pid, pty_fd, control_fd):
    """Copy bytes until the child is gone. Returns the child's wait status."""
    read_fds = [STDIN, pty_fd]
    if control_fd is not None:
        read_fds.append(control_fd)
    control_buffer = ""

    while True:
        try:
            readable, _, _ = select.select(read_fds, [], [], 0.1)
        except InterruptedError:
            continue

        for fd in readable:
            if fd == pty_fd:
                try:
                    data = os.read(pty_fd, 4096)
                except BlockingIOError:
                    continue
                except OSError:
                    data = b""
                if not data:
                    return os.waitpid(pid, 0)[1]
                os.write(STDOUT, data)

            elif fd == STDIN:
                try:
                    data = os.read(STDIN, 4096)
                except BlockingIOError:
                    continue
                if not data:
                    # Owner closed our stdin: stop forwarding, keep relaying output.
                    read_fds.remove(STDIN)
                    continue
                write_all(pty_fd, data)

            elif fd == control_fd:
                try:
                    data = os.read(control_fd, 256)
                except BlockingIOError:
                    continue
                if not data:
                    read_fds.remove(control_fd)
                    continue
                control_buffer += data.decode("utf-8", errors="ignore")
                while "\n" in control_buffer:
                    line, control_buffer = control_buffer.split("\n", 1)
                    size = parse_resize(line)
                    if size is None:
                        continue
                    try:
                        set_winsize(pty_fd, *size)
                        os.kill(pid, signal.SIGWINCH)
                    except OSError:
                        continue  # Resizing is best effort

        done, status = os.waitpid(pid, os.WNOHANG)
        if done != 0:
            drain(pty_fd)
            return status


def main(argv=None):
    cmd = sys.argv[1:] if argv is None else argv
    if not cmd:
        print("No command specified", file=sys.stderr)
        return 2

    login_shell = os.environ.get("RUNBOOK_LOGIN_SHELL") == "1"
    user_shell = os.environ.get("SHELL", "/bin/bash")
    args = resolve_argv(cmd, login_shell, user_shell)

    pid, pty_fd = os.forkpty()
    if pid == 0:
        try:
            os.execvp(args[0], args)
        except OSError as e:
            os.write(2, f"{args[0]}: {e.strerror}\r\n".encode())
        os._exit(EXEC_FAILED)

    signal.signal(signal.SIGTERM, _terminate)
    signal.signal(signal.SIGHUP, _terminate)

    set_nonblocking(STDIN)
    set_nonblocking(pty_fd)
    control_fd = open_control(int(os.environ.get("RUNBOOK_CONTROL_FD", "3")))

    status = None
    try:
        status = relay(pid, pty_fd, control_fd)
    finally:
        if status is None:
            try:
                os.kill(pid, signal.SIGTERM)
            except ProcessLookupError:
                pass  # Already gone
    return exit_status(status)


if __name__ == "__main__":
    sys.exit(main())
