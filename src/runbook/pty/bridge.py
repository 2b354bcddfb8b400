"""PTY bridge — locating and launching the bridge helper.

The helper (``runbook/pty/helper.py``) is an ordinary Python script, so the
only host requirement is a Python 3 runtime on a platform with ptys. The
probe result is cached for the life of the process.
"""

from __future__ import annotations

import functools
import logging
import shutil
import subprocess
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

CONTROL_FD_ENV = "RUNBOOK_CONTROL_FD"
LOGIN_SHELL_ENV = "RUNBOOK_LOGIN_SHELL"
SUPPORTED_PLATFORMS = ("linux", "darwin")


def helper_path() -> Path:
    """Filesystem path of the bridge helper script."""
    return Path(__file__).with_name("helper.py")


def format_resize(cols: int, rows: int) -> bytes:
    """The control-channel line asking the bridge to resize the pty."""
    return f"{cols}x{rows}\n".encode()


def build_bridge_argv(python: str, command: list[str]) -> list[str]:
    """argv that runs ``command`` inside a pty via the helper."""
    return [python, str(helper_path()), *command]


def _reports_python3(executable: str) -> bool:
    try:
        result = subprocess.run(
            [executable, "--version"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.TimeoutExpired):
        return False
    return "Python 3" in (result.stdout + result.stderr)


@functools.lru_cache(maxsize=None)
def find_python(preferred: str | None = None) -> str | None:
    """Find a Python 3 executable able to run the bridge helper.

    Tries ``preferred`` (a configured override) first, then the running
    interpreter, then ``python3`` and ``python`` on PATH.
    """
    candidates = [preferred, sys.executable, "python3", "python"]
    for candidate in candidates:
        if not candidate:
            continue
        resolved = shutil.which(candidate)
        if resolved and _reports_python3(resolved):
            logger.debug("Bridge runtime: %s", resolved)
            return resolved
    logger.warning("No Python 3 runtime found for the PTY bridge")
    return None


@functools.lru_cache(maxsize=None)
def is_pty_available(preferred: str | None = None) -> bool:
    """True on Linux/macOS when a bridge runtime can be found."""
    if not sys.platform.startswith(SUPPORTED_PLATFORMS):
        return False
    return find_python(preferred) is not None
