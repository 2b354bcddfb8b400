"""PTY terminal sessions — real pseudo-terminals via a bridge helper process.

The host process never allocates a pty itself: a small helper script does,
and relays bytes over ordinary pipes plus a resize control channel.
"""

from runbook.pty.bridge import find_python, format_resize, is_pty_available
from runbook.pty.session import TerminalSession, default_shell

__all__ = [
    "TerminalSession",
    "default_shell",
    "find_python",
    "format_resize",
    "is_pty_available",
]
