"""Piped shell sessions and the marker-based command protocol."""

from runbook.shell.session import (
    Markers,
    ShellSession,
    extract_output,
    find_output_span,
    wrap_command,
)

__all__ = ["Markers", "ShellSession", "extract_output", "find_output_span", "wrap_command"]
