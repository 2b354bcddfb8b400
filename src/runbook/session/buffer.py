"""Rolling output buffer for session processes."""

from __future__ import annotations

import re
from collections import deque

_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[a-zA-Z]|\x1b\][^\x07]*\x07")


def strip_ansi(text: str) -> str:
    """Strip ANSI escape sequences (CSI and OSC) from text."""
    return _ANSI_RE.sub("", text)


def sanitize_output(text: str) -> str:
    """Remove control characters other than tab and newline.

    Carriage returns are dropped too, so ``\\r\\n`` line endings produced by a
    pty collapse to plain ``\\n``.
    """
    cleaned = []
    for ch in text:
        cp = ord(ch)
        if ch in ("\t", "\n"):
            cleaned.append(ch)
        elif cp >= 32 and not 0x7F <= cp < 0xA0:
            cleaned.append(ch)
    return "".join(cleaned)


class RollingBuffer:
    """Rolling buffer of process output lines.

    Output arrives in arbitrary chunks, so the last line stays *open* until
    a newline is seen: appending ``"hel"`` then ``"lo\\n"`` yields the single
    line ``"hello"``.

    Lines are kept on two tracks:

    * **raw** — exactly what the process wrote, escape sequences included.
    * **clean** — ANSI-stripped, control-character-free text, used for
      searching and for short exit summaries.

    Only the most recent ``max_lines`` complete lines are retained.
    """

    def __init__(self, max_lines: int = 10_000) -> None:
        self._raw_lines: deque[str] = deque(maxlen=max_lines)
        self._partial: str = ""
        self._total_lines: int = 0

    def append_text(self, text: str) -> None:
        """Append a chunk of output, continuing the open line if any."""
        if not text:
            return
        pieces = (self._partial + text).split("\n")
        self._partial = pieces.pop()
        for line in pieces:
            self._raw_lines.append(line)
            self._total_lines += 1

    def read(self, offset: int = 0, limit: int = 500) -> list[str]:
        """Read clean lines, including the open line at the end."""
        lines = self._lines(clean=True)
        start = min(offset, len(lines))
        end = min(start + limit, len(lines))
        return lines[start:end]

    def read_all(self) -> str:
        """Everything buffered, exactly as written."""
        return "\n".join(self._lines(clean=False))

    def read_tail(self, n: int = 100) -> list[str]:
        """Read the last N clean lines, skipping a trailing empty open line."""
        lines = self._lines(clean=True)
        if not self._partial:
            lines.pop()
        return lines[-n:] if len(lines) > n else lines

    def search(self, pattern: str, limit: int = 50) -> list[tuple[int, str]]:
        """Search clean lines for a regex. Returns (line_number, text) pairs."""
        try:
            compiled = re.compile(pattern)
        except re.error:
            return []

        results = []
        for i, line in enumerate(self._lines(clean=True)):
            if compiled.search(line):
                results.append((i, line))
                if len(results) >= limit:
                    break
        return results

    def _lines(self, clean: bool) -> list[str]:
        lines = [*self._raw_lines, self._partial]
        if not clean:
            return lines
        return [sanitize_output(strip_ansi(line)) for line in lines]

    @property
    def line_count(self) -> int:
        """Number of complete lines currently held."""
        return len(self._raw_lines)

    @property
    def total_lines(self) -> int:
        """Number of complete lines ever appended."""
        return self._total_lines

    def clear(self) -> None:
        self._raw_lines.clear()
        self._partial = ""
        self._total_lines = 0
