"""Tests for runbook.session.buffer (RollingBuffer, strip_ansi, sanitize_output)."""

from __future__ import annotations

from runbook.session.buffer import RollingBuffer, sanitize_output, strip_ansi


class TestRollingBufferBasics:
    def test_empty(self) -> None:
        buf = RollingBuffer()
        assert buf.line_count == 0
        assert buf.total_lines == 0
        assert buf.read_all() == ""

    def test_append_text(self) -> None:
        buf = RollingBuffer()
        buf.append_text("line1\nline2\nline3")
        # The last line stays open until a newline arrives
        assert buf.line_count == 2
        assert buf.total_lines == 2
        assert buf.read() == ["line1", "line2", "line3"]

    def test_append_text_trailing_newline(self) -> None:
        buf = RollingBuffer()
        buf.append_text("line1\nline2\n")
        assert buf.line_count == 2
        assert buf.read_all() == "line1\nline2\n"

    def test_partial_line_continues(self) -> None:
        buf = RollingBuffer()
        buf.append_text("hel")
        buf.append_text("lo\nwor")
        buf.append_text("ld\n")
        assert buf.read_tail(10) == ["hello", "world"]

    def test_empty_chunk_ignored(self) -> None:
        buf = RollingBuffer()
        buf.append_text("")
        assert buf.read_all() == ""

    def test_read_all_is_raw(self) -> None:
        buf = RollingBuffer()
        buf.append_text("\x1b[31mred\x1b[0m\r\n")
        assert buf.read_all() == "\x1b[31mred\x1b[0m\r\n"
        assert buf.read_tail(1) == ["red"]


class TestRollingBufferOverflow:
    def test_maxlen_enforced(self) -> None:
        buf = RollingBuffer(max_lines=5)
        for i in range(10):
            buf.append_text(f"line {i}\n")
        assert buf.line_count == 5
        assert buf.total_lines == 10
        assert buf.read_tail(10) == ["line 5", "line 6", "line 7", "line 8", "line 9"]

    def test_overflow_drops_oldest(self) -> None:
        buf = RollingBuffer(max_lines=3)
        buf.append_text("a\nb\nc\nd\n")
        assert "a" not in buf.read()
        assert buf.read_tail(3) == ["b", "c", "d"]


class TestRollingBufferRead:
    def test_read_with_offset(self) -> None:
        buf = RollingBuffer()
        for i in range(10):
            buf.append_text(f"line {i}\n")
        assert buf.read(offset=5, limit=3) == ["line 5", "line 6", "line 7"]

    def test_read_beyond_end(self) -> None:
        buf = RollingBuffer()
        buf.append_text("only line\n")
        assert buf.read(offset=5, limit=10) == []

    def test_read_tail_more_than_available(self) -> None:
        buf = RollingBuffer()
        buf.append_text("a\nb\n")
        assert buf.read_tail(10) == ["a", "b"]

    def test_read_tail_includes_open_line(self) -> None:
        buf = RollingBuffer()
        buf.append_text("a\n>>> ")
        assert buf.read_tail(10) == ["a", ">>> "]


class TestRollingBufferSearch:
    def test_search_basic(self) -> None:
        buf = RollingBuffer()
        buf.append_text("error: something failed\ninfo: all good\nerror: another failure\n")
        results = buf.search("error")
        assert len(results) == 2
        assert results[0] == (0, "error: something failed")
        assert results[1] == (2, "error: another failure")

    def test_search_ignores_escape_sequences(self) -> None:
        buf = RollingBuffer()
        buf.append_text("\x1b[1mTraceback\x1b[0m (most recent call last)\n")
        assert buf.search(r"^Traceback \(") == [
            (0, "Traceback (most recent call last)")
        ]

    def test_search_invalid_regex(self) -> None:
        buf = RollingBuffer()
        buf.append_text("hello\n")
        assert buf.search("[invalid") == []

    def test_search_limit(self) -> None:
        buf = RollingBuffer()
        for i in range(10):
            buf.append_text(f"match {i}\n")
        assert len(buf.search("match", limit=3)) == 3


class TestRollingBufferClear:
    def test_clear(self) -> None:
        buf = RollingBuffer()
        buf.append_text("line 0\nline 1\nopen")
        buf.clear()
        assert buf.line_count == 0
        assert buf.total_lines == 0
        assert buf.read_all() == ""


# ---------------------------------------------------------------------------
# Text cleaning
# ---------------------------------------------------------------------------


class TestCleaning:
    def test_strip_csi(self) -> None:
        assert strip_ansi("\x1b[1;32mok\x1b[0m") == "ok"

    def test_strip_osc_title(self) -> None:
        assert strip_ansi("\x1b]0;my title\x07prompt$ ") == "prompt$ "

    def test_strip_private_mode(self) -> None:
        assert strip_ansi("\x1b[?2004hx\x1b[?2004l") == "x"

    def test_sanitize_keeps_tab_and_newline(self) -> None:
        assert sanitize_output("a\tb\r\nc\x07\x08") == "a\tb\nc"

    def test_sanitize_keeps_unicode(self) -> None:
        assert sanitize_output("héllo ✓") == "héllo ✓"
