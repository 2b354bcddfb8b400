"""Code wrapping — turn a source block into input a REPL evaluates as one unit."""

from __future__ import annotations

import enum

EOT = "\x04"


class WrapStrategy(enum.StrEnum):
    """How source is framed before it is written to a REPL."""

    LINES = "lines"  # REPL auto-detects open brackets (node, ts-node)
    PYTHON_BLOCKS = "python_blocks"  # Blank line closes an indented block
    EDITOR_MODE = "editor_mode"  # Explicit enter-editor / EOT framing


def wrap_lines(code: str) -> str:
    """Drop blank lines and end with a newline."""
    joined = "\n".join(line for line in code.split("\n") if line.strip() != "")
    return joined + "\n" if joined else ""


def wrap_python_blocks(code: str) -> str:
    """Insert the blank lines Python's REPL needs to close compound statements.

    Example::

        "for i in range(3):\\n    print(i)\\nprint('done')"
        -> "for i in range(3):\\n    print(i)\\n\\nprint('done')\\n"
    """
    result: list[str] = []
    was_indented = False

    for line in code.split("\n"):
        if line.strip() == "":
            continue

        is_indented = line[0].isspace()
        if was_indented and not is_indented:
            result.append("")
        result.append(line)
        was_indented = is_indented

    if was_indented:
        result.append("")

    return "".join(line + "\n" for line in result)


def wrap_editor_mode(code: str, enter: str = ".editor") -> str:
    """Frame code for REPLs that buffer a block until EOT (Ctrl-D)."""
    return f"{enter}\n{code}\n{EOT}"


def wrap_code(code: str, strategy: WrapStrategy = WrapStrategy.LINES) -> str:
    """Apply ``strategy`` to ``code``."""
    if strategy is WrapStrategy.PYTHON_BLOCKS:
        return wrap_python_blocks(code)
    if strategy is WrapStrategy.EDITOR_MODE:
        return wrap_editor_mode(code)
    return wrap_lines(code)
