"""Language registry: maps free-form language tokens to interpreter descriptors."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field

from runbook.interpreter.wrapping import WrapStrategy
from runbook.session.errors import UnsupportedLanguageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InterpreterDescriptor:
    """Static configuration for one language.

    ``shell`` languages are executed by a shell session; all others run in
    an interpreter REPL launched with ``command``.
    """

    name: str
    display_name: str
    aliases: tuple[str, ...] = ()
    command: tuple[str, ...] = ()
    wrap_strategy: WrapStrategy = WrapStrategy.LINES
    env: dict[str, str] = field(default_factory=dict)
    extensions: tuple[str, ...] = ()
    shell: bool = False


BASH = InterpreterDescriptor(
    name="bash",
    display_name="Shell",
    aliases=("sh", "shell", "zsh"),
    extensions=(".sh", ".bash", ".zsh"),
    shell=True,
)

PYTHON = InterpreterDescriptor(
    name="python",
    display_name="Python",
    aliases=("py",),
    command=("python3",),
    wrap_strategy=WrapStrategy.PYTHON_BLOCKS,
    extensions=(".py",),
)

JAVASCRIPT = InterpreterDescriptor(
    name="javascript",
    display_name="Node.js",
    aliases=("js", "node"),
    command=("node",),
    extensions=(".js", ".mjs"),
)

TYPESCRIPT = InterpreterDescriptor(
    name="typescript",
    display_name="TypeScript",
    aliases=("ts",),
    command=("ts-node",),
    env={
        # Ignore the project's tsconfig.json; it may crash ts-node on startup.
        "TS_NODE_SKIP_PROJECT": "true",
        # No type-checker: it chokes on newer node: built-ins.
        "TS_NODE_TRANSPILE_ONLY": "true",
        "TS_NODE_COMPILER_OPTIONS": json.dumps(
            {"module": "commonjs", "moduleResolution": "node"}
        ),
    },
    extensions=(".ts",),
)


class LanguageRegistry:
    """Registry of supported languages, looked up by name or alias.

    Lookups are case-insensitive and ignore surrounding whitespace.
    """

    def __init__(self) -> None:
        self._descriptors: dict[str, InterpreterDescriptor] = {}
        self._aliases: dict[str, str] = {}

    def register(self, descriptor: InterpreterDescriptor) -> LanguageRegistry:
        """Register a language. Returns self for chaining."""
        key = descriptor.name.lower()
        self._descriptors[key] = descriptor
        for alias in descriptor.aliases:
            self._aliases[alias.lower()] = key
        logger.debug("Registered language: %s", descriptor.name)
        return self

    def find(self, token: str) -> InterpreterDescriptor | None:
        normalized = token.strip().lower()
        direct = self._descriptors.get(normalized)
        if direct is not None:
            return direct
        canonical = self._aliases.get(normalized)
        return self._descriptors.get(canonical) if canonical else None

    def require(self, token: str) -> InterpreterDescriptor:
        """Like :meth:`find` but raises for unknown languages."""
        descriptor = self.find(token)
        if descriptor is None:
            raise UnsupportedLanguageError(token)
        return descriptor

    def has(self, token: str) -> bool:
        return self.find(token) is not None

    def for_extension(self, extension: str) -> InterpreterDescriptor | None:
        """Descriptor whose file extensions include ``extension`` (e.g. ".py")."""
        extension = extension.lower()
        for descriptor in self._descriptors.values():
            if extension in descriptor.extensions:
                return descriptor
        return None

    def all(self) -> list[InterpreterDescriptor]:
        return list(self._descriptors.values())

    def names(self) -> list[str]:
        return list(self._descriptors.keys())

    def normalize(self, token: str) -> str:
        """Canonical name for ``token``, or the lowered token if unknown."""
        descriptor = self.find(token)
        return descriptor.name if descriptor else token.strip().lower()

    def is_shell(self, token: str) -> bool:
        descriptor = self.find(token)
        return descriptor.shell if descriptor else False


def default_registry() -> LanguageRegistry:
    """A registry holding the built-in languages."""
    return (
        LanguageRegistry()
        .register(BASH)
        .register(PYTHON)
        .register(JAVASCRIPT)
        .register(TYPESCRIPT)
    )


# ---------------------------------------------------------------------------
# One-off execution (no persistent REPL)
# ---------------------------------------------------------------------------

_ONE_OFF_TEMPLATES = {
    "python": "python3 -c '{code}'",
    "javascript": "node -e '{code}'",
    "typescript": "npx tsx -e '{code}'",
}

_PROMPT_PREFIX_RE = re.compile(r"^[$>]\s+")


def _escape_single_quotes(code: str) -> str:
    return code.replace("'", "'\\''")


def build_one_off_command(
    code: str, language: str, registry: LanguageRegistry | None = None
) -> str:
    """Shell command that runs ``code`` once in a fresh interpreter.

    Shell languages (and languages without a one-off form) return the code
    unchanged.
    """
    registry = registry or default_registry()
    template = _ONE_OFF_TEMPLATES.get(registry.normalize(language))
    if template is None:
        return code
    return template.format(code=_escape_single_quotes(code))


def strip_prompt_prefix(text: str) -> str:
    """Remove a leading ``$ `` or ``> `` prompt from copied command text."""
    return _PROMPT_PREFIX_RE.sub("", text, count=1)
