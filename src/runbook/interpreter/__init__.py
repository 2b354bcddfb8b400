"""Language REPL sessions, the language registry and code wrapping."""

from runbook.interpreter.languages import (
    InterpreterDescriptor,
    LanguageRegistry,
    build_one_off_command,
    default_registry,
    strip_prompt_prefix,
)
from runbook.interpreter.session import InterpreterSession, create_interpreter_session
from runbook.interpreter.wrapping import WrapStrategy, wrap_code

__all__ = [
    "InterpreterDescriptor",
    "InterpreterSession",
    "LanguageRegistry",
    "WrapStrategy",
    "build_one_off_command",
    "create_interpreter_session",
    "default_registry",
    "strip_prompt_prefix",
    "wrap_code",
]
