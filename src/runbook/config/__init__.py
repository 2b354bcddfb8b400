"""Configuration — Pydantic models for runbook settings."""

from __future__ import annotations

import json
import os
from typing import Any

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field

from runbook.session.base import SessionOptions


class ShellConfig(BaseModel):
    """Piped shell session settings."""

    path: str | None = Field(
        default=None, description="Shell executable; defaults to $SHELL"
    )
    execute_timeout: float = Field(
        default=30.0, description="Seconds to wait for a command's end marker"
    )


class InterpreterPaths(BaseModel):
    """Executable (optionally with flags) used to launch each REPL."""

    python: str = Field(default="python3")
    javascript: str = Field(default="node")
    typescript: str = Field(default="ts-node")

    def path_for(self, language: str) -> str | None:
        return getattr(self, language, None)


class TerminalConfig(BaseModel):
    """PTY terminal settings."""

    cols: int = Field(default=80, gt=0)
    rows: int = Field(default=24, gt=0)
    login_shell: bool = Field(
        default=True,
        description="Run commands through the user's login shell so PATH matches a normal terminal",
    )
    python_path: str | None = Field(
        default=None, description="Python runtime for the PTY bridge helper"
    )


class RunbookConfig(BaseModel):
    """Top-level runbook configuration."""

    shell: ShellConfig = Field(default_factory=ShellConfig)
    interpreters: InterpreterPaths = Field(default_factory=InterpreterPaths)
    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    cwd: str | None = Field(
        default=None, description="Working directory for new sessions"
    )
    max_sessions: int | None = Field(
        default=None, description="Cap on shared sessions (oldest evicted first)"
    )

    def session_options(
        self, cwd: str | None = None, command_path: str | None = None
    ) -> SessionOptions:
        """Launch options for a new session."""
        return SessionOptions(
            cwd=cwd or self.cwd,
            cols=self.terminal.cols,
            rows=self.terminal.rows,
            command_path=command_path,
            login_shell=self.terminal.login_shell,
        )

    @classmethod
    def load(cls, config_path: str | None = None) -> RunbookConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            RUNBOOK_SHELL          - Shell executable
            RUNBOOK_PYTHON         - Python REPL command
            RUNBOOK_NODE           - Node.js REPL command
            RUNBOOK_TYPESCRIPT     - TypeScript REPL command
            RUNBOOK_CWD            - Working directory for new sessions
            RUNBOOK_COLS           - Terminal width
            RUNBOOK_ROWS           - Terminal height
            RUNBOOK_TIMEOUT        - Shell execute timeout in seconds
            RUNBOOK_BRIDGE_PYTHON  - Python runtime for the PTY bridge
        """
        # .env values win over stale exported ones.
        load_dotenv(find_dotenv(usecwd=True), override=True)

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        shell = config_data.get("shell", {})
        interpreters = config_data.get("interpreters", {})
        terminal = config_data.get("terminal", {})

        env_shell = os.environ.get("RUNBOOK_SHELL")
        if env_shell:
            shell["path"] = env_shell

        env_timeout = os.environ.get("RUNBOOK_TIMEOUT")
        if env_timeout:
            shell["execute_timeout"] = float(env_timeout)

        for var, language in (
            ("RUNBOOK_PYTHON", "python"),
            ("RUNBOOK_NODE", "javascript"),
            ("RUNBOOK_TYPESCRIPT", "typescript"),
        ):
            value = os.environ.get(var)
            if value:
                interpreters[language] = value

        env_cols = os.environ.get("RUNBOOK_COLS")
        if env_cols:
            terminal["cols"] = int(env_cols)

        env_rows = os.environ.get("RUNBOOK_ROWS")
        if env_rows:
            terminal["rows"] = int(env_rows)

        env_bridge = os.environ.get("RUNBOOK_BRIDGE_PYTHON")
        if env_bridge:
            terminal["python_path"] = env_bridge

        env_cwd = os.environ.get("RUNBOOK_CWD")
        if env_cwd:
            config_data["cwd"] = env_cwd

        if shell:
            config_data["shell"] = shell
        if interpreters:
            config_data["interpreters"] = interpreters
        if terminal:
            config_data["terminal"] = terminal

        return cls.model_validate(config_data)
