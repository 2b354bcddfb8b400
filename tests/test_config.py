"""Tests for runbook.config (RunbookConfig and friends)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from runbook.config import InterpreterPaths, RunbookConfig

ENV_VARS = [
    "RUNBOOK_SHELL",
    "RUNBOOK_PYTHON",
    "RUNBOOK_NODE",
    "RUNBOOK_TYPESCRIPT",
    "RUNBOOK_CWD",
    "RUNBOOK_COLS",
    "RUNBOOK_ROWS",
    "RUNBOOK_TIMEOUT",
    "RUNBOOK_BRIDGE_PYTHON",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    # Keep load_dotenv() away from any .env in the real working directory
    monkeypatch.chdir(tmp_path)


class TestDefaults:
    def test_defaults(self) -> None:
        config = RunbookConfig()
        assert config.shell.path is None
        assert config.shell.execute_timeout == 30.0
        assert config.interpreters.python == "python3"
        assert config.interpreters.javascript == "node"
        assert config.interpreters.typescript == "ts-node"
        assert (config.terminal.cols, config.terminal.rows) == (80, 24)
        assert config.terminal.login_shell is True
        assert config.max_sessions is None

    def test_path_for(self) -> None:
        paths = InterpreterPaths(python="/usr/bin/python3.12")
        assert paths.path_for("python") == "/usr/bin/python3.12"
        assert paths.path_for("cobol") is None

    def test_invalid_size_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RunbookConfig(terminal={"cols": 0})

    def test_session_options(self) -> None:
        config = RunbookConfig(cwd="/srv", terminal={"cols": 100, "rows": 30})
        options = config.session_options()
        assert options.cwd == "/srv"
        assert (options.cols, options.rows) == (100, 30)
        assert options.login_shell is True
        assert config.session_options("/tmp", command_path="py -q").cwd == "/tmp"
        assert config.session_options(command_path="py -q").command_path == "py -q"


class TestLoad:
    def test_load_defaults(self) -> None:
        assert RunbookConfig.load() == RunbookConfig()

    def test_load_missing_file(self, tmp_path: Path) -> None:
        assert RunbookConfig.load(str(tmp_path / "nope.json")) == RunbookConfig()

    def test_load_file(self, tmp_path: Path) -> None:
        path = tmp_path / "runbook.json"
        path.write_text(
            json.dumps(
                {
                    "shell": {"path": "/bin/zsh"},
                    "interpreters": {"python": "python3.12"},
                    "max_sessions": 4,
                }
            )
        )
        config = RunbookConfig.load(str(path))
        assert config.shell.path == "/bin/zsh"
        assert config.interpreters.python == "python3.12"
        assert config.interpreters.javascript == "node"
        assert config.max_sessions == 4

    def test_env_overrides_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "runbook.json"
        path.write_text(json.dumps({"shell": {"path": "/bin/zsh"}}))
        monkeypatch.setenv("RUNBOOK_SHELL", "/bin/bash")
        monkeypatch.setenv("RUNBOOK_NODE", "/opt/node/bin/node")
        monkeypatch.setenv("RUNBOOK_TIMEOUT", "5")
        monkeypatch.setenv("RUNBOOK_COLS", "120")
        monkeypatch.setenv("RUNBOOK_ROWS", "50")
        monkeypatch.setenv("RUNBOOK_CWD", "/work")
        monkeypatch.setenv("RUNBOOK_BRIDGE_PYTHON", "/usr/bin/python3")
        config = RunbookConfig.load(str(path))
        assert config.shell.path == "/bin/bash"
        assert config.shell.execute_timeout == 5.0
        assert config.interpreters.javascript == "/opt/node/bin/node"
        assert (config.terminal.cols, config.terminal.rows) == (120, 50)
        assert config.cwd == "/work"
        assert config.terminal.python_path == "/usr/bin/python3"

    def test_dotenv_wins_over_exported(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        # setenv first so the value load_dotenv() writes is undone afterwards
        monkeypatch.setenv("RUNBOOK_PYTHON", "stale-python")
        (tmp_path / ".env").write_text("RUNBOOK_PYTHON=python3.11\n")
        config = RunbookConfig.load()
        assert config.interpreters.python == "python3.11"
