"""CLI entry point for runbook."""

from __future__ import annotations

import asyncio
import logging
import os
import sys

import typer
from rich.console import Console
from rich.table import Table

from runbook.config import RunbookConfig
from runbook.interpreter.languages import LanguageRegistry, default_registry
from runbook.pty.bridge import SUPPORTED_PLATFORMS, find_python, helper_path
from runbook.runner import CodeRunner, RunRequest
from runbook.session.errors import SessionError, UnsupportedLanguageError
from runbook.session.events import EventChannel, SessionEventType
from runbook.shell.session import ShellSession

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="runbook",
    help="Run shell commands and code blocks in persistent sessions.",
    no_args_is_help=True,
)

console = Console()


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@app.command("exec")
def exec_command(
    command: str = typer.Argument(help="Shell command to run."),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait (default: from config)."
    ),
    cwd: str | None = typer.Option(None, "--cwd", help="Working directory."),
    shell: str | None = typer.Option(None, "--shell", help="Shell executable."),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Run one command in a fresh shell session and print its clean output."""
    setup_logging(verbose)
    config = RunbookConfig.load(config_file)
    if shell:
        config.shell.path = shell

    try:
        output = asyncio.run(
            _exec(config, command, cwd, timeout or config.shell.execute_timeout)
        )
    except (SessionError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    if output:
        typer.echo(output)


async def _exec(
    config: RunbookConfig, command: str, cwd: str | None, timeout: float
) -> str:
    session = ShellSession(
        shell=config.shell.path, options=config.session_options(cwd)
    )
    session.spawn()
    try:
        return await session.execute(command, timeout=timeout)
    finally:
        session.kill()


@app.command()
def run(
    file: str = typer.Argument(help="Code file to run."),
    lang: str | None = typer.Option(
        None, "--lang", "-l", help="Language (default: from the file extension)."
    ),
    settle: float = typer.Option(
        1.0,
        "--settle",
        help="Stop streaming REPL output after this many quiet seconds.",
    ),
    interactive: bool = typer.Option(
        False, "--interactive", "-i", help="Send shell code to a PTY terminal."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Run a code file in a persistent session for its language."""
    setup_logging(verbose)

    path = os.path.abspath(file)
    if not os.path.isfile(path):
        typer.echo(f"Error: File not found: {path}", err=True)
        raise typer.Exit(1)

    registry = default_registry()
    language = lang or _language_for(registry, path)
    if language is None:
        typer.echo(
            f"Error: Cannot tell the language of {file}; pass --lang.", err=True
        )
        raise typer.Exit(1)

    with open(path) as f:
        code = f.read()

    config = RunbookConfig.load(config_file)
    request = RunRequest(
        code=code,
        language=language,
        document=path,
        cwd=config.cwd or os.path.dirname(path),
        interactive=interactive,
    )
    try:
        asyncio.run(_run(config, registry, request, settle))
    except (SessionError, UnsupportedLanguageError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e


def _language_for(registry: LanguageRegistry, path: str) -> str | None:
    descriptor = registry.for_extension(os.path.splitext(path)[1])
    return descriptor.name if descriptor else None


async def _run(
    config: RunbookConfig,
    registry: LanguageRegistry,
    request: RunRequest,
    settle: float,
) -> None:
    channel = EventChannel()
    runner = CodeRunner(config, registry, channel)
    queue = channel.subscribe()
    try:
        output = await runner.run(request)
        if output is not None:
            typer.echo(output)
            return
        await _stream(queue, settle)
    finally:
        channel.unsubscribe(queue)
        runner.shutdown()


async def _stream(queue: asyncio.Queue, settle: float) -> None:
    """Copy DATA events to stdout until quiet for ``settle`` seconds."""
    while True:
        try:
            event = await asyncio.wait_for(queue.get(), timeout=settle)
        except TimeoutError:
            return
        if event is None or event.type is SessionEventType.EXIT:
            return
        if event.type is SessionEventType.DATA:
            sys.stdout.write(event.data["text"])
            sys.stdout.flush()
        elif event.type is SessionEventType.ERROR:
            typer.echo(f"Error: {event.data['error']}", err=True)


@app.command()
def languages() -> None:
    """List the supported languages."""
    table = Table(title="Languages")
    table.add_column("Name", style="bold")
    table.add_column("Aliases")
    table.add_column("Runs in")
    table.add_column("Command")
    table.add_column("Extensions")
    for descriptor in default_registry().all():
        table.add_row(
            descriptor.name,
            ", ".join(descriptor.aliases),
            "shell" if descriptor.shell else "REPL",
            " ".join(descriptor.command) or "-",
            " ".join(descriptor.extensions),
        )
    console.print(table)


@app.command()
def doctor(
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Check whether PTY terminals can run on this machine."""
    config = RunbookConfig.load(config_file)
    python = find_python(config.terminal.python_path)
    platform_ok = sys.platform.startswith(SUPPORTED_PLATFORMS)

    typer.echo(f"Platform: {sys.platform} ({'supported' if platform_ok else 'unsupported'})")
    typer.echo(f"Bridge runtime: {python or 'not found'}")
    typer.echo(f"Bridge helper: {helper_path()}")
    typer.echo(f"Shell: {config.shell.path or os.environ.get('SHELL', '/bin/bash')}")

    if python is None or not platform_ok:
        typer.echo("PTY terminals are unavailable.", err=True)
        raise typer.Exit(1)
    typer.echo("PTY terminals are available.")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
