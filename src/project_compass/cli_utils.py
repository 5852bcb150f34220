"""Shared helpers for the project-compass CLI.

Exit codes, the shared rich console, logging setup and the small message
helpers used by every command module.
"""

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler

from project_compass.core.config import ConfigStore
from project_compass.core.exceptions import ScanError
from project_compass.dashboard.manager.session import CompassSession
from project_compass.dashboard.manager.supervisor import TaskSupervisor
from project_compass.dashboard.manager.task import LogLine, Task
from project_compass.detection.types import ProjectRecord

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2

# Shared console for output
console = Console()
err_console = Console(stderr=True)


def _setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure root logging once per invocation.

    Args:
        verbose: Enable DEBUG level.
        quiet: Only show errors.

    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=verbose, rich_tracebacks=verbose)],
        force=True,
    )


def _error(message: str) -> None:
    """Print an error message."""
    err_console.print(f"[red]Error:[/red] {message}")


def _warning(message: str) -> None:
    """Print a warning message."""
    err_console.print(f"[yellow]Warning:[/yellow] {message}")


def _info(message: str) -> None:
    """Print an informational message."""
    console.print(f"[dim]{message}[/dim]")


def _success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def _validate_root(root: Path) -> Path:
    """Resolve a workspace root, exiting if it is not a directory."""
    resolved = root.expanduser().resolve()
    if not resolved.exists():
        _error(f"Directory does not exist: {resolved}")
        raise typer.Exit(code=EXIT_ERROR)
    if not resolved.is_dir():
        _error(f"Not a directory: {resolved}")
        raise typer.Exit(code=EXIT_ERROR)
    return resolved


def _build_session(
    config_dir: Path | None,
    on_output: Callable[[Task, LogLine], Any] | None = None,
) -> CompassSession:
    """Create a session over the given (or default) config directory.

    Args:
        config_dir: Config directory override.
        on_output: Per-line callback for task output.

    """
    store = ConfigStore(config_dir)
    settings = store.load_settings()
    supervisor = TaskSupervisor(
        log_buffer_size=settings.tasks.log_buffer_size,
        export_dir=settings.tasks.export_dir,
        on_output=on_output,
    )
    return CompassSession(store=store, settings=settings, supervisor=supervisor)


def _scan_or_exit(session: CompassSession, root: Path) -> list[ProjectRecord]:
    """Scan a root synchronously, exiting with EXIT_ERROR on ScanError."""
    try:
        return session.resolver.resolve(root)
    except ScanError as e:
        _error(str(e))
        raise typer.Exit(code=EXIT_ERROR) from None


def _find_project_or_exit(session: CompassSession, root: Path, selector: str) -> ProjectRecord:
    """Scan a root and pick one project by name or path."""
    state = asyncio.run(session.scan(root))
    if state is None or state.error:
        _error(state.error if state else f"Scan of {root} was superseded")
        raise typer.Exit(code=EXIT_ERROR)
    project = state.find(selector)
    if project is None:
        _error(f"No project matching '{selector}' under {root}")
        raise typer.Exit(code=EXIT_ERROR)
    return project
