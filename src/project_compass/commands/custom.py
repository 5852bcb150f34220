"""Custom command group for project-compass.

Custom commands are stored per project in config.json and appended after
the detected commands in a project's action list:
- `project-compass custom add PROJECT "Label | program args"`
- `project-compass custom list PROJECT`
- `project-compass custom remove PROJECT N`

Example:
    $ project-compass custom add api "Lint | npm run lint" --dir ~/code
    $ project-compass custom remove api 1 --dir ~/code
"""

import logging
from pathlib import Path

import typer
from rich.table import Table
from rich.text import Text

from project_compass.cli_utils import (
    EXIT_CONFIG_ERROR,
    EXIT_ERROR,
    _build_session,
    _error,
    _find_project_or_exit,
    _info,
    _success,
    _validate_root,
    console,
)
from project_compass.core.platform_command import format_command

logger = logging.getLogger(__name__)

custom_app = typer.Typer(
    name="custom",
    help="Manage per-project custom commands",
    no_args_is_help=True,
)

DIR_OPTION_HELP = "Workspace root to scan (default: current directory)"


def _config_dir(ctx: typer.Context) -> Path | None:
    return (ctx.obj or {}).get("config_dir")


@custom_app.command(name="add")
def add_command(
    ctx: typer.Context,
    project: str = typer.Argument(..., help="Project name or path"),
    command: str = typer.Argument(..., help='"Label | program args" or just "program args"'),
    directory: Path = typer.Option(Path("."), "--dir", "-d", help=DIR_OPTION_HELP),
) -> None:
    """Add a custom command to a project."""
    root = _validate_root(directory)
    session = _build_session(_config_dir(ctx))
    record = _find_project_or_exit(session, root, project)

    try:
        stored = session.add_custom_command(record, command)
    except ValueError as e:
        _error(str(e))
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from None
    if stored is None:
        _error("No command given")
        raise typer.Exit(code=EXIT_ERROR)
    _success(f"Added '{stored.label}' to {record.name}: {format_command(stored.command)}")


@custom_app.command(name="list")
def list_command(
    ctx: typer.Context,
    project: str = typer.Argument(..., help="Project name or path"),
    directory: Path = typer.Option(Path("."), "--dir", "-d", help=DIR_OPTION_HELP),
) -> None:
    """List a project's custom commands."""
    root = _validate_root(directory)
    session = _build_session(_config_dir(ctx))
    record = _find_project_or_exit(session, root, project)

    commands = session.store.custom_commands_for(record.path)
    if not commands:
        _info(f"No custom commands for {record.name}")
        return

    table = Table(title=f"Custom commands: {record.name}")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Label")
    table.add_column("Command")
    for position, custom in enumerate(commands, start=1):
        table.add_row(str(position), Text(custom.label), Text(format_command(custom.command)))
    console.print(table)


@custom_app.command(name="remove")
def remove_command(
    ctx: typer.Context,
    project: str = typer.Argument(..., help="Project name or path"),
    number: int = typer.Argument(..., help="Position shown by `custom list` (1-based)"),
    directory: Path = typer.Option(Path("."), "--dir", "-d", help=DIR_OPTION_HELP),
) -> None:
    """Remove a custom command from a project."""
    root = _validate_root(directory)
    session = _build_session(_config_dir(ctx))
    record = _find_project_or_exit(session, root, project)

    try:
        removed = session.remove_custom_command(record, number - 1)
    except IndexError as e:
        _error(str(e))
        raise typer.Exit(code=EXIT_ERROR) from None
    _success(f"Removed '{removed.label}' from {record.name}")
