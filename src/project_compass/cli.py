"""project-compass command line interface.

Commands:
- `project-compass list`: print detected projects and exit
- `project-compass show PROJECT`: actions, frameworks and advisories
- `project-compass run PROJECT ACTION`: run one action, streaming its output
- `project-compass custom add|list|remove`: manage custom commands
- `project-compass plugins`: list built-in frameworks and loaded plugins
- `project-compass doctor`: check installed runtimes

Example:
    $ project-compass list --dir ~/code
    $ project-compass run api build --dir ~/code
"""

import asyncio
import logging
from pathlib import Path

import typer
from rich.table import Table
from rich.text import Text

from project_compass import __version__
from project_compass.cli_utils import (
    EXIT_ERROR,
    EXIT_SUCCESS,
    _build_session,
    _error,
    _find_project_or_exit,
    _info,
    _scan_or_exit,
    _setup_logging,
    _success,
    _validate_root,
    console,
)
from project_compass.commands.custom import custom_app
from project_compass.core.exceptions import ExportError
from project_compass.core.platform_command import format_command
from project_compass.core.toolchain import RuntimeStatus, probe_runtimes
from project_compass.dashboard.manager.session import CompassSession
from project_compass.dashboard.manager.task import LogLine, LogStream, Task, TaskStatus
from project_compass.detection.types import ProjectRecord

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="project-compass",
    help="Detect projects in a workspace and run their build/test/run commands",
    no_args_is_help=True,
)
app.add_typer(custom_app, name="custom")

DIR_OPTION_HELP = "Workspace root to scan (default: current directory)"

_STREAM_STYLES = {
    LogStream.STDOUT: "",
    LogStream.STDERR: "red",
    LogStream.SYSTEM: "cyan",
}


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"project-compass {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output with debug logging",
    ),
    config_dir: Path | None = typer.Option(
        None,
        "--config-dir",
        help="Config directory (default: $PROJECT_COMPASS_HOME or ~/.project-compass)",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Project detection and task runner."""
    _setup_logging(verbose=verbose)
    ctx.obj = {"config_dir": config_dir, "verbose": verbose}


def _config_dir(ctx: typer.Context) -> Path | None:
    return (ctx.obj or {}).get("config_dir")


@app.command(name="list")
def list_command(
    ctx: typer.Context,
    directory: Path = typer.Option(Path("."), "--dir", "-d", help=DIR_OPTION_HELP),
) -> None:
    """List detected projects and exit.

    Prints one line per project, highest priority first. Exits with code 1
    if the workspace root cannot be scanned.
    """
    root = directory.expanduser().resolve()
    session = _build_session(_config_dir(ctx))
    projects = _scan_or_exit(session, root)

    console.print(
        f"Detected {len(projects)} project(s) under {root}",
        markup=False,
        highlight=False,
        soft_wrap=True,
    )
    for project in projects:
        console.print(
            f" • [{project.type}] {project.name} ({project.path})",
            markup=False,
            highlight=False,
            soft_wrap=True,
        )


def _print_project(session: CompassSession, project: ProjectRecord) -> None:
    console.print(
        Text.assemble(
            (f"{project.icon} {project.name}", "bold"),
            f"  {project.type} · {project.manifest} · priority {project.priority}",
        )
    )
    console.print(Text(str(project.path), style="dim"), soft_wrap=True)
    if project.description:
        console.print(Text(project.description))

    actions = session.actions_for(project)
    if actions:
        table = Table(title="Actions")
        table.add_column("Key", style="cyan")
        table.add_column("Action")
        table.add_column("Command")
        table.add_column("Source", style="dim")
        for action in actions:
            table.add_row(
                action.shortcut or "-",
                Text(action.label),
                Text(format_command(action.argv)),
                action.source.value,
            )
        console.print(table)
    else:
        _info("No commands detected; add one with `project-compass custom add`.")

    if project.frameworks:
        names = ", ".join(f"{tag.icon} {tag.name}" for tag in project.frameworks)
        console.print(Text(f"Frameworks: {names}"))
    if project.missing_binaries:
        console.print(
            Text(f"Missing on PATH: {', '.join(project.missing_binaries)}", style="yellow")
        )
    for hint in project.setup_hints:
        console.print(Text(f"Hint: {hint}", style="dim"))


@app.command(name="show")
def show_command(
    ctx: typer.Context,
    project: str = typer.Argument(..., help="Project name or path"),
    directory: Path = typer.Option(Path("."), "--dir", "-d", help=DIR_OPTION_HELP),
) -> None:
    """Show a project's actions, frameworks and advisories."""
    root = _validate_root(directory)
    session = _build_session(_config_dir(ctx))
    record = _find_project_or_exit(session, root, project)
    _print_project(session, record)


def _print_log_line(task: Task, line: LogLine) -> None:
    console.print(Text(line.text, style=_STREAM_STYLES[line.stream]), soft_wrap=True)


async def _run_action(
    session: CompassSession,
    project: ProjectRecord,
    action: str,
    export: Path | None,
) -> Task | None:
    task_id = await session.run_action(project, action)
    if task_id is None:
        return None
    try:
        task = await session.supervisor.wait(task_id)
    except asyncio.CancelledError:
        session.supervisor.kill(task_id)
        raise
    if export is not None:
        try:
            session.supervisor.export_log(task_id, export)
        except ExportError as e:
            _error(str(e))
    await session.supervisor.shutdown()
    return task


@app.command(name="run")
def run_command(
    ctx: typer.Context,
    project: str = typer.Argument(..., help="Project name or path"),
    action: str = typer.Argument(
        ..., help="Shortcut (1, S+A), key (build), quick letter (b) or label"
    ),
    directory: Path = typer.Option(Path("."), "--dir", "-d", help=DIR_OPTION_HELP),
    export: Path | None = typer.Option(
        None,
        "--export",
        "-e",
        help="Export the task log to this file or directory when done",
    ),
) -> None:
    """Run one project action and stream its output.

    Exit codes:
        0 = command finished successfully
        1 = command failed, was killed, or no such project/action

    """
    root = _validate_root(directory)
    session = _build_session(_config_dir(ctx), on_output=_print_log_line)
    record = _find_project_or_exit(session, root, project)

    task = asyncio.run(_run_action(session, record, action, export))
    if task is None:
        _error(f"No action '{action}' for {record.name}")
        raise typer.Exit(code=EXIT_ERROR)
    if task.status is not TaskStatus.FINISHED:
        raise typer.Exit(code=EXIT_ERROR)
    raise typer.Exit(code=EXIT_SUCCESS)


@app.command(name="plugins")
def plugins_command(ctx: typer.Context) -> None:
    """List built-in frameworks and loaded plugins."""
    session = _build_session(_config_dir(ctx))

    table = Table(title="Frameworks")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Priority", justify="right")
    table.add_column("Source", style="dim")
    for framework in session.frameworks:
        table.add_row(
            framework.id,
            Text(f"{framework.icon} {framework.name}"),
            str(framework.priority),
            framework.source.value,
        )
    console.print(table)
    _info(f"{len(session.frameworks.plugins)} plugin(s) from {session.store.plugins_path}")


@app.command(name="doctor")
def doctor_command() -> None:
    """Check which language runtimes are installed."""
    checks = asyncio.run(probe_runtimes())

    styles = {
        RuntimeStatus.OK: "green",
        RuntimeStatus.MISSING: "yellow",
        RuntimeStatus.ERROR: "red",
    }
    table = Table(title="Runtime health")
    table.add_column("Runtime")
    table.add_column("Status")
    table.add_column("Version")
    for check in checks:
        style = styles[check.status]
        table.add_row(check.name, f"[{style}]{check.status.value}[/{style}]", Text(check.version))
    console.print(table)

    installed = sum(1 for c in checks if c.status is RuntimeStatus.OK)
    _success(f"{installed}/{len(checks)} runtimes available")


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()
