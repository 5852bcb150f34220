"""CompassSession: wires configuration, detection and task supervision.

The session is what a front end (the CLI, or an interactive dashboard)
talks to. It owns one of each collaborator:

- ConfigStore for custom commands, plugins and settings
- FrameworkCatalog + ProjectResolver for detection
- ScanController for background scans
- TaskSupervisor for running commands
"""

import logging
from collections.abc import Callable
from pathlib import Path

from project_compass.core.config import CompassSettings, ConfigStore, CustomCommand
from project_compass.core.platform_command import find_binary
from project_compass.detection.commands import (
    Action,
    build_actions,
    find_action,
    package_command,
    parse_custom_command,
    scaffold_command,
    venv_command,
)
from project_compass.detection.frameworks import FrameworkCatalog
from project_compass.detection.matcher import ManifestMatcher
from project_compass.detection.resolver import ProjectResolver
from project_compass.detection.types import CommandSpec, ProjectRecord

from .scanner import ScanController, ScanState
from .supervisor import TaskSupervisor

logger = logging.getLogger(__name__)


class CompassSession:
    """One operator session over a workspace root.

    Attributes:
        store: Configuration store.
        settings: Scan and task tunables.
        frameworks: Framework catalog (built-ins plus plugins).
        resolver: Project resolver.
        scanner: Background scan controller.
        supervisor: Task supervisor.

    """

    def __init__(
        self,
        store: ConfigStore | None = None,
        settings: CompassSettings | None = None,
        supervisor: TaskSupervisor | None = None,
        which: Callable[[str], str | None] = find_binary,
    ) -> None:
        """Initialize the session.

        Args:
            store: Configuration store (defaults to the user config dir).
            settings: Tunables (defaults to the store's settings.yaml).
            supervisor: Task supervisor (defaults to one built from settings).
            which: Binary lookup used for missing-binary advisories.

        """
        self.store = store or ConfigStore()
        self.settings = settings or self.store.load_settings()
        self.frameworks = FrameworkCatalog(plugin_loader=self.store.load_plugin_definitions)
        self.resolver = ProjectResolver(
            frameworks=self.frameworks,
            matcher=ManifestMatcher(
                max_depth=self.settings.scan.max_depth,
                extra_ignore=self.settings.scan.ignore,
            ),
            which=which,
        )
        self.scanner = ScanController(self.resolver)
        self.supervisor = supervisor or TaskSupervisor(
            log_buffer_size=self.settings.tasks.log_buffer_size,
            export_dir=self.settings.tasks.export_dir,
        )
        self.quit_pending = False

    @property
    def state(self) -> ScanState:
        return self.scanner.state

    @property
    def projects(self) -> list[ProjectRecord]:
        return self.scanner.state.projects

    async def scan(self, root: Path) -> ScanState | None:
        """Scan a root (see ScanController.request_scan)."""
        return await self.scanner.request_scan(root)

    def find_project(self, selector: str) -> ProjectRecord | None:
        return self.scanner.state.find(selector)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def actions_for(self, project: ProjectRecord | None) -> list[Action]:
        """Indexed action list: record commands, then custom commands."""
        if project is None:
            return []
        return build_actions(project, self.store.custom_commands_for(project.path))

    async def run_action(self, project: ProjectRecord, selector: str) -> str | None:
        """Run an action by shortcut, key, quick letter or label.

        Returns:
            Task id, or None if nothing matched the selector.

        """
        action = find_action(self.actions_for(project), selector)
        if action is None:
            logger.warning("No action %r for %s", selector, project.name)
            return None
        return await self.run_command(project.path, action.spec, project_name=project.name)

    async def run_command(
        self,
        cwd: Path,
        command: CommandSpec,
        project_name: str | None = None,
    ) -> str | None:
        """Run an arbitrary command in a directory."""
        name = f"{project_name or cwd.name} · {command.label}"
        return await self.supervisor.start(cwd, cwd, command, name=name)

    def add_custom_command(self, project: ProjectRecord, raw: str) -> CustomCommand | None:
        """Add a custom command from ``"Label | program args"`` input.

        Returns:
            The stored command, or None if the input held no command.

        """
        parsed = parse_custom_command(raw, project.name)
        if parsed is None:
            return None
        label, argv = parsed
        return self.store.add_custom_command(project.path, label, argv)

    def remove_custom_command(self, project: ProjectRecord, index: int) -> CustomCommand:
        """Remove a project's custom command by 0-based position.

        Raises:
            IndexError: If no command exists at that position.

        """
        return self.store.remove_custom_command(project.path, index)

    async def rerun_last(self) -> str | None:
        return await self.supervisor.rerun_last()

    # ------------------------------------------------------------------
    # Package management and scaffolding
    # ------------------------------------------------------------------

    async def manage_package(self, project: ProjectRecord, action: str, package: str) -> str | None:
        """Add or remove a dependency with the project's package manager.

        Returns:
            Task id, or None when the project type has no package manager.

        """
        command = package_command(project.type, action, package)
        if command is None:
            logger.warning("No package manager mapping for %s (%s)", project.name, project.type)
            return None
        return await self.run_command(project.path, command, project_name=project.name)

    async def create_venv(self, project: ProjectRecord) -> str | None:
        return await self.run_command(project.path, venv_command(), project_name=project.name)

    async def scaffold(self, directory: Path, template: str, name: str) -> str | None:
        """Create a new project from a template inside a directory.

        Returns:
            Task id, or None for an unknown template or blank name.

        """
        command = scaffold_command(template, name)
        if command is None:
            logger.warning("Unknown scaffold template %r", template)
            return None
        return await self.run_command(directory, command)

    # ------------------------------------------------------------------
    # Plugins and shutdown
    # ------------------------------------------------------------------

    def reload_plugins(self) -> int:
        """Re-read plugins.json; the next scan uses the new catalog."""
        return self.frameworks.reload()

    def request_quit(self) -> bool:
        """Ask to quit.

        Returns:
            True when tasks are still running and the operator must confirm.

        """
        self.quit_pending = self.supervisor.has_running
        return self.quit_pending

    async def confirm_quit(self) -> None:
        """Kill every task and stop the supervisor."""
        self.quit_pending = False
        self.supervisor.kill_all()
        await self.supervisor.shutdown()
