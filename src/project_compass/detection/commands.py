"""Command registry: per-project action list with positional shortcuts.

Actions are the record's merged builtin/framework commands (insertion
order) followed by the project's custom commands (in the order they were
added). Shortcuts are positional: ``1``..``9`` then ``S+A``..``S+Z``, so
the same project state always yields the same shortcut-to-action mapping.

Also hosts the small argv helpers used by the package and scaffolding
views: package add/remove commands per project type and new-project
templates.
"""

import string
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from project_compass.core.config.models import CustomCommand
from project_compass.core.platform_command import python_binary
from project_compass.detection.types import CommandSource, CommandSpec, ProjectRecord, ProjectType

MAX_NUMERIC_SHORTCUTS = 9
OVERFLOW_LETTERS = string.ascii_uppercase
OVERFLOW_PREFIX = "S+"

# Single-letter quick actions
QUICK_ACTIONS = {"b": "build", "t": "test", "r": "run"}


@dataclass(frozen=True)
class Action:
    """One runnable entry in a project's action list.

    Attributes:
        key: Unique key (command key, or ``custom:<n>`` for custom commands).
        label: Display label.
        argv: Program and arguments.
        source: Origin of the command.
        shortcut: Positional shortcut, None past the overflow range.

    """

    key: str
    label: str
    argv: tuple[str, ...]
    source: CommandSource
    shortcut: str | None

    @property
    def spec(self) -> CommandSpec:
        return CommandSpec(label=self.label, argv=self.argv, source=self.source)


def shortcut_for(index: int) -> str | None:
    """Positional shortcut for a 0-based action index.

    Examples:
        >>> shortcut_for(0), shortcut_for(8), shortcut_for(9)
        ('1', '9', 'S+A')

    """
    if index < MAX_NUMERIC_SHORTCUTS:
        return str(index + 1)
    overflow = index - MAX_NUMERIC_SHORTCUTS
    if overflow < len(OVERFLOW_LETTERS):
        return f"{OVERFLOW_PREFIX}{OVERFLOW_LETTERS[overflow]}"
    return None


def build_actions(
    project: ProjectRecord | None,
    custom_commands: Sequence[CustomCommand] = (),
) -> list[Action]:
    """Build the ordered, shortcut-indexed action list for a project.

    Args:
        project: Project record (None yields no actions).
        custom_commands: The project's custom commands, in insertion order.

    Returns:
        Actions: record commands first, then custom commands.

    """
    if project is None:
        return []

    entries: list[tuple[str, str, tuple[str, ...], CommandSource]] = [
        (key, spec.label or key, spec.argv, spec.source)
        for key, spec in project.commands.items()
    ]
    seen = {key for key, *_ in entries}
    for position, custom in enumerate(custom_commands):
        key = f"custom:{position}"
        if key in seen or not custom.command:
            continue
        seen.add(key)
        entries.append((key, custom.label, tuple(custom.command), CommandSource.CUSTOM))

    return [
        Action(key=key, label=label, argv=argv, source=source, shortcut=shortcut_for(index))
        for index, (key, label, argv, source) in enumerate(entries)
    ]


def shortcut_map(actions: Sequence[Action]) -> dict[str, Action]:
    """Map pressed keys to actions.

    Numeric shortcuts map to their digit; overflow shortcuts (``S+A``) map
    to the lower-case letter pressed with Shift.
    """
    mapping: dict[str, Action] = {}
    for action in actions:
        if action.shortcut is None:
            continue
        if action.shortcut.startswith(OVERFLOW_PREFIX):
            mapping[action.shortcut[len(OVERFLOW_PREFIX):].lower()] = action
        else:
            mapping[action.shortcut] = action
    return mapping


def find_action(actions: Sequence[Action], selector: str) -> Action | None:
    """Find an action by shortcut, key, quick letter or label.

    Args:
        actions: Action list from ``build_actions``.
        selector: ``"1"``, ``"S+A"``, ``"build"``, ``"b"`` or a label.

    """
    wanted = selector.strip()
    for action in actions:
        if action.shortcut is not None and action.shortcut.lower() == wanted.lower():
            return action
    for action in actions:
        if action.key == wanted:
            return action
    quick = QUICK_ACTIONS.get(wanted.lower())
    if quick is not None:
        for action in actions:
            if action.key == quick:
                return action
    lowered = wanted.lower()
    return next((a for a in actions if a.label.lower() == lowered), None)


def parse_custom_command(raw: str, project_name: str) -> tuple[str, list[str]] | None:
    """Parse operator input for a new custom command.

    ``"Label | program args"`` yields that label; a bare ``"program args"``
    gets the label ``Custom <project name>``.

    Returns:
        ``(label, argv)``, or None when no command tokens were given.

    """
    text = raw.strip()
    if not text:
        return None
    label_part, sep, command_part = text.partition("|")
    argv = (command_part if sep else label_part).split()
    if not argv:
        return None
    label = label_part.strip() if sep and label_part.strip() else f"Custom {project_name}"
    return label, argv


# ---------------------------------------------------------------------------
# Package management and scaffolding
# ---------------------------------------------------------------------------

_PACKAGE_ADD: dict[ProjectType, Callable[[str], list[str]]] = {
    ProjectType.NODE: lambda pkg: ["npm", "install", pkg],
    ProjectType.PYTHON: lambda pkg: ["pip", "install", pkg],
    ProjectType.RUST: lambda pkg: ["cargo", "add", pkg],
    ProjectType.DOTNET: lambda pkg: ["dotnet", "add", "package", pkg],
    ProjectType.PHP: lambda pkg: ["composer", "require", pkg],
}

_PACKAGE_REMOVE: dict[ProjectType, Callable[[str], list[str]]] = {
    ProjectType.NODE: lambda pkg: ["npm", "uninstall", pkg],
    ProjectType.PYTHON: lambda pkg: ["pip", "uninstall", "-y", pkg],
    ProjectType.RUST: lambda pkg: ["cargo", "remove", pkg],
    ProjectType.DOTNET: lambda pkg: ["dotnet", "remove", "package", pkg],
    ProjectType.PHP: lambda pkg: ["composer", "remove", pkg],
}


def package_command(project_type: ProjectType, action: str, package: str) -> CommandSpec | None:
    """Command adding or removing a dependency.

    Args:
        project_type: Type of the selected project.
        action: "add" or "remove".
        package: Package name.

    Returns:
        The command, or None if the type has no package manager mapping.

    """
    package = package.strip()
    table = {"add": _PACKAGE_ADD, "remove": _PACKAGE_REMOVE}.get(action)
    if table is None or not package or project_type not in table:
        return None
    verb = "Add" if action == "add" else "Remove"
    return CommandSpec(
        label=f"{verb} {package}",
        argv=table[project_type](package),
        source=CommandSource.CUSTOM,
    )


def venv_command() -> CommandSpec:
    """Command creating a ``.venv`` in a Python project."""
    return CommandSpec(
        label="Create venv",
        argv=(python_binary(), "-m", "venv", ".venv"),
        source=CommandSource.CUSTOM,
    )


SCAFFOLD_TEMPLATES: dict[str, Callable[[str], list[str]]] = {
    "Next.js": lambda name: ["npx", "create-next-app@latest", name],
    "React (Vite)": lambda name: [
        "npm", "create", "vite@latest", name, "--", "--template", "react"
    ],
    "Vue (Vite)": lambda name: ["npm", "create", "vite@latest", name, "--", "--template", "vue"],
    "Rust (Binary)": lambda name: ["cargo", "new", name],
}


def scaffold_command(template: str, name: str) -> CommandSpec | None:
    """Command creating a new project from a template.

    Returns:
        The command, or None for an unknown template or blank name.

    """
    factory = SCAFFOLD_TEMPLATES.get(template)
    name = name.strip()
    if factory is None or not name:
        return None
    return CommandSpec(
        label=f"Create {template} project: {name}",
        argv=factory(name),
        source=CommandSource.CUSTOM,
    )
