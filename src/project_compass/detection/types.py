"""Shared types for project detection."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from types import MappingProxyType


class ProjectType(StrEnum):
    """Closed set of project types a schema can produce."""

    NODE = "Node.js"
    PYTHON = "Python"
    RUST = "Rust"
    GO = "Go"
    JAVA = "Java"
    SCALA = "Scala"
    PHP = "PHP"
    RUBY = "Ruby"
    DOTNET = ".NET"
    SHELL = "Shell"
    CUSTOM = "Custom"


class CommandSource(StrEnum):
    """Where a command came from."""

    BUILTIN = "builtin"
    FRAMEWORK = "framework"
    PLUGIN = "plugin"
    CUSTOM = "custom"


@dataclass(frozen=True)
class CommandSpec:
    """A labeled, sourced argv ready for process invocation.

    Attributes:
        label: Display label.
        argv: Program followed by its arguments (non-empty).
        source: Origin of the command.

    """

    label: str
    argv: tuple[str, ...]
    source: CommandSource = CommandSource.BUILTIN

    def __post_init__(self) -> None:
        if not self.argv:
            raise ValueError(f"Command {self.label!r} has an empty argv")
        # Accept lists from callers but store an immutable tuple
        object.__setattr__(self, "argv", tuple(self.argv))


@dataclass(frozen=True)
class ProjectMetadata:
    """Manifest-derived facts used only as framework matching input.

    Attributes:
        dependencies: Lower-cased declared dependency names.
        scripts: Declared script names (package.json scripts).

    """

    dependencies: frozenset[str] = frozenset()
    scripts: frozenset[str] = frozenset()

    @classmethod
    def build(
        cls,
        dependencies: Iterable[str] = (),
        scripts: Iterable[str] = (),
    ) -> "ProjectMetadata":
        """Normalize raw names into a metadata record."""
        return cls(
            dependencies=frozenset(d.strip().lower() for d in dependencies if d and d.strip()),
            scripts=frozenset(s for s in scripts if s),
        )


@dataclass(frozen=True)
class FrameworkTag:
    """A framework that matched a project."""

    id: str
    name: str
    icon: str = ""
    description: str = ""


@dataclass(frozen=True)
class ManifestMatch:
    """A trigger file found under the scan root.

    Attributes:
        directory: Absolute directory holding the manifest.
        manifest: Manifest path relative to the scan root (posix form).
        filename: Manifest file name.

    """

    directory: Path
    manifest: str
    filename: str


def freeze_commands(commands: Mapping[str, CommandSpec]) -> Mapping[str, CommandSpec]:
    """Copy a command map into a read-only view, keeping key order."""
    return MappingProxyType(dict(commands))


@dataclass(frozen=True)
class ProjectRecord:
    """One detected project.

    Identity is (path, schema_id). Records are never mutated: framework
    enrichment produces a new record via ``dataclasses.replace``.

    Attributes:
        path: Absolute project directory.
        name: Display name (manifest name or directory name).
        type: Project type.
        schema_id: Id of the schema that built the record.
        priority: Highest priority among the schema and matched frameworks.
        manifest: Triggering file name, for display only.
        commands: Action key -> command, in insertion order.
        metadata: Dependency / script names used for framework matching.
        frameworks: Matched frameworks, in catalog order.
        missing_binaries: Required executables absent from PATH (advisory).
        icon: Display icon.
        description: Manifest description, if any.
        setup_hints: Advisory setup instructions.

    """

    path: Path
    name: str
    type: ProjectType
    schema_id: str
    priority: int
    manifest: str
    commands: Mapping[str, CommandSpec] = field(default_factory=lambda: freeze_commands({}))
    metadata: ProjectMetadata = field(default_factory=ProjectMetadata)
    frameworks: tuple[FrameworkTag, ...] = ()
    missing_binaries: tuple[str, ...] = ()
    icon: str = ""
    description: str = ""
    setup_hints: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.commands, MappingProxyType):
            object.__setattr__(self, "commands", freeze_commands(self.commands))

    @property
    def id(self) -> str:
        """Stable identity key."""
        return f"{self.path}::{self.schema_id}"

    def has_file(self, relative: str) -> bool:
        """Check whether a file exists relative to the project directory."""
        return (self.path / relative).exists()
