"""Built-in project schemas.

A schema is a plain data record (priority, trigger files, required
binaries) plus a builder function ``(schema, match) -> ProjectRecord | None``.
Builders read the manifest, derive default commands and dependency
metadata, and return None when the directory does not really belong to the
schema. Builders may raise ManifestParseError; the resolver treats that the
same as None.

Declaration order in ``BUILTIN_SCHEMAS`` is significant: at equal priority
the first schema to claim a directory keeps it.
"""

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from pathlib import Path

from project_compass.core.platform_command import find_binary, python_binary
from project_compass.detection import manifests
from project_compass.detection.types import (
    CommandSource,
    CommandSpec,
    ManifestMatch,
    ProjectMetadata,
    ProjectRecord,
    ProjectType,
)

logger = logging.getLogger(__name__)

PYTHON_ENTRY_FILES = ("main.py", "app.py", "src/main.py", "src/app.py")

SchemaBuilder = Callable[["Schema", ManifestMatch], ProjectRecord | None]


@dataclass(frozen=True)
class Schema:
    """Descriptor mapping manifest patterns to a project type.

    Attributes:
        id: Short identifier (e.g. "node").
        type: Project type produced.
        label: Human readable label for the structure guide.
        icon: Display icon.
        priority: Higher wins when schemas claim the same directory.
        files: Trigger file name globs.
        binaries: Executables the default commands rely on.
        builder: Record factory.

    """

    id: str
    type: ProjectType
    label: str
    icon: str
    priority: int
    files: tuple[str, ...]
    binaries: tuple[str, ...]
    builder: SchemaBuilder

    def build(
        self,
        match: ManifestMatch,
        which: Callable[[str], str | None] = find_binary,
    ) -> ProjectRecord | None:
        """Build a record for a matched manifest.

        Args:
            match: Trigger file found by the matcher.
            which: Binary lookup used for the missing-binaries advisory.

        Returns:
            The record, or None if the schema does not apply.

        Raises:
            ManifestParseError: If the manifest cannot be parsed.

        """
        record = self.builder(self, match)
        if record is None:
            return None
        missing = tuple(b for b in self.binaries if which(b) is None)
        return replace(record, missing_binaries=missing)


def find_python_entry(project_path: Path) -> str | None:
    """First conventional Python entry point present in a project."""
    for entry in PYTHON_ENTRY_FILES:
        if (project_path / entry).exists():
            return entry
    return None


def _cmd(label: str, *argv: str) -> CommandSpec:
    return CommandSpec(label=label, argv=argv, source=CommandSource.BUILTIN)


def _record(
    schema: Schema,
    match: ManifestMatch,
    commands: dict[str, CommandSpec],
    *,
    name: str | None = None,
    description: str = "",
    metadata: ProjectMetadata | None = None,
    setup_hints: Iterable[str] = (),
) -> ProjectRecord:
    return ProjectRecord(
        path=match.directory,
        name=name or match.directory.name,
        type=schema.type,
        schema_id=schema.id,
        priority=schema.priority,
        manifest=match.filename,
        commands=commands,
        metadata=metadata or ProjectMetadata(),
        icon=schema.icon,
        description=description,
        setup_hints=tuple(setup_hints),
    )


def build_node(schema: Schema, match: ManifestMatch) -> ProjectRecord | None:
    """package.json: commands come from declared npm scripts."""
    package = manifests.read_json_manifest(match.directory / "package.json")
    scripts = manifests.node_scripts(package)
    commands: dict[str, CommandSpec] = {}

    def prefer_script(key: str, names: Sequence[str], label: str) -> None:
        for script in names:
            if script in scripts:
                commands[key] = _cmd(label, "npm", "run", script)
                return

    prefer_script("build", ("build", "compile", "dist"), "Build")
    prefer_script("test", ("test", "check", "spec"), "Test")
    prefer_script("run", ("start", "dev", "serve", "run"), "Start")
    if "lint" in scripts:
        commands["lint"] = _cmd("Lint", "npm", "run", "lint")

    dependencies = manifests.node_dependencies(package)
    hints = []
    if dependencies:
        hints.append("Run npm install to fetch dependencies.")
        if (match.directory / "yarn.lock").exists():
            hints.append("Or run yarn install if you prefer Yarn.")

    name = package.get("name")
    description = package.get("description")
    return _record(
        schema,
        match,
        commands,
        name=name if isinstance(name, str) else None,
        description=description if isinstance(description, str) else "",
        metadata=ProjectMetadata.build(dependencies, scripts),
        setup_hints=hints,
    )


def build_python(schema: Schema, match: ManifestMatch) -> ProjectRecord | None:
    """pyproject.toml / requirements.txt / setup.py / Pipfile."""
    path = match.directory
    dependencies = manifests.python_dependencies(path)

    commands: dict[str, CommandSpec] = {}
    if (path / "pyproject.toml").exists():
        commands["test"] = _cmd("Pytest", "pytest")
    else:
        commands["test"] = _cmd("Unittest", "python", "-m", "unittest", "discover")
    entry = find_python_entry(path)
    if entry:
        commands["run"] = _cmd("Run", "python", entry)

    hints = []
    if (path / "requirements.txt").exists():
        hints.append("pip install -r requirements.txt")
    if (path / "Pipfile").exists():
        hints.append("Use pipenv install --dev or poetry install")

    return _record(
        schema,
        match,
        commands,
        metadata=ProjectMetadata.build(dependencies),
        setup_hints=hints,
    )


def build_rust(schema: Schema, match: ManifestMatch) -> ProjectRecord | None:
    """Cargo.toml."""
    data = manifests.read_toml_manifest(match.directory / "Cargo.toml")
    dependencies = manifests.cargo_dependencies(data)
    package = data.get("package", {})
    name = package.get("name") if isinstance(package, dict) else None
    return _record(
        schema,
        match,
        {
            "build": _cmd("Cargo build", "cargo", "build"),
            "test": _cmd("Cargo test", "cargo", "test"),
            "run": _cmd("Cargo run", "cargo", "run"),
        },
        name=name if isinstance(name, str) else None,
        metadata=ProjectMetadata.build(dependencies),
        setup_hints=("cargo fetch", "Run cargo build before releasing"),
    )


def build_go(schema: Schema, match: ManifestMatch) -> ProjectRecord | None:
    """go.mod."""
    dependencies = manifests.go_dependencies(match.directory / "go.mod")
    return _record(
        schema,
        match,
        {
            "build": _cmd("Go build", "go", "build", "./..."),
            "test": _cmd("Go test", "go", "test", "./..."),
            "run": _cmd("Go run", "go", "run", "."),
        },
        metadata=ProjectMetadata.build(dependencies),
        setup_hints=("go mod tidy", "Ensure Go toolchain is installed"),
    )


def build_java(schema: Schema, match: ManifestMatch) -> ProjectRecord | None:
    """pom.xml / build.gradle(.kts): prefer wrappers over global tools."""
    path = match.directory
    if match.filename == "pom.xml":
        dependencies = manifests.maven_dependencies(path / "pom.xml")
    else:
        dependencies = manifests.gradle_dependencies(path / match.filename)

    if (path / "gradlew").exists():
        commands = {
            "build": _cmd("Gradle build", "./gradlew", "build"),
            "test": _cmd("Gradle test", "./gradlew", "test"),
        }
    else:
        maven = "./mvnw" if (path / "mvnw").exists() else "mvn"
        commands = {
            "build": _cmd("Maven package", maven, "package"),
            "test": _cmd("Maven test", maven, "test"),
        }
    return _record(
        schema,
        match,
        commands,
        metadata=ProjectMetadata.build(dependencies),
        setup_hints=("Install JDK 17+ and run ./mvnw install or ./gradlew build",),
    )


def build_scala(schema: Schema, match: ManifestMatch) -> ProjectRecord | None:
    """build.sbt."""
    return _record(
        schema,
        match,
        {
            "build": _cmd("sbt compile", "sbt", "compile"),
            "test": _cmd("sbt test", "sbt", "test"),
            "run": _cmd("sbt run", "sbt", "run"),
        },
        setup_hints=("Ensure sbt is installed", "Run sbt compile before running your app"),
    )


def build_php(schema: Schema, match: ManifestMatch) -> ProjectRecord | None:
    """composer.json."""
    package = manifests.read_json_manifest(match.directory / "composer.json")
    name = package.get("name")
    description = package.get("description")
    return _record(
        schema,
        match,
        {"test": _cmd("PHP -v", "php", "-v")},
        name=name if isinstance(name, str) else None,
        description=description if isinstance(description, str) else "",
        metadata=ProjectMetadata.build(manifests.composer_dependencies(package)),
        setup_hints=("composer install to install dependencies",),
    )


def build_ruby(schema: Schema, match: ManifestMatch) -> ProjectRecord | None:
    """Gemfile."""
    dependencies = manifests.gemfile_dependencies(match.directory / "Gemfile")
    return _record(
        schema,
        match,
        {
            "run": _cmd("Ruby console", "ruby", "app.rb"),
            "test": _cmd("Ruby test", "bundle", "exec", "rspec"),
        },
        metadata=ProjectMetadata.build(dependencies),
        setup_hints=("bundle install to ensure gems are present",),
    )


def build_dotnet(schema: Schema, match: ManifestMatch) -> ProjectRecord | None:
    """*.csproj."""
    return _record(
        schema,
        match,
        {
            "build": _cmd("dotnet build", "dotnet", "build"),
            "test": _cmd("dotnet test", "dotnet", "test"),
            "run": _cmd("dotnet run", "dotnet", "run"),
        },
        name=match.filename.removesuffix(".csproj") or None,
        setup_hints=("Install .NET SDK 8+", "dotnet restore before running"),
    )


def build_shell(schema: Schema, match: ManifestMatch) -> ProjectRecord | None:
    """Makefile / build.sh."""
    return _record(
        schema,
        match,
        {
            "build": _cmd("make build", "make", "build"),
            "test": _cmd("make test", "make", "test"),
        },
        setup_hints=("Run make install if available", "Ensure shell scripts are executable"),
    )


def build_generic(schema: Schema, match: ManifestMatch) -> ProjectRecord | None:
    """README.md fallback: a project with no inferred commands."""
    return _record(
        schema,
        match,
        {},
        description="Detected via README or Makefile layout.",
        setup_hints=("Read the README for custom build instructions",),
    )


BUILTIN_SCHEMAS: tuple[Schema, ...] = (
    Schema(
        id="node",
        type=ProjectType.NODE,
        label="Node.js",
        icon="🟢",
        priority=100,
        files=("package.json",),
        binaries=("node", "npm"),
        builder=build_node,
    ),
    Schema(
        id="python",
        type=ProjectType.PYTHON,
        label="Python",
        icon="🐍",
        priority=95,
        files=("pyproject.toml", "requirements.txt", "setup.py", "Pipfile"),
        binaries=(python_binary(), "pip"),
        builder=build_python,
    ),
    Schema(
        id="rust",
        type=ProjectType.RUST,
        label="Rust",
        icon="🦀",
        priority=90,
        files=("Cargo.toml",),
        binaries=("cargo", "rustc"),
        builder=build_rust,
    ),
    Schema(
        id="go",
        type=ProjectType.GO,
        label="Go",
        icon="🐹",
        priority=85,
        files=("go.mod",),
        binaries=("go",),
        builder=build_go,
    ),
    Schema(
        id="java",
        type=ProjectType.JAVA,
        label="Java",
        icon="☕️",
        priority=80,
        files=("pom.xml", "build.gradle", "build.gradle.kts"),
        binaries=("java", "javac"),
        builder=build_java,
    ),
    Schema(
        id="scala",
        type=ProjectType.SCALA,
        label="Scala",
        icon="🔵",
        priority=70,
        files=("build.sbt",),
        binaries=("sbt", "scala"),
        builder=build_scala,
    ),
    Schema(
        id="php",
        type=ProjectType.PHP,
        label="PHP",
        icon="🐘",
        priority=65,
        files=("composer.json",),
        binaries=("php", "composer"),
        builder=build_php,
    ),
    Schema(
        id="ruby",
        type=ProjectType.RUBY,
        label="Ruby",
        icon="💎",
        priority=65,
        files=("Gemfile",),
        binaries=("ruby", "bundle"),
        builder=build_ruby,
    ),
    Schema(
        id="dotnet",
        type=ProjectType.DOTNET,
        label=".NET",
        icon="🔷",
        priority=65,
        files=("*.csproj",),
        binaries=("dotnet",),
        builder=build_dotnet,
    ),
    Schema(
        id="shell",
        type=ProjectType.SHELL,
        label="Shell / Makefile",
        icon="🐚",
        priority=50,
        files=("Makefile", "build.sh"),
        binaries=("make", "sh"),
        builder=build_shell,
    ),
    Schema(
        id="generic",
        type=ProjectType.CUSTOM,
        label="Custom project",
        icon="🧰",
        priority=10,
        files=("README.md",),
        binaries=(),
        builder=build_generic,
    ),
)


class SchemaCatalog:
    """Ordered set of schemas visited by the resolver.

    Attributes:
        schemas: Schemas in declaration order.

    """

    def __init__(self, schemas: Iterable[Schema] = BUILTIN_SCHEMAS) -> None:
        self.schemas: tuple[Schema, ...] = tuple(schemas)

    def __iter__(self):
        return iter(self.schemas)

    def __len__(self) -> int:
        return len(self.schemas)

    def get(self, schema_id: str) -> Schema | None:
        """Look up a schema by id."""
        return next((s for s in self.schemas if s.id == schema_id), None)

    def structure_guide(self) -> list[dict[str, object]]:
        """Summary of trigger files per schema, for display."""
        return [
            {"type": s.id, "label": s.label, "icon": s.icon, "files": list(s.files)}
            for s in self.schemas
        ]
