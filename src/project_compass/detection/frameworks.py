"""Framework catalog: refine typed projects with framework commands.

A framework is a plain data record of optional gates plus an optional
predicate and a command factory. It matches a project when every gate
that is present passes:

- languages:    project type is in the allow-list
- files:        any of the files exists in the project directory
- dependencies: any of the names is a declared dependency
- scripts:      any of the names is a declared script
- predicate:    free-form callback returns True

Every matching framework contributes: its commands overlay the record's
by key (later frameworks in catalog order win), its priority raises the
record's priority if higher, and its tag is appended to ``frameworks``.
"""

import logging
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace

from project_compass.core.config.models import PluginCommand, PluginDefinition
from project_compass.detection.schemas import find_python_entry
from project_compass.detection.types import (
    CommandSource,
    CommandSpec,
    FrameworkTag,
    ProjectRecord,
    ProjectType,
)

logger = logging.getLogger(__name__)

ProjectPredicate = Callable[[ProjectRecord], bool]
CommandFactory = Callable[[ProjectRecord], Mapping[str, CommandSpec]]


def dependency_matches(dependencies: Iterable[str], needle: str) -> bool:
    """Case-insensitive dependency lookup.

    A dependency matches when it equals the needle, is the needle pinned
    with ``@version``, or is a scoped / path form ending in ``/needle``.
    Plain substring hits (``vuex`` for ``vue``) do not match.

    Examples:
        >>> dependency_matches(["@nestjs/core"], "core")
        True
        >>> dependency_matches(["vuex-something"], "vue")
        False

    """
    target = needle.strip().lower()
    if not target:
        return False
    for dependency in dependencies:
        value = dependency.lower()
        if value == target or value.startswith(f"{target}@"):
            return True
        if value.endswith(f"/{target}") or f"/{target}@" in value:
            return True
    return False


@dataclass(frozen=True)
class Framework:
    """Declarative framework descriptor.

    Attributes:
        id: Unique identifier.
        name: Display name.
        icon: Display icon.
        description: One-line description.
        priority: Priority granted to matching projects.
        languages: Allowed project types (empty = any).
        files: Any-of file presence gate (empty = no gate).
        dependencies: Any-of dependency gate (empty = no gate).
        scripts: Any-of declared script gate (empty = no gate).
        predicate: Extra match callback.
        commands: Static commands, or a factory computing them per project.
        source: Source stamped on contributed commands.

    """

    id: str
    name: str
    icon: str = ""
    description: str = ""
    priority: int = 0
    languages: tuple[str, ...] = ()
    files: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()
    scripts: tuple[str, ...] = ()
    predicate: ProjectPredicate | None = None
    commands: Mapping[str, CommandSpec] | CommandFactory = field(default_factory=dict)
    source: CommandSource = CommandSource.FRAMEWORK

    @property
    def tag(self) -> FrameworkTag:
        return FrameworkTag(self.id, self.name, self.icon, self.description)

    def matches(self, project: ProjectRecord) -> bool:
        """Evaluate every present gate against a project."""
        if self.languages:
            allowed = {lang.lower() for lang in self.languages}
            kinds = {project.type.value.lower(), project.type.name.lower()}
            if not kinds & allowed:
                return False
        if self.files and not any(project.has_file(f) for f in self.files):
            return False
        if self.dependencies and not any(
            dependency_matches(project.metadata.dependencies, d) for d in self.dependencies
        ):
            return False
        if self.scripts and not any(s in project.metadata.scripts for s in self.scripts):
            return False
        if self.predicate is not None and not self.predicate(project):
            return False
        return True

    def commands_for(self, project: ProjectRecord) -> dict[str, CommandSpec]:
        """Commands this framework contributes to a project."""
        raw = self.commands(project) if callable(self.commands) else self.commands
        return {
            key: spec if spec.source is self.source else replace(spec, source=self.source)
            for key, spec in raw.items()
        }


# ---------------------------------------------------------------------------
# Built-in frameworks
# ---------------------------------------------------------------------------


def _has_dep(project: ProjectRecord, *needles: str) -> bool:
    return any(dependency_matches(project.metadata.dependencies, n) for n in needles)


def _has_any_file(project: ProjectRecord, *files: str) -> bool:
    return any(project.has_file(f) for f in files)


def _spec(label: str, *argv: str) -> CommandSpec:
    return CommandSpec(label=label, argv=argv, source=CommandSource.FRAMEWORK)


def script_commands(
    entries: Sequence[tuple[str, str, tuple[str, ...]]],
) -> CommandFactory:
    """Factory for npm-script aware frameworks.

    Each entry is ``(key, label, fallback argv)``: a key maps to
    ``npm run <key>`` when that script is declared, else to the fallback.
    """

    def build(project: ProjectRecord) -> dict[str, CommandSpec]:
        commands = {}
        for key, label, fallback in entries:
            if key in project.metadata.scripts:
                commands[key] = _spec(label, "npm", "run", key)
            else:
                commands[key] = _spec(label, *fallback)
        return commands

    return build


def _django_commands(project: ProjectRecord) -> dict[str, CommandSpec]:
    if not project.has_file("manage.py"):
        return {}
    return {
        "run": _spec("Django runserver", "python", "manage.py", "runserver"),
        "test": _spec("Django test", "python", "manage.py", "test"),
        "migrate": _spec("Django migrate", "python", "manage.py", "migrate"),
    }


def _flask_commands(project: ProjectRecord) -> dict[str, CommandSpec]:
    entry = find_python_entry(project.path)
    if entry is None:
        return {}
    return {
        "run": _spec("Flask app", "python", entry),
        "test": _spec("Pytest", "pytest"),
    }


def _fastapi_commands(project: ProjectRecord) -> dict[str, CommandSpec]:
    entry = find_python_entry(project.path)
    if entry is None:
        return {}
    module = entry.removesuffix(".py").replace("/", ".")
    return {
        "run": _spec("Uvicorn reload", "uvicorn", f"{module}:app", "--reload"),
        "test": _spec("Pytest", "pytest"),
    }


def _spring_commands(project: ProjectRecord) -> dict[str, CommandSpec]:
    if project.has_file("gradlew"):
        return {
            "run": _spec("Gradle BootRun", "./gradlew", "bootRun"),
            "build": _spec("Gradle Build", "./gradlew", "build"),
            "test": _spec("Gradle Test", "./gradlew", "test"),
        }
    maven = "./mvnw" if project.has_file("mvnw") else "mvn"
    return {
        "run": _spec("Spring Boot run", maven, "spring-boot:run"),
        "build": _spec("Maven package", maven, "package"),
        "test": _spec("Maven test", maven, "test"),
    }


NODE = (ProjectType.NODE.value,)
PYTHON = (ProjectType.PYTHON.value,)
RUST = (ProjectType.RUST.value,)

BUILTIN_FRAMEWORKS: tuple[Framework, ...] = (
    Framework(
        id="next",
        name="Next.js",
        icon="🧭",
        description="React + Next.js (SSR/SSG) apps",
        priority=115,
        languages=NODE,
        predicate=lambda p: _has_dep(p, "next") or p.has_file("next.config.js"),
        commands=script_commands([
            ("run", "Next dev", ("npx", "next", "dev")),
            ("build", "Next build", ("npx", "next", "build")),
            ("test", "Next test", ("npm", "run", "test")),
            ("start", "Next start", ("npx", "next", "start")),
        ]),
    ),
    Framework(
        id="react",
        name="React",
        icon="⚛️",
        description="React apps (CRA, Vite React)",
        priority=112,
        languages=NODE,
        dependencies=("react",),
        predicate=lambda p: (
            _has_dep(p, "react-scripts", "vite") or p.has_file("vite.config.js")
        ),
        commands=script_commands([
            ("run", "React dev", ("npm", "run", "dev")),
            ("build", "React build", ("npm", "run", "build")),
            ("test", "React test", ("npm", "run", "test")),
        ]),
    ),
    Framework(
        id="vue",
        name="Vue.js",
        icon="🟩",
        description="Vue CLI or Vite + Vue apps",
        priority=111,
        languages=NODE,
        dependencies=("vue",),
        predicate=lambda p: (
            p.has_file("vue.config.js") or _has_dep(p, "@vue/cli-service", "vite")
        ),
        commands=script_commands([
            ("run", "Vue dev", ("npm", "run", "dev")),
            ("build", "Vue build", ("npm", "run", "build")),
            ("test", "Vue test", ("npm", "run", "test")),
        ]),
    ),
    Framework(
        id="nest",
        name="NestJS",
        icon="🛡️",
        description="NestJS backend",
        priority=110,
        languages=NODE,
        dependencies=("@nestjs/cli", "@nestjs/core"),
        commands=script_commands([
            ("run", "Nest dev", ("npm", "run", "start:dev")),
            ("build", "Nest build", ("npm", "run", "build")),
            ("test", "Nest test", ("npm", "run", "test")),
        ]),
    ),
    Framework(
        id="angular",
        name="Angular",
        icon="🅰️",
        description="Angular CLI projects",
        priority=109,
        languages=NODE,
        predicate=lambda p: p.has_file("angular.json") or _has_dep(p, "@angular/cli"),
        commands=script_commands([
            ("run", "Angular serve", ("npm", "run", "start")),
            ("build", "Angular build", ("npm", "run", "build")),
            ("test", "Angular test", ("npm", "run", "test")),
        ]),
    ),
    Framework(
        id="sveltekit",
        name="SvelteKit",
        icon="🌀",
        description="SvelteKit apps",
        priority=108,
        languages=NODE,
        predicate=lambda p: p.has_file("svelte.config.js") or _has_dep(p, "@sveltejs/kit"),
        commands=script_commands([
            ("run", "SvelteKit dev", ("npm", "run", "dev")),
            ("build", "SvelteKit build", ("npm", "run", "build")),
            ("test", "SvelteKit test", ("npm", "run", "test")),
            ("preview", "SvelteKit preview", ("npm", "run", "preview")),
        ]),
    ),
    Framework(
        id="nuxt",
        name="Nuxt",
        icon="🪄",
        description="Nuxt.js / Vue SSR",
        priority=107,
        languages=NODE,
        predicate=lambda p: p.has_file("nuxt.config.js") or _has_dep(p, "nuxt"),
        commands=script_commands([
            ("run", "Nuxt dev", ("npm", "run", "dev")),
            ("build", "Nuxt build", ("npm", "run", "build")),
            ("start", "Nuxt start", ("npm", "run", "start")),
        ]),
    ),
    Framework(
        id="astro",
        name="Astro",
        icon="✨",
        description="Astro static sites",
        priority=106,
        languages=NODE,
        predicate=lambda p: (
            _has_any_file(p, "astro.config.mjs", "astro.config.ts") or _has_dep(p, "astro")
        ),
        commands=script_commands([
            ("run", "Astro dev", ("npm", "run", "dev")),
            ("build", "Astro build", ("npm", "run", "build")),
            ("preview", "Astro preview", ("npm", "run", "preview")),
        ]),
    ),
    Framework(
        id="django",
        name="Django",
        icon="🌿",
        description="Django web application",
        priority=110,
        languages=PYTHON,
        predicate=lambda p: _has_dep(p, "django") or p.has_file("manage.py"),
        commands=_django_commands,
    ),
    Framework(
        id="flask",
        name="Flask",
        icon="🍶",
        description="Flask microservices",
        priority=105,
        languages=PYTHON,
        dependencies=("flask", "flask-restful", "flask-cors"),
        predicate=lambda p: find_python_entry(p.path) is not None,
        commands=_flask_commands,
    ),
    Framework(
        id="fastapi",
        name="FastAPI",
        icon="⚡",
        description="FastAPI + Uvicorn",
        priority=105,
        languages=PYTHON,
        dependencies=("fastapi", "pydantic", "uvicorn"),
        predicate=lambda p: find_python_entry(p.path) is not None,
        commands=_fastapi_commands,
    ),
    Framework(
        id="vite",
        name="Vite",
        icon="⚡",
        description="Vite-powered frontend",
        priority=100,
        languages=NODE,
        predicate=lambda p: (
            _has_any_file(p, "vite.config.js", "vite.config.ts") or _has_dep(p, "vite")
        ),
        commands=script_commands([
            ("run", "Vite dev", ("npx", "vite")),
            ("build", "Vite build", ("npx", "vite", "build")),
            ("preview", "Vite preview", ("npx", "vite", "preview")),
        ]),
    ),
    Framework(
        id="tailwind",
        name="Tailwind CSS",
        icon="🎨",
        description="Tailwind utility-first CSS",
        priority=50,
        languages=NODE,
        predicate=lambda p: (
            _has_any_file(p, "tailwind.config.js", "tailwind.config.ts")
            or _has_dep(p, "tailwindcss")
        ),
    ),
    Framework(
        id="prisma",
        name="Prisma",
        icon="◮",
        description="Prisma ORM",
        priority=50,
        languages=NODE,
        predicate=lambda p: p.has_file("prisma/schema.prisma") or _has_dep(p, "@prisma/client"),
        commands={
            "generate": _spec("Prisma generate", "npx", "prisma", "generate"),
            "studio": _spec("Prisma studio", "npx", "prisma", "studio"),
        },
    ),
    Framework(
        id="spring",
        name="Spring Boot",
        icon="🌱",
        description="Spring Boot apps",
        priority=105,
        languages=(ProjectType.JAVA.value, "Kotlin"),
        predicate=lambda p: (
            _has_dep(p, "spring-boot-starter", "spring-boot-autoconfigure")
            or _has_any_file(
                p,
                "src/main/resources/application.properties",
                "src/main/resources/application.yml",
            )
        ),
        commands=_spring_commands,
    ),
    Framework(
        id="rocket",
        name="Rocket",
        icon="🚀",
        description="Rocket Rust Web",
        priority=105,
        languages=RUST,
        dependencies=("rocket",),
        commands={
            "run": _spec("Rocket Run", "cargo", "run"),
            "test": _spec("Rocket Test", "cargo", "test"),
        },
    ),
    Framework(
        id="actix",
        name="Actix Web",
        icon="🦀",
        description="Actix Rust Web",
        priority=105,
        languages=RUST,
        dependencies=("actix-web",),
        commands={
            "run": _spec("Actix Run", "cargo", "run"),
            "test": _spec("Actix Test", "cargo", "test"),
        },
    ),
    Framework(
        id="aspnet",
        name="ASP.NET Core",
        icon="🌐",
        description="ASP.NET Core Web App",
        priority=105,
        languages=(ProjectType.DOTNET.value,),
        predicate=lambda p: (
            p.has_file("Program.cs") and _has_any_file(p, "appsettings.json", "web.config")
        ),
        commands={
            "run": _spec("dotnet run", "dotnet", "run"),
            "watch": _spec("dotnet watch", "dotnet", "watch", "run"),
            "test": _spec("dotnet test", "dotnet", "test"),
        },
    ),
    Framework(
        id="laravel",
        name="Laravel",
        icon="🧡",
        description="Laravel PHP Framework",
        priority=105,
        languages=(ProjectType.PHP.value,),
        predicate=lambda p: p.has_file("artisan") or _has_dep(p, "laravel/framework"),
        commands={
            "run": _spec("Artisan Serve", "php", "artisan", "serve"),
            "test": _spec("Artisan Test", "php", "artisan", "test"),
            "migrate": _spec("Artisan Migrate", "php", "artisan", "migrate"),
        },
    ),
)


# ---------------------------------------------------------------------------
# User plugins
# ---------------------------------------------------------------------------


def parse_command_tokens(value: str | Sequence[str] | PluginCommand | None) -> list[str]:
    """Normalize a plugin command value into argv tokens.

    Strings are split on whitespace (no shell parsing); lists are used
    as-is minus empty items; ``{label, command}`` objects are unwrapped.
    """
    if value is None:
        return []
    if isinstance(value, PluginCommand):
        return parse_command_tokens(value.command)
    if isinstance(value, str):
        return value.split()
    return [str(token) for token in value if str(token).strip()]


def _slug(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


def plugin_from_definition(definition: PluginDefinition) -> Framework | None:
    """Convert a validated plugin definition into a Framework.

    Returns:
        The framework, or None if the entry has no name or no usable command.

    """
    name = (definition.name or "").strip()
    if not name:
        return None

    commands: dict[str, CommandSpec] = {}
    for key, value in definition.commands.items():
        tokens = parse_command_tokens(value)
        if not tokens:
            continue
        label = value.label if isinstance(value, PluginCommand) and value.label else key
        commands[key] = CommandSpec(label=label, argv=tokens, source=CommandSource.PLUGIN)
    if not commands:
        return None

    return Framework(
        id=definition.id or _slug(name),
        name=name,
        icon=definition.icon,
        description=definition.description,
        priority=definition.priority,
        languages=tuple(definition.languages),
        files=tuple(definition.files),
        dependencies=tuple(definition.dependencies),
        scripts=tuple(definition.scripts),
        commands=commands,
        source=CommandSource.PLUGIN,
    )


PluginLoader = Callable[[], Iterable[PluginDefinition]]


class FrameworkCatalog:
    """Built-in frameworks followed by user plugins.

    The catalog is an explicit object: callers construct it, pass it to the
    resolver, and call ``reload()`` after editing plugins.json.

    Attributes:
        builtins: Built-in frameworks, in precedence order.

    """

    def __init__(
        self,
        builtins: Iterable[Framework] = BUILTIN_FRAMEWORKS,
        plugin_loader: PluginLoader | None = None,
    ) -> None:
        """Initialize the catalog and load plugins once.

        Args:
            builtins: Built-in frameworks.
            plugin_loader: Callable returning plugin definitions (None = no plugins).

        """
        self.builtins: tuple[Framework, ...] = tuple(builtins)
        self._plugin_loader = plugin_loader
        self._plugins: tuple[Framework, ...] = ()
        self.reload()

    @property
    def plugins(self) -> tuple[Framework, ...]:
        return self._plugins

    @property
    def frameworks(self) -> tuple[Framework, ...]:
        """All frameworks in catalog order (built-ins first)."""
        return self.builtins + self._plugins

    def __iter__(self):
        return iter(self.frameworks)

    def __len__(self) -> int:
        return len(self.builtins) + len(self._plugins)

    def reload(self) -> int:
        """Re-read plugin definitions.

        Returns:
            Number of plugins loaded.

        """
        if self._plugin_loader is None:
            self._plugins = ()
            return 0

        plugins = []
        for definition in self._plugin_loader():
            framework = plugin_from_definition(definition)
            if framework is None:
                logger.debug("Discarding plugin without name or commands: %r", definition.name)
                continue
            plugins.append(framework)
        self._plugins = tuple(plugins)
        logger.info("Loaded %d framework plugin(s)", len(self._plugins))
        return len(self._plugins)

    def apply(self, project: ProjectRecord) -> ProjectRecord:
        """Enrich a base record with every matching framework.

        Returns:
            A new record; the input is left untouched.

        """
        commands = dict(project.commands)
        tags: list[FrameworkTag] = []
        priority = project.priority

        for framework in self.frameworks:
            if not framework.matches(project):
                continue
            tags.append(framework.tag)
            priority = max(priority, framework.priority)
            # Overlaid keys keep their original slot; new keys append
            commands = {**commands, **framework.commands_for(project)}

        if not tags:
            return project
        return replace(project, commands=commands, frameworks=tuple(tags), priority=priority)
