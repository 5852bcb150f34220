"""Tests for ProjectResolver scenarios."""

from pathlib import Path

import pytest

from project_compass.core.exceptions import ScanError
from project_compass.detection.frameworks import FrameworkCatalog
from project_compass.detection.resolver import ProjectResolver
from project_compass.detection.schemas import BUILTIN_SCHEMAS, Schema, SchemaCatalog, build_generic
from project_compass.detection.types import ProjectType


def _readme_schema(schema_id: str, project_type: ProjectType) -> Schema:
    return Schema(
        id=schema_id,
        type=project_type,
        label=schema_id.title(),
        icon="",
        priority=50,
        files=("README.md",),
        binaries=(),
        builder=build_generic,
    )


@pytest.fixture
def resolver(all_binaries) -> ProjectResolver:
    return ProjectResolver(which=all_binaries)


class TestResolveSingleSchema:
    """One manifest, one record."""

    def test_node_api_without_next(self, make_tree, resolver: ProjectResolver) -> None:
        """scripts build/start map to npm run build / npm run start."""
        root = make_tree({
            "api/package.json": {"name": "api", "scripts": {"build": "x", "start": "y"}},
        })

        projects = resolver.resolve(root)

        assert len(projects) == 1
        api = projects[0]
        assert api.type is ProjectType.NODE
        assert api.path == root / "api"
        assert set(api.commands) == {"build", "run"}
        assert api.commands["build"].argv == ("npm", "run", "build")
        assert api.commands["run"].argv == ("npm", "run", "start")
        assert api.frameworks == ()

    def test_node_api_with_next(self, make_tree, resolver: ProjectResolver) -> None:
        """A next dependency tags Next.js, overrides run and lifts priority."""
        root = make_tree({
            "api/package.json": {
                "name": "api",
                "scripts": {"build": "x", "start": "y"},
                "dependencies": {"next": "14.0.0"},
            },
        })

        api = resolver.resolve(root)[0]

        assert [tag.name for tag in api.frameworks] == ["Next.js"]
        assert api.commands["run"].argv == ("npx", "next", "dev")
        assert {"build", "test", "start"} <= set(api.commands)
        assert api.priority >= 115

    def test_project_without_commands_is_kept(self, make_tree, resolver: ProjectResolver) -> None:
        """A record with zero commands still appears."""
        root = make_tree({"docs/README.md": "# docs"})

        projects = resolver.resolve(root)

        assert len(projects) == 1
        assert projects[0].type is ProjectType.CUSTOM
        assert dict(projects[0].commands) == {}

    def test_missing_binaries_are_advisory(self, make_tree, no_binaries) -> None:
        """Missing executables are listed but the record keeps its commands."""
        root = make_tree({"Cargo.toml": '[package]\nname = "crab"\n'})

        crab = ProjectResolver(which=no_binaries).resolve(root)[0]

        assert crab.name == "crab"
        assert crab.missing_binaries == ("cargo", "rustc")
        assert "build" in crab.commands


class TestResolvePriority:
    """Several schemas claiming one directory."""

    def test_higher_priority_schema_wins(self, make_tree, resolver: ProjectResolver) -> None:
        """package.json beats pyproject.toml and README.md in one directory."""
        root = make_tree({
            "app/package.json": {"name": "web"},
            "app/pyproject.toml": '[project]\nname = "web"\n',
            "app/README.md": "hi",
        })

        projects = resolver.resolve(root)

        assert len(projects) == 1
        assert projects[0].type is ProjectType.NODE

    def test_equal_priority_first_declared_wins(self, make_tree, all_binaries) -> None:
        """At equal priority the earlier schema keeps the directory."""
        first = _readme_schema("first", ProjectType.SHELL)
        second = _readme_schema("second", ProjectType.CUSTOM)
        root = make_tree({"README.md": "x"})

        for _ in range(3):
            resolver = ProjectResolver(
                schemas=SchemaCatalog([first, second]),
                frameworks=FrameworkCatalog(builtins=()),
                which=all_binaries,
            )
            assert [p.schema_id for p in resolver.resolve(root)] == ["first"]

    def test_sorted_by_priority_then_discovery(self, make_tree, resolver: ProjectResolver) -> None:
        """Records are ordered by priority; ties keep discovery order."""
        root = make_tree({
            "a-shell/Makefile": "all:\n",
            "b-node/package.json": {"name": "b"},
            "c-node/package.json": {"name": "c"},
            "d-go/go.mod": "module d\n",
        })

        projects = resolver.resolve(root)

        assert [p.name for p in projects] == ["b", "c", "d-go", "a-shell"]

    def test_resolve_is_deterministic(self, make_tree, resolver: ProjectResolver) -> None:
        """Resolving an unchanged tree twice yields the same result."""
        root = make_tree({
            "web/package.json": {"dependencies": {"react": "18", "vite": "5"}},
            "svc/requirements.txt": "fastapi\n",
            "svc/main.py": "",
        })

        first = resolver.resolve(root)
        second = resolver.resolve(root)

        assert [(p.id, p.frameworks, dict(p.commands)) for p in first] == [
            (p.id, p.frameworks, dict(p.commands)) for p in second
        ]


class TestResolveErrors:
    """Malformed manifests and inaccessible roots."""

    def test_malformed_manifest_excluded(self, make_tree, resolver: ProjectResolver) -> None:
        """A broken package.json yields no Node record and no partial one."""
        root = make_tree({"bad/package.json": "{oops", "good/package.json": {"name": "good"}})

        projects = resolver.resolve(root)

        assert [p.name for p in projects] == ["good"]

    def test_malformed_manifest_falls_back_to_lower_schema(self, make_tree, resolver: ProjectResolver) -> None:
        """Another schema may still claim the directory."""
        root = make_tree({"app/package.json": "[]", "app/README.md": "hi"})

        projects = resolver.resolve(root)

        assert len(projects) == 1
        assert projects[0].type is ProjectType.CUSTOM

    @pytest.mark.parametrize(
        "pyproject",
        [
            "tool = 1\n",
            "[project]\ndependencies = 5\n",
            "[tool.poetry]\ngroup = [1]\n",
        ],
    )
    def test_odd_pyproject_does_not_abort_scan(
        self, make_tree, resolver: ProjectResolver, pyproject: str
    ) -> None:
        """A pyproject.toml with unexpected value types never hides siblings."""
        root = make_tree({
            "good/Cargo.toml": '[package]\nname = "good"\nversion = "0.1.0"\n',
            "bad/pyproject.toml": pyproject,
        })

        projects = resolver.resolve(root)

        assert {p.name for p in projects} == {"good", "bad"}
        assert next(p for p in projects if p.name == "bad").metadata.dependencies == frozenset()

    def test_crashing_builder_is_skipped(self, make_tree, all_binaries) -> None:
        """Any builder error leaves the directory to the other schemas."""

        def explode(schema, match):
            raise RuntimeError("builder bug")

        broken = Schema(
            id="broken",
            type=ProjectType.NODE,
            label="Broken",
            icon="",
            priority=200,
            files=("package.json",),
            binaries=(),
            builder=explode,
        )
        root = make_tree({"app/package.json": {"name": "app"}, "other/Cargo.toml": "[package]\n"})
        catalog = SchemaCatalog([broken, *BUILTIN_SCHEMAS])
        resolver = ProjectResolver(schemas=catalog, which=all_binaries)

        projects = resolver.resolve(root)

        assert {(p.name, p.schema_id) for p in projects} == {("app", "node"), ("other", "rust")}

    def test_inaccessible_root_raises(self, tmp_path: Path, resolver: ProjectResolver) -> None:
        """Only an unusable root is fatal."""
        with pytest.raises(ScanError):
            resolver.resolve(tmp_path / "nope")

    def test_builtin_schema_order_is_by_priority(self) -> None:
        """Built-in schemas are declared from most to least specific."""
        priorities = [s.priority for s in BUILTIN_SCHEMAS]
        assert priorities == sorted(priorities, reverse=True)
