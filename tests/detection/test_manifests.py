"""Tests for manifest readers."""

from pathlib import Path

import pytest

from project_compass.core.exceptions import ManifestParseError
from project_compass.detection import manifests


class TestJsonManifest:
    """package.json / composer.json reading."""

    def test_reads_object(self, tmp_path: Path) -> None:
        """A JSON object is returned as a dict."""
        path = tmp_path / "package.json"
        path.write_text('{"name": "api"}')

        assert manifests.read_json_manifest(path) == {"name": "api"}

    def test_malformed_json_raises(self, tmp_path: Path) -> None:
        """Invalid JSON raises ManifestParseError naming the file."""
        path = tmp_path / "package.json"
        path.write_text("{not json")

        with pytest.raises(ManifestParseError, match="package.json"):
            manifests.read_json_manifest(path)

    def test_non_object_raises(self, tmp_path: Path) -> None:
        """A JSON array is not a valid manifest."""
        path = tmp_path / "package.json"
        path.write_text("[1, 2]")

        with pytest.raises(ManifestParseError, match="not an object"):
            manifests.read_json_manifest(path)

    def test_node_dependencies_and_scripts(self) -> None:
        """Dependencies are collected across maps; non-string scripts dropped."""
        package = {
            "dependencies": {"react": "^18"},
            "devDependencies": {"vite": "^5", "react": "^18"},
            "scripts": {"build": "vite build", "bad": 3},
        }

        assert manifests.node_dependencies(package) == ["react", "vite"]
        assert manifests.node_scripts(package) == {"build": "vite build"}


class TestPythonManifests:
    """requirements.txt, Pipfile and pyproject.toml."""

    @pytest.mark.parametrize(
        ("line", "expected"),
        [
            ("Django>=4.2", "django"),
            ("fastapi[all] ; python_version > '3.8'", "fastapi"),
            ("  uvicorn  # server", "uvicorn"),
            ("-r base.txt", None),
            ("# comment", None),
            ("", None),
        ],
    )
    def test_requirement_name(self, line: str, expected: str | None) -> None:
        """Requirement lines yield lower-cased distribution names."""
        assert manifests.requirement_name(line) == expected

    def test_python_dependencies_union(self, tmp_path: Path) -> None:
        """Names from every present manifest are merged without duplicates."""
        (tmp_path / "requirements.txt").write_text("Flask==3.0\nrequests\n")
        (tmp_path / "Pipfile").write_text('[packages]\nrequests = "*"\n[dev-packages]\npytest = "*"\n')
        (tmp_path / "pyproject.toml").write_text(
            '[project]\nname = "x"\ndependencies = ["pydantic>=2"]\n'
            '[project.optional-dependencies]\ntest = ["pytest"]\n'
        )

        assert manifests.python_dependencies(tmp_path) == ["flask", "requests", "pytest", "pydantic"]

    def test_poetry_dependencies(self, tmp_path: Path) -> None:
        """Poetry tables are read; the python pin is not a dependency."""
        path = tmp_path / "pyproject.toml"
        path.write_text(
            '[tool.poetry.dependencies]\npython = "^3.11"\nFastAPI = "*"\n'
            '[tool.poetry.group.dev.dependencies]\nruff = "*"\n'
        )

        assert manifests.pyproject_dependencies(path) == ["fastapi", "ruff"]

    @pytest.mark.parametrize(
        "content",
        [
            "tool = 1\n",
            "[project]\ndependencies = 5\n",
            '[project.optional-dependencies]\ndev = "pytest"\n',
            "[tool.poetry]\ngroup = [1]\n",
            "[tool.poetry.group]\ndev = 3\n",
        ],
    )
    def test_unexpected_value_types_are_ignored(self, tmp_path: Path, content: str) -> None:
        """Valid TOML with the wrong shapes yields no dependencies."""
        path = tmp_path / "pyproject.toml"
        path.write_text(content)

        assert manifests.pyproject_dependencies(path) == []

    def test_non_string_requirements_skipped(self, tmp_path: Path) -> None:
        """Only string entries of a dependency array are read."""
        path = tmp_path / "pyproject.toml"
        path.write_text('[project]\ndependencies = ["httpx>=0.27", 3, {a = 1}]\n')

        assert manifests.pyproject_dependencies(path) == ["httpx"]

    def test_malformed_pyproject_raises(self, tmp_path: Path) -> None:
        """Broken TOML raises ManifestParseError."""
        (tmp_path / "pyproject.toml").write_text("[project\n")

        with pytest.raises(ManifestParseError):
            manifests.python_dependencies(tmp_path)


class TestOtherEcosystems:
    """Cargo, Go, Maven, Gradle, Composer and Gemfile."""

    def test_cargo_dependencies(self) -> None:
        """All Cargo dependency tables are read."""
        data = {
            "dependencies": {"rocket": "0.5", "serde": "1"},
            "dev-dependencies": {"tokio-test": "0.4"},
        }

        assert manifests.cargo_dependencies(data) == ["rocket", "serde", "tokio-test"]

    def test_go_dependencies(self, tmp_path: Path) -> None:
        """Single-line and block require directives are read."""
        path = tmp_path / "go.mod"
        path.write_text(
            "module example.com/app\n\ngo 1.22\n\n"
            "require github.com/spf13/cobra v1.8.0\n\n"
            "require (\n\tgithub.com/gin-gonic/gin v1.9.1 // indirect\n\tgolang.org/x/text v0.14.0\n)\n"
        )

        assert manifests.go_dependencies(path) == [
            "github.com/spf13/cobra",
            "github.com/gin-gonic/gin",
            "golang.org/x/text",
        ]

    def test_go_mod_without_module_raises(self, tmp_path: Path) -> None:
        """A go.mod without a module directive is malformed."""
        path = tmp_path / "go.mod"
        path.write_text("go 1.22\n")

        with pytest.raises(ManifestParseError, match="module"):
            manifests.go_dependencies(path)

    def test_maven_dependencies_with_namespace(self, tmp_path: Path) -> None:
        """Artifact ids are read from a namespaced POM."""
        path = tmp_path / "pom.xml"
        path.write_text(
            '<project xmlns="http://maven.apache.org/POM/4.0.0"><dependencies>'
            "<dependency><groupId>org.springframework.boot</groupId>"
            "<artifactId>spring-boot-starter-web</artifactId></dependency>"
            "</dependencies></project>"
        )

        assert manifests.maven_dependencies(path) == ["spring-boot-starter-web"]

    def test_broken_pom_raises(self, tmp_path: Path) -> None:
        """Invalid XML raises ManifestParseError."""
        path = tmp_path / "pom.xml"
        path.write_text("<project>")

        with pytest.raises(ManifestParseError):
            manifests.maven_dependencies(path)

    def test_gradle_dependencies(self, tmp_path: Path) -> None:
        """Artifact names are taken from group:artifact:version strings."""
        path = tmp_path / "build.gradle"
        path.write_text(
            "dependencies {\n"
            "  implementation 'org.springframework.boot:spring-boot-starter:3.2.0'\n"
            '  testImplementation "junit:junit:4.13"\n'
            "}\n"
        )

        assert manifests.gradle_dependencies(path) == ["spring-boot-starter", "junit"]

    def test_composer_and_gemfile(self, tmp_path: Path) -> None:
        """Composer require maps and Gemfile gem lines are read."""
        gemfile = tmp_path / "Gemfile"
        gemfile.write_text("source 'https://rubygems.org'\ngem 'rails', '~> 7.1'\ngem \"puma\"\n")

        package = {"require": {"laravel/framework": "^11"}, "require-dev": {"phpunit/phpunit": "^10"}}

        assert manifests.composer_dependencies(package) == ["laravel/framework", "phpunit/phpunit"]
        assert manifests.gemfile_dependencies(gemfile) == ["rails", "puma"]
