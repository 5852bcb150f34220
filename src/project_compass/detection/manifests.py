"""Manifest readers.

Each reader extracts the few facts detection needs (name, description,
scripts, dependency names) from one ecosystem's manifest. Unreadable or
malformed manifests raise ManifestParseError; files that are merely absent
yield empty results.
"""

import json
import logging
import re
import tomllib
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any

from project_compass.core.exceptions import ManifestParseError

logger = logging.getLogger(__name__)

NODE_DEPENDENCY_KEYS = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)

# Leading distribution name of a PEP 508 requirement string
_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")
_GEMFILE_GEM = re.compile(r"""^\s*gem\s+['"]([^'"]+)['"]""", re.MULTILINE)
_GRADLE_COORDINATE = re.compile(r"""['"]([\w.\-]+):([\w.\-]+)(?::[^'"]*)?['"]""")
_GO_REQUIRE_BLOCK = re.compile(r"^require\s*\((.*?)^\)", re.MULTILINE | re.DOTALL)
_GO_REQUIRE_LINE = re.compile(r"^require\s+(\S+)\s+\S+", re.MULTILINE)


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ManifestParseError(path.name, str(e)) from e


def read_json_manifest(path: Path) -> dict[str, Any]:
    """Read a JSON manifest that must contain an object.

    Raises:
        ManifestParseError: If unreadable, not JSON, or not an object.

    """
    raw = _read_text(path)
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ManifestParseError(path.name, str(e)) from e
    if not isinstance(payload, dict):
        raise ManifestParseError(path.name, "top-level value is not an object")
    return payload


def read_toml_manifest(path: Path) -> dict[str, Any]:
    """Read a TOML manifest.

    Raises:
        ManifestParseError: If unreadable or not valid TOML.

    """
    raw = _read_text(path)
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ManifestParseError(path.name, str(e)) from e


def _mapping_keys(value: Any) -> list[str]:
    return [str(k) for k in value] if isinstance(value, dict) else []


def _table(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _string_items(value: Any) -> list[str]:
    return [item for item in value if isinstance(item, str)] if isinstance(value, list) else []


def node_dependencies(package: dict[str, Any]) -> list[str]:
    """Collect dependency names across all package.json dependency maps."""
    names: list[str] = []
    for key in NODE_DEPENDENCY_KEYS:
        for name in _mapping_keys(package.get(key)):
            if name not in names:
                names.append(name)
    return names


def node_scripts(package: dict[str, Any]) -> dict[str, str]:
    """Get declared package.json scripts (non-string values dropped)."""
    scripts = package.get("scripts")
    if not isinstance(scripts, dict):
        return {}
    return {str(k): v for k, v in scripts.items() if isinstance(v, str)}


def requirement_name(requirement: str) -> str | None:
    """Extract the distribution name from a requirement string.

    Examples:
        >>> requirement_name("Django>=4.2 ; python_version > '3.8'")
        'django'
        >>> requirement_name("-r base.txt") is None
        True

    """
    line = requirement.split("#", 1)[0].strip()
    if not line or line.startswith("-"):
        return None
    match = _REQUIREMENT_NAME.match(line)
    if match is None:
        return None
    return match.group(1).lower()


def requirements_file_dependencies(path: Path) -> list[str]:
    """Dependency names from a requirements.txt-style file."""
    if not path.exists():
        return []
    names = []
    for line in _read_text(path).splitlines():
        name = requirement_name(line)
        if name:
            names.append(name)
    return names


def pipfile_dependencies(path: Path) -> list[str]:
    """Dependency names from a Pipfile's [packages] and [dev-packages]."""
    if not path.exists():
        return []
    data = read_toml_manifest(path)
    return [
        name.lower()
        for section in ("packages", "dev-packages")
        for name in _mapping_keys(data.get(section))
    ]


def pyproject_dependencies(path: Path) -> list[str]:
    """Dependency names declared in pyproject.toml (PEP 621 and Poetry)."""
    if not path.exists():
        return []
    data = read_toml_manifest(path)
    names: list[str] = []

    project = _table(data.get("project"))
    requirements = _string_items(project.get("dependencies"))
    for group in _table(project.get("optional-dependencies")).values():
        requirements.extend(_string_items(group))
    for requirement in requirements:
        if name := requirement_name(requirement):
            names.append(name)

    poetry = _table(_table(data.get("tool")).get("poetry"))
    for section in ("dependencies", "dev-dependencies"):
        names.extend(n.lower() for n in _mapping_keys(poetry.get(section)) if n != "python")
    for group in _table(poetry.get("group")).values():
        names.extend(n.lower() for n in _mapping_keys(_table(group).get("dependencies")))

    return names


def python_dependencies(project_path: Path) -> list[str]:
    """Union of dependency names from every Python manifest in a directory.

    Raises:
        ManifestParseError: If any present manifest is malformed.

    """
    names = [
        *requirements_file_dependencies(project_path / "requirements.txt"),
        *pipfile_dependencies(project_path / "Pipfile"),
        *pyproject_dependencies(project_path / "pyproject.toml"),
    ]
    return list(dict.fromkeys(names))


def cargo_dependencies(data: dict[str, Any]) -> list[str]:
    """Crate names from parsed Cargo.toml dependency tables."""
    return [
        name
        for section in ("dependencies", "dev-dependencies", "build-dependencies")
        for name in _mapping_keys(data.get(section))
    ]


def go_dependencies(path: Path) -> list[str]:
    """Module paths required by go.mod."""
    raw = _read_text(path)
    if not re.search(r"^module\s+\S+", raw, re.MULTILINE):
        raise ManifestParseError(path.name, "missing module directive")

    modules = [m.group(1) for m in _GO_REQUIRE_LINE.finditer(raw) if m.group(1) != "("]
    for block in _GO_REQUIRE_BLOCK.finditer(raw):
        for line in block.group(1).splitlines():
            line = line.split("//", 1)[0].strip()
            if line:
                modules.append(line.split()[0])
    return modules


def maven_dependencies(path: Path) -> list[str]:
    """Artifact ids of <dependency> entries in pom.xml."""
    raw = _read_text(path)
    try:
        root = ET.fromstring(raw)
    except ET.ParseError as e:
        raise ManifestParseError(path.name, str(e)) from e

    artifacts = []
    for element in root.iter():
        # Strip the POM namespace, e.g. "{http://maven.apache.org/POM/4.0.0}dependency"
        if element.tag.rsplit("}", 1)[-1] != "dependency":
            continue
        for child in element:
            if child.tag.rsplit("}", 1)[-1] == "artifactId" and child.text:
                artifacts.append(child.text.strip())
    return artifacts


def gradle_dependencies(path: Path) -> list[str]:
    """Artifact names of "group:artifact:version" coordinates in a Gradle build."""
    raw = _read_text(path)
    return [m.group(2) for m in _GRADLE_COORDINATE.finditer(raw)]


def composer_dependencies(package: dict[str, Any]) -> list[str]:
    """Package names from composer.json require / require-dev."""
    return [
        name
        for section in ("require", "require-dev")
        for name in _mapping_keys(package.get(section))
    ]


def gemfile_dependencies(path: Path) -> list[str]:
    """Gem names declared in a Gemfile."""
    return _GEMFILE_GEM.findall(_read_text(path))
