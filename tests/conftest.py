"""Pytest configuration and fixtures for project-compass tests."""

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from project_compass.core.config.store import CONFIG_HOME_ENV


@pytest.fixture(autouse=True)
def isolated_config_home(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the config directory at a fresh temp dir for every test.

    Keeps tests from reading or rewriting the developer's
    ~/.project-compass.
    """
    home = tmp_path_factory.mktemp("compass-home")
    monkeypatch.setenv(CONFIG_HOME_ENV, str(home))
    return home


@pytest.fixture
def make_tree(tmp_path: Path) -> Callable[[dict[str, str | dict]], Path]:
    """Create files under tmp_path from a {relative path: content} mapping.

    Dict values are written as JSON, so package.json fixtures stay readable.
    """

    def _make(files: dict[str, str | dict]) -> Path:
        for relative, content in files.items():
            path = tmp_path / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, dict):
                path.write_text(json.dumps(content), encoding="utf-8")
            else:
                path.write_text(content, encoding="utf-8")
        return tmp_path.resolve()

    return _make


@pytest.fixture
def all_binaries() -> Callable[[str], str | None]:
    """Binary lookup that finds every executable."""
    return lambda name: f"/usr/bin/{name}"


@pytest.fixture
def no_binaries() -> Callable[[str], str | None]:
    """Binary lookup that finds nothing."""
    return lambda name: None
