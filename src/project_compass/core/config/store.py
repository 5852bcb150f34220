"""On-disk configuration store.

Manages the config directory (``~/.project-compass`` by default):

- config.json   custom commands + UI preferences (rewritten wholesale)
- plugins.json  user framework definitions (read only)
- settings.yaml scan / task tunables (read only)

Corrupt files are never fatal: they are logged as warnings and replaced
with empty defaults.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from project_compass.core.config.models import (
    CompassConfig,
    CompassSettings,
    CustomCommand,
    PluginDefinition,
)
from project_compass.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

CONFIG_HOME_ENV = "PROJECT_COMPASS_HOME"
DEFAULT_CONFIG_DIR = Path.home() / ".project-compass"
CONFIG_FILE = "config.json"
PLUGIN_FILE = "plugins.json"
SETTINGS_FILE = "settings.yaml"


def default_config_dir() -> Path:
    """Resolve the config directory, honouring PROJECT_COMPASS_HOME."""
    override = os.environ.get(CONFIG_HOME_ENV)
    if override:
        return Path(override).expanduser()
    return DEFAULT_CONFIG_DIR


def _read_json(path: Path) -> Any:
    """Read a JSON file, treating an empty file as an empty object.

    Raises:
        ConfigError: If the file cannot be read or decoded.

    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e


class ConfigStore:
    """Loads and persists project-compass configuration.

    Attributes:
        config_dir: Directory holding config.json, plugins.json, settings.yaml.

    """

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize the store.

        Args:
            config_dir: Config directory (defaults to ~/.project-compass).

        """
        self.config_dir = config_dir or default_config_dir()
        self._config: CompassConfig | None = None

    @property
    def config_path(self) -> Path:
        return self.config_dir / CONFIG_FILE

    @property
    def plugins_path(self) -> Path:
        return self.config_dir / PLUGIN_FILE

    @property
    def settings_path(self) -> Path:
        return self.config_dir / SETTINGS_FILE

    @property
    def config(self) -> CompassConfig:
        """Current config, loaded on first access."""
        if self._config is None:
            self._config = self.load_config()
        return self._config

    def ensure_config_dir(self) -> None:
        """Create the config directory if missing."""
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def load_config(self) -> CompassConfig:
        """Load config.json.

        Returns:
            Parsed config, or an empty default if the file is missing or corrupt.

        """
        if not self.config_path.exists():
            return CompassConfig()
        try:
            payload = _read_json(self.config_path)
            if not isinstance(payload, dict):
                raise ConfigError(f"{self.config_path} must contain a JSON object")
            config = CompassConfig.model_validate(payload)
        except (ConfigError, ValidationError) as e:
            logger.warning("Ignoring corrupt config %s: %s", self.config_path, e)
            return CompassConfig()

        logger.debug(
            "Loaded config with custom commands for %d project(s)",
            len(config.custom_commands),
        )
        return config

    def save_config(self, config: CompassConfig) -> bool:
        """Rewrite config.json with the given config.

        Args:
            config: Config to persist; also becomes the in-memory config.

        Returns:
            True if the file was written.

        """
        self._config = config
        try:
            self.ensure_config_dir()
            self.config_path.write_text(
                json.dumps(config.to_json_dict(), indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError:
            logger.exception("Unable to persist config to %s", self.config_path)
            return False
        logger.debug("Saved config to %s", self.config_path)
        return True

    def custom_commands_for(self, project_path: Path | str) -> list[CustomCommand]:
        """Get custom commands for a project, in the order they were added."""
        return list(self.config.custom_commands.get(str(project_path), []))

    def add_custom_command(
        self,
        project_path: Path | str,
        label: str,
        argv: list[str],
    ) -> CustomCommand:
        """Append a custom command to a project and persist.

        Args:
            project_path: Absolute project directory.
            label: Display label.
            argv: Program and arguments.

        Returns:
            The stored command.

        Raises:
            ValueError: If argv is empty.

        """
        try:
            command = CustomCommand(label=label, command=argv)
        except ValidationError as e:
            raise ValueError(f"Invalid custom command: {e}") from e

        key = str(project_path)
        current = self.config
        commands = {k: list(v) for k, v in current.custom_commands.items()}
        commands[key] = [*commands.get(key, []), command]
        self.save_config(current.model_copy(update={"custom_commands": commands}))
        logger.info("Added custom command %r for %s", label, key)
        return command

    def remove_custom_command(self, project_path: Path | str, index: int) -> CustomCommand:
        """Remove a custom command by position and persist.

        Args:
            project_path: Absolute project directory.
            index: 0-based position in the project's custom command list.

        Returns:
            The removed command.

        Raises:
            IndexError: If no command exists at that position.

        """
        key = str(project_path)
        current = self.config
        existing = list(current.custom_commands.get(key, []))
        if not 0 <= index < len(existing):
            raise IndexError(f"No custom command #{index + 1} for {key}")

        removed = existing.pop(index)
        commands = {k: list(v) for k, v in current.custom_commands.items()}
        if existing:
            commands[key] = existing
        else:
            commands.pop(key, None)
        self.save_config(current.model_copy(update={"custom_commands": commands}))
        logger.info("Removed custom command %r for %s", removed.label, key)
        return removed

    def load_plugin_definitions(self) -> list[PluginDefinition]:
        """Load plugins.json.

        Entries that fail validation are dropped individually; a file that
        cannot be decoded yields no plugins at all.

        Returns:
            Validated plugin definitions in file order.

        """
        if not self.plugins_path.exists():
            return []
        try:
            payload = _read_json(self.plugins_path)
        except ConfigError as e:
            logger.warning("Failed to parse plugins.json: %s", e)
            return []

        entries = payload.get("plugins", []) if isinstance(payload, dict) else payload
        if not isinstance(entries, list):
            logger.warning("Failed to parse plugins.json: 'plugins' must be a list")
            return []

        definitions: list[PluginDefinition] = []
        for entry in entries:
            try:
                definitions.append(PluginDefinition.model_validate(entry))
            except ValidationError as e:
                logger.debug("Skipping invalid plugin entry %r: %s", entry, e)
        return definitions

    def load_settings(self) -> CompassSettings:
        """Load settings.yaml.

        Returns:
            Parsed settings, or defaults if the file is missing or invalid.

        """
        if not self.settings_path.exists():
            return CompassSettings()
        try:
            with self.settings_path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            settings = CompassSettings.model_validate(data)
        except (OSError, yaml.YAMLError, ValidationError) as e:
            logger.warning("Ignoring invalid settings %s: %s", self.settings_path, e)
            return CompassSettings()

        logger.info(
            "Loaded settings: max_depth=%d, log_buffer_size=%d",
            settings.scan.max_depth,
            settings.tasks.log_buffer_size,
        )
        return settings
