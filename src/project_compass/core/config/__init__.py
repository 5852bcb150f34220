"""Configuration models and persistence."""

from project_compass.core.config.models import (
    CompassConfig,
    CompassSettings,
    CustomCommand,
    PluginCommand,
    PluginDefinition,
    ScanSettings,
    TaskSettings,
)
from project_compass.core.config.store import ConfigStore, default_config_dir

__all__ = [
    "CompassConfig",
    "CompassSettings",
    "ConfigStore",
    "CustomCommand",
    "PluginCommand",
    "PluginDefinition",
    "ScanSettings",
    "TaskSettings",
    "default_config_dir",
]
