"""Pydantic models for persisted configuration.

Three files live in the config directory:

- ``config.json``: custom commands keyed by absolute project path plus UI
  preferences owned by the display layer (preserved verbatim on rewrite).
- ``plugins.json``: user framework definitions.
- ``settings.yaml``: scan and task tunables.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_MAX_DEPTH = 5
DEFAULT_LOG_BUFFER_SIZE = 500
DEFAULT_PLUGIN_PRIORITY = 70
DEFAULT_PLUGIN_ICON = "🧩"


class CustomCommand(BaseModel):
    """User-defined command attached to one project.

    Attributes:
        label: Display label.
        command: Program and arguments, never a shell string.

    """

    model_config = ConfigDict(frozen=True)

    label: str
    command: list[str] = Field(min_length=1)

    @field_validator("command")
    @classmethod
    def _drop_empty_tokens(cls, value: list[str]) -> list[str]:
        tokens = [token for token in value if token.strip()]
        if not tokens:
            raise ValueError("command must contain at least one non-empty token")
        return tokens


class CompassConfig(BaseModel):
    """Contents of config.json.

    Unknown keys are kept so that preferences written by other front ends
    survive a wholesale rewrite.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    custom_commands: dict[str, list[CustomCommand]] = Field(
        default_factory=dict, alias="customCommands"
    )
    show_art_board: bool = Field(default=True, alias="showArtBoard")
    show_help_cards: bool = Field(default=False, alias="showHelpCards")
    show_structure_guide: bool = Field(default=False, alias="showStructureGuide")

    def to_json_dict(self) -> dict[str, object]:
        """Serialize with the on-disk (camelCase) key names."""
        return self.model_dump(mode="json", by_alias=True)


class PluginCommand(BaseModel):
    """Object form of a plugin command: ``{label, command}``."""

    label: str | None = None
    command: str | list[str] = ""


class PluginDefinition(BaseModel):
    """One user framework entry from plugins.json.

    Command values accept a whitespace-separated string, an argv list, or
    a ``{label, command}`` object. Normalization into a Framework happens
    in ``project_compass.detection.frameworks.plugin_from_definition``.
    """

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    name: str | None = None
    icon: str = DEFAULT_PLUGIN_ICON
    description: str = ""
    languages: list[str] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    scripts: list[str] = Field(default_factory=list)
    priority: int = DEFAULT_PLUGIN_PRIORITY
    commands: dict[str, str | list[str] | PluginCommand] = Field(default_factory=dict)

    @field_validator("priority", mode="before")
    @classmethod
    def _coerce_priority(cls, value: object) -> object:
        # Non-numeric priorities fall back to the default rather than failing
        if value is None or isinstance(value, bool) or not isinstance(value, int | float):
            return DEFAULT_PLUGIN_PRIORITY
        return int(value)


class ScanSettings(BaseModel):
    """Manifest scan tunables.

    Attributes:
        max_depth: Deepest directory level searched (root is level 0).
        ignore: Extra gitignore-style patterns excluded from the scan.

    """

    model_config = ConfigDict(frozen=True)

    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=0, le=32)
    ignore: list[str] = Field(default_factory=list)


class TaskSettings(BaseModel):
    """Task supervisor tunables.

    Attributes:
        log_buffer_size: Lines kept per task before the oldest are evicted.
        export_dir: Directory for exported logs (None = current directory).

    """

    model_config = ConfigDict(frozen=True)

    log_buffer_size: int = Field(default=DEFAULT_LOG_BUFFER_SIZE, ge=1)
    export_dir: Path | None = None

    @field_validator("export_dir")
    @classmethod
    def _expand_home(cls, value: Path | None) -> Path | None:
        return value.expanduser() if value is not None else None


class CompassSettings(BaseModel):
    """Contents of settings.yaml."""

    model_config = ConfigDict(frozen=True)

    scan: ScanSettings = Field(default_factory=ScanSettings)
    tasks: TaskSettings = Field(default_factory=TaskSettings)
