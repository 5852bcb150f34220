"""Exception hierarchy for project-compass.

Only ScanError (and startup failures surfaced by the CLI) are fatal. Every
other error degrades to a visible but non-blocking state: a schema that does
not match, a task in FAILED status, or an empty default configuration.
"""


class CompassError(Exception):
    """Base class for all project-compass errors."""

    pass


class ScanError(CompassError):
    """Workspace root cannot be scanned.

    Raised when:
    - Root path does not exist
    - Root path is not a directory
    - Root directory cannot be listed (permissions)
    """

    pass


class ManifestParseError(CompassError):
    """A single manifest could not be read or parsed.

    Caught per schema by the resolver: the schema simply produces no record
    for that directory and the scan continues.
    """

    def __init__(self, manifest: str, reason: str) -> None:
        self.manifest = manifest
        self.reason = reason
        super().__init__(f"Cannot parse {manifest}: {reason}")


class SpawnError(CompassError):
    """Executable not found or not executable."""

    pass


class ConfigError(CompassError):
    """Configuration or plugin file is corrupt or invalid."""

    pass


class ExportError(CompassError):
    """Log export failed (empty buffer or destination not writable)."""

    pass


class TaskNotFoundError(CompassError, KeyError):
    """No task registered under the given id."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")

    def __str__(self) -> str:
        return f"Task not found: {self.task_id}"
