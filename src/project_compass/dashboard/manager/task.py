"""Task state for the task supervisor.

A Task is one invocation of a CommandSpec against a project:
- Identification (task id, renameable display name)
- Status state machine (RUNNING -> FINISHED | FAILED | KILLED)
- Bounded log ring buffer shared by stdout, stderr and system messages
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path

from project_compass.core.config.models import DEFAULT_LOG_BUFFER_SIZE
from project_compass.detection.types import CommandSpec

logger = logging.getLogger(__name__)


class TaskStatus(StrEnum):
    """Task lifecycle.

    Valid transitions:
        RUNNING -> FINISHED (exit code 0)
        RUNNING -> FAILED (non-zero exit or spawn failure)
        RUNNING -> KILLED (terminated after a kill request)

    All three outcomes are terminal.
    """

    RUNNING = "running"
    FINISHED = "finished"
    FAILED = "failed"
    KILLED = "killed"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.RUNNING


class LogStream(StrEnum):
    """Origin of a log line."""

    STDOUT = "stdout"
    STDERR = "stderr"
    SYSTEM = "system"


@dataclass(frozen=True)
class LogLine:
    """One buffered output line."""

    text: str
    stream: LogStream = LogStream.STDOUT

    def __str__(self) -> str:
        return self.text


def split_lines(chunk: str) -> list[str]:
    """Normalize a raw output chunk into non-blank lines.

    Examples:
        >>> split_lines("a\\r\\n\\nb\\n")
        ['a', 'b']

    """
    return [line for line in chunk.replace("\r\n", "\n").split("\n") if line.strip()]


@dataclass
class Task:
    """State for one command invocation.

    The live process handle is not stored here: TaskSupervisor owns it for
    as long as the task is RUNNING.

    Attributes:
        id: Unique id, stable for the task's lifetime.
        name: Display name, renameable in any status.
        project_path: Root of the project the command belongs to.
        cwd: Working directory of the child process.
        command: The invoked command.
        status: Current status.
        log_buffer: Ring buffer of output lines (oldest evicted first).
        started_at: When the task was created.
        finished_at: When the task reached a terminal status.
        exit_code: Child exit code, None until exit (or on spawn failure).
        error_message: Failure reason for FAILED tasks.
        kill_requested: Whether kill() signalled the process.

    """

    id: str
    name: str
    project_path: Path
    cwd: Path
    command: CommandSpec
    status: TaskStatus = TaskStatus.RUNNING
    log_buffer: deque[LogLine] = field(
        default_factory=lambda: deque(maxlen=DEFAULT_LOG_BUFFER_SIZE)
    )
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    exit_code: int | None = None
    error_message: str | None = None
    kill_requested: bool = False

    @classmethod
    def create(
        cls,
        task_id: str,
        project_path: Path,
        cwd: Path,
        command: CommandSpec,
        name: str | None = None,
        log_buffer_size: int = DEFAULT_LOG_BUFFER_SIZE,
    ) -> "Task":
        """Create a RUNNING task with a sized log buffer.

        Args:
            task_id: Unique task id.
            project_path: Project root.
            cwd: Working directory for the child.
            command: Command to invoke.
            name: Display name (defaults to the command label).
            log_buffer_size: Ring buffer capacity.

        Returns:
            New Task instance.

        """
        return cls(
            id=task_id,
            name=name or command.label,
            project_path=project_path,
            cwd=cwd,
            command=command,
            log_buffer=deque(maxlen=log_buffer_size),
        )

    @property
    def is_running(self) -> bool:
        return self.status is TaskStatus.RUNNING

    @property
    def label(self) -> str:
        return self.command.label

    def add_log(self, text: str, stream: LogStream = LogStream.STDOUT) -> None:
        """Append raw text, one buffer entry per non-blank line."""
        for line in split_lines(text):
            self.log_buffer.append(LogLine(line, stream))

    def get_logs(self, count: int | None = None) -> list[str]:
        """Get buffered lines as plain strings.

        Args:
            count: Number of most recent lines (None for all).

        Returns:
            Lines, oldest first.

        """
        lines = [entry.text for entry in self.log_buffer]
        if count is None:
            return lines
        return lines[-count:] if count > 0 else []

    def window(self, size: int, offset: int = 0) -> list[LogLine]:
        """Visible slice of the buffer counted back from the tail.

        Args:
            size: Number of lines visible.
            offset: Lines scrolled up from the tail (clamped).

        Returns:
            Up to ``size`` lines, oldest first.

        """
        if size <= 0:
            return []
        entries = list(self.log_buffer)
        offset = max(0, min(offset, max(0, len(entries) - size)))
        end = len(entries) - offset
        return entries[max(0, end - size) : end]

    def clear_logs(self) -> None:
        """Clear the log buffer."""
        self.log_buffer.clear()

    def set_finished(self, exit_code: int) -> None:
        """Transition to FINISHED."""
        if self._finish(TaskStatus.FINISHED, exit_code):
            logger.info("Task %s (%s) finished", self.id, self.name)

    def set_failed(self, message: str, exit_code: int | None = None) -> None:
        """Transition to FAILED.

        Args:
            message: Failure reason.
            exit_code: Exit code, None for spawn failures.

        """
        if self._finish(TaskStatus.FAILED, exit_code):
            self.error_message = message
            logger.warning("Task %s (%s) failed: %s", self.id, self.name, message)

    def set_killed(self, exit_code: int | None) -> None:
        """Transition to KILLED."""
        if self._finish(TaskStatus.KILLED, exit_code):
            logger.info("Task %s (%s) killed", self.id, self.name)

    def _finish(self, status: TaskStatus, exit_code: int | None) -> bool:
        if self.status.is_terminal:
            logger.debug("Task %s already %s, ignoring %s", self.id, self.status, status)
            return False
        self.status = status
        self.exit_code = exit_code
        self.finished_at = datetime.now(UTC)
        return True

    def to_dict(self) -> dict[str, object]:
        """Summary for display layers and JSON output."""
        return {
            "id": self.id,
            "name": self.name,
            "project_path": str(self.project_path),
            "label": self.label,
            "argv": list(self.command.argv),
            "status": self.status.value,
            "exit_code": self.exit_code,
            "error_message": self.error_message,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "log_lines": len(self.log_buffer),
        }
