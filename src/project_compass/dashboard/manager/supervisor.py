"""Task supervisor: spawns, tracks, feeds and terminates command processes.

Every command runs as its own child process with the project directory as
working directory and the operator's environment inherited. stdout and
stderr are read concurrently into the task's bounded log buffer; a watcher
coroutine per task resolves the terminal status once the child exits:

- exit code 0                      -> FINISHED
- kill requested, non-zero exit    -> KILLED
- any other exit, or spawn failure -> FAILED

All state lives on the event loop thread; stream readers and exit watchers
are asyncio tasks, so no locking is needed.
"""

import asyncio
import codecs
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from project_compass.core.config.models import DEFAULT_LOG_BUFFER_SIZE
from project_compass.core.exceptions import ExportError, SpawnError, TaskNotFoundError
from project_compass.core.platform_command import (
    ProcessTerminator,
    format_command,
    select_terminator,
    spawn_kwargs,
)
from project_compass.detection.types import CommandSpec

from .task import LogLine, LogStream, Task, TaskStatus, split_lines

logger = logging.getLogger(__name__)

DEFAULT_READ_CHUNK_SIZE = 4096
DEFAULT_POLL_INTERVAL = 0.1  # seconds between exit checks
DEFAULT_DRAIN_TIMEOUT = 2.0  # seconds to drain output after the child exits
DEFAULT_SHUTDOWN_TIMEOUT = 5.0  # seconds to wait for killed children on shutdown
EXPORT_FILENAME = "compass-{task_id}.txt"


@dataclass(frozen=True)
class _Invocation:
    """Everything needed to start a command again."""

    project_path: Path
    cwd: Path
    command: CommandSpec
    name: str | None


def _spawn_error(program: str, error: OSError) -> SpawnError:
    if isinstance(error, FileNotFoundError):
        return SpawnError(f"Command not found: {program}")
    if isinstance(error, PermissionError):
        return SpawnError(f"Permission denied: {program}")
    return SpawnError(f"Cannot start {program}: {error}")


class TaskSupervisor:
    """Owns every task and the live process behind each running one.

    Attributes:
        log_buffer_size: Ring buffer capacity for new tasks.
        export_dir: Default directory for exported logs (cwd when None).
        read_chunk_size: Bytes read per stream read.
        poll_interval: Seconds between exit checks of a running child.
        drain_timeout: Seconds output is still read after the child exits.

    """

    def __init__(
        self,
        log_buffer_size: int = DEFAULT_LOG_BUFFER_SIZE,
        export_dir: Path | None = None,
        terminator_factory: Callable[[], ProcessTerminator] = select_terminator,
        on_output: Callable[[Task, LogLine], Any] | None = None,
        on_exit: Callable[[Task], Any] | None = None,
        read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        drain_timeout: float = DEFAULT_DRAIN_TIMEOUT,
    ) -> None:
        """Initialize the supervisor.

        Args:
            log_buffer_size: Ring buffer capacity for new tasks.
            export_dir: Default directory for exported logs.
            terminator_factory: Picks the kill strategy at spawn time.
            on_output: Called for every line appended to a task's buffer.
            on_exit: Called once when a task reaches a terminal status.
            read_chunk_size: Bytes read per stream read.
            poll_interval: Seconds between exit checks of a running child.
            drain_timeout: Seconds output is still read after the child
                exits (background processes may keep the pipes open).

        """
        self.log_buffer_size = log_buffer_size
        self.export_dir = export_dir
        self.read_chunk_size = read_chunk_size
        self.poll_interval = poll_interval
        self.drain_timeout = drain_timeout
        self._terminator_factory = terminator_factory
        self._on_output = on_output
        self._on_exit = on_exit
        self._ids = itertools.count(1)
        self._tasks: dict[str, Task] = {}
        self._processes: dict[str, asyncio.subprocess.Process] = {}
        self._terminators: dict[str, ProcessTerminator] = {}
        self._watchers: dict[str, asyncio.Task[None]] = {}
        self._last: _Invocation | None = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def tasks(self) -> list[Task]:
        """Tracked tasks in creation order."""
        return list(self._tasks.values())

    @property
    def has_running(self) -> bool:
        return any(task.is_running for task in self._tasks.values())

    def get(self, task_id: str) -> Task:
        """Look up a task.

        Raises:
            TaskNotFoundError: If no task has this id.

        """
        try:
            return self._tasks[task_id]
        except KeyError:
            raise TaskNotFoundError(task_id) from None

    def is_alive(self, task_id: str) -> bool:
        """Whether a live process handle exists for the task."""
        process = self._processes.get(task_id)
        return process is not None and process.returncode is None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(
        self,
        project_path: Path,
        cwd: Path,
        command: CommandSpec,
        name: str | None = None,
    ) -> str | None:
        """Start a command as a new task.

        Args:
            project_path: Project the command belongs to.
            cwd: Working directory for the child.
            command: Command to run.
            name: Display name (defaults to "<project> · <label>").

        Returns:
            The new task id, or None when the command has no argv.

        """
        if not command.argv:
            logger.warning("Refusing to start %r: empty command", command.label)
            return None

        task_id = f"task-{next(self._ids)}"
        task = Task.create(
            task_id,
            project_path=project_path,
            cwd=cwd,
            command=command,
            name=name or f"{project_path.name} · {command.label}",
            log_buffer_size=self.log_buffer_size,
        )
        self._tasks[task_id] = task
        self._last = _Invocation(project_path, cwd, command, name)
        self._emit(task, LogLine(f"> {format_command(command.argv)}", LogStream.SYSTEM))

        terminator = self._terminator_factory()
        try:
            process = await self._spawn(command, cwd, terminator)
        except SpawnError as e:
            self.append_log(task_id, f"✗ {command.label} failed: {e}", LogStream.SYSTEM)
            task.set_failed(str(e))
            self._notify_exit(task)
            return task_id

        logger.info(
            "Started %s (PID %d, %s kill) in %s: %s",
            task_id,
            process.pid,
            terminator.name,
            cwd,
            format_command(command.argv),
        )
        self._processes[task_id] = process
        self._terminators[task_id] = terminator
        self._watchers[task_id] = asyncio.create_task(
            self._watch(task, process), name=f"watch-{task_id}"
        )
        return task_id

    async def _spawn(
        self,
        command: CommandSpec,
        cwd: Path,
        terminator: ProcessTerminator,
    ) -> asyncio.subprocess.Process:
        """Spawn the child process.

        Raises:
            SpawnError: If the executable cannot be started.

        """
        program, *args = command.argv
        try:
            return await asyncio.create_subprocess_exec(
                program,
                *args,
                cwd=cwd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **spawn_kwargs(terminator),
            )
        except OSError as e:
            logger.debug("Spawn of %s failed", program, exc_info=True)
            raise _spawn_error(program, e) from e

    async def _watch(self, task: Task, process: asyncio.subprocess.Process) -> None:
        """Follow the child until it exits, then resolve the exit status.

        ``Process.wait()`` does not return while a background grandchild
        still holds the output pipes, so the exit is detected by polling the
        return code. Output still in flight is drained for at most
        ``drain_timeout`` seconds afterwards.
        """
        readers = [
            asyncio.create_task(self._read_stream(task, process.stdout, LogStream.STDOUT)),
            asyncio.create_task(self._read_stream(task, process.stderr, LogStream.STDERR)),
        ]
        try:
            while process.returncode is None:
                await asyncio.sleep(self.poll_interval)
            _, lingering = await asyncio.wait(readers, timeout=self.drain_timeout)
        except asyncio.CancelledError:
            for reader in readers:
                reader.cancel()
            raise

        if lingering:
            logger.info("%s exited but its output pipes are still open, detaching", task.id)
            for reader in lingering:
                reader.cancel()
            await asyncio.gather(*lingering, return_exceptions=True)
        self._resolve_exit(task, process.returncode)

    async def _read_stream(
        self,
        task: Task,
        stream: asyncio.StreamReader | None,
        kind: LogStream,
    ) -> None:
        """Pump one output stream into the task's buffer.

        Chunks are split on complete lines; a trailing partial line is held
        back until its newline arrives or the stream closes.
        """
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        try:
            while chunk := await stream.read(self.read_chunk_size):
                pending += decoder.decode(chunk)
                complete, newline, pending = pending.rpartition("\n")
                if newline:
                    self.append_log(task.id, complete, kind)
            pending += decoder.decode(b"", final=True)
        except asyncio.CancelledError:
            logger.debug("Stopped reading %s for %s", kind, task.id)
            raise
        except Exception:
            logger.exception("Error reading %s for %s", kind, task.id)
        finally:
            if pending and task.id in self._tasks:
                self.append_log(task.id, pending, kind)

    def _resolve_exit(self, task: Task, exit_code: int) -> None:
        self._processes.pop(task.id, None)
        self._terminators.pop(task.id, None)
        label = task.label

        if exit_code == 0:
            self.append_log(task.id, f"✓ {label} finished", LogStream.SYSTEM)
            task.set_finished(exit_code)
        elif task.kill_requested:
            self.append_log(task.id, "! Task killed forcefully", LogStream.SYSTEM)
            task.set_killed(exit_code)
        else:
            reason = f"exit code {exit_code}"
            self.append_log(task.id, f"✗ {label} failed: {reason}", LogStream.SYSTEM)
            task.set_failed(reason, exit_code)
        self._notify_exit(task)

    def _notify_exit(self, task: Task) -> None:
        if self._on_exit is not None:
            self._on_exit(task)

    async def wait(self, task_id: str, timeout: float | None = None) -> Task:
        """Wait until a task reaches a terminal status.

        Args:
            task_id: Task to wait for.
            timeout: Seconds to wait (None waits forever).

        Returns:
            The task.

        Raises:
            TaskNotFoundError: If no task has this id.
            TimeoutError: If the task is still running after ``timeout``.

        """
        task = self.get(task_id)
        watcher = self._watchers.get(task_id)
        if watcher is not None and not watcher.done():
            await asyncio.wait_for(asyncio.shield(watcher), timeout)
        return task

    def kill(self, task_id: str) -> bool:
        """Forcefully terminate a task's process.

        Signals the whole process group where the platform supports it. A
        task without a live process is removed from the task list instead.
        The KILLED status is set by the exit watcher once the OS reports
        termination.

        Args:
            task_id: Task to kill.

        Returns:
            True if a kill was issued, False if the task was removed.

        Raises:
            TaskNotFoundError: If no task has this id.

        """
        task = self.get(task_id)
        process = self._processes.get(task_id)
        if process is None:
            logger.info("No live process for %s, removing it", task_id)
            self._discard(task_id)
            return False

        task.kill_requested = True
        self.append_log(task_id, "! Triggering emergency kill sequence...", LogStream.SYSTEM)
        terminator = self._terminators[task_id]
        try:
            delivered = terminator.terminate(process)
        except OSError as e:
            logger.warning("Kill of %s (PID %d) failed: %s", task_id, process.pid, e)
            self.append_log(task_id, f"✗ Kill failed: {e}", LogStream.SYSTEM)
            return True
        if not delivered:
            # Exited on its own; the watcher decides the final status
            logger.debug("%s exited before the kill signal", task_id)
        else:
            logger.info("Sent kill to %s (PID %d) via %s", task_id, process.pid, terminator.name)
        return True

    def kill_all(self) -> None:
        """Call kill() for every tracked task.

        Running tasks are terminated; tasks without a live process are
        removed from the task list.
        """
        for task_id in list(self._tasks):
            self.kill(task_id)

    async def feed_input(self, task_id: str, text: str, submit: bool = True) -> bool:
        """Write operator input to a running task's stdin.

        Args:
            task_id: Target task.
            text: Text to write.
            submit: Append a newline (the operator pressed Enter).

        Returns:
            True if the input was written.

        Raises:
            TaskNotFoundError: If no task has this id.

        """
        self.get(task_id)
        process = self._processes.get(task_id)
        if process is None or process.stdin is None or process.returncode is not None:
            logger.debug("Ignoring input for %s: not running", task_id)
            return False
        data = text + "\n" if submit else text
        try:
            process.stdin.write(data.encode("utf-8"))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.warning("Cannot write to stdin of %s: %s", task_id, e)
            return False
        return True

    async def rerun(self, task_id: str) -> str | None:
        """Start the same command again as a new task.

        Raises:
            TaskNotFoundError: If no task has this id.

        """
        task = self.get(task_id)
        return await self.start(task.project_path, task.cwd, task.command, name=task.name)

    async def rerun_last(self) -> str | None:
        """Start the most recently started command again, if any."""
        if self._last is None:
            return None
        last = self._last
        return await self.start(last.project_path, last.cwd, last.command, name=last.name)

    # ------------------------------------------------------------------
    # Metadata and logs
    # ------------------------------------------------------------------

    def rename(self, task_id: str, name: str) -> None:
        """Rename a task (allowed in any status).

        Raises:
            TaskNotFoundError: If no task has this id.
            ValueError: If the name is blank.

        """
        task = self.get(task_id)
        name = name.strip()
        if not name:
            raise ValueError("Task name cannot be empty")
        task.name = name

    def append_log(self, task_id: str, raw: str, stream: LogStream = LogStream.STDOUT) -> int:
        """Split a raw chunk into lines and append them to a task's buffer.

        Blank lines are dropped; lines beyond the buffer capacity evict the
        oldest ones.

        Returns:
            Number of lines appended.

        Raises:
            TaskNotFoundError: If no task has this id.

        """
        task = self.get(task_id)
        lines = split_lines(raw)
        for text in lines:
            self._emit(task, LogLine(text, stream))
        return len(lines)

    def _emit(self, task: Task, entry: LogLine) -> None:
        task.log_buffer.append(entry)
        if self._on_output is not None:
            self._on_output(task, entry)

    def clear_log(self, task_id: str) -> None:
        """Drop every buffered line of a task."""
        self.get(task_id).clear_logs()

    def export_log(self, task_id: str, destination: Path | None = None) -> Path:
        """Write a task's full log buffer to a text file.

        Args:
            task_id: Task to export.
            destination: Target file or directory (defaults to
                ``compass-<task id>.txt`` in the export directory).

        Returns:
            Path of the written file.

        Raises:
            TaskNotFoundError: If no task has this id.
            ExportError: If the buffer is empty or the file cannot be written.

        """
        task = self.get(task_id)
        lines = task.get_logs()
        if not lines:
            raise ExportError(f"No logs to export for {task_id}")

        filename = EXPORT_FILENAME.format(task_id=task_id)
        if destination is None:
            target = (self.export_dir or Path.cwd()) / filename
        elif destination.is_dir():
            target = destination / filename
        else:
            target = destination

        try:
            target.write_text("\n".join(lines), encoding="utf-8")
        except OSError as e:
            self.append_log(task_id, "✗ Export failed", LogStream.SYSTEM)
            raise ExportError(f"Cannot write {target}: {e}") from e

        logger.info("Exported %d line(s) of %s to %s", len(lines), task_id, target)
        self.append_log(task_id, f"✓ Logs exported to {target}", LogStream.SYSTEM)
        return target

    def remove(self, task_id: str) -> bool:
        """Remove a terminal task from the task list.

        Returns:
            True if removed, False if the task is still running.

        Raises:
            TaskNotFoundError: If no task has this id.

        """
        task = self.get(task_id)
        if task.status is TaskStatus.RUNNING and task_id in self._processes:
            logger.warning("Cannot remove running task %s; kill it first", task_id)
            return False
        self._discard(task_id)
        return True

    def _discard(self, task_id: str) -> None:
        self._tasks.pop(task_id, None)
        self._processes.pop(task_id, None)
        self._terminators.pop(task_id, None)
        watcher = self._watchers.pop(task_id, None)
        if watcher is not None and not watcher.done():
            watcher.cancel()

    async def shutdown(self, timeout: float = DEFAULT_SHUTDOWN_TIMEOUT) -> None:
        """Kill running tasks and stop all watchers."""
        for task_id in list(self._processes):
            if not self._tasks[task_id].kill_requested:
                self.kill(task_id)

        pending = [w for w in self._watchers.values() if not w.done()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            for watcher in still_running:
                watcher.cancel()
            if still_running:
                logger.warning("%d task watcher(s) did not stop in time", len(still_running))
                await asyncio.gather(*still_running, return_exceptions=True)

        self._watchers.clear()
        logger.info("Task supervisor shutdown complete")
