"""Tests for TaskSupervisor using real child processes.

Children are the running Python interpreter, so the tests do not depend
on any other tool being installed.
"""

import asyncio
import contextlib
import os
import signal
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from project_compass.core.exceptions import ExportError, TaskNotFoundError
from project_compass.dashboard.manager.supervisor import TaskSupervisor
from project_compass.dashboard.manager.task import LogStream, TaskStatus
from project_compass.detection.types import CommandSpec

WAIT_TIMEOUT = 15.0

# Starts a sleeping grandchild that inherits stdout, prints its pid and exits
DETACH_CODE = (
    "import subprocess, sys\n"
    "child = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(30)'])\n"
    "print(child.pid, flush=True)\n"
)


def py(label: str, code: str) -> CommandSpec:
    return CommandSpec(label, (sys.executable, "-c", code))


def _alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    try:
        stat = Path(f"/proc/{pid}/stat").read_text()
    except OSError:
        return True
    return stat.rpartition(")")[2].split()[0] != "Z"


async def _first_output(task) -> str:
    for _ in range(200):
        if len(task.get_logs()) > 1:
            break
        await asyncio.sleep(0.05)
    return task.get_logs()[1]


async def _gone(pid: int) -> bool:
    for _ in range(100):
        if not _alive(pid):
            return True
        await asyncio.sleep(0.05)
    return False


@pytest_asyncio.fixture
async def supervisor(tmp_path: Path):
    sup = TaskSupervisor(export_dir=tmp_path)
    yield sup
    await sup.shutdown(timeout=5)


class TestStart:
    """Spawning and exit resolution."""

    @pytest.mark.asyncio
    async def test_success_finishes(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """Exit code 0 ends in FINISHED with the command line first."""
        task_id = await supervisor.start(tmp_path, tmp_path, py("Hello", "print('hello')"))

        task = await supervisor.wait(task_id, WAIT_TIMEOUT)

        logs = task.get_logs()
        assert task.status is TaskStatus.FINISHED
        assert task.exit_code == 0
        assert logs[0].startswith("> ")
        assert "hello" in logs
        assert logs[-1] == "✓ Hello finished"
        assert task.name == f"{tmp_path.name} · Hello"

    @pytest.mark.asyncio
    async def test_command_line_is_one_entry(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """An argv containing a newline is still logged as a single first line."""
        task_id = await supervisor.start(tmp_path, tmp_path, py("Multi", "a = 1\nprint(a)"))

        task = await supervisor.wait(task_id, WAIT_TIMEOUT)

        first = task.log_buffer[0]
        assert first.stream is LogStream.SYSTEM
        assert first.text.startswith("> ")
        assert "print(a)" in first.text
        assert task.get_logs()[1] == "1"

    @pytest.mark.asyncio
    async def test_runs_in_project_directory(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """The child's working directory is the given cwd."""
        task_id = await supervisor.start(tmp_path, tmp_path, py("Cwd", "import os; print(os.getcwd())"))

        task = await supervisor.wait(task_id, WAIT_TIMEOUT)

        assert Path(task.get_logs()[1]).resolve() == tmp_path.resolve()

    @pytest.mark.asyncio
    async def test_stderr_is_tagged(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """stderr lines are buffered with the STDERR stream."""
        code = "import sys; print('out'); sys.stderr.write('err\\n')"
        task_id = await supervisor.start(tmp_path, tmp_path, py("Streams", code))

        task = await supervisor.wait(task_id, WAIT_TIMEOUT)

        streams = {entry.text: entry.stream for entry in task.log_buffer}
        assert streams["out"] is LogStream.STDOUT
        assert streams["err"] is LogStream.STDERR

    @pytest.mark.asyncio
    async def test_partial_lines_are_joined(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """A line written in two chunks is buffered once."""
        code = "import sys, time; sys.stdout.write('abc'); sys.stdout.flush(); time.sleep(0.2); print('def')"
        task_id = await supervisor.start(tmp_path, tmp_path, py("Chunks", code))

        task = await supervisor.wait(task_id, WAIT_TIMEOUT)

        assert "abcdef" in task.get_logs()

    @pytest.mark.asyncio
    async def test_non_zero_exit_fails(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """A non-zero exit ends in FAILED with the exit code logged."""
        task_id = await supervisor.start(tmp_path, tmp_path, py("Boom", "raise SystemExit(3)"))

        task = await supervisor.wait(task_id, WAIT_TIMEOUT)

        assert task.status is TaskStatus.FAILED
        assert task.exit_code == 3
        assert task.get_logs()[-1] == "✗ Boom failed: exit code 3"

    @pytest.mark.asyncio
    async def test_missing_executable_fails_immediately(
        self, supervisor: TaskSupervisor, tmp_path: Path
    ) -> None:
        """Spawn failure is FAILED with the executable named, never RUNNING."""
        command = CommandSpec("Ghost", ("definitely-not-a-real-binary-xyz", "--help"))

        task_id = await supervisor.start(tmp_path, tmp_path, command)

        task = supervisor.get(task_id)
        assert task.status is TaskStatus.FAILED
        assert "definitely-not-a-real-binary-xyz" in task.error_message
        assert "definitely-not-a-real-binary-xyz" in task.get_logs()[-1]
        assert not supervisor.has_running

    @pytest.mark.asyncio
    async def test_empty_argv_is_a_no_op(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """No task is created for a command without argv."""
        empty = SimpleNamespace(label="Nothing", argv=())

        assert await supervisor.start(tmp_path, tmp_path, empty) is None
        assert supervisor.tasks == []

    @pytest.mark.asyncio
    async def test_concurrent_tasks_same_project(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """Several tasks may run for one project at once."""
        ids = [
            await supervisor.start(tmp_path, tmp_path, py(f"T{i}", f"print({i})"))
            for i in range(3)
        ]

        tasks = [await supervisor.wait(task_id, WAIT_TIMEOUT) for task_id in ids]

        assert ids == ["task-1", "task-2", "task-3"]
        assert all(t.status is TaskStatus.FINISHED for t in tasks)

    @pytest.mark.asyncio
    async def test_on_exit_called_once(self, tmp_path: Path) -> None:
        """The exit callback fires once per task."""
        on_exit = MagicMock()
        supervisor = TaskSupervisor(on_exit=on_exit)

        task_id = await supervisor.start(tmp_path, tmp_path, py("Ok", "pass"))
        await supervisor.wait(task_id, WAIT_TIMEOUT)

        on_exit.assert_called_once_with(supervisor.get(task_id))


class TestKill:
    """Termination and removal."""

    @pytest.mark.asyncio
    async def test_kill_running_task(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """A killed task ends in KILLED with the attempt logged."""
        task_id = await supervisor.start(tmp_path, tmp_path, py("Sleep", "import time; time.sleep(60)"))

        assert supervisor.kill(task_id) is True
        task = await supervisor.wait(task_id, WAIT_TIMEOUT)

        assert task.status is TaskStatus.KILLED
        logs = task.get_logs()
        assert "! Triggering emergency kill sequence..." in logs
        assert logs[-1] == "! Task killed forcefully"

    @pytest.mark.asyncio
    @pytest.mark.posix_only
    @pytest.mark.skipif(sys.platform == "win32", reason="process groups are POSIX only")
    async def test_kill_reaches_grandchildren(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """The whole process group dies, not only the direct child."""
        code = (
            "import subprocess, sys, time\n"
            "child = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)'])\n"
            "print(child.pid, flush=True)\n"
            "time.sleep(60)\n"
        )
        task_id = await supervisor.start(tmp_path, tmp_path, py("Tree", code))
        grandchild = int(await _first_output(supervisor.get(task_id)))

        supervisor.kill(task_id)
        await supervisor.wait(task_id, WAIT_TIMEOUT)

        assert await _gone(grandchild), "grandchild survived the group kill"

    @pytest.mark.asyncio
    @pytest.mark.posix_only
    @pytest.mark.skipif(sys.platform == "win32", reason="process groups are POSIX only")
    async def test_kill_after_child_exit_ends_task(self, tmp_path: Path) -> None:
        """A group that outlives its exited leader is still killed to a terminal status."""
        supervisor = TaskSupervisor(drain_timeout=WAIT_TIMEOUT)
        task_id = await supervisor.start(tmp_path, tmp_path, py("Detach", DETACH_CODE))
        task = supervisor.get(task_id)
        grandchild = int(await _first_output(task))
        for _ in range(200):
            if not supervisor.is_alive(task_id):
                break
            await asyncio.sleep(0.05)
        assert task.status is TaskStatus.RUNNING

        assert supervisor.kill(task_id) is True
        task = await supervisor.wait(task_id, WAIT_TIMEOUT)

        assert task.status is TaskStatus.FINISHED
        assert not supervisor.has_running
        assert await _gone(grandchild), "grandchild survived the group kill"
        await supervisor.shutdown(timeout=5)

    @pytest.mark.asyncio
    @pytest.mark.posix_only
    @pytest.mark.skipif(sys.platform == "win32", reason="process groups are POSIX only")
    async def test_open_pipes_do_not_keep_task_running(self, tmp_path: Path) -> None:
        """The exit status is resolved even while a grandchild holds stdout."""
        supervisor = TaskSupervisor(drain_timeout=0.5)
        task_id = await supervisor.start(tmp_path, tmp_path, py("Detach", DETACH_CODE))

        task = await supervisor.wait(task_id, WAIT_TIMEOUT)

        grandchild = int(task.get_logs()[1])
        try:
            assert task.status is TaskStatus.FINISHED
            assert task.get_logs()[-1] == "✓ Detach finished"
            assert _alive(grandchild)
        finally:
            with contextlib.suppress(ProcessLookupError):
                os.kill(grandchild, signal.SIGKILL)

    @pytest.mark.asyncio
    async def test_kill_race_with_natural_exit(self, tmp_path: Path) -> None:
        """A process that exits on its own keeps the status its exit decides."""
        gone = MagicMock()
        gone.name = "fake"
        gone.terminate.return_value = False
        supervisor = TaskSupervisor(terminator_factory=lambda: gone)

        task_id = await supervisor.start(tmp_path, tmp_path, py("Quick", "pass"))
        supervisor.kill(task_id)
        task = await supervisor.wait(task_id, WAIT_TIMEOUT)

        assert task.status is TaskStatus.FINISHED

    @pytest.mark.asyncio
    async def test_kill_without_process_removes_task(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """Killing a finished task removes it instead of erroring."""
        task_id = await supervisor.start(tmp_path, tmp_path, py("Done", "pass"))
        await supervisor.wait(task_id, WAIT_TIMEOUT)

        assert supervisor.kill(task_id) is False
        with pytest.raises(TaskNotFoundError):
            supervisor.get(task_id)

    @pytest.mark.asyncio
    async def test_kill_all(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """kill_all() terminates running tasks and removes finished ones."""
        done = await supervisor.start(tmp_path, tmp_path, py("Done", "pass"))
        await supervisor.wait(done, WAIT_TIMEOUT)
        ids = [
            await supervisor.start(tmp_path, tmp_path, py("Sleep", "import time; time.sleep(60)"))
            for _ in range(2)
        ]

        supervisor.kill_all()

        for task_id in ids:
            assert (await supervisor.wait(task_id, WAIT_TIMEOUT)).status is TaskStatus.KILLED
        assert not supervisor.has_running
        assert [t.id for t in supervisor.tasks] == ids

    @pytest.mark.asyncio
    async def test_remove_only_terminal(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """Running tasks cannot be removed; finished ones can."""
        running = await supervisor.start(tmp_path, tmp_path, py("Sleep", "import time; time.sleep(60)"))
        done = await supervisor.start(tmp_path, tmp_path, py("Done", "pass"))
        await supervisor.wait(done, WAIT_TIMEOUT)

        assert supervisor.remove(running) is False
        assert supervisor.remove(done) is True
        assert [t.id for t in supervisor.tasks] == [running]

    def test_unknown_task(self) -> None:
        """Unknown ids raise TaskNotFoundError."""
        with pytest.raises(TaskNotFoundError, match="task-404"):
            TaskSupervisor().get("task-404")


class TestInputAndMetadata:
    """stdin feeding, renaming and reruns."""

    @pytest.mark.asyncio
    async def test_feed_input(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """Submitted input reaches the child's stdin with a newline."""
        code = "import sys; print('got ' + sys.stdin.readline().strip())"
        task_id = await supervisor.start(tmp_path, tmp_path, py("Echo", code))

        assert await supervisor.feed_input(task_id, "ping") is True
        task = await supervisor.wait(task_id, WAIT_TIMEOUT)

        assert "got ping" in task.get_logs()

    @pytest.mark.asyncio
    async def test_feed_input_after_exit(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """Input to a finished task is refused."""
        task_id = await supervisor.start(tmp_path, tmp_path, py("Done", "pass"))
        await supervisor.wait(task_id, WAIT_TIMEOUT)

        assert await supervisor.feed_input(task_id, "late") is False

    @pytest.mark.asyncio
    async def test_rename(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """Renaming works in any status; blank names are rejected."""
        task_id = await supervisor.start(tmp_path, tmp_path, py("Done", "pass"))
        await supervisor.wait(task_id, WAIT_TIMEOUT)

        supervisor.rename(task_id, "  nightly build ")

        assert supervisor.get(task_id).name == "nightly build"
        with pytest.raises(ValueError):
            supervisor.rename(task_id, "   ")

    @pytest.mark.asyncio
    async def test_rerun_and_rerun_last(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """Reruns start new tasks with the same command."""
        assert await supervisor.rerun_last() is None

        first = await supervisor.start(tmp_path, tmp_path, py("Again", "print('x')"))
        second = await supervisor.rerun(first)
        third = await supervisor.rerun_last()

        assert len({first, second, third}) == 3
        for task_id in (first, second, third):
            task = await supervisor.wait(task_id, WAIT_TIMEOUT)
            assert task.label == "Again"


class TestLogs:
    """append_log, clear_log and export."""

    @pytest.mark.asyncio
    async def test_append_log_caps_buffer(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """Appending past capacity keeps the most recent lines."""
        task_id = await supervisor.start(tmp_path, tmp_path, py("Done", "pass"))
        await supervisor.wait(task_id, WAIT_TIMEOUT)

        appended = supervisor.append_log(task_id, "\n".join(f"l{i}" for i in range(700)) + "\n\n")

        logs = supervisor.get(task_id).get_logs()
        assert appended == 700
        assert len(logs) == 500
        assert logs[-1] == "l699"
        assert logs[0] == "l200"

    @pytest.mark.asyncio
    async def test_export_round_trip(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """The exported file holds the buffer joined by newlines."""
        task_id = await supervisor.start(tmp_path, tmp_path, py("Out", "print('a'); print('b')"))
        task = await supervisor.wait(task_id, WAIT_TIMEOUT)
        before = task.get_logs()

        target = supervisor.export_log(task_id)

        assert target == tmp_path / f"compass-{task_id}.txt"
        assert target.read_text(encoding="utf-8") == "\n".join(before)
        assert task.get_logs()[-1] == f"✓ Logs exported to {target}"

    @pytest.mark.asyncio
    async def test_export_to_directory(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """A directory destination gets the default file name."""
        task_id = await supervisor.start(tmp_path, tmp_path, py("Out", "print('a')"))
        await supervisor.wait(task_id, WAIT_TIMEOUT)
        out_dir = tmp_path / "exports"
        out_dir.mkdir()

        target = supervisor.export_log(task_id, out_dir)

        assert target == out_dir / f"compass-{task_id}.txt"

    @pytest.mark.asyncio
    async def test_export_empty_buffer(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """An empty buffer cannot be exported."""
        task_id = await supervisor.start(tmp_path, tmp_path, py("Out", "pass"))
        await supervisor.wait(task_id, WAIT_TIMEOUT)
        supervisor.clear_log(task_id)

        with pytest.raises(ExportError, match="No logs"):
            supervisor.export_log(task_id)

    @pytest.mark.asyncio
    async def test_export_unwritable_destination(self, supervisor: TaskSupervisor, tmp_path: Path) -> None:
        """A destination that cannot be written is an ExportError."""
        task_id = await supervisor.start(tmp_path, tmp_path, py("Out", "print('a')"))
        task = await supervisor.wait(task_id, WAIT_TIMEOUT)

        with pytest.raises(ExportError):
            supervisor.export_log(task_id, tmp_path / "missing" / "log.txt")
        assert task.status is TaskStatus.FINISHED


class TestShutdown:
    """Supervisor shutdown."""

    @pytest.mark.asyncio
    async def test_shutdown_kills_running_tasks(self, tmp_path: Path) -> None:
        """shutdown() leaves nothing running."""
        supervisor = TaskSupervisor()
        task_id = await supervisor.start(tmp_path, tmp_path, py("Sleep", "import time; time.sleep(60)"))

        await supervisor.shutdown(timeout=WAIT_TIMEOUT)

        assert supervisor.get(task_id).status is TaskStatus.KILLED
        assert not supervisor.has_running
