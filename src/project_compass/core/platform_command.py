"""Cross-platform process helpers.

This module hides the differences between Windows and POSIX systems that
matter to task supervision:

- POSIX (Linux/macOS): children are started in their own session so the
  child pid doubles as a process group id. Killing the group also takes
  down grandchildren spawned by shell scripts and package-manager wrappers.
- Windows: there are no process groups in the POSIX sense, so only the
  direct child is killed.

The strategy is picked once, at spawn time, via ``select_terminator()``;
call sites only ever invoke ``terminator.terminate(process)``.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import signal
import subprocess
import sys
from typing import Any, Literal, Protocol

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"
IS_POSIX = not IS_WINDOWS

PlatformType = Literal["windows", "posix"]


class KillableProcess(Protocol):
    """Subset of ``asyncio.subprocess.Process`` used by terminators."""

    pid: int

    @property
    def returncode(self) -> int | None: ...

    def kill(self) -> None: ...


class ProcessTerminator(Protocol):
    """Strategy for forcefully terminating a spawned child."""

    name: str

    def terminate(self, process: KillableProcess) -> bool:
        """Send a forceful termination signal.

        Args:
            process: Process handle returned by the spawner.

        Returns:
            True if the signal was delivered, False if the process was
            already gone.

        """
        ...


class ProcessGroupTerminator:
    """SIGKILL the whole process group led by the child (POSIX only)."""

    name = "process-group"

    def terminate(self, process: KillableProcess) -> bool:
        """Kill the process group whose id equals the child's pid.

        The group is signalled even when the child itself has exited:
        grandchildren keep the group alive after its leader is gone.
        """
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            logger.debug("Process group %d already gone", process.pid)
            return False
        except PermissionError:
            # Group leadership may have been lost (child called setsid itself)
            logger.warning("Cannot signal process group %d, killing child only", process.pid)
            return DirectTerminator().terminate(process)
        return True


class DirectTerminator:
    """Kill only the direct child."""

    name = "direct"

    def terminate(self, process: KillableProcess) -> bool:
        """Kill the child process itself."""
        if process.returncode is not None:
            return False
        try:
            process.kill()
        except ProcessLookupError:
            logger.debug("Process %d already gone", process.pid)
            return False
        return True


def get_platform() -> PlatformType:
    """Get the current platform type.

    Returns:
        'windows' for Windows, 'posix' for Linux/macOS.

    """
    return "windows" if IS_WINDOWS else "posix"


def select_terminator() -> ProcessTerminator:
    """Pick the termination strategy for a process about to be spawned."""
    if IS_POSIX and hasattr(os, "killpg"):
        return ProcessGroupTerminator()
    return DirectTerminator()


def spawn_kwargs(terminator: ProcessTerminator) -> dict[str, Any]:
    """Extra keyword arguments for the spawner matching a terminator.

    Process-group termination requires the child to lead its own session.
    """
    if isinstance(terminator, ProcessGroupTerminator):
        return {"start_new_session": True}
    return {}


def python_binary() -> str:
    """Name of the Python interpreter binary expected on PATH."""
    return "python" if IS_WINDOWS else "python3"


def find_binary(name: str) -> str | None:
    """Locate an executable on PATH.

    Args:
        name: Executable name (e.g. "npm").

    Returns:
        Absolute path, or None if not found.

    """
    return shutil.which(name)


def format_command(argv: list[str] | tuple[str, ...]) -> str:
    """Render an argv list as a single display string.

    Examples:
        >>> format_command(["npm", "run", "build"])
        'npm run build'

    """
    if IS_WINDOWS:
        return subprocess.list2cmdline(list(argv))
    return shlex.join(argv)
