"""Runtime health probe.

Checks which language toolchains are installed and reports the first line
of each one's version output. Probes run concurrently; a probe that hangs
is abandoned after a timeout.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum

from project_compass.core.platform_command import find_binary, python_binary

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 10.0


class RuntimeStatus(StrEnum):
    """Outcome of a runtime probe."""

    OK = "ok"
    MISSING = "missing"
    ERROR = "error"


@dataclass(frozen=True)
class Runtime:
    """A toolchain to probe."""

    name: str
    binary: str
    version_args: tuple[str, ...]


@dataclass(frozen=True)
class RuntimeCheck:
    """Probe result for one runtime."""

    runtime: Runtime
    status: RuntimeStatus
    version: str

    @property
    def name(self) -> str:
        return self.runtime.name


DEFAULT_RUNTIMES: tuple[Runtime, ...] = (
    Runtime("Node.js", "node", ("-v",)),
    Runtime("npm", "npm", ("-v",)),
    Runtime("Python", python_binary(), ("--version",)),
    Runtime("Rust (Cargo)", "cargo", ("--version",)),
    Runtime("Go", "go", ("version",)),
    # java prints its version on stderr
    Runtime("Java", "java", ("-version",)),
    Runtime("PHP", "php", ("-v",)),
    Runtime("Ruby", "ruby", ("-v",)),
    Runtime(".NET", "dotnet", ("--version",)),
)


async def probe_runtime(
    runtime: Runtime,
    which: Callable[[str], str | None] = find_binary,
    timeout: float = DEFAULT_PROBE_TIMEOUT,
) -> RuntimeCheck:
    """Probe one runtime.

    Args:
        runtime: Runtime to check.
        which: Binary lookup.
        timeout: Seconds to wait for the version command.

    Returns:
        MISSING if the binary is not on PATH, ERROR if the version command
        fails, otherwise OK with the first non-empty output line.

    """
    executable = which(runtime.binary)
    if executable is None:
        return RuntimeCheck(runtime, RuntimeStatus.MISSING, "not installed")

    try:
        process = await asyncio.create_subprocess_exec(
            executable,
            *runtime.version_args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.debug("Cannot run %s: %s", executable, e)
        return RuntimeCheck(runtime, RuntimeStatus.ERROR, "failed to check")

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
    except TimeoutError:
        process.kill()
        await process.wait()
        logger.warning("Version check for %s timed out after %.0fs", runtime.name, timeout)
        return RuntimeCheck(runtime, RuntimeStatus.ERROR, "failed to check")

    if process.returncode != 0:
        return RuntimeCheck(runtime, RuntimeStatus.ERROR, "failed to check")

    output = (stdout or stderr).decode("utf-8", errors="replace")
    version = next((line.strip() for line in output.splitlines() if line.strip()), "")
    return RuntimeCheck(runtime, RuntimeStatus.OK, version or "unknown")


async def probe_runtimes(
    runtimes: Sequence[Runtime] = DEFAULT_RUNTIMES,
    which: Callable[[str], str | None] = find_binary,
    timeout: float = DEFAULT_PROBE_TIMEOUT,
) -> list[RuntimeCheck]:
    """Probe several runtimes concurrently, preserving input order."""
    return list(
        await asyncio.gather(*(probe_runtime(r, which=which, timeout=timeout) for r in runtimes))
    )
