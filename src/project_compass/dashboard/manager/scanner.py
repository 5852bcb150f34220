"""Background workspace scanning.

Resolving a root walks the filesystem and parses manifests, so it runs in
a worker thread while the event loop stays responsive. The underlying I/O
cannot be interrupted, so superseded scans are not cancelled: each request
bumps a generation counter and a completion from an older generation is
discarded instead of overwriting the state for the newer root.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from project_compass.core.exceptions import ScanError
from project_compass.detection.resolver import ProjectResolver
from project_compass.detection.types import ProjectRecord

logger = logging.getLogger(__name__)


@dataclass
class ScanState:
    """Scan state as seen by display layers.

    Attributes:
        root: Root of the latest scan request.
        projects: Detected projects (highest priority first).
        loading: Whether the latest request is still in flight.
        error: Error message of the latest request, if it failed.

    """

    root: Path | None = None
    projects: list[ProjectRecord] = field(default_factory=list)
    loading: bool = False
    error: str | None = None

    def find(self, selector: str) -> ProjectRecord | None:
        """Find a project by name, path or path relative to the root."""
        for project in self.projects:
            if project.name == selector or str(project.path) == selector:
                return project
        if self.root is not None:
            candidate = (self.root / selector).resolve()
            for project in self.projects:
                if project.path == candidate:
                    return project
        lowered = selector.lower()
        return next((p for p in self.projects if p.name.lower() == lowered), None)


class ScanController:
    """Runs resolver scans off the event loop, newest request wins."""

    def __init__(
        self,
        resolver: ProjectResolver,
        on_change: Callable[[ScanState], Any] | None = None,
    ) -> None:
        self.resolver = resolver
        self.state = ScanState()
        self._on_change = on_change
        self._generation = 0
        self._inflight: set[asyncio.Task[ScanState | None]] = set()

    @property
    def generation(self) -> int:
        return self._generation

    async def request_scan(self, root: Path) -> ScanState | None:
        """Scan a root and publish the result.

        Args:
            root: Workspace root to scan.

        Returns:
            The published state, or None if a newer request superseded
            this one before it completed.

        """
        self._generation += 1
        generation = self._generation
        self._publish(ScanState(root=root, loading=True))
        logger.debug("Scan %d requested for %s", generation, root)

        try:
            projects = await asyncio.to_thread(self.resolver.resolve, root)
        except ScanError as e:
            if generation != self._generation:
                logger.debug("Discarding failed scan %d for %s (superseded)", generation, root)
                return None
            logger.error("Scan of %s failed: %s", root, e)
            return self._publish(ScanState(root=root, error=str(e)))
        except Exception as e:
            if generation != self._generation:
                logger.debug("Discarding crashed scan %d for %s (superseded)", generation, root)
                return None
            logger.exception("Unexpected error while scanning %s", root)
            return self._publish(ScanState(root=root, error=f"Scan failed: {e}"))

        if generation != self._generation:
            logger.debug("Discarding scan %d for %s (superseded)", generation, root)
            return None
        return self._publish(ScanState(root=root, projects=projects))

    def schedule_scan(self, root: Path) -> "asyncio.Task[ScanState | None]":
        """Start a scan in the background and return its asyncio task."""
        task = asyncio.create_task(self.request_scan(root), name=f"scan-{root}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    def _publish(self, state: ScanState) -> ScanState:
        self.state = state
        if self._on_change is not None:
            self._on_change(state)
        return state
