"""Manifest matcher: locate candidate project roots under a workspace.

Walks the workspace once with an iterative BFS (no recursion, symlinked
directories are never followed) and indexes file names per directory.
Schemas then query the index with their trigger patterns.
"""

import logging
import os
from collections import deque
from collections.abc import Generator, Iterable, Sequence
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Protocol

from pathspec import GitIgnoreSpec

from project_compass.core.exceptions import ScanError
from project_compass.detection.types import ManifestMatch

logger = logging.getLogger(__name__)

# Vendored dependencies and build output never hold project roots of interest
DEFAULT_IGNORE_PATTERNS = [
    "node_modules/",
    ".git/",
    "dist/",
    "build/",
    "target/",
]

DEFAULT_MAX_DEPTH = 5


class FilesystemInterface(Protocol):
    """Protocol for filesystem operations to enable dependency injection."""

    def scandir(self, path: Path) -> Generator[os.DirEntry[str], None, None]:
        """Scan directory and yield its entries."""
        ...


class RealFilesystem:
    """Real filesystem implementation using os.scandir."""

    def scandir(self, path: Path) -> Generator[os.DirEntry[str], None, None]:
        """Scan a directory, logging and skipping unreadable ones."""
        try:
            with os.scandir(path) as it:
                yield from it
        except OSError as e:
            logger.warning("Cannot scan directory %s: %s", path, e)


class ManifestIndex:
    """File names found per directory during one walk of the root.

    Attributes:
        root: Absolute scan root.
        files: Relative directory (posix, "" for root) -> sorted file names.

    """

    def __init__(self, root: Path, files: dict[str, list[str]]) -> None:
        self.root = root
        self.files = files

    def match(self, patterns: Sequence[str]) -> list[ManifestMatch]:
        """Find files whose name matches any of the trigger patterns.

        Args:
            patterns: File name globs (e.g. "package.json", "*.csproj").

        Returns:
            Matches sorted by manifest path relative to the root.

        """
        matches: list[ManifestMatch] = []
        for rel_dir in sorted(self.files):
            directory = self.root / rel_dir if rel_dir else self.root
            for filename in self.files[rel_dir]:
                if any(fnmatchcase(filename, pattern) for pattern in patterns):
                    manifest = f"{rel_dir}/{filename}" if rel_dir else filename
                    matches.append(
                        ManifestMatch(directory=directory, manifest=manifest, filename=filename)
                    )
        matches.sort(key=lambda m: m.manifest)
        return matches


class ManifestMatcher:
    """Glob-style manifest discovery bounded by depth and ignore rules.

    Attributes:
        max_depth: Deepest directory level indexed (root is level 0).
        ignore_patterns: Gitignore-style patterns of excluded paths.

    """

    def __init__(
        self,
        max_depth: int = DEFAULT_MAX_DEPTH,
        extra_ignore: Iterable[str] = (),
        filesystem: FilesystemInterface | None = None,
    ) -> None:
        """Initialize the matcher.

        Args:
            max_depth: Deepest directory level indexed (root is level 0).
            extra_ignore: Additional gitignore-style patterns.
            filesystem: Optional filesystem implementation for testing.

        """
        self.max_depth = max_depth
        self.ignore_patterns = [*DEFAULT_IGNORE_PATTERNS, *extra_ignore]
        self._ignore_spec = GitIgnoreSpec.from_lines(self.ignore_patterns)
        self.filesystem = filesystem if filesystem is not None else RealFilesystem()

    def is_ignored(self, relative: str, is_dir: bool) -> bool:
        """Check a root-relative posix path against the ignore patterns."""
        return self._ignore_spec.match_file(f"{relative}/" if is_dir else relative)

    def index(self, root: Path) -> ManifestIndex:
        """Walk the root and index file names per directory.

        Args:
            root: Workspace directory to scan.

        Returns:
            Index of files found at depth 0..max_depth.

        Raises:
            ScanError: If the root does not exist, is not a directory or
                cannot be listed.

        """
        root = self._check_root(root)

        visited: set[Path] = set()
        files: dict[str, list[str]] = {}

        # BFS queue: (absolute path, relative posix path, depth)
        queue: deque[tuple[Path, str, int]] = deque()
        queue.append((root, "", 0))

        while queue:
            dir_path, rel_dir, depth = queue.popleft()

            try:
                real_path = dir_path.resolve()
            except (OSError, RuntimeError) as e:
                logger.debug("Cannot resolve path %s: %s", dir_path, e)
                continue
            if real_path in visited:
                continue
            visited.add(real_path)

            names: list[str] = []
            subdirs: list[tuple[Path, str, int]] = []

            for entry in self.filesystem.scandir(dir_path):
                rel_path = f"{rel_dir}/{entry.name}" if rel_dir else entry.name
                try:
                    is_dir = entry.is_dir(follow_symlinks=False)
                    is_file = not is_dir and entry.is_file()
                except OSError as e:
                    logger.debug("Error processing entry %s: %s", entry.path, e)
                    continue

                if self.is_ignored(rel_path, is_dir):
                    continue
                if is_dir:
                    if depth < self.max_depth:
                        subdirs.append((Path(entry.path), rel_path, depth + 1))
                elif is_file:
                    names.append(entry.name)

            if names:
                files[rel_dir] = sorted(names)

            subdirs.sort(key=lambda item: item[1])
            queue.extend(subdirs)

        logger.debug("Indexed %d director(ies) with files under %s", len(files), root)
        return ManifestIndex(root, files)

    def match(self, root: Path, patterns: Sequence[str]) -> list[ManifestMatch]:
        """Walk the root and return manifests matching the patterns."""
        return self.index(root).match(patterns)

    @staticmethod
    def _check_root(root: Path) -> Path:
        try:
            resolved = root.expanduser().resolve()
        except (OSError, RuntimeError) as e:
            raise ScanError(f"Cannot resolve workspace root {root}: {e}") from e
        if not resolved.exists():
            raise ScanError(f"Workspace root does not exist: {resolved}")
        if not resolved.is_dir():
            raise ScanError(f"Workspace root is not a directory: {resolved}")
        if not os.access(resolved, os.R_OK | os.X_OK):
            raise ScanError(f"Workspace root is not readable: {resolved}")
        try:
            with os.scandir(resolved):
                pass
        except OSError as e:
            raise ScanError(f"Cannot list workspace root {resolved}: {e}") from e
        return resolved
