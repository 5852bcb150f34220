"""Project resolver: filesystem tree -> ranked project records.

Pipeline:
1. Walk the root once (ManifestMatcher) and, per schema in declaration
   order, collect directories holding one of its trigger files.
2. Build one base record per directory. A directory already claimed by a
   schema of higher or equal priority is skipped, so at equal priority the
   earlier schema wins. A builder that returns None or fails to parse its
   manifest leaves the directory unclaimed by that schema.
3. Enrich each base record with the FrameworkCatalog.
4. Sort by priority, descending; ties keep discovery order.
"""

import logging
from collections.abc import Callable
from functools import cache
from pathlib import Path

from project_compass.core.exceptions import ManifestParseError
from project_compass.core.platform_command import find_binary
from project_compass.detection.frameworks import FrameworkCatalog
from project_compass.detection.matcher import ManifestMatcher
from project_compass.detection.schemas import SchemaCatalog
from project_compass.detection.types import ProjectRecord

logger = logging.getLogger(__name__)


class ProjectResolver:
    """Turns a workspace root into a ranked list of typed projects.

    Attributes:
        schemas: Schema catalog visited in declaration order.
        frameworks: Framework catalog used for enrichment.
        matcher: Manifest matcher bounding the walk.

    """

    def __init__(
        self,
        schemas: SchemaCatalog | None = None,
        frameworks: FrameworkCatalog | None = None,
        matcher: ManifestMatcher | None = None,
        which: Callable[[str], str | None] = find_binary,
    ) -> None:
        """Initialize the resolver.

        Args:
            schemas: Schema catalog (defaults to the built-in schemas).
            frameworks: Framework catalog (defaults to built-ins, no plugins).
            matcher: Manifest matcher (defaults to depth 5, default ignores).
            which: Binary lookup for the missing-binaries advisory.

        """
        self.schemas = schemas or SchemaCatalog()
        self.frameworks = frameworks or FrameworkCatalog()
        self.matcher = matcher or ManifestMatcher()
        self._which = which

    def resolve(self, root: Path) -> list[ProjectRecord]:
        """Detect every project under a root.

        Args:
            root: Workspace directory.

        Returns:
            Enriched records, highest priority first.

        Raises:
            ScanError: If the root itself is inaccessible.

        """
        index = self.matcher.index(root)
        logger.info("Scanning %s for projects", index.root)

        # One PATH lookup per binary per scan
        which = cache(self._which)
        records: dict[Path, ProjectRecord] = {}

        for schema in self.schemas:
            for match in index.match(schema.files):
                existing = records.get(match.directory)
                if existing is not None and existing.priority >= schema.priority:
                    continue
                try:
                    record = schema.build(match, which=which)
                except ManifestParseError as e:
                    logger.debug("Schema %s skipped %s: %s", schema.id, match.manifest, e)
                    continue
                except Exception:
                    logger.debug(
                        "Schema %s failed on %s", schema.id, match.manifest, exc_info=True
                    )
                    continue
                if record is None:
                    continue
                if existing is not None:
                    logger.debug(
                        "Schema %s (priority %d) replaces %s for %s",
                        schema.id,
                        schema.priority,
                        existing.schema_id,
                        match.directory,
                    )
                    # Re-insert so discovery order follows the winning schema
                    del records[match.directory]
                records[match.directory] = record

        enriched = [self.frameworks.apply(record) for record in records.values()]
        # sorted() is stable: equal priorities keep discovery order
        projects = sorted(enriched, key=lambda r: r.priority, reverse=True)
        logger.info("Detected %d project(s) under %s", len(projects), index.root)
        return projects
