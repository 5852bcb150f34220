"""Project detection: manifests -> typed project records -> actions.

Public API:
    ProjectResolver: Resolve a workspace root into ranked ProjectRecords
    SchemaCatalog: Built-in project-type descriptors
    FrameworkCatalog: Built-in frameworks plus user plugins
    ManifestMatcher: Depth-bounded manifest discovery
    build_actions: Per-project indexed action list
"""

from .commands import Action, build_actions, find_action, shortcut_map
from .frameworks import Framework, FrameworkCatalog, dependency_matches
from .matcher import ManifestMatcher
from .resolver import ProjectResolver
from .schemas import Schema, SchemaCatalog
from .types import (
    CommandSource,
    CommandSpec,
    FrameworkTag,
    ProjectMetadata,
    ProjectRecord,
    ProjectType,
)

__all__ = [
    "Action",
    "CommandSource",
    "CommandSpec",
    "Framework",
    "FrameworkCatalog",
    "FrameworkTag",
    "ManifestMatcher",
    "ProjectMetadata",
    "ProjectRecord",
    "ProjectResolver",
    "ProjectType",
    "Schema",
    "SchemaCatalog",
    "build_actions",
    "dependency_matches",
    "find_action",
    "shortcut_map",
]
