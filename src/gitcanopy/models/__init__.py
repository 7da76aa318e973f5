"""Data models for repository history visualization."""

from gitcanopy.models.commit import (
    Author,
    Branch,
    CommandLogEntry,
    Commit,
    CommitParent,
    CommitStats,
    FileChange,
    TagMap,
)
from gitcanopy.models.config import CanopySettings
from gitcanopy.models.graph import (
    Bounds,
    GraphEdge,
    GraphNode,
    LaneSegment,
    Point,
    VisualizationData,
)
from gitcanopy.models.repository import (
    CommitFilter,
    ContributorStats,
    DiffResult,
    HotFile,
    Repository,
    StatusFile,
    WorkingTreeStatus,
)

__all__ = [
    "Author",
    "Branch",
    "CommandLogEntry",
    "Commit",
    "CommitParent",
    "CommitStats",
    "FileChange",
    "TagMap",
    "CanopySettings",
    "Bounds",
    "GraphEdge",
    "GraphNode",
    "LaneSegment",
    "Point",
    "VisualizationData",
    "CommitFilter",
    "ContributorStats",
    "DiffResult",
    "HotFile",
    "Repository",
    "StatusFile",
    "WorkingTreeStatus",
]
