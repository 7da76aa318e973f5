"""Filesystem watching of repository metadata."""

from gitcanopy.watcher.repository_watcher import (
    ChangeType,
    Debouncer,
    RepositoryEvent,
    RepositoryWatcher,
    classify_change,
)

__all__ = [
    "ChangeType",
    "Debouncer",
    "RepositoryEvent",
    "RepositoryWatcher",
    "classify_change",
]
