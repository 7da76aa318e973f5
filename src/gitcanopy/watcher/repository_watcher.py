"""Watches repository metadata directories and emits debounced change events."""

import os
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Hashable, List, Optional, Union

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from gitcanopy.models import CanopySettings

logger = structlog.get_logger(__name__)

LOCK_SUFFIX = ".lock"

# Read-only access (e.g. `git status` opening the index) must not trigger refreshes
_HANDLED_EVENT_TYPES = {"created", "modified", "moved", "deleted"}


class ChangeType(str, Enum):
    REPOSITORY_CHANGED = "repository-changed"
    COMMITS_UPDATED = "commits-updated"
    BRANCHES_UPDATED = "branches-updated"
    HEAD_CHANGED = "head-changed"


@dataclass(frozen=True)
class RepositoryEvent:
    type: ChangeType
    repo_path: str


ChangeCallback = Callable[[RepositoryEvent], Any]


def classify_change(relative_path: str) -> List[ChangeType]:
    """Map a path inside the metadata directory to semantic change types.

    Args:
        relative_path: Path relative to the metadata directory

    Returns:
        Change types to emit (empty for lock files and unrelated paths)
    """
    name = relative_path.replace(os.sep, "/")
    if name.startswith("./"):
        name = name[2:]
    if name.endswith(LOCK_SUFFIX):
        return []
    if name in ("HEAD", "ORIG_HEAD"):
        return [ChangeType.HEAD_CHANGED]
    if name.startswith("refs") or name == "packed-refs":
        return [ChangeType.BRANCHES_UPDATED, ChangeType.COMMITS_UPDATED]
    if name == "index":
        return [ChangeType.REPOSITORY_CHANGED, ChangeType.COMMITS_UPDATED]
    return []


class Debouncer:
    """Per-key trailing debounce on top of threading.Timer.

    Triggering a key cancels its pending timer and schedules a new one, so a
    burst within the delay collapses into a single call. Keys are independent.
    """

    def __init__(self, delay: float) -> None:
        self.delay = delay
        self._timers: Dict[Hashable, threading.Timer] = {}
        self._lock = threading.Lock()

    def trigger(self, key: Hashable, callback: Callable[..., Any], *args: Any) -> None:
        def fire() -> None:
            with self._lock:
                if self._timers.get(key) is not timer:
                    return
                del self._timers[key]
            try:
                callback(*args)
            except Exception:
                logger.exception("debounced_callback_failed", key=str(key))

        with self._lock:
            pending = self._timers.pop(key, None)
            if pending is not None:
                pending.cancel()
            timer = threading.Timer(self.delay, fire)
            timer.daemon = True
            self._timers[key] = timer
            timer.start()

    def cancel(self, predicate: Optional[Callable[[Hashable], bool]] = None) -> int:
        """Cancel pending timers whose key matches ``predicate`` (all when None)."""
        with self._lock:
            keys = [k for k in self._timers if predicate is None or predicate(k)]
            for key in keys:
                self._timers.pop(key).cancel()
        return len(keys)

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._timers)


class _MetadataEventHandler(FileSystemEventHandler):
    """Translates raw filesystem events under one metadata directory."""

    def __init__(self, watcher: "RepositoryWatcher", repo_path: str, git_dir: Path, callback: ChangeCallback):
        super().__init__()
        self.watcher = watcher
        self.repo_path = repo_path
        self.git_dir = git_dir
        self.callback = callback

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _HANDLED_EVENT_TYPES:
            return
        paths = [event.src_path]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(dest)
        for raw in paths:
            if isinstance(raw, bytes):
                raw = os.fsdecode(raw)
            relative = os.path.relpath(raw, self.git_dir)
            for change in classify_change(relative):
                self.watcher.notify(self.repo_path, change, self.callback)


class RepositoryWatcher:
    """Observes ``<repo>/.git`` recursively for each watched repository."""

    def __init__(
        self,
        settings: Optional[CanopySettings] = None,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        """Initialize the watcher.

        Args:
            settings: Runtime settings providing the debounce window
            observer_factory: Creates watchdog observers (injectable for tests)
        """
        self.settings = settings or CanopySettings()
        self.debouncer = Debouncer(self.settings.debounce_ms / 1000.0)
        self._observer_factory = observer_factory
        self._observers: Dict[str, List[Any]] = {}

    def watch_repository(self, repo_path: Union[str, Path], callback: ChangeCallback) -> bool:
        """Start watching a repository, replacing any existing watch on it.

        Returns:
            False when the path has no metadata directory (nothing is watched)
        """
        key = os.path.abspath(str(repo_path))
        if key in self._observers:
            self.unwatch_repository(key)

        git_dir = Path(key) / ".git"
        if not git_dir.is_dir():
            logger.debug("watch_skipped", repo=key, reason="no metadata directory")
            return False

        handler = _MetadataEventHandler(self, key, git_dir, callback)
        observer = self._observer_factory()
        observer.schedule(handler, str(git_dir), recursive=True)
        observer.start()
        self._observers[key] = [observer]
        logger.info("watch_started", repo=key)
        return True

    def notify(self, repo_path: str, change: ChangeType, callback: ChangeCallback) -> None:
        """Debounce one classified change for ``(repo_path, change)``."""
        self.debouncer.trigger((repo_path, change), callback, RepositoryEvent(change, repo_path))

    def unwatch_repository(self, repo_path: Union[str, Path]) -> None:
        key = os.path.abspath(str(repo_path))
        observers = self._observers.pop(key, [])
        for observer in observers:
            observer.stop()
        for observer in observers:
            observer.join()
        self.debouncer.cancel(lambda k: isinstance(k, tuple) and k[0] == key)
        if observers:
            logger.info("watch_stopped", repo=key)

    def unwatch_all(self) -> None:
        for key in list(self._observers):
            self.unwatch_repository(key)

    def is_watching(self, repo_path: Union[str, Path]) -> bool:
        return os.path.abspath(str(repo_path)) in self._observers

    @property
    def watched_paths(self) -> List[str]:
        return list(self._observers)
