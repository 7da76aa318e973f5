"""Refresh loop: watcher events -> cache invalidation -> reload -> layout.

Watcher callbacks arrive on timer threads; they are handed to the
coordinator's event loop and processed there. Only the newest layout result
reaches the listener.
"""

import asyncio
import concurrent.futures
import os
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

import structlog

from gitcanopy.layout import LayoutWorker
from gitcanopy.models import Branch, Commit, VisualizationData, WorkingTreeStatus
from gitcanopy.service import RepositoryService
from gitcanopy.watcher import ChangeType, RepositoryEvent, RepositoryWatcher

logger = structlog.get_logger(__name__)

LayoutListener = Callable[[VisualizationData], Any]
StatusListener = Callable[[WorkingTreeStatus], Any]
EventListener = Callable[[RepositoryEvent], Any]

_GRAPH_EVENTS = {ChangeType.COMMITS_UPDATED, ChangeType.BRANCHES_UPDATED, ChangeType.HEAD_CHANGED}


class RefreshCoordinator:
    """Keeps one repository's graph current while it is open."""

    def __init__(
        self,
        service: RepositoryService,
        layout_worker: LayoutWorker,
        watcher: RepositoryWatcher,
        on_layout: Optional[LayoutListener] = None,
        on_status: Optional[StatusListener] = None,
        on_event: Optional[EventListener] = None,
        commit_limit: Optional[int] = None,
    ) -> None:
        self.service = service
        self.layout_worker = layout_worker
        self.watcher = watcher
        self.on_layout = on_layout
        self.on_status = on_status
        self.on_event = on_event
        self.commit_limit = commit_limit

        self.repo_path: Optional[str] = None
        self.commits: List[Commit] = []
        self.branches: List[Branch] = []
        self.head: str = ""
        self.visualization: Optional[VisualizationData] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def open(self, repo_path: Union[str, Path]) -> Optional[VisualizationData]:
        """Load a repository, lay it out and start watching it.

        Raises:
            InvalidRepositoryError: If the path is not a working tree
        """
        await self.close()
        repository = await self.service.get_repository(repo_path)
        self.repo_path = os.path.abspath(repository.path)
        self._loop = asyncio.get_running_loop()
        data = await self.refresh()
        self.watcher.watch_repository(self.repo_path, self._on_watcher_event)
        logger.info("repository_opened", repo=self.repo_path, commits=len(self.commits))
        return data

    async def close(self) -> None:
        if self.repo_path is not None:
            self.watcher.unwatch_repository(self.repo_path)
            logger.info("repository_closed", repo=self.repo_path)
        self.repo_path = None
        self.visualization = None

    def _on_watcher_event(self, event: RepositoryEvent) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        future = asyncio.run_coroutine_threadsafe(self.handle_event(event), loop)
        future.add_done_callback(lambda f: self._report_failure(event, f))

    def _report_failure(self, event: RepositoryEvent, future: concurrent.futures.Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.warning(
                "refresh_failed",
                repo=event.repo_path,
                type=event.type.value,
                error=str(error),
                error_type=type(error).__name__,
            )

    async def handle_event(self, event: RepositoryEvent) -> None:
        """Apply one debounced change event."""
        if event.repo_path != self.repo_path:
            return
        logger.debug("repository_event", repo=event.repo_path, type=event.type.value)
        if self.on_event is not None:
            self.on_event(event)

        if event.type == ChangeType.BRANCHES_UPDATED:
            self.service.invalidate(event.repo_path, branches=True, tags=True)
        elif event.type == ChangeType.COMMITS_UPDATED:
            self.service.invalidate(event.repo_path, branches=False, tags=True)
        elif event.type == ChangeType.HEAD_CHANGED:
            self.service.invalidate(event.repo_path, branches=True, tags=False)

        if event.type in _GRAPH_EVENTS:
            await self.refresh()
        if event.type == ChangeType.REPOSITORY_CHANGED and self.on_status is not None:
            self.on_status(await self.service.get_status(event.repo_path))

    async def refresh(self) -> Optional[VisualizationData]:
        """Reload commits, branches and HEAD, then lay them out.

        Returns:
            The new layout, or None if it failed or was superseded
        """
        repo_path = self.repo_path
        if repo_path is None:
            return None

        commits, branches, head, stashes = await asyncio.gather(
            self.service.get_commits(repo_path, limit=self.commit_limit),
            self.service.get_branches(repo_path),
            self.service.get_current_head(repo_path),
            self.service.get_stash_list(repo_path),
        )
        outcome = await self.layout_worker.request(commits, branches, head or None, stashes)
        if not self.layout_worker.accept(outcome) or not outcome.ok:
            return None

        self.commits, self.branches, self.head = commits, branches, head
        self.visualization = outcome.data
        if self.on_layout is not None:
            self.on_layout(outcome.data)
        return outcome.data
