"""Off-thread layout computation with request sequencing.

Each request carries a monotonically increasing sequence number. A result is
stale once a newer request has been issued; consumers drop stale results with
``LayoutWorker.accept`` instead of cancelling work in flight.
"""

import asyncio
import itertools
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Sequence

import structlog

from gitcanopy.layout.engine import calculate_layout
from gitcanopy.models import Branch, CanopySettings, Commit, VisualizationData

logger = structlog.get_logger(__name__)


def run_layout(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Worker entry point; receives and returns plain data only."""
    try:
        commits = [Commit.model_validate(c) for c in payload["commits"]]
        branches = [Branch.model_validate(b) for b in payload["branches"]]
        result = calculate_layout(
            commits,
            branches,
            head_commit_hash=payload.get("head_commit_hash"),
            stashes=payload.get("stashes") or [],
            lane_width=payload["lane_width"],
            row_height=payload["row_height"],
        )
        return {"type": "success", "result": result.model_dump()}
    except Exception as e:
        return {"type": "error", "error": str(e) or "Unknown layout error"}


@dataclass(frozen=True)
class LayoutOutcome:
    """Result of one layout request."""

    sequence: int
    data: Optional[VisualizationData] = None
    error: Optional[str] = None
    stale: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.data is not None


class LayoutWorker:
    """Runs calculate_layout on an executor so the caller's loop stays responsive."""

    def __init__(
        self,
        settings: Optional[CanopySettings] = None,
        executor: Optional[Executor] = None,
        use_processes: bool = False,
    ) -> None:
        """Initialize the worker.

        Args:
            settings: Runtime settings providing lane width and row height
            executor: Executor to run layouts on. If None, a single-worker
                pool is created and owned by this object.
            use_processes: Create a process pool instead of a thread pool
        """
        self.settings = settings or CanopySettings()
        self._owns_executor = executor is None
        if executor is None:
            executor = (
                ProcessPoolExecutor(max_workers=1)
                if use_processes
                else ThreadPoolExecutor(max_workers=1, thread_name_prefix="gitcanopy-layout")
            )
        self._executor = executor
        self._sequence = itertools.count(1)
        self.latest_requested = 0
        self.latest_accepted = 0

    async def request(
        self,
        commits: Iterable[Commit],
        branches: Iterable[Branch],
        head_commit_hash: Optional[str] = None,
        stashes: Optional[Sequence[str]] = None,
    ) -> LayoutOutcome:
        """Compute a layout off the event loop.

        Returns:
            LayoutOutcome, flagged stale if a newer request was issued meanwhile
        """
        sequence = next(self._sequence)
        self.latest_requested = sequence
        payload = {
            "commits": [c.model_dump() for c in commits],
            "branches": [b.model_dump() for b in branches],
            "head_commit_hash": head_commit_hash,
            "stashes": list(stashes or []),
            "lane_width": self.settings.lane_width,
            "row_height": self.settings.row_height,
        }

        loop = asyncio.get_running_loop()
        raw = await loop.run_in_executor(self._executor, run_layout, payload)

        stale = sequence < self.latest_requested
        if raw["type"] == "success":
            outcome = LayoutOutcome(
                sequence=sequence,
                data=VisualizationData.model_validate(raw["result"]),
                stale=stale,
            )
        else:
            logger.warning("layout_failed", sequence=sequence, error=raw["error"])
            outcome = LayoutOutcome(sequence=sequence, error=raw["error"], stale=stale)
        return outcome

    def accept(self, outcome: LayoutOutcome) -> bool:
        """Record ``outcome`` as displayed unless it is out of date.

        Returns:
            True if the outcome is the latest and should be shown
        """
        if outcome.sequence < self.latest_requested or outcome.sequence <= self.latest_accepted:
            logger.debug(
                "layout_result_discarded",
                sequence=outcome.sequence,
                latest=self.latest_requested,
            )
            return False
        self.latest_accepted = outcome.sequence
        return True

    def shutdown(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    def __enter__(self) -> "LayoutWorker":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.shutdown()
