"""Graph layout engine and lineage queries."""

from gitcanopy.layout.engine import Lineage, assign_lanes, calculate_layout, compute_lineage
from gitcanopy.layout.worker import LayoutOutcome, LayoutWorker, run_layout

__all__ = [
    "LayoutOutcome",
    "LayoutWorker",
    "Lineage",
    "assign_lanes",
    "calculate_layout",
    "compute_lineage",
    "run_layout",
]
