"""Lane layout of a commit DAG.

Commits are placed oldest first, one row each, on per-branch lanes. Lane 0
is reserved for the primary branch (main/master); every other branch gets the
next free lane in order of first appearance.
"""

from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Set

import structlog

from gitcanopy.models import (
    Bounds,
    Branch,
    Commit,
    GraphEdge,
    GraphNode,
    LaneSegment,
    VisualizationData,
)
from gitcanopy.parsing import branch_color, is_primary_branch

logger = structlog.get_logger(__name__)

DEFAULT_LANE_WIDTH = 40
DEFAULT_ROW_HEIGHT = 60
DEFAULT_BRANCH = "main"

NODE_SIZE = 7
HEAD_NODE_SIZE = 10


def assign_lanes(ordered: Sequence[Commit]) -> Dict[str, int]:
    """Map branch names to lanes, scanning commits oldest first.

    Commits without a branch count as ``main``.
    """
    lanes: Dict[str, int] = {}
    next_lane = 1
    for commit in ordered:
        name = commit.branch_name or DEFAULT_BRANCH
        if name in lanes:
            continue
        if is_primary_branch(name):
            lanes[name] = 0
        else:
            lanes[name] = next_lane
            next_lane += 1
    return lanes


def calculate_layout(
    commits: Iterable[Commit],
    branches: Iterable[Branch],
    head_commit_hash: Optional[str] = None,
    stashes: Optional[Sequence[str]] = None,
    lane_width: int = DEFAULT_LANE_WIDTH,
    row_height: int = DEFAULT_ROW_HEIGHT,
) -> VisualizationData:
    """Position commits and connect them.

    Args:
        commits: Commits, newest first when timestamps tie
        branches: Known branches, used for display colors
        head_commit_hash: Hash of HEAD; its node is drawn larger
        stashes: Stash entries (accepted for protocol compatibility, not drawn)
        lane_width: Horizontal distance between lanes
        row_height: Vertical distance between rows

    Returns:
        VisualizationData with nodes, edges, lane rails and bounds
    """
    # Log order is newest first, so reversing it keeps same-second parents ahead of children
    ordered = sorted(reversed(list(commits)), key=lambda c: c.timestamp)
    if not ordered:
        return VisualizationData()

    colors: Dict[str, str] = {}
    for branch in branches:
        colors.setdefault(branch.name, branch.color)

    def color_for(name: str) -> str:
        return colors.get(name) or branch_color(name)

    lanes = assign_lanes(ordered)

    nodes: List[GraphNode] = []
    node_map: Dict[str, GraphNode] = {}
    for index, commit in enumerate(ordered):
        name = commit.branch_name or DEFAULT_BRANCH
        lane = lanes[name]
        node = GraphNode(
            id=commit.hash,
            commit=commit,
            x=(lane + 1) * lane_width,
            y=(index + 1) * row_height,
            lane=lane,
            color=color_for(name),
            shape="diamond" if len(commit.parents) > 1 else "circle",
            size=HEAD_NODE_SIZE if head_commit_hash and commit.hash == head_commit_hash else NODE_SIZE,
            parents=list(commit.parents),
        )
        nodes.append(node)
        node_map[node.id] = node

    edges: List[GraphEdge] = []
    for node in nodes:
        is_merge = len(node.parents) > 1
        for parent_hash in node.parents:
            parent = node_map.get(parent_hash)
            if parent is None:
                continue
            edges.append(
                GraphEdge(
                    id=f"{parent_hash}-{node.id}",
                    source=parent_hash,
                    target=node.id,
                    color=node.color,
                    type="merge" if is_merge else "normal",
                )
            )
            parent.children.append(node.id)

    lane_owner: Dict[int, str] = {}
    for name, lane in lanes.items():
        lane_owner.setdefault(lane, name)

    spans: Dict[int, List[float]] = {}
    for node in nodes:
        span = spans.get(node.lane)
        if span is None:
            spans[node.lane] = [node.y, node.y]
        else:
            span[0] = min(span[0], node.y)
            span[1] = max(span[1], node.y)

    lane_segments = [
        LaneSegment(
            lane=lane,
            x=(lane + 1) * lane_width,
            start_y=span[0],
            end_y=span[1],
            color=color_for(lane_owner[lane]),
            branch_name=lane_owner[lane],
        )
        for lane, span in sorted(spans.items())
    ]

    width = max(node.x for node in nodes) + lane_width
    height = max(node.y for node in nodes) + row_height

    logger.debug("layout_calculated", nodes=len(nodes), edges=len(edges), lanes=len(lane_segments))
    return VisualizationData(
        nodes=nodes,
        edges=edges,
        lane_segments=lane_segments,
        width=width,
        height=height,
        bounds=Bounds(min_x=0, max_x=width, min_y=0, max_y=height),
    )


class Lineage(NamedTuple):
    """Nodes reachable from a focus node; both sets include the focus itself."""

    ancestors: Set[str]
    descendants: Set[str]

    @property
    def highlighted(self) -> Set[str]:
        return self.ancestors | self.descendants


def _walk(start: str, adjacency: Dict[str, List[str]]) -> Set[str]:
    visited: Set[str] = set()
    stack = [start]
    while stack:
        current = stack.pop()
        if current in visited:
            continue
        visited.add(current)
        stack.extend(n for n in adjacency.get(current, []) if n not in visited)
    return visited


def compute_lineage(data: VisualizationData, focus_id: str) -> Lineage:
    """Depth-first ancestor and descendant sets for ``focus_id``.

    Parents outside the layout are ignored. Shared ancestors in diamond-shaped
    histories are visited once.
    """
    node_ids = {node.id for node in data.nodes}
    if focus_id not in node_ids:
        return Lineage(set(), set())
    parents = {node.id: [p for p in node.parents if p in node_ids] for node in data.nodes}
    children = {node.id: list(node.children) for node in data.nodes}
    return Lineage(
        ancestors=_walk(focus_id, parents),
        descendants=_walk(focus_id, children),
    )
