"""Data models for the positioned commit graph."""

from typing import List, Literal

from pydantic import BaseModel, Field

from gitcanopy.models.commit import Commit

NodeShape = Literal["circle", "diamond", "square"]
EdgeType = Literal["normal", "merge"]


class Point(BaseModel):
    x: float
    y: float


class GraphNode(BaseModel):
    """A commit placed on the canvas."""

    id: str = Field(..., description="Commit hash")
    commit: Commit
    x: float
    y: float
    lane: int
    color: str
    shape: NodeShape = "circle"
    size: int = 7
    parents: List[str] = Field(default_factory=list, description="Parent commit hashes")
    children: List[str] = Field(default_factory=list, description="Child ids found in the same layout")


class GraphEdge(BaseModel):
    """A parent -> child connection between two nodes of the same layout."""

    id: str = Field(..., description="'<parent>-<child>'")
    source: str = Field(..., description="Parent hash")
    target: str = Field(..., description="Child hash")
    color: str
    type: EdgeType = "normal"
    points: List[Point] = Field(default_factory=list)


class LaneSegment(BaseModel):
    """Continuous vertical rail covering every node of a lane."""

    lane: int
    x: float
    start_y: float
    end_y: float
    color: str
    branch_name: str


class Bounds(BaseModel):
    min_x: float = 0
    max_x: float = 0
    min_y: float = 0
    max_y: float = 0


class VisualizationData(BaseModel):
    """Sole output contract of the layout engine."""

    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)
    lane_segments: List[LaneSegment] = Field(default_factory=list)
    width: float = 0
    height: float = 0
    bounds: Bounds = Field(default_factory=Bounds)
