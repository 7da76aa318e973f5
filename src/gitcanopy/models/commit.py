"""Data models for commits, branches and the command audit log."""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

CommitType = Literal[
    "feat", "fix", "docs", "style", "refactor", "perf", "test", "chore", "revert", "other"
]
BranchType = Literal["main", "develop", "feature", "release", "hotfix", "custom"]
FileStatus = Literal["A", "M", "D", "R", "C", "U"]

# hash -> tag names pointing at it
TagMap = Dict[str, List[str]]


class Author(BaseModel):
    """Author or committer identity."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Author name")
    email: str = Field(..., description="Author email")
    avatar_url: Optional[str] = Field(None, description="Derived avatar image URL")


class FileChange(BaseModel):
    """A file touched by a commit."""

    model_config = ConfigDict(frozen=True)

    status: FileStatus = Field("M", description="Added, Modified, Deleted, Renamed, Copied, Unmerged")
    path: str = Field(..., description="Path of the file after the change")
    previous_path: Optional[str] = Field(None, description="Old path for renamed/copied files")
    additions: int = Field(0, description="Lines added")
    deletions: int = Field(0, description="Lines deleted")


class CommitStats(BaseModel):
    """Aggregate line counts for a commit."""

    model_config = ConfigDict(frozen=True)

    additions: int = Field(0, description="Number of lines added")
    deletions: int = Field(0, description="Number of lines deleted")
    total: int = Field(0, description="additions + deletions")


class CommitParent(BaseModel):
    """Short reference to a parent commit."""

    model_config = ConfigDict(frozen=True)

    hash: str
    short_hash: str


class Commit(BaseModel):
    """A single commit as parsed from the log.

    Commits are regenerated on every refresh and never mutated in place.
    """

    model_config = ConfigDict(frozen=True)

    hash: str = Field(..., description="Full commit SHA hash")
    short_hash: str = Field(..., description="Short commit SHA hash (7 chars)")
    parents: List[str] = Field(default_factory=list, description="Parent commit hashes")
    message: str = Field("", description="Raw commit message")
    short_message: str = Field("", description="First line of the commit message")
    type: CommitType = Field("other", description="Conventional commit classification")
    author: Author
    committer: Author
    timestamp: int = Field(..., description="Unix timestamp in seconds")
    is_merge: bool = Field(False, description="Whether the commit has more than one parent")
    branch_name: Optional[str] = Field(None, description="Decorated or inherited branch name")
    tags: List[str] = Field(default_factory=list, description="Tags pointing at this commit")

    # Populated only by the detailed view
    parents_details: Optional[List[CommitParent]] = None
    file_changes: Optional[List[FileChange]] = None
    branches: Optional[List[str]] = Field(None, description="Branches containing this commit")
    branch_tips: Optional[List[str]] = Field(None, description="Branches pointing exactly here")
    stats: Optional[CommitStats] = None


class Branch(BaseModel):
    """A local or remote branch, recomputed on every fetch."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Branch name with the remote prefix stripped")
    type: BranchType = "custom"
    object_name: str = Field(..., description="Hash of the branch tip")
    is_head: bool = False
    is_local: bool = True
    is_remote: bool = False
    upstream: Optional[str] = None
    color: str = Field(..., description="Deterministic display color")
    lane: Optional[int] = Field(None, description="Lane index, assigned by the layout engine")


class CommandLogEntry(BaseModel):
    """One audited invocation of the version-control binary."""

    id: str
    command: str
    args: List[str] = Field(default_factory=list)
    timestamp: float = Field(..., description="Start time, unix seconds")
    duration: float = Field(..., description="Wall-clock duration in milliseconds")
    exit_code: int
    success: bool
