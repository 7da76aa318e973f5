"""Data models for repository state, working tree status and analytics."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from gitcanopy.models.commit import Branch

StatusKind = Literal["added", "modified", "deleted", "renamed", "untracked", "conflicted"]
DiffKind = Literal["text", "binary", "too_large"]


class Repository(BaseModel):
    """Result of repository discovery."""

    path: str = Field(..., description="Repository working tree path")
    name: str = Field(..., description="Last path component")
    is_valid_git: bool = True
    current_branch: str = Field("Unknown", description="Symbolic branch, short hash or Unknown")
    head_commit: str = Field("", description="Full hash of HEAD, empty for an unborn branch")
    branches: List[Branch] = Field(default_factory=list)
    is_rebasing: bool = False
    is_merging: bool = False
    is_detached: bool = False


class CommitFilter(BaseModel):
    """Optional filters for commit log retrieval."""

    author: Optional[str] = Field(None, description="Case-insensitive author name/email substring")
    since: Optional[str] = Field(None, description="Lower date bound, any format git accepts")
    until: Optional[str] = Field(None, description="Upper date bound")
    query: Optional[str] = Field(None, description="Case-insensitive message grep")
    path: Optional[str] = Field(None, description="Restrict to commits touching this path")


class StatusFile(BaseModel):
    """Status of a single file in the working tree or index."""

    path: str
    status: StatusKind
    staged: bool = False


class WorkingTreeStatus(BaseModel):
    """Parsed short-form status output."""

    files: List[StatusFile] = Field(default_factory=list)
    branch: Optional[str] = None
    upstream: Optional[str] = None
    ahead: int = 0
    behind: int = 0


class DiffResult(BaseModel):
    """Diff of one file at one commit.

    ``kind`` is ``text`` when ``content`` holds the unified diff, ``binary`` when
    the file has no textual preview and ``too_large`` when the change exceeds
    the configured line limit.
    """

    kind: DiffKind
    content: str = ""
    additions: int = 0
    deletions: int = 0

    @property
    def is_binary(self) -> bool:
        return self.kind == "binary"

    @property
    def is_too_large(self) -> bool:
        return self.kind == "too_large"


class HotFile(BaseModel):
    """A path and how many commits touched it."""

    path: str
    count: int


class ContributorStats(BaseModel):
    """Per-author aggregate over the whole history."""

    name: str
    email: str
    avatar_url: str
    commit_count: int = 0
    additions: int = 0
    deletions: int = 0
    first_commit: int = 0
    last_commit: int = 0
    activity: List[int] = Field(default_factory=list, description="Commit counts per time bucket")
