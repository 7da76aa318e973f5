"""Repository data service built on the command executor."""

import asyncio
import re
from pathlib import Path
from typing import Awaitable, List, Optional, Sequence, TypeVar, Union

import structlog

from gitcanopy.execution import (
    CommandExecutor,
    GitCanopyError,
    GitCommandError,
    InvalidRepositoryError,
    ValidationError,
)
from gitcanopy.models import (
    Branch,
    CanopySettings,
    CommandLogEntry,
    Commit,
    CommitFilter,
    ContributorStats,
    DiffResult,
    HotFile,
    Repository,
    TagMap,
    WorkingTreeStatus,
)
from gitcanopy.parsing import (
    BRANCH_FORMAT,
    CONTRIBUTOR_FORMAT,
    DETAIL_FORMAT,
    LOG_FORMAT,
    parse_branches,
    parse_commit_log,
    parse_contributors,
    parse_detailed_commit,
    parse_hot_files,
    parse_numstat,
    parse_status,
    parse_tag_map,
)
from gitcanopy.service.caches import AvatarResolver, RepositoryCaches
from gitcanopy.service.result import ReadResult

logger = structlog.get_logger(__name__)

PathLike = Union[str, Path]
T = TypeVar("T")


class RepositoryService:
    """Read and simple write operations over repositories on disk.

    Owns the branch-list, tag-map and avatar caches for its lifetime; nothing
    is shared between service instances.

    Read-oriented aggregate operations come in two flavours: ``read_*``
    returns a ReadResult that distinguishes data, empty history and failure,
    while ``get_*`` returns only the (possibly empty) data. Discovery, commit
    detail, diffs and mutating helpers propagate errors to the caller.
    """

    def __init__(
        self,
        settings: Optional[CanopySettings] = None,
        executor: Optional[CommandExecutor] = None,
        caches: Optional[RepositoryCaches] = None,
        avatars: Optional[AvatarResolver] = None,
    ) -> None:
        """Initialize the service.

        Args:
            settings: Runtime settings. If None, loads from environment.
            executor: Command executor. If None, creates one from settings.
            caches: Branch/tag caches. If None, creates them from settings.
            avatars: Avatar resolver. If None, creates one from settings.
        """
        self.settings = settings or CanopySettings()
        self.executor = executor or CommandExecutor(self.settings)
        self.caches = caches or RepositoryCaches(self.settings)
        self.avatars = avatars or AvatarResolver(
            self.settings.github_usernames, self.settings.avatar_cache_size
        )

    async def _git(self, repo_path: PathLike, args: Sequence[str]) -> str:
        return await self.executor.run(list(args), cwd=repo_path)

    async def _degrade(self, operation: str, repo_path: PathLike, work: Awaitable[T], empty: T) -> ReadResult[T]:
        try:
            return ReadResult.of(await work)
        except Exception as e:
            logger.warning(f"{operation}_failed", repo=str(repo_path), error=str(e))
            return ReadResult.failed(empty, str(e))

    # ============================================================================
    # Repository discovery
    # ============================================================================

    async def get_repository(self, repo_path: PathLike) -> Repository:
        """Verify ``repo_path`` is a working tree and collect its state.

        Raises:
            InvalidRepositoryError: If the path is missing or not a working tree
            GitSpawnError: If the binary itself could not be started
        """
        path = Path(repo_path)
        if not path.is_dir():
            raise InvalidRepositoryError(str(repo_path), "path does not exist")
        try:
            inside = await self._git(path, ["rev-parse", "--is-inside-work-tree"])
        except GitCommandError as e:
            raise InvalidRepositoryError(str(repo_path), str(e)) from e
        if inside.strip() != "true":
            raise InvalidRepositoryError(str(repo_path), "not inside a working tree")

        current_branch, head, git_dir, detached, branches = await asyncio.gather(
            self._current_branch(path),
            self.get_current_head(path),
            self._git_dir(path),
            self._is_detached(path),
            self.get_branches(path),
        )
        is_rebasing = git_dir is not None and (
            (git_dir / "rebase-merge").is_dir() or (git_dir / "rebase-apply").is_dir()
        )
        is_merging = git_dir is not None and (git_dir / "MERGE_HEAD").is_file()

        repository = Repository(
            path=str(path),
            name=path.resolve().name or "Unknown",
            current_branch=current_branch,
            head_commit=head,
            branches=branches,
            is_rebasing=is_rebasing,
            is_merging=is_merging,
            is_detached=detached,
        )
        logger.info(
            "repository_opened",
            repo=str(path),
            branch=current_branch,
            detached=detached,
            rebasing=is_rebasing,
            merging=is_merging,
        )
        return repository

    async def _current_branch(self, repo_path: PathLike) -> str:
        try:
            return (await self._git(repo_path, ["symbolic-ref", "--short", "HEAD"])).strip()
        except GitCanopyError:
            pass
        try:
            return (await self._git(repo_path, ["rev-parse", "--short", "HEAD"])).strip()
        except GitCanopyError:
            return "Unknown"

    async def _git_dir(self, repo_path: PathLike) -> Optional[Path]:
        try:
            raw = (await self._git(repo_path, ["rev-parse", "--git-dir"])).strip()
        except GitCanopyError:
            return None
        git_dir = Path(raw)
        return git_dir if git_dir.is_absolute() else Path(repo_path) / git_dir

    async def _is_detached(self, repo_path: PathLike) -> bool:
        try:
            await self._git(repo_path, ["symbolic-ref", "-q", "HEAD"])
            return False
        except GitCanopyError:
            return True

    async def get_current_head(self, repo_path: PathLike) -> str:
        """Full hash of HEAD, or an empty string (unborn branch, failure)."""
        try:
            return (await self._git(repo_path, ["rev-parse", "HEAD"])).strip()
        except GitCanopyError:
            return ""

    # ============================================================================
    # Commit log
    # ============================================================================

    async def read_commits(
        self,
        repo_path: PathLike,
        limit: Optional[int] = None,
        offset: int = 0,
        filters: Optional[CommitFilter] = None,
    ) -> ReadResult[List[Commit]]:
        """Fetch a page of the commit log across all refs, newest first.

        Branch list and tag map are fetched alongside the log; branch tips seed
        the branch-inheritance pass of the parser.

        Args:
            repo_path: Repository path
            limit: Maximum commits (defaults to settings.default_commit_limit)
            offset: Commits to skip
            filters: Optional author/date/message/path filters

        Returns:
            ReadResult holding the commits, empty on failure
        """
        if limit is None:
            limit = self.settings.default_commit_limit
        args = [
            "log",
            "--all",
            "--date-order",
            f"--pretty=format:{LOG_FORMAT}",
            f"--skip={max(offset, 0)}",
            "-n",
            str(limit),
        ]
        if filters:
            if filters.author:
                args.append(f"--author={escape_pattern(filters.author)}")
            if filters.since:
                args.append(f"--since={filters.since}")
            if filters.until:
                args.append(f"--until={filters.until}")
            if filters.query:
                args.append(f"--grep={filters.query}")
            if filters.author or filters.query:
                args.append("--regexp-ignore-case")
            if filters.path:
                args.extend(["--", filters.path])

        async def load() -> List[Commit]:
            branches, tags, output = await asyncio.gather(
                self.get_branches(repo_path),
                self.get_tags(repo_path),
                self._git(repo_path, args),
            )
            branch_map = {}
            for branch in branches:
                branch_map.setdefault(branch.object_name, branch.name)
            commits = parse_commit_log(output, branch_map, tags, avatar_url=self.avatars)
            logger.debug("commits_loaded", repo=str(repo_path), count=len(commits), offset=offset)
            return commits

        return await self._degrade("read_commits", repo_path, load(), [])

    async def get_commits(
        self,
        repo_path: PathLike,
        limit: Optional[int] = None,
        offset: int = 0,
        filters: Optional[CommitFilter] = None,
    ) -> List[Commit]:
        return (await self.read_commits(repo_path, limit, offset, filters)).data

    # ============================================================================
    # Branches and tags (cached)
    # ============================================================================

    async def read_branches(self, repo_path: PathLike) -> ReadResult[List[Branch]]:
        """Branch list, served from the 30 second cache when possible.

        Failures are not cached.
        """
        cached = self.caches.get_branches(repo_path)
        if cached is not None:
            return ReadResult.of(cached)

        async def load() -> List[Branch]:
            output = await self._git(repo_path, ["branch", "-a", f"--format={BRANCH_FORMAT}"])
            branches = parse_branches(output)
            self.caches.set_branches(repo_path, branches)
            return branches

        return await self._degrade("read_branches", repo_path, load(), [])

    async def get_branches(self, repo_path: PathLike) -> List[Branch]:
        return (await self.read_branches(repo_path)).data

    async def read_tags(self, repo_path: PathLike) -> ReadResult[TagMap]:
        """Tag map (commit hash -> tag names), served from the 60 second cache when possible.

        ``show-ref`` exits non-zero when there are no tags at all, which reads
        as an empty map.
        """
        cached = self.caches.get_tags(repo_path)
        if cached is not None:
            return ReadResult.of(cached)

        async def load() -> TagMap:
            try:
                output = await self._git(repo_path, ["show-ref", "--tags", "--dereference"])
            except GitCommandError as e:
                if e.exit_code != 1 or e.stderr.strip():
                    raise
                output = ""
            tags = parse_tag_map(output)
            self.caches.set_tags(repo_path, tags)
            return tags

        return await self._degrade("read_tags", repo_path, load(), {})

    async def get_tags(self, repo_path: PathLike) -> TagMap:
        return (await self.read_tags(repo_path)).data

    def invalidate(self, repo_path: PathLike, branches: bool = True, tags: bool = True) -> None:
        """Drop cached branch/tag data for a repository."""
        self.caches.invalidate(repo_path, branches=branches, tags=tags)

    def clear_caches(self) -> None:
        self.caches.clear()
        self.avatars.clear()

    # ============================================================================
    # Single commit and diffs
    # ============================================================================

    async def get_commit_details(self, repo_path: PathLike, commit_hash: str) -> Commit:
        """Enriched commit: file changes with status, stats, tags and branches.

        The header/numstat query propagates failures; the auxiliary queries
        (tags, containing branches, tips, name-status, body) fall back to empty.
        """
        commit_hash = check_revision(commit_hash)
        show, name_status, body, tags, branches, tips = await asyncio.gather(
            self._git(
                repo_path, ["show", f"--format={DETAIL_FORMAT}", "--numstat", "-M", commit_hash]
            ),
            self._optional(repo_path, ["show", "--format=", "--name-status", "-M", commit_hash]),
            self._optional(repo_path, ["show", "-s", "--format=%B", commit_hash]),
            self._optional(repo_path, ["tag", "--contains", commit_hash]),
            self._optional(
                repo_path, ["branch", "-a", "--contains", commit_hash, "--format=%(refname:short)"]
            ),
            self._optional(
                repo_path, ["branch", "-a", "--points-at", commit_hash, "--format=%(refname:short)"]
            ),
        )
        return parse_detailed_commit(
            show,
            tags_output=tags,
            branches_output=branches,
            tips_output=tips,
            name_status_output=name_status,
            body=body,
            avatar_url=self.avatars,
        )

    async def _optional(self, repo_path: PathLike, args: List[str]) -> str:
        try:
            return await self._git(repo_path, args)
        except GitCanopyError as e:
            logger.debug("optional_query_failed", args=args, error=str(e))
            return ""

    async def get_diff(self, repo_path: PathLike, commit_hash: str, file_path: str) -> DiffResult:
        """Diff of one file at one commit against its first parent.

        The numeric summary is fetched first; binary files and changes above
        settings.diff_line_limit short-circuit without materializing the diff.
        """
        commit_hash = check_revision(commit_hash)
        scope = ["--format=", "--diff-merges=first-parent", commit_hash, "--", file_path]
        summary = await self._git(repo_path, ["show", "--numstat", *scope])
        rows = parse_numstat(summary.splitlines())
        additions = sum(row[0] for row in rows)
        deletions = sum(row[1] for row in rows)

        if any(row[4] for row in rows):
            return DiffResult(kind="binary", content="Binary file, no preview available")

        changed = additions + deletions
        if changed > self.settings.diff_line_limit:
            logger.info("diff_too_large", repo=str(repo_path), path=file_path, changed=changed)
            return DiffResult(
                kind="too_large",
                content=f"Diff too large to display ({changed} changed lines)",
                additions=additions,
                deletions=deletions,
            )

        text = await self._git(repo_path, ["show", *scope])
        return DiffResult(kind="text", content=text, additions=additions, deletions=deletions)

    # ============================================================================
    # Working tree
    # ============================================================================

    async def read_status(self, repo_path: PathLike) -> ReadResult[WorkingTreeStatus]:
        async def load() -> WorkingTreeStatus:
            output = await self._git(
                repo_path, ["status", "--porcelain=v1", "--branch", "--untracked-files=all"]
            )
            return parse_status(output)

        return await self._degrade("read_status", repo_path, load(), WorkingTreeStatus())

    async def get_status(self, repo_path: PathLike) -> WorkingTreeStatus:
        return (await self.read_status(repo_path)).data

    async def read_stash_list(self, repo_path: PathLike) -> ReadResult[List[str]]:
        async def load() -> List[str]:
            output = await self._git(repo_path, ["stash", "list", "--pretty=format:%gd: %gs"])
            return [line for line in output.splitlines() if line.strip()]

        return await self._degrade("read_stash_list", repo_path, load(), [])

    async def get_stash_list(self, repo_path: PathLike) -> List[str]:
        return (await self.read_stash_list(repo_path)).data

    # ============================================================================
    # Analytics
    # ============================================================================

    async def read_hot_files(self, repo_path: PathLike, limit: int = 10) -> ReadResult[List[HotFile]]:
        async def load() -> List[HotFile]:
            output = await self._git(repo_path, ["log", "--all", "--format=", "--name-only"])
            return parse_hot_files(output, limit)

        return await self._degrade("read_hot_files", repo_path, load(), [])

    async def get_hot_files(self, repo_path: PathLike, limit: int = 10) -> List[HotFile]:
        return (await self.read_hot_files(repo_path, limit)).data

    async def read_contributors(self, repo_path: PathLike) -> ReadResult[List[ContributorStats]]:
        async def load() -> List[ContributorStats]:
            output = await self._git(
                repo_path, ["log", "--all", f"--pretty=format:{CONTRIBUTOR_FORMAT}", "--shortstat"]
            )
            return parse_contributors(output, self.avatars)

        return await self._degrade("read_contributors", repo_path, load(), [])

    async def get_contributors(self, repo_path: PathLike) -> List[ContributorStats]:
        return (await self.read_contributors(repo_path)).data

    # ============================================================================
    # Mutating helpers
    # ============================================================================

    async def stage_file(self, repo_path: PathLike, file_path: str) -> None:
        await self._git(repo_path, ["add", "--", file_path])

    async def unstage_file(self, repo_path: PathLike, file_path: str) -> None:
        await self._git(repo_path, ["reset", "-q", "--", file_path])

    async def discard_changes(self, repo_path: PathLike, file_path: str, untracked: bool = False) -> None:
        """Throw away working tree changes; untracked files are deleted."""
        if untracked:
            await self._git(repo_path, ["clean", "-f", "--", file_path])
        else:
            await self._git(repo_path, ["checkout", "--", file_path])

    async def stage_all(self, repo_path: PathLike) -> None:
        await self._git(repo_path, ["add", "-A"])

    async def unstage_all(self, repo_path: PathLike) -> None:
        await self._git(repo_path, ["reset", "-q"])

    async def commit(self, repo_path: PathLike, message: str) -> None:
        """Commit the index.

        Raises:
            ValidationError: If the message is empty (no process is spawned)
        """
        if not message or not message.strip():
            raise ValidationError("commit message must not be empty")
        await self._git(repo_path, ["commit", "-m", message])
        self.invalidate(repo_path, tags=False)

    async def push(self, repo_path: PathLike) -> None:
        await self._git(repo_path, ["push"])
        self.invalidate(repo_path, tags=False)

    async def checkout_branch(self, repo_path: PathLike, branch_name: str) -> None:
        """Switch branches; failures propagate to the caller."""
        await self._git(repo_path, ["checkout", check_revision(branch_name)])
        self.invalidate(repo_path, tags=False)

    async def apply_stash(self, repo_path: PathLike, index: Union[int, str]) -> None:
        await self._git(repo_path, ["stash", "apply", _stash_ref(index)])

    async def drop_stash(self, repo_path: PathLike, index: Union[int, str]) -> None:
        await self._git(repo_path, ["stash", "drop", _stash_ref(index)])

    async def clone(self, url: str, target_path: PathLike) -> None:
        """Clone ``url`` into ``target_path`` (its parent must exist)."""
        target = Path(target_path)
        await self.executor.run(["clone", "--", url, str(target)], cwd=target.parent)

    async def clone_to_parent(self, url: str, parent_path: PathLike) -> str:
        """Clone into ``parent_path/<name derived from url>`` and return that path."""
        name = repository_name_from_url(url)
        if not name:
            raise ValidationError(f"cannot derive a directory name from {url!r}")
        target = Path(parent_path) / name
        await self.clone(url, target)
        return str(target)

    # ============================================================================
    # Command history
    # ============================================================================

    def get_command_history(self, limit: Optional[int] = None, offset: int = 0) -> List[CommandLogEntry]:
        return self.executor.command_log.get_history(limit, offset)

    def clear_command_history(self) -> None:
        self.executor.command_log.clear()


def repository_name_from_url(url: str) -> str:
    """Directory name git would pick for a clone of ``url``."""
    tail = url.rstrip("/").replace(":", "/").split("/")[-1]
    if tail.endswith(".git"):
        tail = tail[: -len(".git")]
    return tail


_PATTERN_SPECIALS = re.compile(r"([\\.*\[\]^$])")


def escape_pattern(text: str) -> str:
    """Escape regex metacharacters so git matches ``text`` literally."""
    return _PATTERN_SPECIALS.sub(r"\\\1", text)


def check_revision(revision: str) -> str:
    """Reject revisions git would read as an option.

    Raises:
        ValidationError: If ``revision`` is empty or starts with ``-``
    """
    text = (revision or "").strip()
    if not text or text.startswith("-"):
        raise ValidationError(f"invalid revision: {revision!r}")
    return text


def _stash_ref(index: Union[int, str]) -> str:
    text = str(index).strip()
    if text.isdigit():
        return f"stash@{{{text}}}"
    return check_revision(text.split(":", 1)[0])
