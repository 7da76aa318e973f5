"""Parsing of commit logs, single-commit detail and tag listings."""

import re
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple

import structlog

from gitcanopy.models import (
    Author,
    Commit,
    CommitParent,
    CommitStats,
    FileChange,
    TagMap,
)
from gitcanopy.models.commit import CommitType, FileStatus

logger = structlog.get_logger(__name__)

COMMIT_TYPES = ("feat", "fix", "docs", "style", "refactor", "perf", "test", "chore", "revert")

# Format strings handed to `git log` / `git show`
LOG_FORMAT = "%H|%P|%an|%ae|%ct|%s|%D"
DETAIL_FORMAT = "%H|%P|%an|%ae|%at|%s"

_TYPE_PREFIX = re.compile(r"^(\w+)(?:\(.+?\))?:")
_NUMSTAT_LINE = re.compile(r"^(\d+|-)\t(\d+|-)\t(.+)$")
_BRACE_RENAME = re.compile(r"^(.*)\{(.*) => (.*)\}(.*)$")

AvatarUrlFn = Callable[[str], str]


def _no_avatar(email: str) -> str:
    return ""


def classify_commit_type(message: str) -> CommitType:
    """Classify a commit message using the conventional-commit prefix.

    Args:
        message: Commit subject

    Returns:
        The matched type, ``revert`` for messages starting with "revert",
        otherwise ``other``
    """
    if message.lower().startswith("revert"):
        return "revert"
    match = _TYPE_PREFIX.match(message)
    if not match:
        return "other"
    prefix = match.group(1).lower()
    return prefix if prefix in COMMIT_TYPES else "other"


def branch_from_decoration(decoration: str) -> Optional[str]:
    """Pick the first branch name out of a ``%D`` ref decoration.

    Tags and HEAD markers are skipped; ``origin/`` prefixes are stripped.
    """
    for ref in decoration.split(","):
        ref = ref.strip()
        if ref.startswith("HEAD -> "):
            ref = ref[len("HEAD -> ") :]
        if not ref or ref.startswith("tag: "):
            continue
        if ref.startswith("origin/"):
            ref = ref[len("origin/") :]
        elif ref.startswith("remotes/origin/"):
            ref = ref[len("remotes/origin/") :]
        if ref == "HEAD":
            continue
        return ref
    return None


class LogEntry(NamedTuple):
    """One raw line of LOG_FORMAT output split into fields."""

    hash: str
    parents: List[str]
    author_name: str
    author_email: str
    timestamp: int
    subject: str
    decoration: str


def split_log_line(line: str) -> Optional[LogEntry]:
    """Split one LOG_FORMAT line; subjects may themselves contain ``|``."""
    parts = line.split("|")
    if len(parts) < 6:
        return None
    hash_, parents, name, email, timestamp = parts[:5]
    if len(parts) == 6:
        subject, decoration = parts[5], ""
    else:
        subject, decoration = "|".join(parts[5:-1]), parts[-1]
    try:
        ts = int(timestamp.strip())
    except ValueError:
        return None
    return LogEntry(
        hash=hash_.strip().strip("'"),
        parents=parents.split(),
        author_name=name,
        author_email=email,
        timestamp=ts,
        subject=subject,
        decoration=decoration.strip().strip("'"),
    )


def infer_branch_names(
    entries: Iterable[Tuple[str, List[str], Optional[str]]],
) -> List[Optional[str]]:
    """Attribute branch names to commits ordered newest to oldest.

    Each entry is ``(hash, parents, explicit_name)``. A commit keeps its
    explicit name when it has one, otherwise it inherits the name claimed for
    it by an already-seen descendant. Every named commit then claims its
    parents.

    Tie-break when several descendants claim the same ancestor: a
    first-parent claim outranks a merge-parent claim, and among claims of the
    same rank the first one made (from the newest descendant) wins.

    Returns:
        Branch names aligned with ``entries`` (None where nothing applies)
    """
    pending: Dict[str, Tuple[str, int]] = {}
    names: List[Optional[str]] = []
    for commit_hash, parents, explicit in entries:
        name = explicit
        if name is None and commit_hash in pending:
            name = pending[commit_hash][0]
        names.append(name)
        if name is None:
            continue
        for index, parent in enumerate(parents):
            rank = 0 if index == 0 else 1
            claim = pending.get(parent)
            if claim is None or rank < claim[1]:
                pending[parent] = (name, rank)
    return names


def parse_commit_log(
    output: str,
    branch_map: Optional[Dict[str, str]] = None,
    tag_map: Optional[TagMap] = None,
    avatar_url: AvatarUrlFn = _no_avatar,
) -> List[Commit]:
    """Parse LOG_FORMAT output (newest first) into Commit objects.

    Args:
        output: Raw ``git log`` output
        branch_map: Branch-tip hash -> branch name
        tag_map: Commit hash -> tag names
        avatar_url: Function deriving an avatar URL from an email

    Returns:
        List of Commit objects in the same order as the output
    """
    branch_map = branch_map or {}
    tag_map = tag_map or {}

    entries: List[LogEntry] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        entry = split_log_line(line)
        if entry is None:
            logger.debug("log_line_skipped", line=line[:120])
            continue
        entries.append(entry)

    names = infer_branch_names(
        (
            entry.hash,
            entry.parents,
            branch_map.get(entry.hash) or branch_from_decoration(entry.decoration),
        )
        for entry in entries
    )

    commits = []
    for entry, branch_name in zip(entries, names):
        author = Author(
            name=entry.author_name,
            email=entry.author_email,
            avatar_url=avatar_url(entry.author_email),
        )
        commits.append(
            Commit(
                hash=entry.hash,
                short_hash=entry.hash[:7],
                parents=entry.parents,
                message=entry.subject,
                short_message=entry.subject.split("\n")[0],
                type=classify_commit_type(entry.subject),
                author=author,
                committer=author,
                timestamp=entry.timestamp,
                is_merge=len(entry.parents) > 1,
                branch_name=branch_name,
                tags=list(tag_map.get(entry.hash, [])),
            )
        )
    return commits


def parse_tag_map(output: str) -> TagMap:
    """Parse ``git show-ref --tags --dereference`` output.

    Dereferenced lines (``^{}``) map annotated tags onto the commit they
    point to.
    """
    tag_map: TagMap = {}
    for line in output.splitlines():
        parts = line.strip().split(" ", 1)
        if len(parts) != 2:
            continue
        commit_hash, ref = parts
        tag_name = ref.replace("refs/tags/", "", 1)
        if tag_name.endswith("^{}"):
            tag_name = tag_name[:-3]
        names = tag_map.setdefault(commit_hash, [])
        if tag_name not in names:
            names.append(tag_name)
    return tag_map


def resolve_rename_path(path: str) -> Tuple[str, Optional[str]]:
    """Split numstat rename notation into ``(new_path, old_path)``.

    Handles both ``old => new`` and ``dir/{old => new}/file``.
    """
    match = _BRACE_RENAME.match(path)
    if match:
        prefix, old, new, suffix = match.groups()
        old_path = (prefix + old + suffix).replace("//", "/").lstrip("/")
        new_path = (prefix + new + suffix).replace("//", "/").lstrip("/")
        return new_path, old_path
    if " => " in path:
        old_path, new_path = path.split(" => ", 1)
        return new_path, old_path
    return path, None


def parse_name_status(output: str) -> Dict[str, Tuple[FileStatus, Optional[str]]]:
    """Parse ``--name-status`` output into path -> (status, previous_path)."""
    statuses: Dict[str, Tuple[FileStatus, Optional[str]]] = {}
    for line in output.splitlines():
        fields = line.split("\t")
        if len(fields) < 2 or not fields[0]:
            continue
        code = fields[0][0]
        if code in ("R", "C") and len(fields) >= 3:
            statuses[fields[2]] = (code, fields[1])  # type: ignore[assignment]
        elif code in ("A", "D", "M", "U"):
            statuses[fields[1]] = (code, None)  # type: ignore[assignment]
        else:
            # Type changes and unknown codes read as modifications
            statuses[fields[1]] = ("M", None)
    return statuses


def parse_numstat(lines: Iterable[str]) -> List[Tuple[int, int, str, Optional[str], bool]]:
    """Parse numstat lines up to the first unified-diff marker.

    Returns:
        Tuples of (additions, deletions, path, previous_path, is_binary)
    """
    rows = []
    for line in lines:
        if line.startswith("diff --git") or line.startswith("--- "):
            break
        match = _NUMSTAT_LINE.match(line)
        if not match:
            continue
        added, deleted, raw_path = match.groups()
        is_binary = added == "-" or deleted == "-"
        path, previous = resolve_rename_path(raw_path)
        rows.append(
            (
                0 if added == "-" else int(added),
                0 if deleted == "-" else int(deleted),
                path,
                previous,
                is_binary,
            )
        )
    return rows


def parse_detailed_commit(
    show_output: str,
    tags_output: str = "",
    branches_output: str = "",
    tips_output: str = "",
    name_status_output: str = "",
    body: Optional[str] = None,
    avatar_url: AvatarUrlFn = _no_avatar,
) -> Commit:
    """Assemble an enriched Commit from the single-commit queries.

    Args:
        show_output: DETAIL_FORMAT header followed by numstat lines
        tags_output: ``git tag --contains`` output
        branches_output: ``git branch --contains`` output
        tips_output: ``git branch --points-at`` output
        name_status_output: ``--name-status`` output used for per-file status
        body: Full commit message, when fetched
        avatar_url: Function deriving an avatar URL from an email

    Returns:
        Commit with file changes, stats, tags and branch information

    Raises:
        ValueError: If the header line is missing or malformed
    """
    lines = show_output.strip("\n").splitlines()
    if not lines:
        raise ValueError("empty commit detail output")
    header = lines[0].strip().strip("'")
    parts = header.split("|")
    if len(parts) < 6:
        raise ValueError(f"malformed commit header: {header[:120]}")
    commit_hash, parent_field, author_name, author_email, raw_timestamp = parts[:5]
    subject = "|".join(parts[5:])
    timestamp = int(raw_timestamp.split()[0]) if raw_timestamp.strip() else 0
    parents = parent_field.split()

    statuses = parse_name_status(name_status_output)
    additions = 0
    deletions = 0
    file_changes: List[FileChange] = []
    for added, deleted, path, previous, _ in parse_numstat(lines[1:]):
        additions += added
        deletions += deleted
        status, status_previous = statuses.get(path, ("M", None))
        file_changes.append(
            FileChange(
                status=status,
                path=path,
                previous_path=status_previous or previous,
                additions=added,
                deletions=deleted,
            )
        )

    message = body.strip() if body and body.strip() else subject
    author = Author(name=author_name, email=author_email, avatar_url=avatar_url(author_email))
    return Commit(
        hash=commit_hash,
        short_hash=commit_hash[:7],
        parents=parents,
        message=message,
        short_message=message.split("\n")[0],
        type=classify_commit_type(subject),
        author=author,
        committer=author,
        timestamp=timestamp,
        is_merge=len(parents) > 1,
        tags=_lines(tags_output),
        parents_details=[CommitParent(hash=p, short_hash=p[:7]) for p in parents],
        file_changes=file_changes,
        branches=_lines(branches_output),
        branch_tips=_lines(tips_output),
        stats=CommitStats(additions=additions, deletions=deletions, total=additions + deletions),
    )


def _lines(output: str) -> List[str]:
    return [line.strip().strip("'") for line in output.splitlines() if line.strip()]
