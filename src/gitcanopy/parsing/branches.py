"""Branch classification, coloring and branch-list parsing."""

from typing import List

import structlog

from gitcanopy.models import Branch
from gitcanopy.models.commit import BranchType

logger = structlog.get_logger(__name__)

KNOWN_REMOTES = ("origin", "upstream", "github")

PRIMARY_BRANCH_NAMES = ("main", "master")

FIXED_BRANCH_COLORS = {
    "main": "#1f2937",
    "develop": "#059669",
    "hotfix": "#ea580c",
    "release": "#dc2626",
}

BRANCH_PALETTE = (
    "#2563eb",  # blue
    "#7c3aed",  # violet
    "#db2777",  # pink
    "#0891b2",  # cyan
    "#4f46e5",  # indigo
    "#9333ea",  # purple
    "#22c55e",  # green
    "#eab308",  # yellow
    "#f97316",  # orange
)

# Format string handed to `git branch -a --format=...`
BRANCH_FORMAT = "%(refname)|%(objectname)|%(HEAD)|%(upstream:short)"


def strip_remote_prefix(name: str) -> str:
    """Remove remote-tracking prefixes from a branch name.

    Strips a leading ``remotes/``, then a leading ``origin/``, then one more
    leading segment when it names a known remote.
    """
    if name.startswith("remotes/"):
        name = name[len("remotes/") :]
    if name.startswith("origin/"):
        name = name[len("origin/") :]
    head, sep, rest = name.partition("/")
    if sep and head in KNOWN_REMOTES:
        name = rest
    return name


def is_primary_branch(name: str) -> bool:
    return strip_remote_prefix(name) in PRIMARY_BRANCH_NAMES


def classify_branch_type(name: str) -> BranchType:
    """Classify a branch by its conventional name.

    Args:
        name: Branch name, optionally with a remote prefix

    Returns:
        One of main, develop, feature, release, hotfix, custom
    """
    clean = strip_remote_prefix(name)
    if clean in PRIMARY_BRANCH_NAMES:
        return "main"
    if clean in ("develop", "dev"):
        return "develop"
    if clean.startswith("feature/"):
        return "feature"
    if clean.startswith("release/"):
        return "release"
    if clean.startswith("hotfix/"):
        return "hotfix"
    return "custom"


def branch_color(name: str) -> str:
    """Deterministic display color for a branch name.

    main, develop, hotfix and release branches always get their fixed color;
    every other name picks a palette entry by the sum of its character codes.
    Callers pass the full ref name, so a remote-tracking branch may differ in
    color from its local counterpart.
    """
    fixed = FIXED_BRANCH_COLORS.get(classify_branch_type(name))
    if fixed:
        return fixed
    index = sum(ord(char) for char in name) % len(BRANCH_PALETTE)
    return BRANCH_PALETTE[index]


def _normalize_refname(refname: str) -> str:
    if refname.startswith("refs/heads/"):
        return refname[len("refs/heads/") :]
    if refname.startswith("refs/remotes/"):
        return "remotes/" + refname[len("refs/remotes/") :]
    return refname


def parse_branches(output: str) -> List[Branch]:
    """Parse ``git branch -a`` output produced with BRANCH_FORMAT.

    Lines that are not refs (detached-HEAD placeholders) and symbolic
    remote HEADs are skipped. Plain ``name|hash`` lines are accepted too.

    Args:
        output: Raw command output

    Returns:
        List of Branch objects, lane left unassigned
    """
    branches: List[Branch] = []
    for line in output.splitlines():
        line = line.strip().strip("'")
        if not line:
            continue
        parts = line.split("|")
        if len(parts) < 2:
            continue
        refname, object_name = parts[0].strip(), parts[1].strip()
        is_head = len(parts) > 2 and parts[2].strip() == "*"
        upstream = parts[3].strip() if len(parts) > 3 and parts[3].strip() else None

        if not refname or refname.startswith("("):
            continue
        full_name = _normalize_refname(refname)
        if full_name.endswith("/HEAD") or full_name == "HEAD":
            continue

        is_remote = full_name.startswith("remotes/")
        name = strip_remote_prefix(full_name)
        branches.append(
            Branch(
                name=name,
                type=classify_branch_type(full_name),
                object_name=object_name,
                is_head=is_head,
                is_local=not is_remote,
                is_remote=is_remote,
                upstream=upstream,
                color=branch_color(full_name),
            )
        )

    logger.debug("branches_parsed", count=len(branches))
    return branches
