"""Parsers for history-wide analytics (hot files, contributors)."""

import re
from collections import Counter
from typing import Callable, Dict, List

from gitcanopy.models import ContributorStats, HotFile

ACTIVITY_BUCKETS = 20

# Format string handed to `git log --shortstat`
CONTRIBUTOR_FORMAT = "%an|%ae|%ct"

_INSERTIONS = re.compile(r"(\d+) insertion")
_DELETIONS = re.compile(r"(\d+) deletion")


def parse_hot_files(output: str, limit: int = 10) -> List[HotFile]:
    """Count how often each path appears in ``log --format= --name-only``."""
    counts = Counter(line.strip() for line in output.splitlines() if line.strip())
    return [HotFile(path=path, count=count) for path, count in counts.most_common(limit)]


def parse_contributors(output: str, avatar_url: Callable[[str], str]) -> List[ContributorStats]:
    """Aggregate per-email statistics from CONTRIBUTOR_FORMAT + ``--shortstat`` output.

    Each author gets a histogram of commit counts over ACTIVITY_BUCKETS equal
    slices of the project's lifetime.

    Args:
        output: Raw ``git log`` output
        avatar_url: Function deriving an avatar URL from an email

    Returns:
        Contributors sorted by commit count, most active first
    """
    lines = output.splitlines()
    headers = []
    for line in lines:
        if "|" in line:
            parts = line.rsplit("|", 2)
            if len(parts) == 3 and parts[2].strip().isdigit():
                headers.append(int(parts[2]))
    if not headers:
        return []

    project_start = min(headers)
    duration = (max(headers) - project_start) or 1

    stats: Dict[str, ContributorStats] = {}
    current = None
    for line in lines:
        parts = line.rsplit("|", 2) if "|" in line else []
        if len(parts) == 3 and parts[2].strip().isdigit():
            name, email, raw_timestamp = parts
            timestamp = int(raw_timestamp)
            current = stats.get(email)
            if current is None:
                current = ContributorStats(
                    name=name,
                    email=email,
                    avatar_url=avatar_url(email),
                    first_commit=timestamp,
                    last_commit=timestamp,
                    activity=[0] * ACTIVITY_BUCKETS,
                )
                stats[email] = current
            current.commit_count += 1
            current.first_commit = min(current.first_commit, timestamp)
            current.last_commit = max(current.last_commit, timestamp)
            bucket = min(
                ACTIVITY_BUCKETS - 1,
                int((timestamp - project_start) / duration * ACTIVITY_BUCKETS),
            )
            current.activity[bucket] += 1
        elif current is not None and ("insertion" in line or "deletion" in line):
            insertions = _INSERTIONS.search(line)
            deletions = _DELETIONS.search(line)
            if insertions:
                current.additions += int(insertions.group(1))
            if deletions:
                current.deletions += int(deletions.group(1))

    return sorted(stats.values(), key=lambda c: c.commit_count, reverse=True)
