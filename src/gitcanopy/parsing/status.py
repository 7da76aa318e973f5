"""Parsing of short-form (porcelain v1) working tree status."""

import re
from typing import List, Optional

from gitcanopy.models import StatusFile, WorkingTreeStatus
from gitcanopy.models.repository import StatusKind

_AHEAD = re.compile(r"ahead (\d+)")
_BEHIND = re.compile(r"behind (\d+)")

_CONFLICT_PAIRS = {"DD", "AU", "UD", "UA", "DU", "AA", "UU"}

_STATUS_CODES = {
    "A": "added",
    "M": "modified",
    "D": "deleted",
    "R": "renamed",
    "C": "added",
    "T": "modified",
}

_ESCAPES = {
    "a": 0x07,
    "b": 0x08,
    "t": 0x09,
    "n": 0x0A,
    "v": 0x0B,
    "f": 0x0C,
    "r": 0x0D,
    '"': 0x22,
    "\\": 0x5C,
}


def unquote_path(path: str) -> str:
    """Undo git's C-style quoting of paths with special characters.

    Octal escapes are collected as raw bytes so multi-byte UTF-8 names
    decode correctly.
    """
    if len(path) < 2 or not (path.startswith('"') and path.endswith('"')):
        return path
    body = path[1:-1]
    out = bytearray()
    i = 0
    while i < len(body):
        char = body[i]
        if char != "\\" or i + 1 >= len(body):
            out.extend(char.encode("utf-8"))
            i += 1
            continue
        nxt = body[i + 1]
        octal = body[i + 1 : i + 4]
        if len(octal) == 3 and all(c in "01234567" for c in octal):
            out.append(int(octal, 8))
            i += 4
        elif nxt in _ESCAPES:
            out.append(_ESCAPES[nxt])
            i += 2
        else:
            out.extend(nxt.encode("utf-8"))
            i += 2
    return out.decode("utf-8", errors="replace")


def _split_rename(path_field: str) -> str:
    """Keep the destination of ``old -> new`` rename notation."""
    if '"' in path_field:
        # Each side is quoted independently: "old" -> "new"
        match = re.match(r'^(".*?(?<!\\)"|\S.*?) -> (.*)$', path_field)
        if match:
            return unquote_path(match.group(2))
        return unquote_path(path_field)
    if " -> " in path_field:
        return path_field.split(" -> ", 1)[1]
    return path_field


def _parse_branch_header(line: str, status: WorkingTreeStatus) -> None:
    header = line[3:]
    tracking = ""
    if " [" in header and header.endswith("]"):
        header, tracking = header.split(" [", 1)
    if header.startswith("No commits yet on "):
        status.branch = header[len("No commits yet on ") :]
    elif header.startswith("HEAD (no branch)"):
        status.branch = None
    elif "..." in header:
        status.branch, status.upstream = header.split("...", 1)
    else:
        status.branch = header
    ahead = _AHEAD.search(tracking)
    behind = _BEHIND.search(tracking)
    status.ahead = int(ahead.group(1)) if ahead else 0
    status.behind = int(behind.group(1)) if behind else 0


def parse_status(output: str) -> WorkingTreeStatus:
    """Parse ``git status --porcelain=v1 --branch`` output.

    A file staged in the index and modified again in the working tree yields
    two entries, one with ``staged=True`` and one without.

    Args:
        output: Raw command output

    Returns:
        WorkingTreeStatus with files and ahead/behind counts
    """
    status = WorkingTreeStatus()
    files: List[StatusFile] = []

    for line in output.splitlines():
        if not line:
            continue
        if line.startswith("## "):
            _parse_branch_header(line, status)
            continue
        if len(line) < 4:
            continue

        code = line[:2]
        x, y = code[0], code[1]
        raw_path = line[3:]

        if code == "!!":
            continue
        if code == "??":
            files.append(StatusFile(path=unquote_path(raw_path), status="untracked", staged=False))
            continue
        if code in _CONFLICT_PAIRS:
            files.append(StatusFile(path=unquote_path(raw_path), status="conflicted", staged=False))
            continue

        path = _split_rename(raw_path) if x in "RC" or y in "RC" else unquote_path(raw_path)
        staged_kind = _kind(x)
        if staged_kind:
            files.append(StatusFile(path=path, status=staged_kind, staged=True))
        unstaged_kind = _kind(y)
        if unstaged_kind:
            files.append(StatusFile(path=path, status=unstaged_kind, staged=False))

    status.files = files
    return status


def _kind(code: str) -> Optional[StatusKind]:
    return _STATUS_CODES.get(code)  # type: ignore[return-value]
