"""Parsers turning raw command output into structured entities."""

from gitcanopy.parsing.analytics import CONTRIBUTOR_FORMAT, parse_contributors, parse_hot_files
from gitcanopy.parsing.branches import (
    BRANCH_FORMAT,
    BRANCH_PALETTE,
    branch_color,
    classify_branch_type,
    is_primary_branch,
    parse_branches,
    strip_remote_prefix,
)
from gitcanopy.parsing.commits import (
    DETAIL_FORMAT,
    LOG_FORMAT,
    branch_from_decoration,
    classify_commit_type,
    infer_branch_names,
    parse_commit_log,
    parse_detailed_commit,
    parse_name_status,
    parse_numstat,
    parse_tag_map,
    resolve_rename_path,
)
from gitcanopy.parsing.status import parse_status, unquote_path

__all__ = [
    "BRANCH_FORMAT",
    "BRANCH_PALETTE",
    "CONTRIBUTOR_FORMAT",
    "DETAIL_FORMAT",
    "LOG_FORMAT",
    "branch_color",
    "branch_from_decoration",
    "classify_branch_type",
    "classify_commit_type",
    "infer_branch_names",
    "is_primary_branch",
    "parse_branches",
    "parse_commit_log",
    "parse_contributors",
    "parse_detailed_commit",
    "parse_hot_files",
    "parse_name_status",
    "parse_numstat",
    "parse_status",
    "parse_tag_map",
    "resolve_rename_path",
    "strip_remote_prefix",
    "unquote_path",
]
