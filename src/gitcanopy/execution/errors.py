"""Exceptions raised by the command layer and the repository service."""

from typing import List, Optional, Sequence


class GitCanopyError(Exception):
    """Base exception for all gitcanopy errors."""


class GitSpawnError(GitCanopyError):
    """The binary could not be started (missing, not executable, bad cwd)."""

    def __init__(self, binary: str, cause: OSError):
        self.binary = binary
        self.cause = cause
        super().__init__(str(cause))


class GitCommandError(GitCanopyError):
    """The command ran and exited with a non-zero code."""

    def __init__(self, args: Sequence[str], exit_code: int, stderr: str = ""):
        self.command_args: List[str] = list(args)
        self.exit_code = exit_code
        self.stderr = stderr
        message = stderr.strip() or f"exit code {exit_code}"
        super().__init__(message)


class GitOutputTooLargeError(GitCanopyError):
    """Standard output crossed the configured ceiling; the process was killed."""

    def __init__(self, args: Sequence[str], limit: int):
        self.command_args: List[str] = list(args)
        self.limit = limit
        super().__init__(f"output too large (limit {limit} bytes)")


class GitTimeoutError(GitCanopyError):
    """The command did not finish within the configured timeout; the process was killed."""

    def __init__(self, args: Sequence[str], timeout: float):
        self.command_args: List[str] = list(args)
        self.timeout = timeout
        super().__init__(f"command timed out after {timeout}s")


class InvalidRepositoryError(GitCanopyError):
    """The path is not a working tree."""

    def __init__(self, path: str, reason: Optional[str] = None):
        self.path = path
        self.reason = reason
        super().__init__(f"not a valid repository: {path}")


class ValidationError(GitCanopyError):
    """Input rejected before any process was spawned."""
