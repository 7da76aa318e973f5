"""Execution of the external version-control binary."""

from gitcanopy.execution.errors import (
    GitCanopyError,
    GitCommandError,
    GitOutputTooLargeError,
    GitSpawnError,
    GitTimeoutError,
    InvalidRepositoryError,
    ValidationError,
)
from gitcanopy.execution.executor import CommandExecutor, CommandLog

__all__ = [
    "CommandExecutor",
    "CommandLog",
    "GitCanopyError",
    "GitCommandError",
    "GitOutputTooLargeError",
    "GitSpawnError",
    "GitTimeoutError",
    "InvalidRepositoryError",
    "ValidationError",
]
