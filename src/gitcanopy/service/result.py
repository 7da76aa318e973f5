"""Result type for read operations that degrade instead of raising."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ReadStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass(frozen=True)
class ReadResult(Generic[T]):
    """Outcome of a degrading read.

    ``data`` is always a usable value (possibly empty) so consumers can render
    it directly, while ``status`` and ``error`` keep a failure observable.
    """

    status: ReadStatus
    data: T
    error: Optional[str] = None

    @classmethod
    def of(cls, data: T) -> "ReadResult[T]":
        """Wrap successfully fetched data, marking empty collections as EMPTY."""
        status = ReadStatus.OK if data else ReadStatus.EMPTY
        return cls(status=status, data=data)

    @classmethod
    def failed(cls, empty: T, error: str) -> "ReadResult[T]":
        return cls(status=ReadStatus.FAILED, data=empty, error=error)

    @property
    def ok(self) -> bool:
        return self.status is not ReadStatus.FAILED

    @property
    def degraded(self) -> bool:
        return self.status is ReadStatus.FAILED
