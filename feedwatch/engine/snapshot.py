"""Thread-safe holder for values published by the scheduler thread."""

from __future__ import annotations

from threading import Lock
from typing import Generic, TypeVar

T = TypeVar("T")


class SnapshotCell(Generic[T]):
    """Owned cell written by one producer and read by many.

    Writers replace the whole value under the lock; readers get the last
    complete value and never a partially updated one. Store immutable values
    (frozen dataclasses, tuples) so a snapshot cannot change after it is read.
    """

    def __init__(self, initial: T | None = None) -> None:
        self._lock = Lock()
        self._value = initial

    def set(self, value: T) -> None:
        with self._lock:
            self._value = value

    def get(self) -> T | None:
        with self._lock:
            return self._value


__all__ = ["SnapshotCell"]
