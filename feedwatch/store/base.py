"""Record store Service Provider Interface."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Sequence

from ..engine.records import Record


class BaseRecordStore(ABC):
    """Uniform persisted-history contract shared by every backend.

    Queries raise :class:`~feedwatch.errors.DedupQueryError`, writes raise
    :class:`~feedwatch.errors.PersistenceError`. A store instance is bound to
    one collection (usually the watcher name).
    """

    collection: str

    @abstractmethod
    def count_matching(self, keys: Sequence[str]) -> int:
        """Return how many of ``keys`` are already persisted."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Return True when ``key`` is already persisted."""

    @abstractmethod
    def insert(self, record: Record) -> bool:
        """Persist ``record``; return False when its key was already stored."""

    @abstractmethod
    def find_unnotified(self, recipient: str, title_pattern: str | None = None) -> list[Record]:
        """Return records not yet delivered to ``recipient``, newest first."""

    @abstractmethod
    def mark_notified(self, key: str, recipient: str, sent_at: datetime) -> bool:
        """Record delivery; return False when it was already recorded."""

    @abstractmethod
    def history(self, limit: int = 20) -> list[Record]:
        """Return the most recently inserted records."""

    @abstractmethod
    def recent(
        self,
        limit: int = 100,
        title_pattern: str | None = None,
        exclude_pattern: str | None = None,
    ) -> list[Record]:
        """Return up to ``limit`` records by publication date, newest first.

        ``title_pattern`` keeps only matching titles, ``exclude_pattern`` drops
        matching titles; both use :func:`re.search`.
        """

    @abstractmethod
    def reset(self) -> None:
        """Drop every record and notification of this collection."""

    @abstractmethod
    def close(self) -> None:
        """Release underlying resources."""

    @staticmethod
    def _select_titles(
        records: Iterable[Record],
        limit: int,
        title_pattern: str | None,
        exclude_pattern: str | None,
    ) -> list[Record]:
        include = re.compile(title_pattern) if title_pattern else None
        exclude = re.compile(exclude_pattern) if exclude_pattern else None
        selected: list[Record] = []
        for record in records:
            if len(selected) >= limit:
                break
            if include and not include.search(record.title):
                continue
            if exclude and exclude.search(record.title):
                continue
            selected.append(record)
        return selected


__all__ = ["BaseRecordStore"]
