"""Error taxonomy shared by the ingestion pipeline."""

from __future__ import annotations


class FeedwatchError(Exception):
    """Base class for every pipeline failure."""


class TransportError(FeedwatchError):
    """Network or HTTP failure while retrieving a listing page."""

    def __init__(self, url: str, reason: str, status_code: int | None = None) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
        self.status_code = status_code


class ParseError(FeedwatchError):
    """Markup could not be turned into a document tree."""


class FieldExtractionError(FeedwatchError):
    """A single row field failed extraction; the row is skipped."""

    def __init__(self, field: str, reason: str, value: str | None = None) -> None:
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason
        self.value = value


class DedupQueryError(FeedwatchError):
    """The persisted store could not answer a dedup query."""


class PersistenceError(FeedwatchError):
    """A write against the persisted store failed."""


class NotificationError(FeedwatchError):
    """Delivery of a single notification failed."""

    def __init__(self, record_key: str, reason: str) -> None:
        super().__init__(f"{record_key}: {reason}")
        self.record_key = record_key
        self.reason = reason


__all__ = [
    "DedupQueryError",
    "FeedwatchError",
    "FieldExtractionError",
    "NotificationError",
    "ParseError",
    "PersistenceError",
    "TransportError",
]
