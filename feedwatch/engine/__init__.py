"""Engine components orchestrating fetch → normalise → extract → paginate."""

from .fetcher import FetchResponse, PageFetcher
from .normalizer import MarkupNormalizer
from .pagination import PaginationController, PaginationResult, SweepStage
from .parser import RecordExtractor, parse_date, parse_datetime, parse_decimal, parse_integer
from .records import NotificationRecord, Record
from .snapshot import SnapshotCell
from .thread_pool import ThreadPoolManager

__all__ = [
    "FetchResponse",
    "MarkupNormalizer",
    "NotificationRecord",
    "PageFetcher",
    "PaginationController",
    "PaginationResult",
    "Record",
    "RecordExtractor",
    "SnapshotCell",
    "SweepStage",
    "ThreadPoolManager",
    "parse_date",
    "parse_datetime",
    "parse_decimal",
    "parse_integer",
]
