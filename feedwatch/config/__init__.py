"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    DedupConfig,
    DedupPolicy,
    DedupStrategy,
    FeedConfig,
    FeedFilter,
    FetchConfig,
    FieldKind,
    FieldSpec,
    GlobalConfig,
    MailConfig,
    PaginationConfig,
    PaginationPolicy,
    Replacement,
    ScheduleConfig,
    ScheduleType,
    StoreConfig,
    WatcherConfig,
)

__all__ = [
    "ConfigLocator",
    "ConfigRepository",
    "DedupConfig",
    "DedupPolicy",
    "DedupStrategy",
    "FeedConfig",
    "FeedFilter",
    "FetchConfig",
    "FieldKind",
    "FieldSpec",
    "GlobalConfig",
    "MailConfig",
    "PaginationConfig",
    "PaginationPolicy",
    "Replacement",
    "ScheduleConfig",
    "ScheduleType",
    "StoreConfig",
    "WatcherConfig",
]
