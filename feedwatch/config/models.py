"""Pydantic models used across feedwatch configuration flow."""

from __future__ import annotations

import os
import re
from enum import Enum
from pathlib import Path
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator


class ScheduleType(str, Enum):
    """Scheduler modes supported for watchers."""

    CRON = "cron"
    INTERVAL = "interval"


class ScheduleConfig(BaseModel):
    """Configuration describing when a watcher should run."""

    type: ScheduleType = Field(default=ScheduleType.INTERVAL)
    value: Any = Field(
        default=600,
        description="Cron expression or interval seconds/kwargs, depending on type.",
    )

    @model_validator(mode="after")
    def _validate_value(self) -> "ScheduleConfig":
        if self.type is ScheduleType.CRON and not isinstance(self.value, str):
            raise ValueError("Cron schedule requires string expression")
        if self.type is ScheduleType.INTERVAL:
            if isinstance(self.value, bool) or not isinstance(self.value, (int, float, dict)):
                raise ValueError("Interval schedule requires seconds (int/float) or kwargs dict")
            if isinstance(self.value, (int, float)) and self.value <= 0:
                raise ValueError("Interval schedule requires a positive number of seconds")
        return self


class PaginationPolicy(str, Enum):
    """Stop rules for the listing sweep."""

    CUTOFF_DATE = "cutoff_date"
    EMPTY_PAGE = "empty_page"
    NONE = "none"


class DedupPolicy(str, Enum):
    """What "already known" means for a watcher."""

    FETCHED = "fetched"
    NOTIFIED = "notified"


class DedupStrategy(str, Enum):
    """How candidates are compared with the persisted store."""

    PER_KEY = "per_key"
    POSITIONAL = "positional"


class FieldKind(str, Enum):
    TEXT = "text"
    DATE = "date"
    DATETIME = "datetime"
    DECIMAL = "decimal"
    INTEGER = "integer"
    SCRIPT_ID = "script_id"


class FieldSpec(BaseModel):
    """Positional extraction rule for one record field.

    ``selector`` is relative to the matched row; ``:self`` addresses the row
    node itself. ``mode`` follows the ``text`` / ``attr:<name>`` / ``html``
    convention of the listing selectors.
    """

    selector: str = ":self"
    mode: str = "text"
    kind: FieldKind = FieldKind.TEXT
    required: bool = True
    line: int | None = None
    split: str | None = None
    part: int | None = None
    pattern: str | None = None
    format: str | None = None

    @field_validator("mode")
    @classmethod
    def _validate_mode(cls, value: str) -> str:
        mode = value.strip().lower()
        if mode in {"text", "html"} or (mode.startswith("attr:") and len(mode) > 5):
            return mode
        raise ValueError(f"Unsupported extraction mode: {value}")

    @field_validator("pattern")
    @classmethod
    def _validate_pattern(cls, value: str | None) -> str | None:
        if value is None:
            return value
        compiled = re.compile(value)
        if compiled.groups < 1:
            raise ValueError("Field pattern needs one capture group")
        return value

    @model_validator(mode="after")
    def _script_id_needs_pattern(self) -> "FieldSpec":
        if self.kind is FieldKind.SCRIPT_ID and not self.pattern:
            raise ValueError("script_id fields require a pattern")
        if (self.split is None) != (self.part is None):
            raise ValueError("split and part must be configured together")
        return self


class PaginationConfig(BaseModel):
    policy: PaginationPolicy = PaginationPolicy.EMPTY_PAGE
    max_pages: int = 20
    cutoff_field: str = "reference_date"
    max_consecutive_failures: int = 2
    first_page: int = 1

    @model_validator(mode="after")
    def _validate_bounds(self) -> "PaginationConfig":
        if self.max_pages < 1:
            raise ValueError("max_pages must be >= 1")
        if self.max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be >= 1")
        return self


class DedupConfig(BaseModel):
    """Per-watcher dedup settings; one explicit policy per deployment."""

    policy: DedupPolicy = DedupPolicy.FETCHED
    strategy: DedupStrategy = DedupStrategy.PER_KEY
    collection: str | None = None
    title_filter: str | None = None

    @field_validator("title_filter")
    @classmethod
    def _validate_title_filter(cls, value: str | None) -> str | None:
        if value:
            re.compile(value)
        return value


class Replacement(BaseModel):
    """Exact byte sequence fix-up applied before parsing."""

    old: str
    new: str = ""

    @field_validator("old")
    @classmethod
    def _not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("Replacement target cannot be empty")
        return value


class FeedFilter(BaseModel):
    """Title regexes selecting the records of one published feed."""

    include: str | None = None
    exclude: str | None = None

    @field_validator("include", "exclude")
    @classmethod
    def _validate_regex(cls, value: str | None) -> str | None:
        if value:
            re.compile(value)
        return value


class FeedConfig(BaseModel):
    """Atom publication of a watcher's stored records."""

    title: str = ""
    description: str = ""
    base_url: str = "http://localhost"
    author_name: str = "feedwatch"
    author_email: str | None = None
    limit: int = 100
    filters: dict[str, FeedFilter] = Field(default_factory=lambda: {"all": FeedFilter()})

    @field_validator("limit")
    @classmethod
    def _positive_limit(cls, value: int) -> int:
        if value < 1:
            raise ValueError("feed limit must be >= 1")
        return value


class WatcherConfig(BaseModel):
    """Full definition of one watcher: source, extraction, dedup and mail."""

    watcher_name: str
    description: str = ""
    list_url: str | None = None
    encoding: str = "latin-1"
    replacements: list[Replacement] = Field(default_factory=list)
    row_pattern: str | None = None
    skip_rows: int = 0
    skip_tail_rows: int = 0
    columns: dict[str, FieldSpec] = Field(default_factory=dict)
    timezone: str = "America/Sao_Paulo"
    pagination: PaginationConfig = Field(default_factory=PaginationConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    notify: bool = True
    subject_template: str = "{title}"
    body_template: str = "{title}\n\n{link}"
    link_template: str = "{link}"
    feed: FeedConfig = Field(default_factory=FeedConfig)
    enabled: bool = True

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @model_validator(mode="after")
    def _validate_source(self) -> "WatcherConfig":
        if self.skip_rows < 0 or self.skip_tail_rows < 0:
            raise ValueError("skip_rows and skip_tail_rows must be >= 0")
        if self.list_url:
            if "{page}" not in self.list_url:
                raise ValueError("list_url must contain a {page} placeholder")
            if not self.row_pattern:
                raise ValueError("row_pattern is required when list_url is set")
            if "source_key" not in self.columns:
                raise ValueError("columns must define source_key")
        elif self.dedup.policy is not DedupPolicy.NOTIFIED:
            raise ValueError("Watchers without list_url must use the notified policy")
        if self.dedup.policy is DedupPolicy.NOTIFIED and not self.notify:
            raise ValueError("The notified policy requires notify to be enabled")
        return self

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def store_collection(self) -> str:
        return self.dedup.collection or self.watcher_name


class FetchConfig(BaseModel):
    timeout: float = 20.0
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    )


class MailConfig(BaseModel):
    """SMTP settings; the password may be read from an environment variable."""

    host: str = "smtp.gmail.com"
    port: int = 587
    use_ssl: bool = False
    starttls: bool = True
    sender: str = ""
    password: str = ""
    password_env: str | None = "FEEDWATCH_SMTP_PASSWORD"
    recipient: str = ""
    reuse_session: bool = True
    timeout: float = 30.0

    @model_validator(mode="after")
    def _validate_tls(self) -> "MailConfig":
        if self.use_ssl and self.starttls:
            raise ValueError("use_ssl and starttls are mutually exclusive")
        return self

    def resolved_password(self) -> str:
        if self.password:
            return self.password
        if self.password_env:
            return os.environ.get(self.password_env, "")
        return ""

    def missing_settings(self) -> list[str]:
        missing = []
        if not self.sender:
            missing.append("sender")
        if not self.recipient:
            missing.append("recipient")
        if not self.resolved_password():
            missing.append("password")
        return missing


class StoreConfig(BaseModel):
    backend: Literal["sqlite", "mongodb"] = "sqlite"
    sqlite_path: Path = Field(default=Path("data/history/feedwatch.db"))
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_database: str = "feedwatch"

    @field_validator("sqlite_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    def resolved_sqlite_path(self, base_dir: Path) -> Path:
        if not self.sqlite_path.is_absolute():
            return (base_dir / self.sqlite_path).resolve()
        return self.sqlite_path


class GlobalConfig(BaseModel):
    """Global controls shared across watchers."""

    thread_pool_workers: int = 8
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    mail: MailConfig = Field(default_factory=MailConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)

    @field_validator("thread_pool_workers")
    @classmethod
    def _positive_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("thread_pool_workers must be >= 1")
        return value


__all__ = [
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
