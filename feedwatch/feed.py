"""Atom publication of a watcher's stored records."""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Callable
from zoneinfo import ZoneInfo

import structlog
from feedgen.feed import FeedGenerator

from .config import FeedFilter, WatcherConfig
from .engine import Record
from .notify import MessageRenderer
from .store import BaseRecordStore


class AtomFeedBuilder:
    """Render the newest stored records of a watcher as Atom.

    Each named entry of ``watcher.feed.filters`` is one feed; its include and
    exclude regexes are matched against record titles. Entry links come from
    the watcher's ``link_template``, the same link the notifications carry.
    """

    def __init__(
        self,
        watcher: WatcherConfig,
        store: BaseRecordStore,
        renderer: MessageRenderer,
        now: Callable[[], datetime] | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.watcher = watcher
        self.store = store
        self.renderer = renderer
        self._now = now or (lambda: datetime.now(timezone.utc))
        self.logger = logger or structlog.get_logger("feedwatch.feed").bind(watcher=watcher.watcher_name)

    @property
    def feed_ids(self) -> list[str]:
        return sorted(self.watcher.feed.filters)

    def build(self, feed_id: str = "all") -> FeedGenerator:
        selection = self._filter(feed_id)
        settings = self.watcher.feed
        base_url = settings.base_url.rstrip("/")
        records = self.store.recent(
            settings.limit,
            title_pattern=selection.include,
            exclude_pattern=selection.exclude,
        )

        generator = FeedGenerator()
        generator.id(f"{base_url}/{self.watcher.watcher_name}/{feed_id}.atom")
        generator.title(f"{settings.title or self.watcher.watcher_name} - {feed_id}")
        generator.subtitle(settings.description or self.watcher.description or self.watcher.watcher_name)
        generator.link(href=f"{base_url}/{self.watcher.watcher_name}/{feed_id}.atom", rel="self")
        generator.author(_author(settings.author_name, settings.author_email))
        generator.updated(self._entry_time(records[0]) if records else self._now())

        for record in records:
            self._add_entry(generator, record, base_url)
        self.logger.info("feed_built", feed=feed_id, entries=len(records))
        return generator

    def render(self, feed_id: str = "all") -> bytes:
        return self.build(feed_id).atom_str(pretty=True)

    # ------------------------------------------------------------------
    def _filter(self, feed_id: str) -> FeedFilter:
        try:
            return self.watcher.feed.filters[feed_id]
        except KeyError:
            raise ValueError(
                f"Unknown feed `{feed_id}` for {self.watcher.watcher_name} "
                f"(available: {', '.join(self.feed_ids)})"
            ) from None

    def _add_entry(self, generator: FeedGenerator, record: Record, base_url: str) -> None:
        entry_id = f"{base_url}/{self.store.collection}/{record.source_key}"
        link = self.renderer.context(record)["link_url"] or entry_id
        when = self._entry_time(record)

        entry = generator.add_entry(order="append")
        entry.id(entry_id)
        entry.title(record.title or record.source_key)
        entry.link(href=link)
        entry.summary(record.title or record.source_key)
        entry.published(when)
        entry.updated(when)
        if record.company:
            entry.author({"name": record.company})

    def _entry_time(self, record: Record) -> datetime:
        value = record.publish_date or record.reference_date
        return _aware(value, self.watcher.tzinfo) if value is not None else self._now()


def _aware(value: date | datetime, tz: ZoneInfo) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=tz)
    return datetime.combine(value, time.min, tzinfo=tz)


def _author(name: str, email: str | None) -> dict[str, str]:
    author = {"name": name}
    if email:
        author["email"] = email
    return author


__all__ = ["AtomFeedBuilder"]
