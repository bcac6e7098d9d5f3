"""Immutable records flowing through the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

_DATE_FIELDS = ("reference_date", "publish_date")


@dataclass(frozen=True, slots=True)
class Record:
    """One ingested listing entry.

    ``source_key`` is the natural key used for dedup. It is only unique within
    a watcher's dedup window, never globally.
    """

    source_key: str
    title: str
    watcher: str = ""
    company: str | None = None
    reference_date: date | datetime | None = None
    publish_date: date | datetime | None = None
    link: str | None = None
    extra: dict[str, Any] = field(default_factory=dict, hash=False, compare=True)

    def field_value(self, name: str) -> Any:
        if hasattr(self, name) and name != "extra":
            return getattr(self, name)
        return self.extra.get(name)

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            "source_key": self.source_key,
            "watcher": self.watcher,
            "title": self.title,
            "company": self.company,
            "link": self.link,
        }
        for name in _DATE_FIELDS:
            value = getattr(self, name)
            document[name] = value.isoformat() if value is not None else None
            document[f"{name}_kind"] = _kind_of(value)
        extra: dict[str, Any] = {}
        extra_kinds: dict[str, str] = {}
        for name, value in self.extra.items():
            kind = _kind_of(value) if isinstance(value, date) else None
            if kind:
                extra[name] = value.isoformat()
                extra_kinds[name] = kind
            else:
                extra[name] = value
        document["extra"] = extra
        document["extra_kinds"] = extra_kinds
        return document

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "Record":
        values: dict[str, Any] = {}
        for name in _DATE_FIELDS:
            values[name] = _restore(document.get(name), document.get(f"{name}_kind"))
        kinds = document.get("extra_kinds") or {}
        extra = {
            name: _restore(value, kinds[name]) if name in kinds else value
            for name, value in (document.get("extra") or {}).items()
        }
        return cls(
            source_key=str(document["source_key"]),
            title=document.get("title") or "",
            watcher=document.get("watcher") or "",
            company=document.get("company"),
            link=document.get("link"),
            extra=extra,
            **values,
        )


@dataclass(frozen=True, slots=True)
class NotificationRecord:
    """Persisted proof that ``record_key`` was delivered to ``recipient``."""

    record_key: str
    recipient: str
    sent_at: datetime


def _kind_of(value: date | datetime | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return "datetime"
    return "date"


def _restore(value: Any, kind: str | None) -> date | datetime | None:
    if value is None:
        return None
    if isinstance(value, date):
        return value
    text = str(value)
    if kind == "date":
        return date.fromisoformat(text)
    return datetime.fromisoformat(text)


__all__ = ["NotificationRecord", "Record"]
