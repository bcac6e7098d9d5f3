"""Render notification messages from watcher templates."""

from __future__ import annotations

from datetime import date, datetime
from email.message import EmailMessage
from typing import Any

from ..config import MailConfig, WatcherConfig
from ..engine.records import Record


class _TemplateValues(dict):
    def __missing__(self, key: str) -> str:
        return ""


def _display(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y %H:%M")
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    return str(value)


class MessageRenderer:
    """Build the fixed Subject / To / From / body / link message for a record."""

    def __init__(self, watcher: WatcherConfig, mail: MailConfig) -> None:
        self.watcher = watcher
        self.mail = mail

    def context(self, record: Record) -> dict[str, str]:
        values = _TemplateValues(
            {name: _display(value) for name, value in record.extra.items()}
        )
        values.update(
            source_key=record.source_key,
            title=record.title,
            company=_display(record.company),
            reference_date=_display(record.reference_date),
            publish_date=_display(record.publish_date),
            link=_display(record.link),
            watcher=record.watcher or self.watcher.watcher_name,
            recipient=self.mail.recipient,
            sender=self.mail.sender,
        )
        values["link_url"] = self.watcher.link_template.format_map(values)
        return values

    def render(self, record: Record) -> EmailMessage:
        values = self.context(record)
        message = EmailMessage()
        message["Subject"] = " ".join(self.watcher.subject_template.format_map(values).split())
        message["To"] = self.mail.recipient
        message["From"] = self.mail.sender
        message.set_content(self.watcher.body_template.format_map(values))
        return message


__all__ = ["MessageRenderer"]
