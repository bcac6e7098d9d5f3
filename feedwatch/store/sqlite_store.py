"""SQLite-backed record history."""

from __future__ import annotations

import json
import re
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from ..engine.records import Record
from ..errors import DedupQueryError, PersistenceError
from ..infra.storage import SQLiteManager
from .base import BaseRecordStore

_CHUNK = 500


class SQLiteRecordStore(BaseRecordStore):
    """Persist records as JSON payloads keyed by ``(collection, source_key)``."""

    def __init__(self, manager: SQLiteManager, db_path: Path, collection: str) -> None:
        self.manager = manager
        self.db_path = db_path
        self.collection = collection
        self._conn = self.manager.connect(db_path)
        # shared by every store on this file
        self._lock = self.manager.lock_for(db_path)

    def count_matching(self, keys: Sequence[str]) -> int:
        unique = list(dict.fromkeys(str(key) for key in keys))
        total = 0
        with self._lock:
            try:
                for start in range(0, len(unique), _CHUNK):
                    chunk = unique[start : start + _CHUNK]
                    placeholders = ",".join("?" for _ in chunk)
                    row = self._conn.execute(
                        f"SELECT count(1) FROM records WHERE collection = ? AND source_key IN ({placeholders})",
                        (self.collection, *chunk),
                    ).fetchone()
                    total += row[0]
            except sqlite3.Error as exc:
                raise DedupQueryError(f"count_matching failed: {exc}") from exc
        return total

    def exists(self, key: str) -> bool:
        with self._lock:
            try:
                cur = self._conn.execute(
                    "SELECT 1 FROM records WHERE collection = ? AND source_key = ?",
                    (self.collection, str(key)),
                )
                return cur.fetchone() is not None
            except sqlite3.Error as exc:
                raise DedupQueryError(f"exists failed: {exc}") from exc

    def insert(self, record: Record) -> bool:
        try:
            document = record.to_document()
            payload = json.dumps(document, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"insert {record.source_key} failed: unserializable record: {exc}") from exc
        sort_date = document.get("publish_date") or document.get("reference_date")
        with self._lock:
            try:
                cur = self._conn.execute(
                    "INSERT OR IGNORE INTO records(collection, source_key, payload, title, sort_date, inserted_at) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        self.collection,
                        record.source_key,
                        payload,
                        record.title,
                        sort_date,
                        _utcnow(),
                    ),
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise PersistenceError(f"insert {record.source_key} failed: {exc}") from exc
            return cur.rowcount == 1

    def find_unnotified(
        self,
        recipient: str,
        title_pattern: str | None = None,
    ) -> list[Record]:
        with self._lock:
            try:
                rows = self._conn.execute(
                    """
                    SELECT r.payload FROM records r
                    WHERE r.collection = ?
                      AND NOT EXISTS (
                        SELECT 1 FROM notifications n
                        WHERE n.collection = r.collection
                          AND n.record_key = r.source_key
                          AND n.recipient = ?
                      )
                    ORDER BY r.sort_date DESC, r.rowid DESC
                    """,
                    (self.collection, recipient),
                ).fetchall()
            except sqlite3.Error as exc:
                raise DedupQueryError(f"find_unnotified failed: {exc}") from exc
        matcher = re.compile(title_pattern) if title_pattern else None
        records = []
        for row in rows:
            record = Record.from_document(json.loads(row["payload"]))
            if matcher and not matcher.search(record.title):
                continue
            records.append(record)
        return records

    def mark_notified(self, key: str, recipient: str, sent_at: datetime) -> bool:
        with self._lock:
            try:
                cur = self._conn.execute(
                    "INSERT OR IGNORE INTO notifications(collection, record_key, recipient, sent_at) VALUES (?, ?, ?, ?)",
                    (self.collection, str(key), recipient, sent_at.isoformat()),
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise PersistenceError(f"mark_notified {key} failed: {exc}") from exc
            return cur.rowcount == 1

    def history(self, limit: int = 20) -> list[Record]:
        with self._lock:
            try:
                rows = self._conn.execute(
                    "SELECT payload FROM records WHERE collection = ? ORDER BY inserted_at DESC, rowid DESC LIMIT ?",
                    (self.collection, limit),
                ).fetchall()
            except sqlite3.Error as exc:
                raise DedupQueryError(f"history failed: {exc}") from exc
        return [Record.from_document(json.loads(row["payload"])) for row in rows]

    def recent(
        self,
        limit: int = 100,
        title_pattern: str | None = None,
        exclude_pattern: str | None = None,
    ) -> list[Record]:
        with self._lock:
            try:
                rows = self._conn.execute(
                    "SELECT payload FROM records WHERE collection = ? ORDER BY sort_date DESC, rowid DESC",
                    (self.collection,),
                ).fetchall()
            except sqlite3.Error as exc:
                raise DedupQueryError(f"recent failed: {exc}") from exc
        return self._select_titles(
            (Record.from_document(json.loads(row["payload"])) for row in rows),
            limit,
            title_pattern,
            exclude_pattern,
        )

    def reset(self) -> None:
        with self._lock:
            try:
                self._conn.execute("DELETE FROM records WHERE collection = ?", (self.collection,))
                self._conn.execute("DELETE FROM notifications WHERE collection = ?", (self.collection,))
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise PersistenceError(f"reset failed: {exc}") from exc

    def close(self) -> None:
        # connections are shared through SQLiteManager and closed by it
        return


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


__all__ = ["SQLiteRecordStore"]
