"""SQLite connection management for the record history."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from threading import Lock, RLock
from typing import Dict


class SQLiteManager:
    """Manage SQLite connections with basic schema guarantees.

    One connection is shared per database file, so every store writing to it
    must hold :meth:`lock_for` around each execute/commit/rollback sequence.
    Otherwise one store's rollback can undo another store's pending insert.
    """

    def __init__(self) -> None:
        self._connections: Dict[Path, sqlite3.Connection] = {}
        self._locks: Dict[Path, RLock] = {}
        self._lock = Lock()

    def connect(self, path: Path) -> sqlite3.Connection:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._connections:
                conn = sqlite3.connect(path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                self._connections[path] = conn
                self._ensure_schema(conn)
            return self._connections[path]

    def lock_for(self, path: Path) -> RLock:
        with self._lock:
            return self._locks.setdefault(path, RLock())

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS records (
                collection TEXT NOT NULL,
                source_key TEXT NOT NULL,
                payload TEXT NOT NULL,
                title TEXT,
                sort_date TEXT,
                inserted_at TEXT NOT NULL,
                PRIMARY KEY (collection, source_key)
            );
            CREATE INDEX IF NOT EXISTS idx_records_sort
                ON records (collection, sort_date DESC);
            CREATE TABLE IF NOT EXISTS notifications (
                collection TEXT NOT NULL,
                record_key TEXT NOT NULL,
                recipient TEXT NOT NULL,
                sent_at TEXT NOT NULL,
                PRIMARY KEY (collection, record_key, recipient)
            );
            """
        )
        conn.commit()

    def reset(self, path: Path) -> None:
        with self.lock_for(path), self._lock:
            if path in self._connections:
                self._connections[path].close()
                del self._connections[path]
        if path.exists():
            path.unlink()

    def close_all(self) -> None:
        with self._lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()


__all__ = ["SQLiteManager"]
