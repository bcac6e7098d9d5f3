"""MongoDB-backed record history."""

from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Any, Sequence

from pymongo import ASCENDING, DESCENDING, MongoClient
from bson.errors import InvalidDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..engine.records import Record
from ..errors import DedupQueryError, PersistenceError
from .base import BaseRecordStore

NOTIFICATIONS_COLLECTION = "notifications"


class MongoRecordStore(BaseRecordStore):
    """Store records in one collection per watcher, keyed by ``_id = source_key``."""

    def __init__(
        self,
        uri: str,
        database: str,
        collection: str,
        client: MongoClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self.client = client or MongoClient(uri)
        self.collection = collection
        self._lock = Lock()
        db = self.client[database]
        self._records = db[collection]
        self._notifications = db[NOTIFICATIONS_COLLECTION]
        try:
            self._records.create_index([("sort_date", DESCENDING)], background=True)
            self._notifications.create_index(
                [("collection", ASCENDING), ("record_key", ASCENDING), ("recipient", ASCENDING)],
                unique=True,
                background=True,
            )
        except PyMongoError as exc:
            raise PersistenceError(f"index creation failed: {exc}") from exc

    def count_matching(self, keys: Sequence[str]) -> int:
        unique = list(dict.fromkeys(str(key) for key in keys))
        with self._lock:
            try:
                return self._records.count_documents({"_id": {"$in": unique}})
            except PyMongoError as exc:
                raise DedupQueryError(f"count_matching failed: {exc}") from exc

    def exists(self, key: str) -> bool:
        with self._lock:
            try:
                return self._records.count_documents({"_id": str(key)}, limit=1) > 0
            except PyMongoError as exc:
                raise DedupQueryError(f"exists failed: {exc}") from exc

    def insert(self, record: Record) -> bool:
        try:
            document: dict[str, Any] = record.to_document()
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"insert {record.source_key} failed: unserializable record: {exc}") from exc
        document["_id"] = record.source_key
        document["sort_date"] = document.get("publish_date") or document.get("reference_date")
        document["inserted_at"] = datetime.now(timezone.utc)
        with self._lock:
            try:
                self._records.insert_one(document)
            except DuplicateKeyError:
                return False
            except (InvalidDocument, PyMongoError) as exc:
                raise PersistenceError(f"insert {record.source_key} failed: {exc}") from exc
        return True

    def find_unnotified(
        self,
        recipient: str,
        title_pattern: str | None = None,
    ) -> list[Record]:
        with self._lock:
            try:
                notified = self._notifications.distinct(
                    "record_key", {"collection": self.collection, "recipient": recipient}
                )
                query: dict[str, Any] = {"_id": {"$nin": notified}}
                if title_pattern:
                    query["title"] = {"$regex": title_pattern}
                documents = list(self._records.find(query).sort("sort_date", DESCENDING))
            except PyMongoError as exc:
                raise DedupQueryError(f"find_unnotified failed: {exc}") from exc
        return [Record.from_document(document) for document in documents]

    def mark_notified(self, key: str, recipient: str, sent_at: datetime) -> bool:
        with self._lock:
            try:
                self._notifications.insert_one(
                    {
                        "collection": self.collection,
                        "record_key": str(key),
                        "recipient": recipient,
                        "sent_at": sent_at,
                    }
                )
            except DuplicateKeyError:
                return False
            except PyMongoError as exc:
                raise PersistenceError(f"mark_notified {key} failed: {exc}") from exc
        return True

    def history(self, limit: int = 20) -> list[Record]:
        with self._lock:
            try:
                documents = list(self._records.find().sort("inserted_at", DESCENDING).limit(limit))
            except PyMongoError as exc:
                raise DedupQueryError(f"history failed: {exc}") from exc
        return [Record.from_document(document) for document in documents]

    def recent(
        self,
        limit: int = 100,
        title_pattern: str | None = None,
        exclude_pattern: str | None = None,
    ) -> list[Record]:
        with self._lock:
            try:
                documents = list(self._records.find().sort("sort_date", DESCENDING))
            except PyMongoError as exc:
                raise DedupQueryError(f"recent failed: {exc}") from exc
        return self._select_titles(
            (Record.from_document(document) for document in documents),
            limit,
            title_pattern,
            exclude_pattern,
        )

    def reset(self) -> None:
        with self._lock:
            try:
                self._records.delete_many({})
                self._notifications.delete_many({"collection": self.collection})
            except PyMongoError as exc:
                raise PersistenceError(f"reset failed: {exc}") from exc

    def close(self) -> None:
        if self._owns_client:
            self.client.close()


__all__ = ["MongoRecordStore"]
