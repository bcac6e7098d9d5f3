"""Record store SPI and implementations."""

from __future__ import annotations

from pathlib import Path

from ..config import GlobalConfig
from ..infra import SQLiteManager
from .base import BaseRecordStore
from .mongo_store import MongoRecordStore
from .sqlite_store import SQLiteRecordStore


class RecordStoreFactory:
    @staticmethod
    def build(
        storage: SQLiteManager,
        global_config: GlobalConfig,
        collection: str,
        base_dir: Path,
    ) -> BaseRecordStore:
        store_config = global_config.store
        if store_config.backend == "sqlite":
            path = store_config.resolved_sqlite_path(base_dir)
            return SQLiteRecordStore(storage, path, collection)
        if store_config.backend == "mongodb":
            return MongoRecordStore(
                store_config.mongo_uri,
                database=store_config.mongo_database,
                collection=collection,
            )
        raise ValueError(f"Unsupported store backend: {store_config.backend}")


__all__ = ["BaseRecordStore", "MongoRecordStore", "RecordStoreFactory", "SQLiteRecordStore"]
