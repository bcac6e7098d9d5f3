"""Watcher orchestrator wiring configuration, stores, runners and the scheduler."""

from __future__ import annotations

from pathlib import Path
from threading import Lock
from typing import Iterable

import yaml

from .config import ConfigRepository, GlobalConfig, WatcherConfig
from .engine import Record, ThreadPoolManager
from .feed import AtomFeedBuilder
from .infra import SQLiteManager
from .logging_conf import configure_logging, watcher_logger
from .notify import MessageRenderer
from .pipeline import PipelineRunner, RunResult
from .store import BaseRecordStore, RecordStoreFactory


class Orchestrator:
    """Central coordinator owning one long-lived runner per watcher.

    Runners are cached so the single-run guard of a watcher holds across
    scheduler ticks and manual runs alike.
    """

    def __init__(
        self,
        config_repository: ConfigRepository,
        scheduler,
        thread_pool: ThreadPoolManager,
        storage: SQLiteManager,
    ) -> None:
        self.config_repository = config_repository
        self.global_config: GlobalConfig = config_repository.load_global_config()
        self.scheduler = scheduler
        self.thread_pool = thread_pool
        self.storage = storage
        self.logger = configure_logging().bind(component="orchestrator")
        self._runners: dict[str, PipelineRunner] = {}
        self._stores: dict[str, BaseRecordStore] = {}
        self._lock = Lock()

    @property
    def base_dir(self) -> Path:
        return Path(self.config_repository.locator.project_root)

    # ------------------------------------------------------------------
    def register_schedules(self, watchers: Iterable[WatcherConfig]) -> list[str]:
        scheduled = []
        for watcher in watchers:
            if not watcher.enabled:
                self.logger.info("watcher_disabled", watcher=watcher.watcher_name)
                continue
            self.scheduler.schedule_watcher(watcher, self.run_scheduled)
            scheduled.append(watcher.watcher_name)
        self.scheduler.start()
        return scheduled

    def run_scheduled(self, watcher: WatcherConfig) -> None:
        # runs on the scheduler's worker thread
        try:
            current = self.config_repository.load_watcher(watcher.watcher_name)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            self.logger.warning("config_reload_failed", watcher=watcher.watcher_name, error=str(exc))
            current = watcher
        self.runner_for(current).run_once()

    def run_watcher(self, watcher_name: str) -> RunResult:
        watcher = self.config_repository.load_watcher(watcher_name)
        return self.runner_for(watcher).run_once()

    def runner_for(self, watcher: WatcherConfig) -> PipelineRunner:
        """Return the cached runner, rebuilding it when ``watcher`` changed.

        A runner with a run in flight is kept until that run ends, so an edit
        never bypasses the single-run guard; its next tick returns ``skipped``.
        """
        with self._lock:
            runner = self._runners.get(watcher.watcher_name)
            if runner is not None and runner.watcher != watcher:
                if runner.is_running:
                    self.logger.warning("config_reload_deferred", watcher=watcher.watcher_name)
                    return runner
                self.logger.info("config_reloaded", watcher=watcher.watcher_name)
                self.thread_pool.release(watcher.watcher_name)
                runner = None
            if runner is None:
                runner = PipelineRunner(
                    watcher,
                    self.global_config,
                    self._store_for(watcher),
                    executor=self.thread_pool.get(watcher.watcher_name),
                    logger=watcher_logger(watcher.watcher_name),
                )
                self._runners[watcher.watcher_name] = runner
            return runner

    def last_results(self) -> dict[str, RunResult | None]:
        with self._lock:
            runners = dict(self._runners)
        return {name: runner.last_result() for name, runner in runners.items()}

    # ------------------------------------------------------------------
    def view_history(self, watcher_name: str, limit: int = 20) -> list[Record]:
        watcher = self.config_repository.load_watcher(watcher_name)
        with self._lock:
            store = self._store_for(watcher)
        return store.history(limit)

    def reset_history(self, watcher_name: str) -> None:
        watcher = self.config_repository.load_watcher(watcher_name)
        with self._lock:
            store = self._store_for(watcher)
        store.reset()
        self.logger.info("history_reset", watcher=watcher_name, collection=store.collection)

    def render_feed(self, watcher_name: str, feed_id: str = "all") -> bytes:
        watcher = self.config_repository.load_watcher(watcher_name)
        with self._lock:
            store = self._store_for(watcher)
        builder = AtomFeedBuilder(
            watcher,
            store,
            MessageRenderer(watcher, self.global_config.mail),
            logger=watcher_logger(watcher_name),
        )
        return builder.render(feed_id)

    def close(self) -> None:
        with self._lock:
            for store in self._stores.values():
                store.close()
            self._stores.clear()
            self._runners.clear()

    def _store_for(self, watcher: WatcherConfig) -> BaseRecordStore:
        collection = watcher.store_collection()
        store = self._stores.get(collection)
        if store is None:
            store = RecordStoreFactory.build(
                self.storage, self.global_config, collection, self.base_dir
            )
            self._stores[collection] = store
        return store


__all__ = ["Orchestrator"]
