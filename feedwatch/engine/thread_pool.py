"""Notification fan-out pools, one per watcher."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from threading import Lock
from typing import Dict


class ThreadPoolManager:
    """Own the delivery executors handed to each watcher's runner.

    Every watcher gets its own pool of ``workers_per_watcher`` threads so a
    slow SMTP server behind one watcher never starves another watcher's
    fan-out. Pools are created lazily and released when a runner is dropped.
    """

    def __init__(self, workers_per_watcher: int = 8) -> None:
        if workers_per_watcher < 1:
            raise ValueError("workers_per_watcher must be >= 1")
        self.workers_per_watcher = workers_per_watcher
        self._executors: Dict[str, ThreadPoolExecutor] = {}
        self._lock = Lock()

    def get(self, watcher_name: str) -> ThreadPoolExecutor:
        with self._lock:
            executor = self._executors.get(watcher_name)
            if executor is None:
                executor = ThreadPoolExecutor(
                    max_workers=self.workers_per_watcher,
                    thread_name_prefix=f"feedwatch-{watcher_name}",
                )
                self._executors[watcher_name] = executor
            return executor

    def release(self, watcher_name: str, wait: bool = False) -> bool:
        with self._lock:
            executor = self._executors.pop(watcher_name, None)
        if executor is None:
            return False
        executor.shutdown(wait=wait)
        return True

    def active(self) -> list[str]:
        with self._lock:
            return sorted(self._executors)

    def shutdown(self, wait: bool = False) -> None:
        with self._lock:
            executors = list(self._executors.values())
            self._executors.clear()
        for executor in executors:
            executor.shutdown(wait=wait)


__all__ = ["ThreadPoolManager"]
