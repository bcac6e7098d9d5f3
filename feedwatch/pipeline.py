"""One end-to-end watcher run: fetch, extract, dedup, persist, notify."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from threading import Lock
from typing import Callable

import structlog

from .config import DedupPolicy, DedupStrategy, GlobalConfig, WatcherConfig
from .engine import (
    MarkupNormalizer,
    NotificationRecord,
    PageFetcher,
    PaginationController,
    Record,
    RecordExtractor,
    SnapshotCell,
    SweepStage,
)
from .errors import DedupQueryError, FeedwatchError, PersistenceError
from .notify import DeliveryReport, MessageRenderer, Notifier, SMTPTransport, Transport
from .store import BaseRecordStore


class RunState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    DEDUPING = "deduping"
    PERSISTING = "persisting"
    NOTIFYING = "notifying"


@dataclass(frozen=True, slots=True)
class RunResult:
    """Immutable outcome of a single run."""

    watcher: str
    new_records: int = 0
    notified: int = 0
    failed: int = 0
    pages_fetched: int = 0
    pages_failed: int = 0
    stop_reason: str = ""
    error: str | None = None
    skipped: bool = False
    started_at: datetime | None = None
    finished_at: datetime | None = None
    new_keys: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.error is None and not self.skipped

    def outcome(self) -> tuple[int, str | None]:
        """Scheduler view of the run: new record count and error, if any."""
        return self.new_records, self.error


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PipelineRunner:
    """Drive one watcher through the ingestion pipeline on each tick.

    At most one run is in flight per runner. A tick arriving while a run (its
    notification fan-out included) is still going returns a ``skipped``
    result. Nothing raises out of :meth:`run_once`.
    """

    def __init__(
        self,
        watcher: WatcherConfig,
        global_config: GlobalConfig,
        store: BaseRecordStore,
        executor=None,
        fetcher: PageFetcher | None = None,
        transport: Transport | None = None,
        today: Callable[[], date] | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.watcher = watcher
        self.global_config = global_config
        self.store = store
        self.executor = executor
        self.logger = logger or structlog.get_logger("feedwatch.pipeline").bind(
            watcher=watcher.watcher_name
        )
        self._fetcher = fetcher
        self._transport = transport
        self._today = today or (lambda: datetime.now(watcher.tzinfo).date())
        self._run_lock = Lock()
        self._state = RunState.IDLE
        self._last_result: SnapshotCell[RunResult] = SnapshotCell()

    # ------------------------------------------------------------------
    @property
    def state(self) -> RunState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def last_result(self) -> RunResult | None:
        return self._last_result.get()

    def run_once(self) -> RunResult:
        started = _utcnow()
        if not self._run_lock.acquire(blocking=False):
            self.logger.warning("run_skipped", reason="previous_run_in_flight")
            return RunResult(
                watcher=self.watcher.watcher_name,
                skipped=True,
                started_at=started,
                finished_at=started,
            )
        try:
            result = self._run(started)
        finally:
            self._set_state(RunState.IDLE)
            self._run_lock.release()
        self._last_result.set(result)
        self.logger.info(
            "run_finished",
            new_records=result.new_records,
            notified=result.notified,
            failed=result.failed,
            pages_fetched=result.pages_fetched,
            pages_failed=result.pages_failed,
            stop_reason=result.stop_reason,
            error=result.error,
        )
        return result

    # ------------------------------------------------------------------
    def _run(self, started: datetime) -> RunResult:
        progress: dict[str, object] = {}
        error: str | None = None
        try:
            self._check_mail_settings()
            if self.watcher.dedup.policy is DedupPolicy.NOTIFIED:
                self._run_notified(progress)
            else:
                self._run_fetched(progress)
        except DedupQueryError as exc:
            error = f"dedup query failed: {exc}"
            self.logger.error("run_aborted", stage=self._state.value, error=str(exc))
        except FeedwatchError as exc:
            error = str(exc)
            self.logger.error("run_failed", stage=self._state.value, error=str(exc))
        except Exception as exc:  # noqa: BLE001
            error = f"{type(exc).__name__}: {exc}"
            self.logger.exception("run_crashed", stage=self._state.value)
        return RunResult(
            watcher=self.watcher.watcher_name,
            error=error,
            started_at=started,
            finished_at=_utcnow(),
            **progress,
        )

    def _run_fetched(self, progress: dict[str, object]) -> None:
        candidates = self._sweep(progress)
        self._set_state(RunState.DEDUPING)
        if self.watcher.dedup.strategy is DedupStrategy.POSITIONAL:
            unseen = self._positional_unseen(candidates)
        else:
            unseen = self._per_key_unseen(candidates)
        self._set_state(RunState.PERSISTING)
        persisted = self._persist(unseen)
        progress["new_records"] = len(persisted)
        progress["new_keys"] = tuple(record.source_key for record in persisted)
        if not self.watcher.notify or not persisted:
            return
        self._set_state(RunState.NOTIFYING)
        report = self._with_notifier(lambda notifier: notifier.deliver_all(persisted))
        progress["notified"] = report.delivered_count
        progress["failed"] = len(report.failed)

    def _run_notified(self, progress: dict[str, object]) -> None:
        persisted: list[Record] = []
        if self.watcher.list_url:
            candidates = self._sweep(progress)
            self._set_state(RunState.DEDUPING)
            unseen = self._per_key_unseen(candidates)
            self._set_state(RunState.PERSISTING)
            persisted = self._persist(unseen)
        progress["new_records"] = len(persisted)
        progress["new_keys"] = tuple(record.source_key for record in persisted)

        self._set_state(RunState.DEDUPING)
        recipient = self.global_config.mail.recipient
        pending = self.store.find_unnotified(recipient, title_pattern=self.watcher.dedup.title_filter)
        self.logger.info("pending_notifications", count=len(pending))
        if not pending:
            return
        self._set_state(RunState.NOTIFYING)

        def mark(record: Record) -> None:
            proof = NotificationRecord(record.source_key, recipient, _utcnow())
            self.store.mark_notified(proof.record_key, proof.recipient, proof.sent_at)

        report = self._with_notifier(
            lambda notifier: notifier.deliver_transactional(pending, on_sent=mark)
        )
        progress["notified"] = report.delivered_count
        progress["failed"] = len(report.failed)

    # ------------------------------------------------------------------
    def _sweep(self, progress: dict[str, object]) -> list[Record]:
        self._set_state(RunState.FETCHING)
        fetcher = self._fetcher or PageFetcher(self.watcher, self.global_config.fetch, logger=self.logger)
        controller = PaginationController(
            fetcher,
            MarkupNormalizer.for_watcher(self.watcher),
            RecordExtractor(self.watcher, logger=self.logger),
            self.watcher.pagination,
            today=self._today,
            logger=self.logger,
        )
        try:
            sweep = controller.sweep(on_stage=self._on_stage)
        finally:
            if self._fetcher is None:
                fetcher.close()
        progress["pages_fetched"] = sweep.pages_fetched
        progress["pages_failed"] = sweep.pages_failed
        progress["stop_reason"] = sweep.stop_reason
        self.logger.info(
            "sweep_finished",
            candidates=len(sweep.records),
            pages_fetched=sweep.pages_fetched,
            pages_failed=sweep.pages_failed,
            stop_reason=sweep.stop_reason,
        )
        return sweep.records

    def _on_stage(self, stage: SweepStage) -> None:
        if stage is SweepStage.EXTRACTING:
            self._set_state(RunState.EXTRACTING)
        else:
            self._set_state(RunState.FETCHING)

    def _per_key_unseen(self, candidates: list[Record]) -> list[Record]:
        unseen: list[Record] = []
        seen_in_batch: set[str] = set()
        for record in candidates:
            if record.source_key in seen_in_batch:
                continue
            seen_in_batch.add(record.source_key)
            if not self.store.exists(record.source_key):
                unseen.append(record)
        self.logger.info("dedup_finished", candidates=len(candidates), unseen=len(unseen))
        return unseen

    def _positional_unseen(self, candidates: list[Record]) -> list[Record]:
        # newest-first batch: the leading N - known entries are the new ones
        known = self.store.count_matching([record.source_key for record in candidates])
        unseen = candidates[: max(len(candidates) - known, 0)]
        self.logger.info(
            "dedup_finished", candidates=len(candidates), known=known, unseen=len(unseen)
        )
        return unseen

    def _persist(self, records: list[Record]) -> list[Record]:
        persisted: list[Record] = []
        for record in records:
            try:
                stored = self.store.insert(record)
            except PersistenceError as exc:
                self.logger.error("persist_failed", record=record.source_key, error=str(exc))
                continue
            if stored:
                persisted.append(record)
            else:
                self.logger.debug("persist_duplicate", record=record.source_key)
        return persisted

    def _with_notifier(self, action: Callable[[Notifier], DeliveryReport]) -> DeliveryReport:
        mail = self.global_config.mail
        transport = self._transport or SMTPTransport(mail, logger=self.logger)
        notifier = Notifier(
            MessageRenderer(self.watcher, mail),
            transport,
            executor=self.executor,
            logger=self.logger,
        )
        try:
            return action(notifier)
        finally:
            close = getattr(transport, "close", None)
            if close is not None:
                close()

    def _check_mail_settings(self) -> None:
        if not self.watcher.notify or self._transport is not None:
            return
        missing = self.global_config.mail.missing_settings()
        if missing:
            raise FeedwatchError(f"mail settings missing: {', '.join(missing)}")

    def _set_state(self, state: RunState) -> None:
        if state is not self._state:
            self.logger.debug("run_state", state=state.value)
        self._state = state


__all__ = ["PipelineRunner", "RunResult", "RunState"]
