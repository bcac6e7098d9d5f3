"""Per-record notification fan-out."""

from __future__ import annotations

from concurrent.futures import Executor, Future, wait
from dataclasses import dataclass, field
from typing import Callable, Iterable, Protocol

import structlog

from ..engine.records import Record
from ..errors import FeedwatchError, NotificationError
from .render import MessageRenderer


class Transport(Protocol):
    def send(self, message, record_key: str = "") -> None: ...


@dataclass(slots=True)
class DeliveryReport:
    attempted: int = 0
    delivered: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    halted: bool = False

    @property
    def delivered_count(self) -> int:
        return len(self.delivered)


class Notifier:
    """Render and deliver one message per new record."""

    def __init__(
        self,
        renderer: MessageRenderer,
        transport: Transport,
        executor: Executor | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.renderer = renderer
        self.transport = transport
        self.executor = executor
        self.logger = logger or structlog.get_logger("feedwatch.notifier")

    def deliver(self, record: Record) -> None:
        try:
            message = self.renderer.render(record)
        except (KeyError, ValueError, IndexError) as exc:
            raise NotificationError(record.source_key, f"template error: {exc}") from exc
        self.transport.send(message, record.source_key)

    def deliver_all(self, records: Iterable[Record]) -> DeliveryReport:
        """Send every record as its own task and wait for all of them.

        A failing record is logged and does not stop the others.
        """
        batch = list(records)
        report = DeliveryReport(attempted=len(batch))
        if not batch:
            return report
        if self.executor is None:
            outcomes = [self._attempt(record) for record in batch]
        else:
            futures: list[Future[str | None]] = [
                self.executor.submit(self._attempt, record) for record in batch
            ]
            wait(futures)
            outcomes = [future.result() for future in futures]
        for record, error in zip(batch, outcomes):
            if error is None:
                report.delivered.append(record.source_key)
            else:
                report.failed[record.source_key] = error
        self.logger.info(
            "delivery_finished",
            attempted=report.attempted,
            delivered=report.delivered_count,
            failed=len(report.failed),
        )
        return report

    def deliver_transactional(
        self, records: Iterable[Record], on_sent: Callable[[Record], None]
    ) -> DeliveryReport:
        """Send sequentially, confirming each record through ``on_sent``.

        The first failure halts the batch; unconfirmed records are retried on
        the next run.
        """
        report = DeliveryReport()
        for record in records:
            report.attempted += 1
            error = self._attempt(record)
            if error is None:
                try:
                    on_sent(record)
                except FeedwatchError as exc:
                    error = f"delivered but not recorded: {exc}"
                    self.logger.error(
                        "notification_unrecorded", record=record.source_key, error=str(exc)
                    )
            if error is not None:
                report.failed[record.source_key] = error
                report.halted = True
                self.logger.warning("delivery_halted", record=record.source_key)
                break
            report.delivered.append(record.source_key)
        return report

    def _attempt(self, record: Record) -> str | None:
        try:
            self.deliver(record)
        except NotificationError as exc:
            self.logger.error("notification_failed", record=record.source_key, error=exc.reason)
            return exc.reason
        except Exception as exc:  # noqa: BLE001
            self.logger.exception("notification_crashed", record=record.source_key)
            return f"{type(exc).__name__}: {exc}"
        self.logger.info("notification_sent", record=record.source_key)
        return None


__all__ = ["DeliveryReport", "Notifier", "Transport"]
