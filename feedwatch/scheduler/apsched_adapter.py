"""APScheduler wrapper exposing higher level helpers."""

from __future__ import annotations

from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..config import ScheduleType, WatcherConfig
from ..logging_conf import configure_logging


def job_id_for(watcher_name: str) -> str:
    return f"watcher::{watcher_name}"


class APSchedulerAdapter:
    """Manage APScheduler jobs for configured watchers.

    Every job runs with ``max_instances=1`` and ``coalesce=True``: a tick
    that fires while the previous one is still running is dropped by the
    scheduler rather than queued.
    """

    def __init__(self, scheduler: BackgroundScheduler | None = None) -> None:
        self.scheduler = scheduler or BackgroundScheduler()
        self.logger = configure_logging().bind(component="scheduler")
        self.started = False

    def start(self) -> None:
        if not self.started:
            self.scheduler.start()
            self.started = True
            self.logger.info("apscheduler_started")

    def shutdown(self) -> None:
        if self.started:
            self.scheduler.shutdown(wait=False)
            self.started = False
            self.logger.info("apscheduler_stopped")

    def schedule_watcher(
        self, watcher: WatcherConfig, callback: Callable[[WatcherConfig], None]
    ) -> None:
        trigger = self._build_trigger(watcher)
        self.scheduler.add_job(
            callback,
            trigger=trigger,
            id=job_id_for(watcher.watcher_name),
            args=[watcher],
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.logger.info(
            "job_scheduled", watcher=watcher.watcher_name, schedule=watcher.schedule.model_dump(mode="json")
        )

    def remove_watcher(self, watcher_name: str) -> bool:
        job = self.scheduler.get_job(job_id_for(watcher_name))
        if job is None:
            self.logger.warning("job_remove_failed", watcher=watcher_name)
            return False
        job.remove()
        return True

    def _build_trigger(self, watcher: WatcherConfig):
        schedule = watcher.schedule
        tz = watcher.tzinfo
        if schedule.type is ScheduleType.CRON:
            return CronTrigger.from_crontab(str(schedule.value), timezone=tz)
        if schedule.type is ScheduleType.INTERVAL:
            if isinstance(schedule.value, (int, float)):
                return IntervalTrigger(seconds=float(schedule.value), timezone=tz)
            if isinstance(schedule.value, dict):
                return IntervalTrigger(timezone=tz, **schedule.value)
            raise ValueError("Interval schedule requires seconds or kwargs dict")
        raise ValueError(f"Unknown schedule type: {schedule.type}")

    def list_jobs(self) -> list[dict]:
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append(
                {
                    "id": job.id,
                    "next_run_time": getattr(job, "next_run_time", None),
                    "trigger": str(job.trigger),
                }
            )
        return jobs


__all__ = ["APSchedulerAdapter", "job_id_for"]
