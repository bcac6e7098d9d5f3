from .apsched_adapter import APSchedulerAdapter, job_id_for

__all__ = ["APSchedulerAdapter", "job_id_for"]
