"""Incrementally maintained queue counters."""

from shared.models import QueueMetricsSnapshot


class QueueMetrics:
    """
    Completed/failed counters and a running mean of processing time.

    The scheduler calls ``record_completed``/``record_failed`` exactly once per job that
    leaves the queue with a terminal outcome; queued and active counts are read from the
    live queue when a snapshot is taken.

    ``total_jobs`` is therefore completed + failed + queued + active. Cancelled jobs are
    counted in none of these, so removing a pending job lowers ``total_jobs``.
    """

    def __init__(self) -> None:
        self.completed_jobs = 0
        self.failed_jobs = 0
        self.average_processing_time = 0.0

    def record_completed(self, processing_time: float) -> None:
        self.completed_jobs += 1
        # Incremental mean over completed jobs
        self.average_processing_time += (processing_time - self.average_processing_time) / self.completed_jobs

    def record_failed(self) -> None:
        self.failed_jobs += 1

    def reset(self) -> None:
        self.completed_jobs = 0
        self.failed_jobs = 0
        self.average_processing_time = 0.0

    def snapshot(self, queued: int, active: int) -> QueueMetricsSnapshot:
        total = self.completed_jobs + self.failed_jobs + queued + active
        success_rate = self.completed_jobs / total if total else 0.0
        return QueueMetricsSnapshot(
            total_jobs=total,
            completed_jobs=self.completed_jobs,
            failed_jobs=self.failed_jobs,
            active_jobs=active,
            queued_jobs=queued,
            average_processing_time=round(self.average_processing_time, 3),
            success_rate=success_rate,
        )
