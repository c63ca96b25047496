"""Observers for queue lifecycle events."""

from __future__ import annotations

from typing import TYPE_CHECKING

from shared.errors import GenerationError
from shared.models import GenerationResult, QueueJob, StageProgress
from shared.utils import setup_logging

if TYPE_CHECKING:
    from services.websocket_progress import WebSocketProgressManager


class QueueListener:
    """Base listener; every hook is an async no-op so subclasses override only what they need."""

    async def on_job_added(self, job: QueueJob) -> None:
        pass

    async def on_job_started(self, job: QueueJob) -> None:
        pass

    async def on_job_progress(self, job: QueueJob, progress: StageProgress) -> None:
        pass

    async def on_job_retry(self, job: QueueJob, error: GenerationError, delay: float) -> None:
        pass

    async def on_job_completed(self, job: QueueJob, result: GenerationResult) -> None:
        pass

    async def on_job_failed(self, job: QueueJob, error: GenerationError) -> None:
        pass

    async def on_job_removed(self, job: QueueJob) -> None:
        pass


class LoggingQueueListener(QueueListener):
    def __init__(self, service_name: str = "generation-queue") -> None:
        self.logger = setup_logging(service_name)

    async def on_job_added(self, job: QueueJob) -> None:
        self.logger.info(f"Job {job.id} added with priority {job.priority} for {job.request.subject.name}")

    async def on_job_started(self, job: QueueJob) -> None:
        self.logger.info(f"Job {job.id} started (attempt {job.attempts}/{job.max_attempts})")

    async def on_job_progress(self, job: QueueJob, progress: StageProgress) -> None:
        self.logger.info(f"Job {job.id} {progress.stage.value}: {progress.progress}% {progress.message}")

    async def on_job_retry(self, job: QueueJob, error: GenerationError, delay: float) -> None:
        self.logger.warning(
            f"Job {job.id} failed attempt {job.attempts}/{job.max_attempts} ({error.kind.value}): "
            f"{error.message}; retrying in {delay:.1f}s"
        )

    async def on_job_completed(self, job: QueueJob, result: GenerationResult) -> None:
        self.logger.info(f"Job {job.id} completed in {result.generation_time:.1f}s: {result.video_url}")

    async def on_job_failed(self, job: QueueJob, error: GenerationError) -> None:
        self.logger.error(f"Job {job.id} failed permanently after {job.attempts} attempt(s): {error.message}")

    async def on_job_removed(self, job: QueueJob) -> None:
        self.logger.info(f"Job {job.id} removed from queue")


class WebSocketQueueListener(QueueListener):
    """Forwards lifecycle events to WebSocket subscribers of each job."""

    def __init__(self, manager: WebSocketProgressManager) -> None:
        self.manager = manager

    async def _send(self, job: QueueJob, event: str, **data: object) -> None:
        await self.manager.send_progress_update(job.id, {"type": event, "job_id": job.id, **data})

    async def on_job_started(self, job: QueueJob) -> None:
        await self._send(job, "job_started", attempt=job.attempts)

    async def on_job_progress(self, job: QueueJob, progress: StageProgress) -> None:
        await self._send(job, "progress", **progress.model_dump(mode="json"))

    async def on_job_retry(self, job: QueueJob, error: GenerationError, delay: float) -> None:
        await self._send(job, "job_retry", attempt=job.attempts, delay=delay, error=error.to_dict())

    async def on_job_completed(self, job: QueueJob, result: GenerationResult) -> None:
        await self._send(job, "job_completed", result=result.model_dump(mode="json"))

    async def on_job_failed(self, job: QueueJob, error: GenerationError) -> None:
        await self._send(job, "job_failed", error=error.to_dict())

    async def on_job_removed(self, job: QueueJob) -> None:
        await self._send(job, "job_removed")
