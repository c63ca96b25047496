"""
In-process priority queue and scheduler for reel generation jobs.

A single scheduling loop starts up to ``max_concurrency`` pipeline runs at once, picking
eligible jobs by priority (higher first) and insertion order within a priority. Failed
runs are retried from the first stage with exponential backoff while the error is
retryable and attempts remain. A terminal status is written to the job store before
the job leaves the in-memory map; the job leaves the map even when that write fails,
so no job is ever dispatched beyond its attempt budget.
"""

from __future__ import annotations

import asyncio
import random
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable

from services.generation.job_store import JobStore
from services.generation.listeners import QueueListener
from services.generation.metrics import QueueMetrics
from services.generation.pipeline import GenerationPipeline
from shared.errors import ActiveJobError, GenerationError, JobNotFoundError, QueueError, classify_error
from shared.models import (
    GenerationRequest,
    GenerationResult,
    JobRecord,
    JobStatus,
    PipelineStage,
    QueueJob,
    QueueMetricsSnapshot,
    QueueStatus,
    StageProgress,
)
from shared.utils import config, generate_job_id, setup_logging

logger = setup_logging("generation-queue")

STOPPED_MESSAGE = "Queue stopped"


class QueueJobState(str, Enum):
    """Derived state of an in-memory queue entry."""

    PENDING = "pending"
    ACTIVE = "active"
    FAILED = "failed"
    COMPLETED = "completed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GenerationQueue:
    """Bounded-concurrency priority scheduler over a :class:`GenerationPipeline`."""

    def __init__(
        self,
        pipeline: GenerationPipeline,
        job_store: JobStore,
        *,
        max_concurrency: int | None = None,
        max_attempts: int | None = None,
        retry_base_delay: float | None = None,
        priority_levels: int | None = None,
        poll_interval: float | None = None,
        idle_interval: float | None = None,
        jitter: bool = False,
        listeners: Iterable[QueueListener] = (),
    ) -> None:
        self.pipeline = pipeline
        self.job_store = job_store
        self.max_concurrency = max_concurrency or int(config.get("queue_max_concurrency", 3))
        self.max_attempts = max_attempts or int(config.get("queue_max_attempts", 3))
        self.retry_base_delay = float(
            retry_base_delay if retry_base_delay is not None else config.get("queue_retry_delay", 5.0)
        )
        self.priority_levels = priority_levels or int(config.get("queue_priority_levels", 5))
        self.poll_interval = float(poll_interval if poll_interval is not None else config.get("queue_poll_interval", 0.1))
        self.idle_interval = float(idle_interval if idle_interval is not None else config.get("queue_idle_interval", 1.0))
        self.jitter = jitter
        self.listeners: list[QueueListener] = list(listeners)
        self.metrics = QueueMetrics()

        self.jobs: dict[str, QueueJob] = {}
        self.active: dict[str, asyncio.Task[None]] = {}
        self._sequence = 0
        self._hidden: set[str] = set()
        self._abandoned: set[asyncio.Task[None]] = set()
        self._paused = False
        self._stopping = False
        self._loop_task: asyncio.Task[None] | None = None
        self._wakeup = asyncio.Event()

    # Listener management

    def add_listener(self, listener: QueueListener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: QueueListener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    async def _notify(self, hook: str, *args: Any) -> None:
        for listener in list(self.listeners):
            try:
                await getattr(listener, hook)(*args)
            except Exception:
                logger.exception(f"Queue listener {type(listener).__name__}.{hook} failed")

    # Public operations

    def clamp_priority(self, priority: int) -> int:
        return max(1, min(self.priority_levels, int(priority)))

    async def add_job(
        self,
        request: GenerationRequest,
        priority: int = 3,
        *,
        delay: float | None = None,
        max_attempts: int | None = None,
    ) -> str:
        """Persist a PENDING record, enqueue the job and make sure the scheduler is running."""
        job_id = generate_job_id()
        priority = self.clamp_priority(priority)
        record = JobRecord(
            id=job_id,
            subject_id=request.subject.id,
            subject_name=request.subject.name,
            status=JobStatus.PENDING,
            priority=priority,
            voice_type=request.voice_type,
            duration=request.duration,
            quality=request.quality,
            include_subtitles=request.include_subtitles,
            prompt=request.custom_prompt,
            request_payload=request.model_dump(mode="json"),
            created_at=_utcnow(),
        )
        await self.job_store.create(record)
        await self._enqueue(job_id, request, priority, delay=delay, max_attempts=max_attempts)
        return job_id

    async def retry_job(self, job_id: str, priority: int | None = None) -> str:
        """Re-enqueue a FAILED or CANCELLED job from its persisted request."""
        record = await self.job_store.get(job_id)
        if record is None:
            raise JobNotFoundError(job_id)
        if job_id in self.jobs:
            raise ActiveJobError(f"Job {job_id} is already queued")
        if record.status not in (JobStatus.FAILED, JobStatus.CANCELLED):
            raise QueueError(f"Job {job_id} is {record.status.value}; only failed or cancelled jobs can be retried", 409)

        request = GenerationRequest.model_validate(record.request_payload)
        retry_count = record.retry_count + 1
        job = self._register(
            job_id,
            request,
            self.clamp_priority(priority if priority is not None else record.priority),
            retry_count=retry_count,
        )
        # Held in the map but not schedulable until the record reads PENDING again
        self._hidden.add(job_id)
        try:
            await self.job_store.update(
                job_id,
                status=JobStatus.PENDING,
                progress=0,
                error_message=None,
                retry_count=retry_count,
                script_generated=False,
                voice_generated=False,
                video_generated=False,
                started_at=None,
                completed_at=None,
            )
        except Exception:
            self.jobs.pop(job_id, None)
            raise
        finally:
            self._hidden.discard(job_id)

        await self._notify("on_job_added", job)
        self._ensure_processing()
        return job_id

    async def remove_job(self, job_id: str) -> bool:
        """Cancel a job that has not started; executing jobs cannot be removed."""
        job = self.jobs.get(job_id)
        if job is None:
            return False
        if job_id in self.active or job_id in self._hidden:
            raise ActiveJobError(f"Cannot remove job {job_id} while it is starting or executing")

        # Hidden from the scheduler while the record is being cancelled
        self._hidden.add(job_id)
        try:
            await self.job_store.update(job_id, status=JobStatus.CANCELLED, completed_at=_utcnow())
            self.jobs.pop(job_id, None)
        finally:
            self._hidden.discard(job_id)

        await self._notify("on_job_removed", job)
        self._wakeup.set()
        return True

    def get_job(self, job_id: str) -> QueueJob | None:
        job = self.jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    def job_state(self, job: QueueJob) -> QueueJobState:
        if job.id in self.active:
            return QueueJobState.ACTIVE
        if job.progress is not None and job.progress.stage == PipelineStage.COMPLETE:
            return QueueJobState.COMPLETED
        if job.error is not None:
            return QueueJobState.FAILED
        return QueueJobState.PENDING

    def get_jobs(
        self,
        state: QueueJobState | str | None = None,
        priority: int | None = None,
        limit: int | None = None,
    ) -> list[QueueJob]:
        """Snapshots ordered by priority descending, then insertion order."""
        if state is not None:
            state = QueueJobState(state)
        jobs = [
            job
            for job in self._ordered(self.jobs.values())
            if (state is None or self.job_state(job) == state) and (priority is None or job.priority == priority)
        ]
        if limit:
            jobs = jobs[:limit]
        return [job.model_copy(deep=True) for job in jobs]

    async def clear(self) -> int:
        """Cancel every pending job; refused while any job is executing."""
        if self.active:
            raise ActiveJobError(f"Cannot clear queue with {len(self.active)} active job(s)")
        cleared = 0
        for job_id in list(self.jobs):
            if await self.remove_job(job_id):
                cleared += 1
        return cleared

    def pause(self) -> None:
        self._paused = True
        logger.info("Queue paused")

    def resume(self) -> None:
        self._paused = False
        logger.info("Queue resumed")
        self._ensure_processing()

    async def stop(self, graceful: bool = True) -> None:
        """
        Stop scheduling.

        A graceful stop lets executing jobs finish. Otherwise executing jobs are marked
        FAILED and abandoned; their provider calls may still finish in the background
        but their results are ignored. Pending jobs stay queued until ``resume`` or the
        next ``add_job``.
        """
        self._stopping = True
        self._wakeup.set()

        if graceful:
            if self.active:
                await asyncio.gather(*self.active.values(), return_exceptions=True)
        else:
            for job_id, task in list(self.active.items()):
                job = self.jobs.get(job_id)
                self._abandoned.add(task)
                self.active.pop(job_id, None)
                if job is None:
                    continue
                try:
                    await self._fail_terminal(job, QueueError(STOPPED_MESSAGE), STOPPED_MESSAGE)
                except Exception:
                    logger.exception(f"Could not record stop of job {job_id}")

        if self._loop_task is not None and not self._loop_task.done():
            await self._loop_task
        logger.info(f"Queue stopped ({'graceful' if graceful else 'immediate'})")

    def get_status(self) -> QueueStatus:
        return QueueStatus(
            processing=self.is_processing,
            paused=self._paused,
            active_jobs=len(self.active),
            queued_jobs=self._queued_count(),
            total_jobs=len(self.jobs),
        )

    def get_metrics(self) -> QueueMetricsSnapshot:
        return self.metrics.snapshot(queued=self._queued_count(), active=len(self.active))

    @property
    def is_processing(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def wait_until_idle(self, timeout: float | None = None) -> None:
        """Wait for the scheduler loop to drain every pending and active job."""
        if self._loop_task is None:
            return
        await asyncio.wait_for(asyncio.shield(self._loop_task), timeout)

    # Scheduling

    def _register(
        self,
        job_id: str,
        request: GenerationRequest,
        priority: int,
        *,
        delay: float | None = None,
        max_attempts: int | None = None,
        retry_count: int = 0,
    ) -> QueueJob:
        self._sequence += 1
        job = QueueJob(
            id=job_id,
            request=request,
            priority=priority,
            created_at=_utcnow(),
            sequence=self._sequence,
            max_attempts=max_attempts or self.max_attempts,
            delay=delay,
            scheduled_at=time.time() + delay if delay else None,
            retry_count=retry_count,
        )
        self.jobs[job_id] = job
        return job

    async def _enqueue(self, job_id: str, request: GenerationRequest, priority: int, **options: Any) -> None:
        job = self._register(job_id, request, priority, **options)
        await self._notify("on_job_added", job)
        self._ensure_processing()

    def _ensure_processing(self) -> None:
        self._stopping = False
        self._wakeup.set()
        if not self.is_processing:
            self._loop_task = asyncio.create_task(self._process_loop())

    @staticmethod
    def _ordered(jobs: Iterable[QueueJob]) -> list[QueueJob]:
        return sorted(jobs, key=lambda job: (-job.priority, job.sequence))

    def _queued_count(self) -> int:
        return sum(1 for job_id in self.jobs if job_id not in self.active)

    def _pending_jobs(self) -> list[QueueJob]:
        return self._ordered(
            job for job in self.jobs.values() if job.id not in self.active and job.id not in self._hidden
        )

    async def _sleep(self, interval: float) -> None:
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass

    async def _process_loop(self) -> None:
        logger.info("Scheduler loop started")
        while True:
            self._wakeup.clear()
            if self._stopping:
                break

            pending = self._pending_jobs()
            if not pending and not self.active:
                break

            if self._paused:
                if not self.active:
                    break
                await self._sleep(self.idle_interval)
                continue

            available_slots = self.max_concurrency - len(self.active)
            if available_slots <= 0:
                await self._sleep(self.idle_interval)
                continue

            now = time.time()
            eligible = [job for job in pending if job.scheduled_at is None or job.scheduled_at <= now]
            for job in eligible[:available_slots]:
                if job.attempts >= job.max_attempts:
                    await self._fail_exhausted(job)
                    continue
                self._start(job)

            await self._sleep(self.poll_interval)
        logger.info("Scheduler loop idle")

    def _start(self, job: QueueJob) -> None:
        job.attempts += 1
        job.error = None
        job.scheduled_at = None
        task = asyncio.create_task(self._execute(job))
        self.active[job.id] = task
        task.add_done_callback(self._log_task_failure)

    @staticmethod
    def _log_task_failure(task: asyncio.Task[None]) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Job task crashed: {task.exception()!r}")

    def _backoff(self, attempts: int) -> float:
        delay = self.retry_base_delay * 2**attempts
        if self.jitter:
            delay += random.uniform(0, self.retry_base_delay)
        return delay

    async def _execute(self, job: QueueJob) -> None:
        started = time.monotonic()
        task = asyncio.current_task()

        def abandoned() -> bool:
            return task in self._abandoned

        try:
            # An immediate stop may land between dispatch and the first step
            if abandoned():
                return
            try:
                await self.job_store.update(job.id, status=JobStatus.PROCESSING, started_at=_utcnow(), progress=0)
                if abandoned():
                    await self.job_store.update(
                        job.id, status=JobStatus.FAILED, error_message=STOPPED_MESSAGE, completed_at=_utcnow()
                    )
                    return
                await self._notify("on_job_started", job)
                result = await self.pipeline.run(
                    job.id,
                    job.request,
                    on_progress=lambda progress: self._on_progress(job, progress, abandoned),
                    should_continue=lambda: not abandoned(),
                )
            except Exception as exc:
                if abandoned():
                    logger.info(f"Ignoring failure of abandoned job {job.id}: {exc}")
                    return
                await self._handle_failure(job, classify_error(exc))
            else:
                if abandoned():
                    logger.info(f"Ignoring result of abandoned job {job.id}")
                    return
                await self._handle_success(job, result, time.monotonic() - started)
        finally:
            if self.active.get(job.id) is task:
                self.active.pop(job.id, None)
            self._abandoned.discard(task)
            self._wakeup.set()

    async def _on_progress(self, job: QueueJob, progress: StageProgress, abandoned: Callable[[], bool]) -> None:
        if abandoned():
            return
        job.progress = progress
        await self.job_store.update(job.id, progress=progress.progress)
        await self._notify("on_job_progress", job, progress)

    async def _handle_success(self, job: QueueJob, result: GenerationResult, elapsed: float) -> None:
        try:
            await self.job_store.update(
                job.id,
                status=JobStatus.COMPLETED,
                progress=100,
                generated_script=result.script,
                generated_title=result.title,
                generated_video_url=result.video_url,
                thumbnail_url=result.thumbnail_url,
                audio_url=result.audio_url,
                error_message=None,
                retry_count=job.retry_count,
                total_cost=result.costs.total,
                completed_at=_utcnow(),
            )
        finally:
            # Leaves the map even if the store write fails
            self.jobs.pop(job.id, None)
            self.metrics.record_completed(elapsed)
            await self._notify("on_job_completed", job, result)

    async def _handle_failure(self, job: QueueJob, error: GenerationError) -> None:
        if error.retryable and job.attempts < job.max_attempts:
            # Rescheduled before the store write
            delay = self._backoff(job.attempts)
            job.retry_count += 1
            job.delay = delay
            job.scheduled_at = time.time() + delay
            await self.job_store.update(
                job.id,
                status=JobStatus.PENDING,
                error_message=error.user_message,
                retry_count=job.retry_count,
            )
            await self._notify("on_job_retry", job, error, delay)
            return

        await self._fail_terminal(job, error)

    async def _fail_terminal(self, job: QueueJob, error: GenerationError, message: str | None = None) -> None:
        message = message or error.user_message
        job.error = message
        try:
            await self.job_store.update(
                job.id,
                status=JobStatus.FAILED,
                error_message=message,
                retry_count=job.retry_count,
                completed_at=_utcnow(),
            )
        finally:
            # Leaves the map even if the store write fails
            self.jobs.pop(job.id, None)
            self.metrics.record_failed()
            await self._notify("on_job_failed", job, error)

    async def _fail_exhausted(self, job: QueueJob) -> None:
        error = QueueError(f"Job {job.id} used all {job.max_attempts} attempt(s)")
        try:
            await self._fail_terminal(job, error, job.error)
        except Exception:
            logger.exception(f"Could not record exhausted job {job.id}")
