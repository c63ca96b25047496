import asyncio
import time
from typing import Any

import pytest

from services.generation.job_store import InMemoryJobStore
from services.generation.listeners import QueueListener
from services.generation.pipeline import GenerationPipeline
from services.generation.queue import GenerationQueue, QueueJobState
from services.storage.drivers.local import LocalObjectStore
from services.tts_service.service import SpeechService
from shared.errors import (
    ActiveJobError,
    JobNotFoundError,
    QueueError,
    RateLimitError,
    ServiceUnavailableError,
    ValidationError,
)
from shared.models import GenerationRequest, JobStatus, PipelineStage, SubjectProfile

from .conftest import RecordingSpeechDriver, StubComposer, StubImageResolver, StubScriptDriver


class RecordingListener(QueueListener):
    def __init__(self) -> None:
        self.events: list[tuple[str, str, Any]] = []

    def of(self, event: str) -> list[tuple[str, str, Any]]:
        return [entry for entry in self.events if entry[0] == event]

    async def on_job_added(self, job):
        self.events.append(("added", job.id, job.priority))

    async def on_job_started(self, job):
        self.events.append(("started", job.id, job.attempts))

    async def on_job_progress(self, job, progress):
        self.events.append(("progress", job.id, progress))

    async def on_job_retry(self, job, error, delay):
        self.events.append(("retry", job.id, delay))

    async def on_job_completed(self, job, result):
        self.events.append(("completed", job.id, result))

    async def on_job_failed(self, job, error):
        self.events.append(("failed", job.id, error))

    async def on_job_removed(self, job):
        self.events.append(("removed", job.id, None))


class RecordingJobStore(InMemoryJobStore):
    def __init__(self) -> None:
        super().__init__()
        self.status_history: dict[str, list[JobStatus]] = {}

    async def update(self, job_id: str, **fields: Any):
        if "status" in fields:
            self.status_history.setdefault(job_id, []).append(fields["status"])
        return await super().update(job_id, **fields)


class GatedScriptDriver(StubScriptDriver):
    """Blocks every call until ``gate`` is set."""

    def __init__(self, outcomes: list | None = None) -> None:
        super().__init__(outcomes)
        self.gate = asyncio.Event()
        self.in_flight = 0
        self.max_in_flight = 0

    async def generate_script(self, subject, target_duration_seconds, style_hints=None, custom_prompt=None):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await self.gate.wait()
            return await super().generate_script(subject, target_duration_seconds, style_hints, custom_prompt)
        finally:
            self.in_flight -= 1


class ConcurrencyTrackingPipeline(GenerationPipeline):
    """Records every job id that is executing so overlapping runs can be detected."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.running: set[str] = set()
        self.overlaps: list[str] = []
        self.peak = 0

    async def run(self, job_id, request, on_progress=None, should_continue=None):
        if job_id in self.running:
            self.overlaps.append(job_id)
        self.running.add(job_id)
        self.peak = max(self.peak, len(self.running))
        try:
            await asyncio.sleep(0.01)
            return await super().run(job_id, request, on_progress, should_continue)
        finally:
            self.running.discard(job_id)


def make_queue(pipeline, job_store, **kwargs) -> GenerationQueue:
    kwargs.setdefault("max_concurrency", 1)
    kwargs.setdefault("max_attempts", 3)
    return GenerationQueue(
        pipeline,
        job_store,
        retry_base_delay=kwargs.pop("retry_base_delay", 0),
        poll_interval=0.01,
        idle_interval=0.01,
        **kwargs,
    )


async def wait_for_condition(predicate, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


def request_for(name: str) -> GenerationRequest:
    return GenerationRequest(
        subject=SubjectProfile(id=name.lower().replace(" ", "-"), name=name, sport="Tennis"),
        duration=30,
    )


@pytest.mark.asyncio
async def test_job_completes_with_video_url(make_pipeline, job_store, generation_request) -> None:
    listener = RecordingListener()
    queue = make_queue(make_pipeline(), job_store, listeners=[listener])

    job_id = await queue.add_job(generation_request, priority=3)
    await queue.wait_until_idle(timeout=5)

    record = await job_store.get(job_id)
    assert record.status == JobStatus.COMPLETED
    assert record.generated_video_url
    assert record.generated_video_url.endswith("/jordan_rivers.mp4")
    assert record.thumbnail_url and record.audio_url
    assert record.progress == 100
    assert record.script_generated and record.voice_generated and record.video_generated
    assert record.completed_at is not None
    assert queue.get_job(job_id) is None
    assert [entry[0] for entry in listener.events if entry[0] != "progress"] == ["added", "started", "completed"]


@pytest.mark.asyncio
async def test_progress_events_are_monotonic(make_pipeline, job_store, generation_request) -> None:
    listener = RecordingListener()
    queue = make_queue(make_pipeline(), job_store, listeners=[listener])

    await queue.add_job(generation_request)
    await queue.wait_until_idle(timeout=5)

    progress = [entry[2] for entry in listener.of("progress")]
    assert [p.stage for p in progress] == [
        PipelineStage.SCRIPT,
        PipelineStage.SPEECH,
        PipelineStage.IMAGES,
        PipelineStage.VIDEO,
        PipelineStage.UPLOAD,
        PipelineStage.COMPLETE,
    ]
    percents = [p.progress for p in progress]
    assert percents == sorted(percents)
    assert percents[-1] == 100


@pytest.mark.asyncio
async def test_retryable_failures_then_success_records_retry_count(make_pipeline, job_store, generation_request) -> None:
    driver = StubScriptDriver([RateLimitError(), RateLimitError()])
    listener = RecordingListener()
    queue = make_queue(make_pipeline(driver), job_store, max_attempts=3, listeners=[listener])

    job_id = await queue.add_job(generation_request)
    await queue.wait_until_idle(timeout=5)

    record = await job_store.get(job_id)
    assert record.status == JobStatus.COMPLETED
    assert record.retry_count == 2
    assert record.error_message is None
    assert driver.calls == 3
    assert [entry[2] for entry in listener.of("started")] == [1, 2, 3]
    assert len(listener.of("retry")) == 2


@pytest.mark.asyncio
async def test_retry_exhaustion_ends_failed() -> None:
    store = RecordingJobStore()
    driver = StubScriptDriver([ServiceUnavailableError("openai")] * 10)
    pipeline = GenerationPipeline(
        driver,
        SpeechService(RecordingSpeechDriver()),
        StubImageResolver(),
        StubComposer(),
        LocalObjectStore(),
        job_store=store,
    )
    listener = RecordingListener()
    queue = make_queue(pipeline, store, max_attempts=3, listeners=[listener])

    job_id = await queue.add_job(request_for("Ada Serve"))
    await queue.wait_until_idle(timeout=5)

    record = await store.get(job_id)
    assert record.status == JobStatus.FAILED
    assert driver.calls == 3
    assert record.retry_count == 2
    assert record.error_message == "Service is temporarily unavailable. Please try again later."

    history = store.status_history[job_id]
    assert history.count(JobStatus.PROCESSING) == 3
    assert history[-1] == JobStatus.FAILED
    # No PENDING after the final attempt started
    last_processing = len(history) - 1 - history[::-1].index(JobStatus.PROCESSING)
    assert JobStatus.PENDING not in history[last_processing:]
    assert len(listener.of("failed")) == 1
    assert queue.get_metrics().failed_jobs == 1


@pytest.mark.asyncio
async def test_non_retryable_error_fails_after_one_attempt(make_pipeline, job_store, generation_request) -> None:
    driver = StubScriptDriver([ValidationError("Unknown subject")])
    queue = make_queue(make_pipeline(driver), job_store, max_attempts=3)

    job_id = await queue.add_job(generation_request)
    await queue.wait_until_idle(timeout=5)

    record = await job_store.get(job_id)
    assert record.status == JobStatus.FAILED
    assert record.retry_count == 0
    assert record.error_message == "Unknown subject"
    assert driver.calls == 1


@pytest.mark.asyncio
async def test_per_job_max_attempts_overrides_default(make_pipeline, job_store, generation_request) -> None:
    driver = StubScriptDriver([RateLimitError()] * 5)
    queue = make_queue(make_pipeline(driver), job_store, max_attempts=3)

    job_id = await queue.add_job(generation_request, max_attempts=1)
    await queue.wait_until_idle(timeout=5)

    assert (await job_store.get(job_id)).status == JobStatus.FAILED
    assert driver.calls == 1


@pytest.mark.asyncio
async def test_remove_pending_job_never_executes(make_pipeline, job_store, generation_request) -> None:
    driver = StubScriptDriver()
    listener = RecordingListener()
    queue = make_queue(make_pipeline(driver), job_store, listeners=[listener])

    queue.pause()
    job_id = await queue.add_job(generation_request)
    assert await queue.remove_job(job_id) is True

    queue.resume()
    await queue.wait_until_idle(timeout=5)

    record = await job_store.get(job_id)
    assert record.status == JobStatus.CANCELLED
    assert driver.calls == 0
    assert listener.of("started") == []
    assert len(listener.of("removed")) == 1
    assert await queue.remove_job(job_id) is False


@pytest.mark.asyncio
async def test_remove_active_job_is_rejected(make_pipeline, job_store, generation_request) -> None:
    driver = GatedScriptDriver()
    queue = make_queue(make_pipeline(driver), job_store)

    job_id = await queue.add_job(generation_request)
    await wait_for_condition(lambda: driver.in_flight == 1)

    with pytest.raises(ActiveJobError):
        await queue.remove_job(job_id)
    assert (await job_store.get(job_id)).status == JobStatus.PROCESSING

    driver.gate.set()
    await queue.wait_until_idle(timeout=5)
    assert (await job_store.get(job_id)).status == JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_higher_priority_starts_first(make_pipeline, job_store) -> None:
    listener = RecordingListener()
    queue = make_queue(make_pipeline(), job_store, max_concurrency=1, listeners=[listener])

    queue.pause()
    low = await queue.add_job(request_for("Low Priority"), priority=1)
    high = await queue.add_job(request_for("High Priority"), priority=5)
    queue.resume()
    await queue.wait_until_idle(timeout=5)

    assert [entry[1] for entry in listener.of("started")] == [high, low]


@pytest.mark.asyncio
async def test_equal_priority_runs_in_insertion_order(make_pipeline, job_store) -> None:
    listener = RecordingListener()
    queue = make_queue(make_pipeline(), job_store, max_concurrency=1, listeners=[listener])

    queue.pause()
    ids = [
        await queue.add_job(request_for("First"), priority=4),
        await queue.add_job(request_for("Second"), priority=2),
        await queue.add_job(request_for("Third"), priority=4),
        await queue.add_job(request_for("Fourth"), priority=2),
        await queue.add_job(request_for("Fifth"), priority=5),
    ]
    queue.resume()
    await queue.wait_until_idle(timeout=5)

    started = [entry[1] for entry in listener.of("started")]
    assert started == [ids[4], ids[0], ids[2], ids[1], ids[3]]


@pytest.mark.asyncio
async def test_concurrency_never_exceeds_limit(make_pipeline, job_store) -> None:
    driver = GatedScriptDriver()
    queue = make_queue(make_pipeline(driver), job_store, max_concurrency=2)

    for index in range(6):
        await queue.add_job(request_for(f"Player {index}"))
    await wait_for_condition(lambda: driver.in_flight == 2)
    await asyncio.sleep(0.05)
    assert driver.in_flight == 2
    assert len(queue.active) == 2

    driver.gate.set()
    await queue.wait_until_idle(timeout=5)
    assert driver.max_in_flight == 2
    assert queue.get_metrics().completed_jobs == 6


@pytest.mark.asyncio
async def test_job_never_runs_twice_concurrently(job_store) -> None:
    driver = StubScriptDriver([RateLimitError(), RateLimitError(), RateLimitError()])
    pipeline = ConcurrencyTrackingPipeline(
        driver,
        SpeechService(RecordingSpeechDriver()),
        StubImageResolver(),
        StubComposer(),
        LocalObjectStore(),
        job_store=job_store,
    )
    queue = make_queue(pipeline, job_store, max_concurrency=4, max_attempts=3)

    for index in range(4):
        await queue.add_job(request_for(f"Runner {index}"))
    await queue.wait_until_idle(timeout=5)

    assert pipeline.overlaps == []
    assert pipeline.peak <= 4


@pytest.mark.asyncio
async def test_metrics_stay_consistent(make_pipeline, job_store) -> None:
    driver = StubScriptDriver([ValidationError("bad"), ValidationError("bad")])
    queue = make_queue(make_pipeline(driver), job_store, max_concurrency=1)

    queue.pause()
    for index in range(5):
        await queue.add_job(request_for(f"Athlete {index}"))

    metrics = queue.get_metrics()
    assert metrics.queued_jobs == 5
    assert metrics.total_jobs == 5
    assert metrics.success_rate == 0.0

    queue.resume()
    await queue.wait_until_idle(timeout=5)

    metrics = queue.get_metrics()
    assert metrics.completed_jobs + metrics.failed_jobs + metrics.queued_jobs + metrics.active_jobs == metrics.total_jobs
    assert metrics.completed_jobs == 3
    assert metrics.failed_jobs == 2
    assert metrics.success_rate == pytest.approx(0.6)
    assert metrics.average_processing_time >= 0


@pytest.mark.asyncio
async def test_priority_is_clamped(make_pipeline, job_store, generation_request) -> None:
    queue = make_queue(make_pipeline(), job_store, priority_levels=5)
    queue.pause()

    high = await queue.add_job(generation_request, priority=99)
    low = await queue.add_job(generation_request, priority=-4)

    assert queue.get_job(high).priority == 5
    assert queue.get_job(low).priority == 1
    assert (await job_store.get(high)).priority == 5
    await queue.clear()


@pytest.mark.asyncio
async def test_get_jobs_filters_and_orders(make_pipeline, job_store) -> None:
    queue = make_queue(make_pipeline(), job_store)
    queue.pause()

    first = await queue.add_job(request_for("One"), priority=2)
    second = await queue.add_job(request_for("Two"), priority=4)
    third = await queue.add_job(request_for("Three"), priority=2)

    assert [job.id for job in queue.get_jobs()] == [second, first, third]
    assert [job.id for job in queue.get_jobs(priority=2)] == [first, third]
    assert [job.id for job in queue.get_jobs(QueueJobState.PENDING, limit=2)] == [second, first]
    assert queue.get_jobs("active") == []

    status = queue.get_status()
    assert status.paused is True
    assert status.queued_jobs == 3
    assert status.active_jobs == 0
    assert await queue.clear() == 3
    assert queue.get_jobs() == []


@pytest.mark.asyncio
async def test_delayed_job_waits_until_scheduled(make_pipeline, job_store, generation_request) -> None:
    driver = StubScriptDriver()
    queue = make_queue(make_pipeline(driver), job_store)

    job_id = await queue.add_job(generation_request, delay=30)
    await asyncio.sleep(0.05)

    job = queue.get_job(job_id)
    assert job is not None and job.scheduled_at is not None
    assert driver.calls == 0
    assert queue.is_processing

    assert await queue.remove_job(job_id) is True
    await queue.wait_until_idle(timeout=5)
    assert not queue.is_processing


@pytest.mark.asyncio
async def test_pause_holds_pending_jobs(make_pipeline, job_store, generation_request) -> None:
    driver = StubScriptDriver()
    queue = make_queue(make_pipeline(driver), job_store)

    queue.pause()
    job_id = await queue.add_job(generation_request)
    await asyncio.sleep(0.05)
    assert driver.calls == 0
    assert (await job_store.get(job_id)).status == JobStatus.PENDING

    queue.resume()
    await queue.wait_until_idle(timeout=5)
    assert (await job_store.get(job_id)).status == JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_clear_refuses_while_jobs_are_active(make_pipeline, job_store, generation_request) -> None:
    driver = GatedScriptDriver()
    queue = make_queue(make_pipeline(driver), job_store)

    await queue.add_job(generation_request)
    await wait_for_condition(lambda: driver.in_flight == 1)

    with pytest.raises(ActiveJobError):
        await queue.clear()

    driver.gate.set()
    await queue.wait_until_idle(timeout=5)


@pytest.mark.asyncio
async def test_retry_job_requeues_failed_job(make_pipeline, job_store, generation_request) -> None:
    driver = StubScriptDriver([ValidationError("Provider rejected the prompt")])
    queue = make_queue(make_pipeline(driver), job_store)

    job_id = await queue.add_job(generation_request, priority=4)
    await queue.wait_until_idle(timeout=5)
    assert (await job_store.get(job_id)).status == JobStatus.FAILED

    assert await queue.retry_job(job_id) == job_id
    await queue.wait_until_idle(timeout=5)

    record = await job_store.get(job_id)
    assert record.status == JobStatus.COMPLETED
    assert record.retry_count == 1
    assert record.priority == 4

    with pytest.raises(QueueError) as exc:
        await queue.retry_job(job_id)
    assert exc.value.status_code == 409

    with pytest.raises(JobNotFoundError):
        await queue.retry_job("missing-job")


@pytest.mark.asyncio
async def test_retry_job_rejects_queued_job(make_pipeline, job_store, generation_request) -> None:
    queue = make_queue(make_pipeline(), job_store)
    queue.pause()
    job_id = await queue.add_job(generation_request)

    with pytest.raises(ActiveJobError):
        await queue.retry_job(job_id)
    await queue.clear()


@pytest.mark.asyncio
async def test_graceful_stop_waits_for_active_jobs(make_pipeline, job_store, generation_request) -> None:
    driver = GatedScriptDriver()
    queue = make_queue(make_pipeline(driver), job_store)

    job_id = await queue.add_job(generation_request)
    await wait_for_condition(lambda: driver.in_flight == 1)

    stopping = asyncio.create_task(queue.stop(graceful=True))
    await asyncio.sleep(0.02)
    assert not stopping.done()

    driver.gate.set()
    await asyncio.wait_for(stopping, 5)
    assert (await job_store.get(job_id)).status == JobStatus.COMPLETED
    assert not queue.is_processing


@pytest.mark.asyncio
async def test_immediate_stop_fails_active_jobs_and_ignores_their_results(
    make_pipeline, job_store, generation_request
) -> None:
    driver = GatedScriptDriver()
    listener = RecordingListener()
    queue = make_queue(make_pipeline(driver), job_store, listeners=[listener])

    job_id = await queue.add_job(generation_request)
    await wait_for_condition(lambda: driver.in_flight == 1)

    await queue.stop(graceful=False)
    record = await job_store.get(job_id)
    assert record.status == JobStatus.FAILED
    assert record.error_message == "Queue stopped"
    assert queue.active == {}
    assert queue.get_metrics().failed_jobs == 1

    # The abandoned run finishes in the background without touching the record
    driver.gate.set()
    await wait_for_condition(lambda: driver.in_flight == 0)
    await asyncio.sleep(0.02)
    record = await job_store.get(job_id)
    assert record.status == JobStatus.FAILED
    assert record.script_generated is False
    assert listener.of("completed") == []


class OutageJobStore(InMemoryJobStore):
    """Accepts creates but refuses every update while ``down`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.down = False
        self.processing_writes = 0

    async def update(self, job_id: str, **fields: Any):
        if fields.get("status") == JobStatus.PROCESSING:
            self.processing_writes += 1
        if self.down:
            raise ConnectionError("store down")
        return await super().update(job_id, **fields)


class HeldUpdateJobStore(InMemoryJobStore):
    """Suspends PENDING writes until ``release`` is set while ``hold`` is on."""

    def __init__(self) -> None:
        super().__init__()
        self.hold = False
        self.waiting = False
        self.release = asyncio.Event()

    async def update(self, job_id: str, **fields: Any):
        if self.hold and fields.get("status") == JobStatus.PENDING:
            self.waiting = True
            await self.release.wait()
        return await super().update(job_id, **fields)


@pytest.mark.asyncio
async def test_immediate_stop_before_dispatched_job_first_runs(make_pipeline, generation_request) -> None:
    store = RecordingJobStore()
    driver = StubScriptDriver()
    queue = make_queue(make_pipeline(driver, job_store=store), store)

    queue.pause()
    job_id = await queue.add_job(generation_request)
    queue.resume()
    while job_id not in queue.active:
        await asyncio.sleep(0)

    await queue.stop(graceful=False)
    await asyncio.sleep(0.05)

    record = await store.get(job_id)
    assert record.status == JobStatus.FAILED
    assert record.error_message == "Queue stopped"
    assert store.status_history[job_id][-1] == JobStatus.FAILED
    assert driver.calls == 0
    assert queue.active == {}


@pytest.mark.asyncio
async def test_store_outage_keeps_attempts_within_budget(make_pipeline) -> None:
    store = OutageJobStore()
    listener = RecordingListener()
    queue = make_queue(make_pipeline(job_store=store), store, retry_base_delay=0.02, listeners=[listener])

    queue.pause()
    job_id = await queue.add_job(request_for("Ana Lopez"))
    store.down = True
    started = time.monotonic()
    queue.resume()
    await queue.wait_until_idle(timeout=5)

    assert store.processing_writes == 3
    # Backoff of 0.04s then 0.08s between the three attempts
    assert time.monotonic() - started >= 0.1
    assert job_id not in queue.jobs
    assert queue.get_metrics().failed_jobs == 1
    assert len(listener.of("failed")) == 1


@pytest.mark.asyncio
async def test_exhausted_job_is_failed_instead_of_dispatched(make_pipeline, job_store, generation_request) -> None:
    driver = StubScriptDriver()
    queue = make_queue(make_pipeline(driver), job_store, max_attempts=2)

    queue.pause()
    job_id = await queue.add_job(generation_request)
    queue.jobs[job_id].attempts = 2
    queue.resume()
    await queue.wait_until_idle(timeout=5)

    assert driver.calls == 0
    assert (await job_store.get(job_id)).status == JobStatus.FAILED
    assert job_id not in queue.jobs


@pytest.mark.asyncio
async def test_retry_job_is_queued_before_record_reads_pending(make_pipeline, generation_request) -> None:
    store = HeldUpdateJobStore()
    driver = StubScriptDriver([ValidationError("Unknown subject")])
    queue = make_queue(make_pipeline(driver, job_store=store), store)

    job_id = await queue.add_job(generation_request)
    await queue.wait_until_idle(timeout=5)
    assert (await store.get(job_id)).status == JobStatus.FAILED

    store.hold = True
    retrying = asyncio.create_task(queue.retry_job(job_id))
    await wait_for_condition(lambda: store.waiting)

    assert queue.get_job(job_id) is not None
    with pytest.raises(ActiveJobError):
        await queue.remove_job(job_id)
    await asyncio.sleep(0.03)
    assert driver.calls == 1

    store.release.set()
    await retrying
    await queue.wait_until_idle(timeout=5)
    record = await store.get(job_id)
    assert record.status == JobStatus.COMPLETED
    assert record.retry_count == 1


@pytest.mark.asyncio
async def test_add_job_after_stop_restarts_processing(make_pipeline, job_store, generation_request) -> None:
    queue = make_queue(make_pipeline(), job_store)
    await queue.stop()

    job_id = await queue.add_job(generation_request)
    await queue.wait_until_idle(timeout=5)
    assert (await job_store.get(job_id)).status == JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_queue(make_pipeline, job_store, generation_request) -> None:
    class BrokenListener(QueueListener):
        async def on_job_added(self, job):
            raise RuntimeError("listener down")

        async def on_job_completed(self, job, result):
            raise RuntimeError("listener down")

    queue = make_queue(make_pipeline(), job_store, listeners=[BrokenListener()])
    job_id = await queue.add_job(generation_request)
    await queue.wait_until_idle(timeout=5)
    assert (await job_store.get(job_id)).status == JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_backoff_doubles_per_attempt(make_pipeline, job_store) -> None:
    queue = make_queue(make_pipeline(), job_store, retry_base_delay=2.0)
    assert queue._backoff(1) == 4.0
    assert queue._backoff(2) == 8.0

    jittered = make_queue(make_pipeline(), job_store, retry_base_delay=2.0, jitter=True)
    assert 4.0 <= jittered._backoff(1) <= 6.0
