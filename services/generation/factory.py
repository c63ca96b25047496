"""Composition root: builds the process-wide queue from configuration."""

from __future__ import annotations

from services.generation.job_store import InMemoryJobStore, JobStore, SqlAlchemyJobStore
from services.generation.listeners import LoggingQueueListener, QueueListener, WebSocketQueueListener
from services.generation.pipeline import GenerationPipeline
from services.generation.queue import GenerationQueue
from services.media.drivers import create_video_composer
from services.media.images import ImageResolver
from services.script_generation.drivers import create_script_driver
from services.storage.drivers import create_object_store
from services.tts_service.drivers import create_speech_driver
from services.tts_service.service import SpeechService
from services.websocket_progress import websocket_manager
from shared.utils import config, setup_logging

logger = setup_logging("generation-factory")

_queue: GenerationQueue | None = None


def build_job_store(kind: str | None = None) -> JobStore:
    kind = kind or config.get("job_store", "database")
    if kind == "memory":
        return InMemoryJobStore()
    if kind == "redis":
        from services.generation.redis_store import RedisJobStore

        return RedisJobStore(config.get("redis_url"))
    if kind == "database":
        from database import get_session_factory, init_database

        init_database()
        return SqlAlchemyJobStore(get_session_factory())
    raise ValueError(f"Job store '{kind}' is not configured")


def build_pipeline(job_store: JobStore) -> GenerationPipeline:
    return GenerationPipeline(
        script_driver=create_script_driver(),
        speech_service=SpeechService(create_speech_driver()),
        image_resolver=ImageResolver(),
        composer=create_video_composer(),
        object_store=create_object_store(),
        job_store=job_store,
    )


def build_queue(
    job_store: JobStore | None = None,
    pipeline: GenerationPipeline | None = None,
    listeners: list[QueueListener] | None = None,
) -> GenerationQueue:
    job_store = job_store or build_job_store()
    pipeline = pipeline or build_pipeline(job_store)
    if listeners is None:
        listeners = [LoggingQueueListener(), WebSocketQueueListener(websocket_manager)]
    queue = GenerationQueue(pipeline, job_store, listeners=listeners)
    logger.info(
        f"Generation queue ready: concurrency={queue.max_concurrency}, attempts={queue.max_attempts}, "
        f"store={type(job_store).__name__}"
    )
    return queue


def get_queue() -> GenerationQueue:
    """Process-wide queue, built on first use."""
    global _queue
    if _queue is None:
        _queue = build_queue()
    return _queue


async def shutdown_queue() -> None:
    global _queue
    if _queue is not None:
        await _queue.stop(graceful=True)
        _queue = None
