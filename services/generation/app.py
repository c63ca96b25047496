"""Generation service API endpoints: thin adapters over the generation queue."""

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from services.generation.factory import get_queue
from services.generation.queue import GenerationQueue, QueueJobState
from shared.errors import GenerationError, JobNotFoundError, QueueError
from shared.models import (
    APIResponse,
    GenerateJobRequest,
    GenerateJobResponse,
    JobQuery,
    JobRecord,
    JobStatus,
    JobStatusResponse,
    QueueJob,
)
from shared.utils import config, setup_logging

logger = setup_logging("generation-service")

app = FastAPI(
    title="Generation Service",
    description="Queued generation of narrated sports reels",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get("allowed_origins", ["*"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _http_error(error: GenerationError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.to_dict())


@app.get("/health")
async def health_check():
    """Health check endpoint for the generation service."""
    return APIResponse(message="Generation Service is healthy")


@app.post("/generate", response_model=GenerateJobResponse, status_code=202)
async def create_generation_job(
    request: GenerateJobRequest,
    queue: GenerationQueue = Depends(get_queue),
) -> GenerateJobResponse:
    """Enqueue a reel generation job and return immediately with its id."""
    try:
        job_id = await queue.add_job(
            request.to_generation_request(),
            request.priority,
            delay=request.delay,
            max_attempts=request.max_attempts,
        )
    except GenerationError as e:
        logger.error(f"Failed to enqueue generation for {request.subject.name}: {e.message}")
        raise _http_error(e) from e

    logger.info(f"Queued generation job {job_id} for {request.subject.name}")
    return GenerateJobResponse(job_id=job_id, status=JobStatus.PENDING)


@app.get("/generate/status", response_model=JobStatusResponse)
async def get_generation_status(
    job_id: str = Query(..., min_length=1),
    queue: GenerationQueue = Depends(get_queue),
) -> JobStatusResponse:
    """Persisted job state merged with live queue details."""
    record = await queue.job_store.get(job_id)
    if record is None:
        raise _http_error(JobNotFoundError(job_id))

    queued_job = queue.get_job(job_id)
    return JobStatusResponse(
        job=record,
        queued=queued_job is not None,
        active=job_id in queue.active,
        attempts=queued_job.attempts if queued_job else None,
        progress=queued_job.progress if queued_job else None,
    )


@app.delete("/generate", response_model=APIResponse)
async def cancel_generation_job(
    job_id: str = Query(..., min_length=1),
    queue: GenerationQueue = Depends(get_queue),
) -> APIResponse:
    """Cancel a job that has not started executing."""
    try:
        removed = await queue.remove_job(job_id)
        if not removed:
            record = await queue.job_store.get(job_id)
            if record is None:
                raise JobNotFoundError(job_id)
            raise QueueError(f"Job {job_id} is no longer queued ({record.status.value})", 409)
    except GenerationError as e:
        raise _http_error(e) from e

    return APIResponse(message=f"Job {job_id} cancelled", data={"job_id": job_id, "status": JobStatus.CANCELLED})


@app.post("/generate/{job_id}/retry", response_model=GenerateJobResponse, status_code=202)
async def retry_generation_job(
    job_id: str,
    priority: int | None = Query(default=None),
    queue: GenerationQueue = Depends(get_queue),
) -> GenerateJobResponse:
    """Re-enqueue a failed or cancelled job."""
    try:
        await queue.retry_job(job_id, priority=priority)
    except GenerationError as e:
        raise _http_error(e) from e
    return GenerateJobResponse(job_id=job_id, status=JobStatus.PENDING)


@app.get("/generate/queue")
async def get_queue_overview(queue: GenerationQueue = Depends(get_queue)) -> dict:
    return {
        "status": queue.get_status().model_dump(),
        "metrics": queue.get_metrics().model_dump(),
    }


@app.get("/generate/jobs", response_model=list[QueueJob])
async def list_queued_jobs(
    state: QueueJobState | None = Query(default=None),
    priority: int | None = Query(default=None, ge=1),
    limit: int | None = Query(default=None, ge=1, le=500),
    queue: GenerationQueue = Depends(get_queue),
) -> list[QueueJob]:
    """In-memory queue snapshots in scheduling order."""
    return queue.get_jobs(state, priority=priority, limit=limit)


@app.get("/generate/history", response_model=list[JobRecord])
async def list_job_history(
    status: JobStatus | None = Query(default=None),
    subject_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    queue: GenerationQueue = Depends(get_queue),
) -> list[JobRecord]:
    """Persisted job records, newest first."""
    return await queue.job_store.query(JobQuery(status=status, subject_id=subject_id, limit=limit))
