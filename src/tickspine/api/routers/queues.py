from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Path, Query

from tickspine.api.deps import RuntimeDep
from tickspine.api.schemas import CleanResponse, JobSchema, QueueCountsSchema, RemoveResponse, RetryResponse
from tickspine.core.logging import get_logger
from tickspine.queue.models import JobState

logger = get_logger(__name__)

router = APIRouter()


@router.get("/queues", response_model=list[QueueCountsSchema])
def list_queues(runtime: RuntimeDep) -> list[QueueCountsSchema]:
    """Job counts per state for every configured queue."""
    return [
        QueueCountsSchema(name=queue.name, **queue.counts_by_state().to_dict())
        for queue in runtime.queues
    ]


@router.get("/queues/{name}/failed", response_model=list[JobSchema])
def list_failed_jobs(
    runtime: RuntimeDep,
    name: str = Path(..., description="Queue name"),
    limit: int = Query(10, ge=1, le=500, description="Maximum jobs to return"),
) -> list[JobSchema]:
    """Most recent terminally failed jobs in a queue."""
    queue = runtime.queues.get(name)
    return [JobSchema.from_job(job) for job in queue.list_jobs(JobState.FAILED, limit)]


@router.get("/queues/{name}/jobs/{job_id}", response_model=JobSchema)
def get_job(
    runtime: RuntimeDep,
    name: str = Path(..., description="Queue name"),
    job_id: str = Path(..., description="Job ID"),
) -> JobSchema:
    return JobSchema.from_job(runtime.queues.get(name).get(job_id))


@router.delete("/queues/{name}/jobs/{job_id}", response_model=RemoveResponse)
def remove_job(
    runtime: RuntimeDep,
    name: str = Path(..., description="Queue name"),
    job_id: str = Path(..., description="Job ID"),
) -> RemoveResponse:
    """Delete one job. 409 while the job is active."""
    runtime.queues.get(name).remove(job_id)
    logger.info("job_removed", queue=name, job_id=job_id)
    return RemoveResponse(queue=name, job_id=job_id)


@router.post("/queue/{name}/job/{job_id}/retry", response_model=RetryResponse)
def retry_job(
    runtime: RuntimeDep,
    name: str = Path(..., description="Queue name"),
    job_id: str = Path(..., description="Job ID"),
) -> RetryResponse:
    """Return a terminally failed job to ``waiting`` with a fresh attempt budget.

    404 for an unknown queue or job, 409 when the job is not failed.
    """
    job = runtime.queues.get(name).retry(job_id)
    logger.info("job_retried", queue=name, job_id=job_id)
    return RetryResponse(job=JobSchema.from_job(job))


@router.delete("/queues/{name}/completed", response_model=CleanResponse)
def clear_completed(
    runtime: RuntimeDep,
    name: str = Path(..., description="Queue name"),
) -> CleanResponse:
    """Delete every completed job in a queue, regardless of age."""
    queue = runtime.queues.get(name)
    removed = queue.clean(runtime.clock.now() + timedelta(microseconds=1), JobState.COMPLETED)
    logger.info("completed_jobs_cleared", queue=name, removed=removed)
    return CleanResponse(queue=name, removed=removed)
