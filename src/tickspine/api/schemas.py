"""Response models for the operator API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from tickspine.queue.models import Job


class ProblemDetail(BaseModel):
    """RFC 7807 error envelope used for every non-2xx response.

    Error Codes:
        - ``NOT_FOUND`` (404): unknown queue or job
        - ``CONFLICT`` (409): job is not in a state that allows the action
        - ``UNAVAILABLE`` (503): queue store unreachable
        - ``INTERNAL`` (500): unexpected server error
    """

    type: str = "about:blank"
    title: str
    status: int
    detail: str = ""
    instance: str = ""
    code: str = "INTERNAL"


class QueueCountsSchema(BaseModel):
    name: str
    waiting: int
    active: int
    completed: int
    failed: int
    delayed: int


class JobSchema(BaseModel):
    id: str
    name: str
    queue: str
    state: str
    payload: dict[str, Any] = Field(default_factory=dict)
    attempts: int
    max_attempts: int
    progress: int
    last_error: str | None = None
    created_at: str | None = None
    finished_at: str | None = None

    @classmethod
    def from_job(cls, job: Job) -> JobSchema:
        return cls(
            id=job.id,
            name=job.name,
            queue=job.queue,
            state=job.state.value,
            payload=job.payload,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            progress=job.progress,
            last_error=job.last_error,
            created_at=job.created_at.isoformat() if job.created_at else None,
            finished_at=job.finished_at.isoformat() if job.finished_at else None,
        )


class RetryResponse(BaseModel):
    success: bool = True
    job: JobSchema


class CleanResponse(BaseModel):
    success: bool = True
    queue: str
    removed: int


class RemoveResponse(BaseModel):
    success: bool = True
    queue: str
    job_id: str


class TriggerStatusSchema(BaseModel):
    id: str
    schedule: str
    queue: str
    job_name: str
    timeframe: str | None = None
    next_fire_at: str
    last_fired_at: str | None = None
    runs: int
    enqueued: int
    failed_enqueues: int
    enumeration_failures: int
    last_error: str | None = None


class SchedulerStatusResponse(BaseModel):
    running: bool
    triggers: list[TriggerStatusSchema]


class TriggerRunResponse(BaseModel):
    trigger_id: str
    fired_at: str
    entities: int
    enqueued: int
    failed: list[dict[str, str]] = Field(default_factory=list)
    error: str | None = None
