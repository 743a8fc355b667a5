"""Queue protocol shared by every job store.

Implementations must give at-least-once delivery: a job is handed to at
most one consumer per ``dequeue`` claim, but a crashed consumer's job will
be delivered again after stall recovery.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from tickspine.core.errors import InvalidTransitionError, describe_error
from tickspine.queue.backoff import retry_delay
from tickspine.queue.models import Job, JobOptions, JobState, QueueCounts, validate_transition


@runtime_checkable
class JobQueue(Protocol):
    """A named FIFO collection of jobs with retry/backoff bookkeeping."""

    name: str

    def enqueue(self, job_name: str, payload: dict[str, Any], options: JobOptions | None = None) -> Job:
        """Persist a new waiting job. Raises ``PersistenceError`` if the store is down."""
        ...

    def dequeue(self, limit: int) -> list[Job]:
        """Claim up to *limit* eligible jobs, oldest first, marking them active."""
        ...

    def report_progress(self, job_id: str, percent: int) -> None:
        """Record handler progress, clamped to 0..100."""
        ...

    def complete(self, job_id: str, result: Any = None) -> Job:
        """Mark an active job completed."""
        ...

    def fail(self, job_id: str, error: BaseException | str, *, retryable: bool = True) -> Job:
        """Record a failed attempt; schedules a retry or marks the job failed.

        With ``retryable=False`` the job fails terminally regardless of the
        attempts left.
        """
        ...

    def release(self, job_id: str) -> Job:
        """Return a claimed job to waiting without counting an attempt."""
        ...

    def counts_by_state(self) -> QueueCounts:
        ...

    def clean(self, older_than: datetime, state: JobState) -> int:
        """Delete terminal jobs in *state* finished before *older_than*."""
        ...

    def retry(self, job_id: str) -> Job:
        """Operator retry of a terminally failed job."""
        ...

    def get(self, job_id: str) -> Job:
        ...

    def list_jobs(self, state: JobState, limit: int = 10) -> list[Job]:
        ...

    def remove(self, job_id: str) -> None:
        """Delete one job. Active jobs cannot be removed."""
        ...

    def requeue_stalled(self, older_than: datetime) -> int:
        """Return active jobs started before *older_than* to waiting."""
        ...


# ── Transition helpers shared by the stores ──────────────────────────────


def clamp_progress(percent: int | float) -> int:
    return max(0, min(100, int(percent)))


def error_text(error: BaseException | str) -> str:
    return error if isinstance(error, str) else describe_error(error)


def apply_claim(job: Job, now: datetime) -> None:
    validate_transition(job.state, JobState.ACTIVE, job.id)
    job.state = JobState.ACTIVE
    job.started_at = now
    job.finished_at = None


def apply_completion(job: Job, result: Any, now: datetime) -> None:
    validate_transition(job.state, JobState.COMPLETED, job.id)
    job.state = JobState.COMPLETED
    job.result = result
    job.progress = 100
    job.finished_at = now


def apply_failure(job: Job, error: BaseException | str, now: datetime, retryable: bool = True) -> None:
    """Count the attempt, then either delay for backoff or fail terminally."""
    if job.state is not JobState.ACTIVE:
        raise InvalidTransitionError(job.state.value, JobState.FAILED.value, job.id)
    job.attempts += 1
    job.last_error = error_text(error)
    if retryable and job.attempts < job.max_attempts:
        validate_transition(job.state, JobState.DELAYED, job.id)
        job.state = JobState.DELAYED
        job.available_at = now + retry_delay(job.backoff, job.attempts)
    else:
        validate_transition(job.state, JobState.FAILED, job.id)
        job.state = JobState.FAILED
        job.finished_at = now


def apply_operator_retry(job: Job, now: datetime) -> None:
    if job.state is not JobState.FAILED:
        raise InvalidTransitionError(job.state.value, JobState.WAITING.value, job.id)
    job.state = JobState.WAITING
    job.attempts = 0
    job.last_error = None
    job.progress = 0
    job.result = None
    job.started_at = None
    job.finished_at = None
    job.available_at = now


def apply_requeue(job: Job, now: datetime) -> None:
    """Return an active job to waiting. The attempt counter is left alone."""
    if job.state is not JobState.ACTIVE:
        raise InvalidTransitionError(job.state.value, JobState.WAITING.value, job.id)
    job.state = JobState.WAITING
    job.started_at = None
    job.available_at = now


def check_clean_state(state: JobState) -> None:
    if not state.is_terminal:
        raise ValueError(f"clean() only accepts terminal states, got '{state.value}'")
