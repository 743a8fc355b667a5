"""In-process job queue.

Used by tests and by single-process deployments that configure
``database_path=":memory:"``. All state lives in a dict guarded by one lock;
callers always receive copies of the stored jobs.
"""

from __future__ import annotations

import itertools
import logging
import threading
from datetime import datetime
from typing import Any

from tickspine.core.clock import Clock, SystemClock
from tickspine.core.errors import InvalidTransitionError, JobNotFoundError
from tickspine.queue.models import Job, JobOptions, JobState, QueueCounts, validate_transition
from tickspine.queue.protocol import (
    apply_claim,
    apply_completion,
    apply_failure,
    apply_operator_retry,
    apply_requeue,
    check_clean_state,
    clamp_progress,
)

logger = logging.getLogger(__name__)


class InMemoryJobQueue:
    """Thread-safe in-memory :class:`~tickspine.queue.protocol.JobQueue`."""

    def __init__(self, name: str, clock: Clock | None = None) -> None:
        self.name = name
        self._clock = clock or SystemClock()
        self._jobs: dict[str, Job] = {}
        self._seq = itertools.count(1)
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"InMemoryJobQueue({self.name!r}, jobs={len(self._jobs)})"

    # ------------------------------------------------------------------ #
    # Producer side
    # ------------------------------------------------------------------ #

    def enqueue(self, job_name: str, payload: dict[str, Any], options: JobOptions | None = None) -> Job:
        options = options or JobOptions()
        now = self._clock.now()
        job = Job(
            queue=self.name,
            name=job_name,
            payload=dict(payload),
            max_attempts=options.max_attempts,
            backoff=options.backoff,
            created_at=now,
            available_at=now,
        )
        with self._lock:
            job.seq = next(self._seq)
            self._jobs[job.id] = job
            return job.copy()

    # ------------------------------------------------------------------ #
    # Consumer side
    # ------------------------------------------------------------------ #

    def dequeue(self, limit: int) -> list[Job]:
        if limit <= 0:
            return []
        now = self._clock.now()
        with self._lock:
            self._promote_delayed(now)
            eligible = sorted(
                (
                    j
                    for j in self._jobs.values()
                    if j.state is JobState.WAITING and (j.available_at is None or j.available_at <= now)
                ),
                key=lambda j: (j.available_at or now, j.seq),
            )
            claimed = []
            for job in eligible[:limit]:
                apply_claim(job, now)
                claimed.append(job.copy())
            return claimed

    def report_progress(self, job_id: str, percent: int) -> None:
        with self._lock:
            self._require(job_id).progress = clamp_progress(percent)

    def complete(self, job_id: str, result: Any = None) -> Job:
        with self._lock:
            job = self._require(job_id)
            apply_completion(job, result, self._clock.now())
            return job.copy()

    def fail(self, job_id: str, error: BaseException | str, *, retryable: bool = True) -> Job:
        with self._lock:
            job = self._require(job_id)
            apply_failure(job, error, self._clock.now(), retryable)
            return job.copy()

    def release(self, job_id: str) -> Job:
        with self._lock:
            job = self._require(job_id)
            apply_requeue(job, self._clock.now())
            return job.copy()

    # ------------------------------------------------------------------ #
    # Inspection / maintenance
    # ------------------------------------------------------------------ #

    def counts_by_state(self) -> QueueCounts:
        with self._lock:
            tally = {state: 0 for state in JobState}
            for job in self._jobs.values():
                tally[job.state] += 1
        return QueueCounts(
            waiting=tally[JobState.WAITING],
            active=tally[JobState.ACTIVE],
            completed=tally[JobState.COMPLETED],
            failed=tally[JobState.FAILED],
            delayed=tally[JobState.DELAYED],
        )

    def clean(self, older_than: datetime, state: JobState) -> int:
        check_clean_state(state)
        with self._lock:
            doomed = [
                job_id
                for job_id, job in self._jobs.items()
                if job.state is state and job.finished_at is not None and job.finished_at < older_than
            ]
            for job_id in doomed:
                del self._jobs[job_id]
        if doomed:
            logger.debug("Cleaned %d %s job(s) from %s", len(doomed), state.value, self.name)
        return len(doomed)

    def retry(self, job_id: str) -> Job:
        with self._lock:
            job = self._require(job_id)
            apply_operator_retry(job, self._clock.now())
            job.seq = next(self._seq)
            return job.copy()

    def get(self, job_id: str) -> Job:
        with self._lock:
            return self._require(job_id).copy()

    def list_jobs(self, state: JobState, limit: int = 10) -> list[Job]:
        with self._lock:
            matching = sorted(
                (j for j in self._jobs.values() if j.state is state),
                key=lambda j: j.seq,
                reverse=True,
            )
            return [j.copy() for j in matching[:limit]]

    def remove(self, job_id: str) -> None:
        with self._lock:
            job = self._require(job_id)
            if job.state is JobState.ACTIVE:
                raise InvalidTransitionError(job.state.value, "removed", job_id)
            del self._jobs[job_id]

    def requeue_stalled(self, older_than: datetime) -> int:
        now = self._clock.now()
        with self._lock:
            stalled = [
                j
                for j in self._jobs.values()
                if j.state is JobState.ACTIVE and j.started_at is not None and j.started_at < older_than
            ]
            for job in stalled:
                apply_requeue(job, now)
        for job in stalled:
            logger.warning("Requeued stalled job %s (%s) in %s", job.id, job.name, self.name)
        return len(stalled)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _require(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(self.name, job_id)
        return job

    def _promote_delayed(self, now: datetime) -> None:
        for job in self._jobs.values():
            if job.state is JobState.DELAYED and job.available_at is not None and job.available_at <= now:
                validate_transition(job.state, JobState.WAITING, job.id)
                job.state = JobState.WAITING
