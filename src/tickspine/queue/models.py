"""
Job and queue data model.

State machine:
    ::

        ┌─────────┐  dequeue   ┌────────┐  complete  ┌───────────┐
        │ waiting │ ─────────▶ │ active │ ─────────▶ │ completed │
        └─────────┘            └────────┘            └───────────┘
             ▲  ▲                │   │ fail (attempts < max)
             │  │   stall        │   ▼
             │  └────────────────┘ ┌─────────┐
             │      delay expired  │ delayed │
             ├──────────────────── └─────────┘
             │                        │ fail (attempts == max)
             │    operator retry   ┌────────┐
             └──────────────────── │ failed │
                                   └────────┘

    ``completed`` is terminal. ``failed`` is terminal except for an explicit
    operator retry.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from tickspine.core.errors import InvalidTransitionError


class JobState(str, Enum):
    """Lifecycle state of a job."""

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    DELAYED = "delayed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES: frozenset[JobState] = frozenset({JobState.COMPLETED, JobState.FAILED})

VALID_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.WAITING: frozenset({JobState.ACTIVE}),
    JobState.ACTIVE: frozenset(
        {JobState.COMPLETED, JobState.FAILED, JobState.DELAYED, JobState.WAITING}
    ),
    JobState.DELAYED: frozenset({JobState.WAITING}),
    JobState.FAILED: frozenset({JobState.WAITING}),
    JobState.COMPLETED: frozenset(),
}


def validate_transition(current: JobState, target: JobState, job_id: str | None = None) -> None:
    """Raise :class:`InvalidTransitionError` unless ``current -> target`` is allowed."""
    if target not in VALID_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current.value, target.value, job_id)


class BackoffType(str, Enum):
    EXPONENTIAL = "exponential"
    FIXED = "fixed"


@dataclass(frozen=True)
class BackoffPolicy:
    """Retry delay policy attached to each job.

    Attributes:
        type: ``exponential`` (``delay_ms * 2**(attempt-1)``) or ``fixed``
        delay_ms: Base delay in milliseconds
    """

    type: BackoffType = BackoffType.EXPONENTIAL
    delay_ms: int = 2000

    def __post_init__(self) -> None:
        if self.delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "delay_ms": self.delay_ms}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BackoffPolicy:
        return cls(type=BackoffType(data.get("type", "exponential")), delay_ms=int(data.get("delay_ms", 2000)))


@dataclass(frozen=True)
class JobOptions:
    """Per-job enqueue options."""

    max_attempts: int = 1
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")


# ── Structured status view ───────────────────────────────────────────────


@dataclass(frozen=True)
class Waiting:
    pass


@dataclass(frozen=True)
class Active:
    started_at: datetime | None


@dataclass(frozen=True)
class Completed:
    finished_at: datetime | None


@dataclass(frozen=True)
class Failed:
    attempt: int
    max_attempts: int
    error: str | None


@dataclass(frozen=True)
class Delayed:
    until: datetime


JobStatus = Waiting | Active | Completed | Failed | Delayed


def new_job_id() -> str:
    """Time-sortable job id: 12 hex chars of epoch millis + 12 random hex chars."""
    return f"{int(time.time() * 1000):012x}{secrets.token_hex(6)}"


@dataclass
class Job:
    """A unit of work in a named queue.

    The payload is opaque to the queue; only handlers interpret it.
    """

    queue: str
    name: str
    payload: dict[str, Any]
    id: str = field(default_factory=new_job_id)
    state: JobState = JobState.WAITING
    attempts: int = 0
    max_attempts: int = 1
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)
    progress: int = 0
    created_at: datetime | None = None
    available_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    last_error: str | None = None
    result: Any = None
    seq: int = 0

    @property
    def status(self) -> JobStatus:
        """Structured view of ``state`` with the data relevant to it."""
        if self.state is JobState.WAITING:
            return Waiting()
        if self.state is JobState.ACTIVE:
            return Active(self.started_at)
        if self.state is JobState.COMPLETED:
            return Completed(self.finished_at)
        if self.state is JobState.DELAYED:
            if self.available_at is None:
                raise ValueError(f"Delayed job {self.id} has no available_at")
            return Delayed(self.available_at)
        return Failed(self.attempts, self.max_attempts, self.last_error)

    def copy(self) -> Job:
        return replace(self, payload=dict(self.payload))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "queue": self.queue,
            "name": self.name,
            "payload": self.payload,
            "state": self.state.value,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "backoff": self.backoff.to_dict(),
            "progress": self.progress,
            "created_at": _iso(self.created_at),
            "available_at": _iso(self.available_at),
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
            "last_error": self.last_error,
            "result": self.result,
        }


@dataclass(frozen=True)
class QueueCounts:
    """Number of jobs per state in one queue."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "waiting": self.waiting,
            "active": self.active,
            "completed": self.completed,
            "failed": self.failed,
            "delayed": self.delayed,
        }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
