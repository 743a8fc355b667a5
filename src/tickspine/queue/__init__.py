"""Named job queues with retry and backoff bookkeeping."""

from tickspine.queue.backoff import ExponentialBackoff, FixedBackoff, RetryStrategy, retry_delay
from tickspine.queue.memory import InMemoryJobQueue
from tickspine.queue.models import (
    BackoffPolicy,
    BackoffType,
    Job,
    JobOptions,
    JobState,
    QueueCounts,
    VALID_TRANSITIONS,
    validate_transition,
)
from tickspine.queue.protocol import JobQueue
from tickspine.queue.registry import QueueRegistry
from tickspine.queue.sqlite import SQLiteJobQueue

__all__ = [
    "BackoffPolicy",
    "BackoffType",
    "ExponentialBackoff",
    "FixedBackoff",
    "InMemoryJobQueue",
    "Job",
    "JobOptions",
    "JobQueue",
    "JobState",
    "QueueCounts",
    "QueueRegistry",
    "RetryStrategy",
    "SQLiteJobQueue",
    "VALID_TRANSITIONS",
    "retry_delay",
    "validate_transition",
]
