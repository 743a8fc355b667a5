"""Job execution: handler registry and bounded worker pools."""

from tickspine.execution.context import JobContext, JobHandler
from tickspine.execution.registry import HandlerRegistry
from tickspine.execution.worker import WorkerPool, WorkerStats

__all__ = [
    "HandlerRegistry",
    "JobContext",
    "JobHandler",
    "WorkerPool",
    "WorkerStats",
]
