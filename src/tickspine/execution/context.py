"""What a handler receives when the worker pool runs one of its jobs."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeAlias

from tickspine.queue.models import Job


@dataclass(frozen=True)
class JobContext:
    """Per-execution view of a claimed job.

    Attributes:
        job: Snapshot of the job as claimed (state ``active``)
        report_progress: Records a 0..100 progress value on the queue
    """

    job: Job
    report_progress: Callable[[int], None]

    @property
    def payload(self) -> dict[str, Any]:
        return self.job.payload

    @property
    def attempt(self) -> int:
        """1-based number of the attempt now running."""
        return self.job.attempts + 1


JobHandler: TypeAlias = Callable[[JobContext], Any | Awaitable[Any]]
