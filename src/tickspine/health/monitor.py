"""
Health monitor: periodic queue sampling plus completed-job cleanup.

Classification (per queue, first match wins):

    failed  > failed_threshold   (100)   ──▶ unhealthy
    waiting > waiting_threshold  (1000)  ──▶ degraded
    otherwise                             ──▶ healthy

The global status is the least healthy per-queue status. Sampling and
cleanup run on two independent interval timers; a failure to read or clean
one queue is logged and never stops the others.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Literal

from pydantic import BaseModel, Field

from tickspine.core.clock import Clock, SystemClock
from tickspine.core.errors import describe_error
from tickspine.core.logging import get_logger
from tickspine.core.timers import IntervalTimer
from tickspine.queue.models import JobState, QueueCounts
from tickspine.queue.registry import QueueRegistry

logger = get_logger(__name__)

HealthStatus = Literal["healthy", "degraded", "unhealthy"]

_SEVERITY: dict[str, int] = {"healthy": 0, "degraded": 1, "unhealthy": 2}


# ── Response Models ──────────────────────────────────────────────────────


class QueueHealth(BaseModel):
    """Classified counts for one queue."""

    name: str
    status: HealthStatus
    waiting: int = 0
    active: int = 0
    failed: int = 0
    error: str | None = None


class HealthSnapshot(BaseModel):
    """Point-in-time health of every queue. Never persisted.

    Fields
    ──────
    status    : worst per-queue status
    queues    : per-queue breakdown
    timestamp : ISO-8601 UTC
    """

    status: HealthStatus = "healthy"
    queues: list[QueueHealth] = Field(default_factory=list)
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())


@dataclass(frozen=True)
class HealthThresholds:
    failed: int = 100
    waiting: int = 1000


# ── Classification ───────────────────────────────────────────────────────


def classify_queue(counts: QueueCounts, thresholds: HealthThresholds | None = None) -> HealthStatus:
    thresholds = thresholds or HealthThresholds()
    if counts.failed > thresholds.failed:
        return "unhealthy"
    if counts.waiting > thresholds.waiting:
        return "degraded"
    return "healthy"


def overall_status(statuses: list[HealthStatus]) -> HealthStatus:
    """Least healthy of *statuses*; ``healthy`` for an empty list."""
    worst: HealthStatus = "healthy"
    for status in statuses:
        if _SEVERITY[status] > _SEVERITY[worst]:
            worst = status
    return worst


# ── Monitor ──────────────────────────────────────────────────────────────


class HealthMonitor:
    """Samples queue counts and prunes old completed jobs on timers.

    Example:
        >>> monitor = HealthMonitor(queues)
        >>> monitor.start()
        >>> monitor.get_health_status().status
        'healthy'
    """

    def __init__(
        self,
        queues: QueueRegistry,
        thresholds: HealthThresholds | None = None,
        sample_interval: float = 300.0,
        cleanup_interval: float = 3600.0,
        retention: timedelta = timedelta(hours=24),
        clock: Clock | None = None,
    ) -> None:
        self._queues = queues
        self._thresholds = thresholds or HealthThresholds()
        self._retention = retention
        self._clock = clock or SystemClock()
        self._sample_timer = IntervalTimer("health-sample", self.sample, sample_interval)
        self._cleanup_timer = IntervalTimer("queue-cleanup", self.cleanup, cleanup_interval)
        self._last_snapshot: HealthSnapshot | None = None
        self._last_cleanup: dict[str, int] = {}
        self._lock = threading.Lock()

    @property
    def thresholds(self) -> HealthThresholds:
        return self._thresholds

    # === Sampling ===

    def get_health_status(self) -> HealthSnapshot:
        """Read every queue's counts now and classify them. Read-only."""
        rows: list[QueueHealth] = []
        for queue in self._queues:
            try:
                counts = queue.counts_by_state()
            except Exception as e:
                logger.error("health_counts_failed", queue=queue.name, error=describe_error(e))
                rows.append(QueueHealth(name=queue.name, status="unhealthy", error=describe_error(e)))
                continue
            rows.append(
                QueueHealth(
                    name=queue.name,
                    status=classify_queue(counts, self._thresholds),
                    waiting=counts.waiting,
                    active=counts.active,
                    failed=counts.failed,
                )
            )
        return HealthSnapshot(
            status=overall_status([row.status for row in rows]),
            queues=rows,
            timestamp=self._clock.now().isoformat(),
        )

    def sample(self) -> HealthSnapshot:
        """Timer callback: take a snapshot and warn about pressure."""
        snapshot = self.get_health_status()
        for row in snapshot.queues:
            if row.error is not None:
                continue
            if row.waiting > self._thresholds.waiting:
                logger.warning("queue_backlog_high", queue=row.name, waiting=row.waiting)
            if row.failed > self._thresholds.failed:
                logger.warning("queue_failures_high", queue=row.name, failed=row.failed)
        with self._lock:
            self._last_snapshot = snapshot
        logger.debug("health_sampled", status=snapshot.status)
        return snapshot

    @property
    def last_snapshot(self) -> HealthSnapshot | None:
        with self._lock:
            return self._last_snapshot

    # === Cleanup ===

    def cleanup(self) -> dict[str, int]:
        """Remove completed jobs older than the retention window from every queue."""
        cutoff = self._clock.now() - self._retention
        removed: dict[str, int] = {}
        for queue in self._queues:
            try:
                removed[queue.name] = queue.clean(cutoff, JobState.COMPLETED)
            except Exception as e:
                logger.error("queue_cleanup_failed", queue=queue.name, error=describe_error(e))
                continue
            if removed[queue.name]:
                logger.info("queue_cleaned", queue=queue.name, removed=removed[queue.name])
        with self._lock:
            self._last_cleanup = dict(removed)
        return removed

    @property
    def last_cleanup(self) -> dict[str, int]:
        with self._lock:
            return dict(self._last_cleanup)

    # === Lifecycle ===

    def start(self) -> None:
        self._sample_timer.start()
        self._cleanup_timer.start()
        logger.info(
            "health_monitor_started",
            sample_interval=self._sample_timer.interval_seconds,
            cleanup_interval=self._cleanup_timer.interval_seconds,
        )

    def stop(self) -> None:
        self._sample_timer.stop()
        self._cleanup_timer.stop()
        logger.info("health_monitor_stopped")

    @property
    def is_running(self) -> bool:
        return self._sample_timer.is_running and self._cleanup_timer.is_running
