"""Queue health sampling, classification and cleanup."""

from tickspine.health.monitor import (
    HealthMonitor,
    HealthSnapshot,
    HealthStatus,
    HealthThresholds,
    QueueHealth,
    classify_queue,
    overall_status,
)

__all__ = [
    "HealthMonitor",
    "HealthSnapshot",
    "HealthStatus",
    "HealthThresholds",
    "QueueHealth",
    "classify_queue",
    "overall_status",
]
