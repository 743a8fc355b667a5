"""Tests for queue health classification, sampling and cleanup."""

import threading
from datetime import timedelta

import pytest

from tickspine.health.monitor import (
    HealthMonitor,
    HealthThresholds,
    classify_queue,
    overall_status,
)
from tickspine.queue.memory import InMemoryJobQueue
from tickspine.queue.models import JobState, QueueCounts
from tickspine.queue.registry import QueueRegistry


class FixedCountsQueue:
    """Queue stand-in reporting fixed counts."""

    def __init__(self, name, counts=None, error=None):
        self.name = name
        self.counts = counts or QueueCounts()
        self.error = error
        self.cleaned = []

    def counts_by_state(self):
        if self.error:
            raise self.error
        return self.counts

    def clean(self, older_than, state):
        if self.error:
            raise self.error
        self.cleaned.append((older_than, state))
        return 0


class TestClassification:
    @pytest.mark.parametrize(
        ("counts", "expected"),
        [
            (QueueCounts(), "healthy"),
            (QueueCounts(failed=100), "healthy"),
            (QueueCounts(failed=101), "unhealthy"),
            (QueueCounts(waiting=1000), "healthy"),
            (QueueCounts(waiting=1001), "degraded"),
            (QueueCounts(waiting=5000, failed=101), "unhealthy"),
            (QueueCounts(active=10_000, completed=10_000, delayed=10_000), "healthy"),
        ],
    )
    def test_default_thresholds(self, counts, expected):
        assert classify_queue(counts) == expected

    def test_custom_thresholds(self):
        thresholds = HealthThresholds(failed=0, waiting=10)
        assert classify_queue(QueueCounts(failed=1), thresholds) == "unhealthy"
        assert classify_queue(QueueCounts(waiting=11), thresholds) == "degraded"

    @pytest.mark.parametrize(
        ("statuses", "expected"),
        [
            ([], "healthy"),
            (["healthy", "healthy"], "healthy"),
            (["healthy", "degraded"], "degraded"),
            (["degraded", "unhealthy", "healthy"], "unhealthy"),
        ],
    )
    def test_overall_is_worst(self, statuses, expected):
        assert overall_status(statuses) == expected


class TestSnapshot:
    def test_per_queue_rows(self, clock):
        queues = QueueRegistry(
            [
                FixedCountsQueue("data-collection", QueueCounts(waiting=1500, active=5)),
                FixedCountsQueue("notification", QueueCounts(failed=3)),
            ]
        )
        snapshot = HealthMonitor(queues, clock=clock).get_health_status()

        assert snapshot.status == "degraded"
        assert snapshot.timestamp == clock.now().isoformat()
        rows = {row.name: row for row in snapshot.queues}
        assert rows["data-collection"].status == "degraded"
        assert (rows["data-collection"].waiting, rows["data-collection"].active) == (1500, 5)
        assert rows["notification"].status == "healthy"
        assert rows["notification"].failed == 3

    def test_unreadable_queue_is_unhealthy(self, clock):
        queues = QueueRegistry(
            [
                FixedCountsQueue("data-collection", error=OSError("database is locked")),
                FixedCountsQueue("notification"),
            ]
        )
        snapshot = HealthMonitor(queues, clock=clock).get_health_status()
        assert snapshot.status == "unhealthy"
        broken, fine = snapshot.queues
        assert broken.status == "unhealthy"
        assert broken.error == "OSError: database is locked"
        assert fine.status == "healthy"

    def test_snapshot_is_json_serialisable(self, clock):
        snapshot = HealthMonitor(QueueRegistry([FixedCountsQueue("q")]), clock=clock).get_health_status()
        data = snapshot.model_dump()
        assert data["queues"][0] == {
            "name": "q",
            "status": "healthy",
            "waiting": 0,
            "active": 0,
            "failed": 0,
            "error": None,
        }

    def test_sample_stores_last_snapshot(self, clock):
        monitor = HealthMonitor(QueueRegistry([FixedCountsQueue("q", QueueCounts(failed=500))]), clock=clock)
        assert monitor.last_snapshot is None
        snapshot = monitor.sample()
        assert snapshot.status == "unhealthy"
        assert monitor.last_snapshot == snapshot

    def test_reading_does_not_modify_queues(self, memory_queue, clock):
        memory_queue.enqueue("n", {})
        monitor = HealthMonitor(QueueRegistry([memory_queue]), clock=clock)
        monitor.get_health_status()
        monitor.sample()
        assert memory_queue.counts_by_state() == QueueCounts(waiting=1)


class TestCleanup:
    def _completed(self, queue):
        queue.enqueue("n", {})
        [job] = queue.dequeue(1)
        return queue.complete(job.id)

    def test_removes_only_old_completed_jobs(self, clock):
        queue = InMemoryJobQueue("data-collection", clock=clock)
        old = self._completed(queue)
        clock.advance(hours=24)
        recent = self._completed(queue)
        clock.advance(hours=1)

        monitor = HealthMonitor(QueueRegistry([queue]), retention=timedelta(hours=24), clock=clock)
        assert monitor.cleanup() == {"data-collection": 1}
        assert monitor.last_cleanup == {"data-collection": 1}
        assert [j.id for j in queue.list_jobs(JobState.COMPLETED)] == [recent.id]
        assert old.id != recent.id

    def test_failed_jobs_are_kept(self, clock):
        queue = InMemoryJobQueue("data-collection", clock=clock)
        queue.enqueue("n", {})
        [job] = queue.dequeue(1)
        queue.fail(job.id, "x")
        clock.advance(days=10)

        HealthMonitor(QueueRegistry([queue]), clock=clock).cleanup()
        assert queue.counts_by_state().failed == 1

    def test_one_queue_failing_does_not_stop_others(self, clock):
        broken = FixedCountsQueue("data-collection", error=OSError("disk"))
        fine = FixedCountsQueue("notification")
        monitor = HealthMonitor(QueueRegistry([broken, fine]), retention=timedelta(hours=24), clock=clock)

        removed = monitor.cleanup()
        assert removed == {"notification": 0}
        assert fine.cleaned == [(clock.now() - timedelta(hours=24), JobState.COMPLETED)]


@pytest.mark.slow
class TestTimers:
    def test_start_and_stop(self, clock):
        sampled = threading.Event()

        class SignallingQueue(FixedCountsQueue):
            def counts_by_state(self):
                sampled.set()
                return super().counts_by_state()

        monitor = HealthMonitor(
            QueueRegistry([SignallingQueue("q")]),
            sample_interval=0.02,
            cleanup_interval=0.02,
            clock=clock,
        )
        monitor.start()
        try:
            assert monitor.is_running
            assert sampled.wait(2.0)
        finally:
            monitor.stop()
        assert not monitor.is_running
