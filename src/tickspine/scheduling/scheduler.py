"""
Scheduler: owns an explicit table of triggers and fires them.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                         Scheduler                             │
        ├──────────────────────────────────────────────────────────────┤
        │  register_trigger(schedule, action) ──▶ Trigger + state       │
        │                                                               │
        │  start()  ─ one TimerThread per trigger                      │
        │     timer wakes at next_fire_at ──▶ fire(trigger_id)         │
        │                                                               │
        │  fire(trigger_id)                                             │
        │     catalog.list_active_tradable_entities()                   │
        │        └─ failure: EnumerationError, run aborted, logged      │
        │     for each entity:                                          │
        │        queue.enqueue(job_name, payload, options)              │
        │           └─ failure: logged for that entity, run continues   │
        │                                                               │
        │  run_pending(now)  ─ fire everything due on the injected clock│
        └──────────────────────────────────────────────────────────────┘

Triggers are independent: each has its own timer thread, so a slow
catalog read for one never delays another. Overlapping fires of one
trigger are not deduplicated; handlers are idempotent.

If a trigger was due several times since it last fired (for example after
the process was paused), ``run_pending`` fires it once and schedules the
next fire strictly after ``now``.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from tickspine.core.clock import Clock, SystemClock
from tickspine.core.errors import EnumerationError, describe_error
from tickspine.core.logging import LogContext, get_logger
from tickspine.core.protocols import Entity, EntityCatalog
from tickspine.core.timers import TimerThread
from tickspine.queue.models import BackoffPolicy, BackoffType, JobOptions
from tickspine.queue.registry import QueueRegistry
from tickspine.scheduling.triggers import Schedule, Trigger, TriggerAction

logger = get_logger(__name__)


@dataclass
class TriggerRun:
    """Outcome of one trigger fire."""

    trigger_id: str
    fired_at: datetime
    entities: int = 0
    enqueued: int = 0
    failed: list[tuple[str, str]] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "trigger_id": self.trigger_id,
            "fired_at": self.fired_at.isoformat(),
            "entities": self.entities,
            "enqueued": self.enqueued,
            "failed": [{"entity_id": eid, "error": err} for eid, err in self.failed],
            "error": self.error,
        }


@dataclass
class TriggerState:
    """Mutable bookkeeping for one registered trigger."""

    next_fire_at: datetime
    last_fired_at: datetime | None = None
    runs: int = 0
    enqueued: int = 0
    failed_enqueues: int = 0
    enumeration_failures: int = 0
    last_error: str | None = None


@dataclass
class SchedulerStats:
    """Scheduler-wide counters."""

    runs: int = 0
    jobs_enqueued: int = 0
    enqueue_failures: int = 0
    enumeration_failures: int = 0
    last_run_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "runs": self.runs,
            "jobs_enqueued": self.jobs_enqueued,
            "enqueue_failures": self.enqueue_failures,
            "enumeration_failures": self.enumeration_failures,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
        }


class Scheduler:
    """Fires registered triggers and enqueues one job per eligible entity.

    Example:
        >>> scheduler = Scheduler(catalog, queues)
        >>> scheduler.register_trigger(
        ...     CronSchedule("*/5 * * * *"),
        ...     TriggerAction(queue="data-collection", job_name="collect-candles", timeframe="5m"),
        ... )
        >>> scheduler.start()
    """

    def __init__(
        self,
        catalog: EntityCatalog,
        queues: QueueRegistry,
        clock: Clock | None = None,
        default_base_delay_ms: int = 2000,
        default_max_attempts: int = 3,
    ) -> None:
        self._catalog = catalog
        self._queues = queues
        self._clock = clock or SystemClock()
        self._default_base_delay_ms = default_base_delay_ms
        self._default_max_attempts = default_max_attempts

        self._triggers: dict[str, Trigger] = {}
        self._state: dict[str, TriggerState] = {}
        self._timers: dict[str, TimerThread] = {}
        self._stats = SchedulerStats()
        self._lock = threading.Lock()
        self._running = False

    # === Registration ===

    def register_trigger(
        self,
        schedule: Schedule,
        action: TriggerAction,
        *,
        trigger_id: str | None = None,
        base_delay_ms: int | None = None,
        max_attempts: int | None = None,
    ) -> Trigger:
        """Add a trigger. Raises ``QueueNotFoundError`` for an unknown queue."""
        self._queues.get(action.queue)

        trigger_id = trigger_id or f"{action.queue}:{action.job_name}:{action.timeframe or 'all'}"
        if trigger_id in self._triggers:
            raise ValueError(f"Trigger '{trigger_id}' already registered")

        trigger = Trigger(
            id=trigger_id,
            schedule=schedule,
            action=action,
            base_delay_ms=self._default_base_delay_ms if base_delay_ms is None else base_delay_ms,
            max_attempts=self._default_max_attempts if max_attempts is None else max_attempts,
        )
        with self._lock:
            self._triggers[trigger_id] = trigger
            self._state[trigger_id] = TriggerState(next_fire_at=schedule.next_after(self._clock.now()))
            running = self._running
        if running:
            self._start_timer(trigger_id)

        logger.info(
            "trigger_registered",
            trigger_id=trigger_id,
            schedule=schedule.describe(),
            queue=action.queue,
            job_name=action.job_name,
        )
        return trigger

    @property
    def triggers(self) -> list[Trigger]:
        return list(self._triggers.values())

    def get_trigger(self, trigger_id: str) -> Trigger:
        try:
            return self._triggers[trigger_id]
        except KeyError:
            raise KeyError(f"Unknown trigger '{trigger_id}'") from None

    # === Firing ===

    def fire(self, trigger_id: str) -> TriggerRun:
        """Enumerate eligible entities and enqueue one job for each.

        Never raises for catalog or queue failures; they are recorded on the
        returned :class:`TriggerRun` and logged.
        """
        trigger = self.get_trigger(trigger_id)
        now = self._clock.now()
        run = TriggerRun(trigger_id=trigger_id, fired_at=now)

        with LogContext(trigger_id=trigger_id):
            try:
                entities = self._enumerate()
            except EnumerationError as e:
                run.error = e.message
                logger.error("trigger_enumeration_failed", error=e.message)
                self._record(run)
                return run

            run.entities = len(entities)
            queue = self._queues.get(trigger.action.queue)
            options = JobOptions(
                max_attempts=trigger.max_attempts,
                backoff=BackoffPolicy(type=BackoffType.EXPONENTIAL, delay_ms=trigger.base_delay_ms),
            )
            for entity in entities:
                try:
                    queue.enqueue(trigger.action.job_name, trigger.action.payload_for(entity), options)
                    run.enqueued += 1
                except Exception as e:
                    run.failed.append((entity.id, describe_error(e)))
                    logger.error(
                        "trigger_enqueue_failed",
                        entity_id=entity.id,
                        symbol=entity.symbol,
                        error=describe_error(e),
                    )

            logger.info(
                "trigger_fired",
                queue=trigger.action.queue,
                job_name=trigger.action.job_name,
                entities=run.entities,
                enqueued=run.enqueued,
                failed=len(run.failed),
            )
        self._record(run)
        return run

    def run_pending(self, now: datetime | None = None) -> list[TriggerRun]:
        """Fire every trigger whose next fire time is at or before *now*."""
        now = now or self._clock.now()
        with self._lock:
            due = [tid for tid, state in self._state.items() if state.next_fire_at <= now]
            for tid in due:
                self._state[tid].next_fire_at = self._triggers[tid].schedule.next_after(now)
        return [self.fire(tid) for tid in due]

    def _enumerate(self) -> list[Entity]:
        try:
            return list(self._catalog.list_active_tradable_entities())
        except EnumerationError:
            raise
        except Exception as e:
            raise EnumerationError(f"Entity catalog unavailable: {describe_error(e)}", cause=e) from e

    def _record(self, run: TriggerRun) -> None:
        with self._lock:
            state = self._state[run.trigger_id]
            state.last_fired_at = run.fired_at
            state.runs += 1
            state.enqueued += run.enqueued
            state.failed_enqueues += len(run.failed)
            if run.error is not None:
                state.enumeration_failures += 1
                state.last_error = run.error
            elif run.failed:
                state.last_error = run.failed[-1][1]
            else:
                state.last_error = None

            self._stats.runs += 1
            self._stats.jobs_enqueued += run.enqueued
            self._stats.enqueue_failures += len(run.failed)
            self._stats.enumeration_failures += 1 if run.error is not None else 0
            self._stats.last_run_at = run.fired_at

    # === Lifecycle ===

    def start(self) -> None:
        """Start one timer thread per registered trigger."""
        with self._lock:
            if self._running:
                logger.warning("scheduler_already_running")
                return
            self._running = True
            trigger_ids = list(self._triggers)
        for trigger_id in trigger_ids:
            self._start_timer(trigger_id)
        logger.info("scheduler_started", triggers=len(trigger_ids))

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.stop()
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def _start_timer(self, trigger_id: str) -> None:
        timer = TimerThread(
            name=f"trigger-{trigger_id}",
            callback=lambda: self._fire_if_due(trigger_id),
            delay_fn=lambda: self._seconds_until(trigger_id),
        )
        with self._lock:
            self._timers[trigger_id] = timer
        timer.start()

    def _seconds_until(self, trigger_id: str) -> float:
        with self._lock:
            next_fire_at = self._state[trigger_id].next_fire_at
        return (next_fire_at - self._clock.now()).total_seconds()

    def _fire_if_due(self, trigger_id: str) -> TriggerRun | None:
        now = self._clock.now()
        with self._lock:
            state = self._state[trigger_id]
            if state.next_fire_at > now:
                return None
            state.next_fire_at = self._triggers[trigger_id].schedule.next_after(now)
        return self.fire(trigger_id)

    # === Introspection ===

    def status(self) -> list[dict[str, Any]]:
        """Per-trigger schedule and run history."""
        with self._lock:
            rows = []
            for trigger_id, trigger in self._triggers.items():
                state = self._state[trigger_id]
                rows.append(
                    {
                        "id": trigger_id,
                        "schedule": trigger.schedule.describe(),
                        "queue": trigger.action.queue,
                        "job_name": trigger.action.job_name,
                        "timeframe": trigger.action.timeframe,
                        "next_fire_at": state.next_fire_at.isoformat(),
                        "last_fired_at": state.last_fired_at.isoformat() if state.last_fired_at else None,
                        "runs": state.runs,
                        "enqueued": state.enqueued,
                        "failed_enqueues": state.failed_enqueues,
                        "enumeration_failures": state.enumeration_failures,
                        "last_error": state.last_error,
                    }
                )
            return rows

    def get_stats(self) -> SchedulerStats:
        with self._lock:
            return SchedulerStats(**vars(self._stats))

    def health(self) -> dict[str, Any]:
        with self._lock:
            timers = [t.health() for t in self._timers.values()]
        return {
            "running": self._running,
            "triggers": len(self._triggers),
            "timers_alive": sum(1 for t in timers if t["healthy"]),
            "stats": self.get_stats().to_dict(),
        }
