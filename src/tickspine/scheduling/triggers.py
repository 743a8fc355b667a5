"""
Trigger descriptors: a time rule plus what to enqueue when it fires.

Two rules are supported:

    IntervalSchedule(every=timedelta(minutes=5))
    CronSchedule("0 18 * * 1-5", timezone="Asia/Seoul")

Cron expressions are evaluated with ``croniter`` in the rule's timezone and
the next fire time is returned in UTC.

The default candle table fires one collection run per timeframe:

    ┌───────────┬────────────────┬──────────────────────────────┐
    │ timeframe │ cron           │ meaning                      │
    ├───────────┼────────────────┼──────────────────────────────┤
    │ 1m        │ */1 * * * *    │ every minute                 │
    │ 5m        │ */5 * * * *    │ every 5 minutes              │
    │ 15m       │ */15 * * * *   │ every 15 minutes             │
    │ 1h        │ 0 * * * *      │ top of every hour            │
    │ 1d        │ 0 18 * * 1-5   │ 18:00 market time, weekdays  │
    │ 1w        │ 0 18 * * 1     │ 18:00 market time, Mondays   │
    └───────────┴────────────────┴──────────────────────────────┘
"""

from __future__ import annotations

import zoneinfo
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from croniter import croniter

from tickspine.core.errors import ConfigurationError
from tickspine.core.protocols import Entity


class Schedule(Protocol):
    """Anything that can compute the next fire time after a given instant."""

    def next_after(self, after: datetime) -> datetime: ...

    def describe(self) -> str: ...


@dataclass(frozen=True)
class IntervalSchedule:
    every: timedelta

    def __post_init__(self) -> None:
        if self.every <= timedelta(0):
            raise ConfigurationError("Interval must be positive")

    def next_after(self, after: datetime) -> datetime:
        return after + self.every

    def describe(self) -> str:
        return f"every {int(self.every.total_seconds())}s"


@dataclass(frozen=True)
class CronSchedule:
    expression: str
    timezone: str = "UTC"

    def __post_init__(self) -> None:
        if not croniter.is_valid(self.expression):
            raise ConfigurationError(f"Invalid cron expression: {self.expression!r}")
        try:
            zoneinfo.ZoneInfo(self.timezone)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(f"Unknown timezone: {self.timezone!r}", cause=e) from e

    def next_after(self, after: datetime) -> datetime:
        if after.tzinfo is None:
            after = after.replace(tzinfo=UTC)
        after_local = after.astimezone(zoneinfo.ZoneInfo(self.timezone))
        next_run = croniter(self.expression, after_local).get_next(datetime)
        return next_run.astimezone(UTC)

    def describe(self) -> str:
        return f"cron '{self.expression}' ({self.timezone})"


@dataclass(frozen=True)
class TriggerAction:
    """What a trigger enqueues for each eligible entity."""

    queue: str
    job_name: str
    timeframe: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def payload_for(self, entity: Entity) -> dict[str, Any]:
        payload: dict[str, Any] = {"entity_id": entity.id, "symbol": entity.symbol}
        if self.timeframe is not None:
            payload["timeframe"] = self.timeframe
        payload.update(self.extra)
        return payload


@dataclass(frozen=True)
class Trigger:
    """A registered recurring rule."""

    id: str
    schedule: Schedule
    action: TriggerAction
    base_delay_ms: int = 2000
    max_attempts: int = 3


CANDLE_CRON_RULES: dict[str, str] = {
    "1m": "*/1 * * * *",
    "5m": "*/5 * * * *",
    "15m": "*/15 * * * *",
    "1h": "0 * * * *",
    "1d": "0 18 * * 1-5",
    "1w": "0 18 * * 1",
}


def default_candle_triggers(
    timezone: str = "Asia/Seoul",
    queue: str = "data-collection",
) -> list[tuple[str, CronSchedule, TriggerAction]]:
    """``(trigger_id, schedule, action)`` for each candle timeframe."""
    return [
        (
            f"candles-{timeframe}",
            CronSchedule(expression, timezone=timezone),
            TriggerAction(queue=queue, job_name="collect-candles", timeframe=timeframe),
        )
        for timeframe, expression in CANDLE_CRON_RULES.items()
    ]
