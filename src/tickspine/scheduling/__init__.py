"""Recurring triggers that enqueue collection jobs."""

from tickspine.scheduling.scheduler import Scheduler, SchedulerStats, TriggerRun
from tickspine.scheduling.triggers import (
    CANDLE_CRON_RULES,
    CronSchedule,
    IntervalSchedule,
    Schedule,
    Trigger,
    TriggerAction,
    default_candle_triggers,
)

__all__ = [
    "CANDLE_CRON_RULES",
    "CronSchedule",
    "IntervalSchedule",
    "Schedule",
    "Scheduler",
    "SchedulerStats",
    "Trigger",
    "TriggerAction",
    "TriggerRun",
    "default_candle_triggers",
]
