"""Environment-driven settings for tickspine.

All knobs are read from ``TICKSPINE_*`` environment variables or a ``.env``
file. Mapping and list fields take JSON::

    TICKSPINE_CONCURRENCY='{"data-collection": 8, "notification": 20}'

Fields
──────
database_path                  : SQLite file for queue state (``:memory:`` = in-process)
queues                         : Queue names the runtime creates
concurrency                    : Per-queue worker pool concurrency
trigger_base_delay_ms          : Base retry delay for trigger-enqueued jobs
trigger_max_attempts           : Attempts per trigger-enqueued job
market_timezone                : Timezone cron rules are evaluated in
health_sample_interval_seconds : Health sampling cadence
cleanup_interval_seconds       : Completed-job cleanup cadence
completed_retention_hours      : Age after which completed jobs are pruned
failed_threshold               : failed count above which a queue is unhealthy
waiting_threshold              : waiting count above which a queue is degraded
stall_timeout_seconds          : Active jobs older than this are requeued
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_QUEUES = ["data-collection", "analysis", "trading", "notification"]

DEFAULT_CONCURRENCY = {
    "data-collection": 5,
    "analysis": 2,
    "trading": 1,
    "notification": 10,
}


class TickSpineSettings(BaseSettings):
    """Process-wide configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TICKSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────────────
    database_path: str = Field(
        default_factory=lambda: str(Path.home() / ".tickspine" / "queues.db"),
        description="SQLite queue database; ':memory:' selects the in-memory store",
    )

    # ── Queues / workers ─────────────────────────────────────────────────
    queues: list[str] = Field(default_factory=lambda: list(DEFAULT_QUEUES))
    concurrency: dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_CONCURRENCY))
    default_concurrency: int = Field(default=1, ge=1)
    poll_interval_seconds: float = Field(default=0.5, gt=0)
    stall_timeout_seconds: float | None = Field(
        default=1800.0,
        description="Requeue active jobs older than this; None disables stall recovery",
    )

    # ── Triggers ─────────────────────────────────────────────────────────
    trigger_base_delay_ms: int = Field(default=2000, ge=0)
    trigger_max_attempts: int = Field(default=3, ge=1)
    market_timezone: str = "Asia/Seoul"
    enable_default_triggers: bool = True

    # ── Health ───────────────────────────────────────────────────────────
    health_sample_interval_seconds: float = Field(default=300.0, gt=0)
    cleanup_interval_seconds: float = Field(default=3600.0, gt=0)
    completed_retention_hours: float = Field(default=24.0, ge=0)
    failed_threshold: int = Field(default=100, ge=0)
    waiting_threshold: int = Field(default=1000, ge=0)

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    # ── HTTP surface ─────────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8100

    @field_validator("queues")
    @classmethod
    def _queues_not_empty(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("at least one queue must be configured")
        if len(set(value)) != len(value):
            raise ValueError("queue names must be unique")
        return value

    @field_validator("concurrency")
    @classmethod
    def _concurrency_positive(cls, value: dict[str, int]) -> dict[str, int]:
        for name, limit in value.items():
            if limit < 1:
                raise ValueError(f"concurrency for '{name}' must be >= 1")
        return value

    def concurrency_for(self, queue: str) -> int:
        """Return the worker pool size for *queue*."""
        return self.concurrency.get(queue, self.default_concurrency)


@lru_cache(maxsize=1)
def get_settings() -> TickSpineSettings:
    """Return cached settings instance (reads env once)."""
    return TickSpineSettings()
