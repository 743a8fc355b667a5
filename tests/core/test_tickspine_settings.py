"""Tests for TickSpineSettings."""

import os

import pytest
from pydantic import ValidationError

from tickspine.core.settings import DEFAULT_QUEUES, TickSpineSettings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    """Isolate from the developer's environment and .env file."""
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("TICKSPINE_"):
            monkeypatch.delenv(key)


class TestDefaults:
    def test_default_queues(self):
        settings = TickSpineSettings()
        assert settings.queues == DEFAULT_QUEUES

    def test_default_concurrency(self):
        """Each default queue has its documented pool size."""
        settings = TickSpineSettings()
        assert settings.concurrency_for("data-collection") == 5
        assert settings.concurrency_for("analysis") == 2
        assert settings.concurrency_for("trading") == 1
        assert settings.concurrency_for("notification") == 10

    def test_unlisted_queue_uses_default_concurrency(self):
        settings = TickSpineSettings(default_concurrency=3)
        assert settings.concurrency_for("backfill") == 3

    def test_trigger_and_health_defaults(self):
        settings = TickSpineSettings()
        assert settings.trigger_base_delay_ms == 2000
        assert settings.trigger_max_attempts == 3
        assert settings.market_timezone == "Asia/Seoul"
        assert settings.completed_retention_hours == 24
        assert settings.failed_threshold == 100
        assert settings.waiting_threshold == 1000
        assert settings.stall_timeout_seconds == 1800


class TestEnvironment:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("TICKSPINE_DATABASE_PATH", ":memory:")
        monkeypatch.setenv("TICKSPINE_FAILED_THRESHOLD", "5")
        settings = TickSpineSettings()
        assert settings.database_path == ":memory:"
        assert settings.failed_threshold == 5

    def test_json_mapping_from_env(self, monkeypatch):
        monkeypatch.setenv("TICKSPINE_CONCURRENCY", '{"data-collection": 8}')
        settings = TickSpineSettings()
        assert settings.concurrency_for("data-collection") == 8


class TestValidation:
    def test_empty_queues_rejected(self):
        with pytest.raises(ValidationError):
            TickSpineSettings(queues=[])

    def test_duplicate_queues_rejected(self):
        with pytest.raises(ValidationError):
            TickSpineSettings(queues=["trading", "trading"])

    def test_zero_concurrency_rejected(self):
        with pytest.raises(ValidationError):
            TickSpineSettings(concurrency={"trading": 0})
