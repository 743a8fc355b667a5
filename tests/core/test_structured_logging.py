"""Tests for structlog configuration and scoped log context."""

import logging

import pytest
import structlog

from tickspine.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


@pytest.fixture(autouse=True)
def _reset_structlog():
    clear_context()
    yield
    clear_context()
    structlog.reset_defaults()


class TestLogContext:
    def test_binds_and_unbinds(self):
        with LogContext(queue="data-collection", job_id="j-1"):
            assert structlog.contextvars.get_contextvars() == {"queue": "data-collection", "job_id": "j-1"}
        assert structlog.contextvars.get_contextvars() == {}

    def test_leaves_outer_context(self):
        bind_context(service_run="r-1")
        with LogContext(trigger_id="candles-5m"):
            assert structlog.contextvars.get_contextvars()["service_run"] == "r-1"
        assert structlog.contextvars.get_contextvars() == {"service_run": "r-1"}

    @pytest.mark.asyncio
    async def test_async_context(self):
        async with LogContext(job_name="collect-candles"):
            assert structlog.contextvars.get_contextvars() == {"job_name": "collect-candles"}
        assert structlog.contextvars.get_contextvars() == {}


class TestConfigureLogging:
    def test_json_output_includes_context(self, caplog):
        caplog.set_level(logging.INFO)
        configure_logging(level="INFO", json_format=True, service="tickspine-test")
        with LogContext(queue="notification"):
            get_logger("tickspine.test").info("job_enqueued", job_id="j-9")

        out = caplog.text
        assert '"event": "job_enqueued"' in out
        assert '"queue": "notification"' in out
        assert '"service": "tickspine-test"' in out
        assert '"level": "info"' in out

    def test_level_filters(self, caplog):
        caplog.set_level(logging.DEBUG)
        configure_logging(level="WARNING", json_format=True)
        logger = get_logger("tickspine.test")
        logger.info("hidden_event")
        logger.warning("shown_event")
        out = caplog.text
        assert "hidden_event" not in out
        assert "shown_event" in out
