"""
Test support utilities for tickspine tests.

Helpers that don't fit as pytest fixtures but are shared across test
modules: a scripted market-data fetcher, candle factories and a
``JobContext`` builder that records reported progress.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from tickspine.core.protocols import Candle, Quote
from tickspine.execution.context import JobContext
from tickspine.queue.models import Job

# Monday 2026-03-02 09:00 UTC (18:00 in Seoul)
START = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class ScriptedFetcher:
    """MarketDataFetcher returning fixed candles, optionally failing first."""

    def __init__(self, candles: list[Candle] | None = None, fail_times: int = 0, error: Exception | None = None):
        self.candles = candles or []
        self.fail_times = fail_times
        self.error = error or ConnectionError("upstream reset")
        self.calls: list[tuple[str, str, str]] = []
        self.quote_calls: list[str] = []

    def fetch_candles(self, symbol: str, timeframe: str, range: str) -> list[Candle]:
        self.calls.append((symbol, timeframe, range))
        if self.fail_times > 0:
            self.fail_times -= 1
            raise self.error
        return list(self.candles)

    def fetch_quote(self, symbol: str) -> Quote:
        self.quote_calls.append(symbol)
        return Quote(symbol=symbol, price=100.0, change=1.0, change_percent=1.0, volume=10.0, timestamp=START)


def make_candles(count: int, start: datetime = START, step: timedelta = timedelta(minutes=5)) -> list[Candle]:
    return [
        Candle(
            timestamp=start + step * i,
            open=100.0 + i,
            high=101.0 + i,
            low=99.0 + i,
            close=100.5 + i,
            volume=1000.0 + i,
        )
        for i in range(count)
    ]


class ProgressRecorder:
    def __init__(self) -> None:
        self.values: list[int] = []

    def __call__(self, percent: int) -> None:
        self.values.append(percent)


def make_context(payload: dict[str, Any], name: str = "collect-candles") -> tuple[JobContext, ProgressRecorder]:
    """Build a handler context outside any queue."""
    recorder = ProgressRecorder()
    job = Job(queue="data-collection", name=name, payload=payload)
    return JobContext(job=job, report_progress=recorder), recorder
