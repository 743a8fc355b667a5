"""
collect-candles handler.

Payload: ``{"entity_id": str, "symbol": str, "timeframe": str}``

Steps (progress in brackets):
    [25]  resolve lookback range and provider symbol
          fetch candles from the market-data fetcher
    [75]  upsert every candle keyed by (entity_id, timeframe, timestamp)
    [100] return {"success": True, "candles_collected": n}

Re-running the same job writes the same keys again, so duplicates from
overlapping trigger fires or stall redelivery are harmless.
"""

from __future__ import annotations

import re
from typing import Any

from tickspine.core.errors import (
    ConfigurationError,
    PersistenceError,
    TickSpineError,
    TransientFetchError,
    describe_error,
)
from tickspine.core.logging import get_logger
from tickspine.core.protocols import Candle, CandleStore, MarketDataFetcher
from tickspine.execution.context import JobContext

logger = get_logger(__name__)

JOB_NAME = "collect-candles"

TIMEFRAME_RANGES: dict[str, str] = {
    "1m": "1d",
    "5m": "5d",
    "15m": "5d",
    "1h": "1mo",
    "1d": "6mo",
    "1w": "5y",
}

DEFAULT_RANGE = "1mo"

_KRX_CODE = re.compile(r"^\d{6}$")


def range_for(timeframe: str) -> str:
    """Lookback window requested for *timeframe*."""
    return TIMEFRAME_RANGES.get(timeframe, DEFAULT_RANGE)


def to_provider_symbol(symbol: str) -> str:
    """Map a six-digit KRX code to its ``.KS`` provider symbol."""
    if _KRX_CODE.match(symbol):
        return f"{symbol}.KS"
    return symbol


def _require(payload: dict[str, Any], *keys: str) -> tuple[Any, ...]:
    missing = [k for k in keys if not payload.get(k)]
    if missing:
        raise ConfigurationError(f"{JOB_NAME} payload missing: {', '.join(missing)}")
    return tuple(payload[k] for k in keys)


class CollectCandlesHandler:
    """Fetches candles for one entity/timeframe and upserts them."""

    job_name = JOB_NAME

    def __init__(self, fetcher: MarketDataFetcher, store: CandleStore) -> None:
        self._fetcher = fetcher
        self._store = store

    def __call__(self, ctx: JobContext) -> dict[str, Any]:
        entity_id, symbol, timeframe = _require(ctx.payload, "entity_id", "symbol", "timeframe")
        ctx.report_progress(25)

        candles = self._fetch(to_provider_symbol(symbol), timeframe, range_for(timeframe))
        ctx.report_progress(75)

        for candle in candles:
            self._upsert(entity_id, timeframe, candle)
        ctx.report_progress(100)

        logger.info("candles_collected", symbol=symbol, timeframe=timeframe, count=len(candles))
        return {"success": True, "candles_collected": len(candles)}

    def _fetch(self, symbol: str, timeframe: str, range_: str) -> list[Candle]:
        try:
            return list(self._fetcher.fetch_candles(symbol, timeframe, range_))
        except TickSpineError:
            raise
        except Exception as e:
            raise TransientFetchError(
                f"Fetching {timeframe} candles for {symbol} failed: {describe_error(e)}", cause=e
            ).with_context(symbol=symbol, timeframe=timeframe) from e

    def _upsert(self, entity_id: str, timeframe: str, candle: Candle) -> None:
        try:
            self._store.upsert_candle(entity_id, timeframe, candle)
        except TickSpineError:
            raise
        except Exception as e:
            raise PersistenceError(
                f"Storing candle {candle.timestamp.isoformat()} failed: {describe_error(e)}", cause=e
            ).with_context(entity_id=entity_id, timeframe=timeframe) from e
