"""Tests for the collect-candles and collect-quotes handlers."""

from dataclasses import replace

import pytest

from tests._support import ScriptedFetcher, make_candles, make_context
from tickspine.collectors.candles import (
    TIMEFRAME_RANGES,
    CollectCandlesHandler,
    range_for,
    to_provider_symbol,
)
from tickspine.collectors.memory import InMemoryEntityCatalog
from tickspine.collectors.quotes import CollectQuotesHandler
from tickspine.core.errors import ConfigurationError, PersistenceError, TransientFetchError


class BrokenCandleStore:
    def upsert_candle(self, entity_id, timeframe, candle):
        raise OSError("disk full")


PAYLOAD = {"entity_id": "s-1", "symbol": "005930", "timeframe": "5m"}


class TestSymbolsAndRanges:
    @pytest.mark.parametrize(
        ("symbol", "expected"),
        [("005930", "005930.KS"), ("AAPL", "AAPL"), ("12345", "12345"), ("005930.KS", "005930.KS")],
    )
    def test_provider_symbol(self, symbol, expected):
        assert to_provider_symbol(symbol) == expected

    def test_ranges(self):
        assert TIMEFRAME_RANGES == {"1m": "1d", "5m": "5d", "15m": "5d", "1h": "1mo", "1d": "6mo", "1w": "5y"}
        assert range_for("3h") == "1mo"


class TestCollectCandles:
    def test_collects_and_reports_progress(self, fetcher, candle_store):
        ctx, progress = make_context(PAYLOAD)
        result = CollectCandlesHandler(fetcher, candle_store)(ctx)

        assert result == {"success": True, "candles_collected": 3}
        assert fetcher.calls == [("005930.KS", "5m", "5d")]
        assert progress.values == [25, 75, 100]
        assert len(candle_store.candles("s-1", "5m")) == 3

    def test_rerun_is_idempotent(self, fetcher, candle_store):
        """Running the same job twice leaves one row per timestamp."""
        handler = CollectCandlesHandler(fetcher, candle_store)
        handler(make_context(PAYLOAD)[0])
        handler(make_context(PAYLOAD)[0])
        assert len(candle_store) == 3

    def test_newer_values_overwrite(self, candle_store):
        candles = make_candles(2)
        CollectCandlesHandler(ScriptedFetcher(candles), candle_store)(make_context(PAYLOAD)[0])
        revised = [candles[0], replace(candles[1], close=999.0)]
        CollectCandlesHandler(ScriptedFetcher(revised), candle_store)(make_context(PAYLOAD)[0])

        stored = candle_store.candles("s-1", "5m")
        assert len(stored) == 2
        assert stored[1].close == 999.0

    def test_timeframes_stored_separately(self, fetcher, candle_store):
        handler = CollectCandlesHandler(fetcher, candle_store)
        handler(make_context(PAYLOAD)[0])
        handler(make_context({**PAYLOAD, "timeframe": "1d"})[0])
        assert len(candle_store) == 6
        assert fetcher.calls[-1] == ("005930.KS", "1d", "6mo")

    def test_empty_response(self, candle_store):
        ctx, progress = make_context(PAYLOAD)
        result = CollectCandlesHandler(ScriptedFetcher([]), candle_store)(ctx)
        assert result == {"success": True, "candles_collected": 0}
        assert progress.values == [25, 75, 100]

    def test_fetch_failure_is_transient(self, candle_store):
        fetcher = ScriptedFetcher(make_candles(1), fail_times=1)
        ctx, progress = make_context(PAYLOAD)
        with pytest.raises(TransientFetchError) as exc_info:
            CollectCandlesHandler(fetcher, candle_store)(ctx)
        assert exc_info.value.retryable
        assert "upstream reset" in exc_info.value.message
        assert progress.values == [25]
        assert len(candle_store) == 0

    def test_fetch_error_passthrough(self, candle_store):
        fetcher = ScriptedFetcher(fail_times=1, error=TransientFetchError("HTTP 503"))
        with pytest.raises(TransientFetchError, match="HTTP 503"):
            CollectCandlesHandler(fetcher, candle_store)(make_context(PAYLOAD)[0])

    def test_store_failure_is_persistence_error(self, fetcher):
        with pytest.raises(PersistenceError, match="disk full"):
            CollectCandlesHandler(fetcher, BrokenCandleStore())(make_context(PAYLOAD)[0])

    @pytest.mark.parametrize("missing", ["entity_id", "symbol", "timeframe"])
    def test_missing_payload_field(self, fetcher, candle_store, missing):
        payload = {k: v for k, v in PAYLOAD.items() if k != missing}
        with pytest.raises(ConfigurationError, match=missing):
            CollectCandlesHandler(fetcher, candle_store)(make_context(payload)[0])
        assert fetcher.calls == []


class TestCollectQuotes:
    def test_single_entity(self, fetcher, quote_store):
        ctx, progress = make_context({"entity_id": "s-1", "symbol": "005930"}, name="collect-quotes")
        result = CollectQuotesHandler(fetcher, quote_store)(ctx)
        assert result == {"success": True, "quotes_collected": 1}
        assert fetcher.quote_calls == ["005930.KS"]
        assert quote_store.latest("s-1").price == 100.0
        assert progress.values[-1] == 100

    def test_batch(self, fetcher, quote_store):
        ctx, progress = make_context(
            {"entity_ids": ["s-1", "s-3"], "symbols": ["000660", "AAPL"]}, name="collect-quotes"
        )
        result = CollectQuotesHandler(fetcher, quote_store)(ctx)
        assert result["quotes_collected"] == 2
        assert fetcher.quote_calls == ["000660.KS", "AAPL"]
        assert quote_store.latest("s-3").symbol == "AAPL"
        assert progress.values == [50, 100, 100]

    def test_mismatched_batch(self, fetcher, quote_store):
        ctx, _ = make_context({"entity_ids": ["s-1"], "symbols": []}, name="collect-quotes")
        with pytest.raises(ConfigurationError):
            CollectQuotesHandler(fetcher, quote_store)(ctx)

    def test_missing_payload(self, fetcher, quote_store):
        with pytest.raises(ConfigurationError):
            CollectQuotesHandler(fetcher, quote_store)(make_context({}, name="collect-quotes")[0])

    def test_fetch_failure(self, quote_store):
        class DownFetcher(ScriptedFetcher):
            def fetch_quote(self, symbol):
                raise TimeoutError("read timed out")

        ctx, _ = make_context({"entity_id": "s-1", "symbol": "AAPL"}, name="collect-quotes")
        with pytest.raises(TransientFetchError):
            CollectQuotesHandler(DownFetcher(), quote_store)(ctx)


class TestInMemoryCatalog:
    def test_filters_inactive_and_untradable(self, catalog):
        assert [e.id for e in catalog.list_active_tradable_entities()] == ["s-1", "s-2", "s-3"]

    def test_set_flags(self, catalog):
        catalog.set_flags("s-1", is_active=False)
        catalog.set_flags("s-4", is_active=True)
        assert [e.id for e in catalog.list_active_tradable_entities()] == ["s-2", "s-3", "s-4"]

    def test_empty(self):
        assert InMemoryEntityCatalog().list_active_tradable_entities() == []
