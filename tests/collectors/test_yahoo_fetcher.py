"""Tests for YahooChartFetcher using httpx.MockTransport."""

from datetime import UTC, datetime

import httpx
import pytest

from tickspine.collectors.yahoo import YahooChartFetcher
from tickspine.core.errors import TransientFetchError

T0 = 1772442000  # 2026-03-02 09:00:00 UTC


def chart_body(**overrides):
    result = {
        "meta": {
            "regularMarketPrice": 72000,
            "chartPreviousClose": 70000,
            "regularMarketVolume": 1234567,
            "regularMarketTime": T0,
        },
        "timestamp": [T0, T0 + 300, T0 + 600],
        "indicators": {
            "quote": [
                {
                    "open": [100, 101, None],
                    "high": [102, 103, 104],
                    "low": [99, 100, 101],
                    "close": [101, 102, 103],
                    "volume": [1000, None, 3000],
                }
            ]
        },
    }
    result.update(overrides)
    return {"chart": {"result": [result], "error": None}}


def make_fetcher(handler):
    client = httpx.Client(base_url="https://charts.test", transport=httpx.MockTransport(handler))
    return YahooChartFetcher(client=client)


class TestFetchCandles:
    def test_request_parameters(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=chart_body())

        make_fetcher(handler).fetch_candles("005930.KS", "1h", "1mo")
        assert seen["path"] == "/v8/finance/chart/005930.KS"
        assert seen["params"] == {"interval": "60m", "range": "1mo"}

    def test_parses_bars_and_skips_incomplete(self):
        fetcher = make_fetcher(lambda request: httpx.Response(200, json=chart_body()))
        candles = fetcher.fetch_candles("AAPL", "5m", "5d")

        assert len(candles) == 2
        first, second = candles
        assert first.timestamp == datetime(2026, 3, 2, 9, 0, tzinfo=UTC)
        assert first.values() == {"open": 100.0, "high": 102.0, "low": 99.0, "close": 101.0, "volume": 1000.0}
        assert second.volume == 0.0

    def test_no_data(self):
        body = chart_body(timestamp=None, indicators={})
        fetcher = make_fetcher(lambda request: httpx.Response(200, json=body))
        assert fetcher.fetch_candles("AAPL", "1d", "6mo") == []

    def test_http_error_is_transient(self):
        fetcher = make_fetcher(lambda request: httpx.Response(503, text="busy"))
        with pytest.raises(TransientFetchError) as exc_info:
            fetcher.fetch_candles("AAPL", "1d", "6mo")
        assert exc_info.value.context.http_status == 503
        assert exc_info.value.retryable

    def test_transport_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransientFetchError):
            make_fetcher(handler).fetch_candles("AAPL", "1d", "6mo")

    def test_chart_error_payload(self):
        body = {"chart": {"result": None, "error": {"code": "Not Found", "description": "No data found"}}}
        fetcher = make_fetcher(lambda request: httpx.Response(200, json=body))
        with pytest.raises(TransientFetchError, match="Chart error"):
            fetcher.fetch_candles("NOPE", "1d", "6mo")

    def test_invalid_json(self):
        fetcher = make_fetcher(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(TransientFetchError):
            fetcher.fetch_candles("AAPL", "1d", "6mo")


class TestFetchQuote:
    def test_quote_from_meta(self):
        fetcher = make_fetcher(lambda request: httpx.Response(200, json=chart_body()))
        quote = fetcher.fetch_quote("005930.KS")
        assert quote.symbol == "005930.KS"
        assert quote.price == 72000.0
        assert quote.change == 2000.0
        assert quote.change_percent == pytest.approx(2000 / 70000 * 100)
        assert quote.volume == 1234567.0
        assert quote.timestamp == datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

    def test_missing_price(self):
        fetcher = make_fetcher(lambda request: httpx.Response(200, json=chart_body(meta={})))
        with pytest.raises(TransientFetchError, match="No market price"):
            fetcher.fetch_quote("AAPL")
