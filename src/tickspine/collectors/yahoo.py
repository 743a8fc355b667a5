"""Market-data fetcher backed by the Yahoo Finance chart endpoint.

    GET {base_url}/v8/finance/chart/{symbol}?interval=5m&range=5d

Candles come from ``chart.result[0].timestamp`` and
``chart.result[0].indicators.quote[0]``; bars with any missing OHLC value
are skipped. The latest quote comes from ``chart.result[0].meta``.

Every transport or protocol failure surfaces as ``TransientFetchError`` so
the job retries with backoff.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import httpx

from tickspine.core.errors import TransientFetchError
from tickspine.core.protocols import Candle, Quote

DEFAULT_BASE_URL = "https://query1.finance.yahoo.com"

TIMEFRAME_INTERVALS: dict[str, str] = {
    "1m": "1m",
    "5m": "5m",
    "15m": "15m",
    "1h": "60m",
    "1d": "1d",
    "1w": "1wk",
}


class YahooChartFetcher:
    """Synchronous :class:`~tickspine.core.protocols.MarketDataFetcher`."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._client = client or httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={"User-Agent": "tickspine/0.1"},
        )

    def close(self) -> None:
        self._client.close()

    def _chart(self, symbol: str, params: dict[str, str]) -> dict[str, Any]:
        url = f"/v8/finance/chart/{symbol}"
        try:
            resp = self._client.get(url, params=params)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as e:
            raise TransientFetchError(
                f"Chart request for {symbol} returned {e.response.status_code}", cause=e
            ).with_context(url=str(e.request.url), http_status=e.response.status_code) from e
        except (httpx.HTTPError, ValueError) as e:
            raise TransientFetchError(f"Chart request for {symbol} failed: {e}", cause=e).with_context(
                url=url
            ) from e

        chart = body.get("chart") or {}
        if chart.get("error"):
            raise TransientFetchError(f"Chart error for {symbol}: {chart['error']}")
        results = chart.get("result") or []
        if not results:
            raise TransientFetchError(f"Chart response for {symbol} has no result")
        return results[0]

    def fetch_candles(self, symbol: str, timeframe: str, range: str) -> list[Candle]:
        interval = TIMEFRAME_INTERVALS.get(timeframe, timeframe)
        result = self._chart(symbol, {"interval": interval, "range": range})

        timestamps = result.get("timestamp") or []
        quotes = (result.get("indicators") or {}).get("quote") or [{}]
        series = quotes[0]

        candles = []
        for i, ts in enumerate(timestamps):
            row = {field: _at(series.get(field), i) for field in ("open", "high", "low", "close", "volume")}
            if any(row[field] is None for field in ("open", "high", "low", "close")):
                continue
            candles.append(
                Candle(
                    timestamp=datetime.fromtimestamp(ts, UTC),
                    open=float(row["open"]),
                    high=float(row["high"]),
                    low=float(row["low"]),
                    close=float(row["close"]),
                    volume=float(row["volume"] or 0),
                )
            )
        return candles

    def fetch_quote(self, symbol: str) -> Quote:
        meta = self._chart(symbol, {"interval": "1d", "range": "1d"}).get("meta") or {}
        price = meta.get("regularMarketPrice")
        if price is None:
            raise TransientFetchError(f"No market price for {symbol}")
        previous = meta.get("chartPreviousClose") or meta.get("previousClose") or price
        change = float(price) - float(previous)
        market_time = meta.get("regularMarketTime")
        return Quote(
            symbol=symbol,
            price=float(price),
            change=change,
            change_percent=(change / float(previous) * 100) if previous else 0.0,
            volume=float(meta.get("regularMarketVolume") or 0),
            timestamp=datetime.fromtimestamp(market_time, UTC) if market_time else datetime.now(UTC),
        )


def _at(values: list[Any] | None, index: int) -> Any:
    if values is None or index >= len(values):
        return None
    return values[index]
