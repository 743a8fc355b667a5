"""Market-data collection job handlers and reference stores."""

from tickspine.collectors.candles import (
    TIMEFRAME_RANGES,
    CollectCandlesHandler,
    range_for,
    to_provider_symbol,
)
from tickspine.collectors.memory import (
    InMemoryCandleStore,
    InMemoryEntityCatalog,
    InMemoryQuoteStore,
)
from tickspine.collectors.quotes import CollectQuotesHandler
from tickspine.collectors.yahoo import YahooChartFetcher

__all__ = [
    "CollectCandlesHandler",
    "CollectQuotesHandler",
    "InMemoryCandleStore",
    "InMemoryEntityCatalog",
    "InMemoryQuoteStore",
    "TIMEFRAME_RANGES",
    "YahooChartFetcher",
    "range_for",
    "to_provider_symbol",
]
