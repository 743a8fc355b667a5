"""
Interfaces to the systems tickspine drives but does not own.

    EntityCatalog       which symbols are active and tradable
    MarketDataFetcher   outbound candle/quote source
    CandleStore         idempotent time-series upsert
    QuoteStore          latest-quote sink
    EmailTransport      email delivery
    PushTransport       web push delivery

All are structural (``typing.Protocol``); any object with matching methods
works, including the in-memory fakes in :mod:`tickspine.collectors.memory`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class Entity:
    """A tradable instrument as seen by the scheduler."""

    id: str
    symbol: str


@dataclass(frozen=True)
class Candle:
    """One OHLCV bar."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float

    def values(self) -> dict[str, float]:
        return {
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


@dataclass(frozen=True)
class Quote:
    """Latest trade snapshot for a symbol."""

    symbol: str
    price: float
    change: float
    change_percent: float
    volume: float
    timestamp: datetime


@runtime_checkable
class EntityCatalog(Protocol):
    def list_active_tradable_entities(self) -> list[Entity]: ...


@runtime_checkable
class MarketDataFetcher(Protocol):
    def fetch_candles(self, symbol: str, timeframe: str, range: str) -> list[Candle]:
        """Return candles for *symbol*. Failures raise ``TransientFetchError``."""
        ...

    def fetch_quote(self, symbol: str) -> Quote: ...


@runtime_checkable
class CandleStore(Protocol):
    def upsert_candle(self, entity_id: str, timeframe: str, candle: Candle) -> None:
        """Insert or overwrite the bar keyed by (entity_id, timeframe, timestamp)."""
        ...


@runtime_checkable
class QuoteStore(Protocol):
    def save_quote(self, entity_id: str, quote: Quote) -> None: ...


@runtime_checkable
class EmailTransport(Protocol):
    def send_email(self, user_id: str, subject: str, body: str) -> bool: ...


@runtime_checkable
class PushTransport(Protocol):
    def send_push(self, user_id: str, title: str, body: str, data: dict[str, Any] | None = None) -> bool: ...
