"""collect-quotes handler.

Payload is either a single entity ``{"entity_id", "symbol"}`` or a batch
``{"entity_ids": [...], "symbols": [...]}`` with matching order.
"""

from __future__ import annotations

from typing import Any

from tickspine.collectors.candles import to_provider_symbol
from tickspine.core.errors import ConfigurationError, PersistenceError, TickSpineError, TransientFetchError
from tickspine.core.logging import get_logger
from tickspine.core.protocols import MarketDataFetcher, QuoteStore
from tickspine.execution.context import JobContext

logger = get_logger(__name__)

JOB_NAME = "collect-quotes"


def _pairs(payload: dict[str, Any]) -> list[tuple[str, str]]:
    if "entity_ids" in payload or "symbols" in payload:
        entity_ids = list(payload.get("entity_ids") or [])
        symbols = list(payload.get("symbols") or [])
        if len(entity_ids) != len(symbols):
            raise ConfigurationError(f"{JOB_NAME} payload: entity_ids and symbols differ in length")
        return list(zip(entity_ids, symbols))
    if payload.get("entity_id") and payload.get("symbol"):
        return [(payload["entity_id"], payload["symbol"])]
    raise ConfigurationError(f"{JOB_NAME} payload needs entity_id/symbol or entity_ids/symbols")


class CollectQuotesHandler:
    """Fetches the latest quote for each entity in the payload and stores it."""

    job_name = JOB_NAME

    def __init__(self, fetcher: MarketDataFetcher, store: QuoteStore) -> None:
        self._fetcher = fetcher
        self._store = store

    def __call__(self, ctx: JobContext) -> dict[str, Any]:
        pairs = _pairs(ctx.payload)
        for index, (entity_id, symbol) in enumerate(pairs, start=1):
            try:
                quote = self._fetcher.fetch_quote(to_provider_symbol(symbol))
            except TickSpineError:
                raise
            except Exception as e:
                raise TransientFetchError(f"Fetching quote for {symbol} failed: {e}", cause=e) from e
            try:
                self._store.save_quote(entity_id, quote)
            except Exception as e:
                raise PersistenceError(f"Storing quote for {symbol} failed: {e}", cause=e) from e
            ctx.report_progress(index * 100 // len(pairs))

        ctx.report_progress(100)
        logger.info("quotes_collected", count=len(pairs))
        return {"success": True, "quotes_collected": len(pairs)}
