"""In-memory catalog and stores.

Reference implementations of the collaborator protocols, used by the
runtime when no external system is wired in and by the test-suite.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime

from tickspine.core.protocols import Candle, Entity, Quote


@dataclass
class CatalogEntry:
    entity: Entity
    is_active: bool = True
    is_tradable: bool = True


class InMemoryEntityCatalog:
    """Entity catalog backed by a list."""

    def __init__(self, entries: list[CatalogEntry] | None = None) -> None:
        self._entries: dict[str, CatalogEntry] = {}
        self._lock = threading.Lock()
        for entry in entries or []:
            self._entries[entry.entity.id] = entry

    def add(self, entity_id: str, symbol: str, *, is_active: bool = True, is_tradable: bool = True) -> Entity:
        entity = Entity(id=entity_id, symbol=symbol)
        with self._lock:
            self._entries[entity_id] = CatalogEntry(entity, is_active, is_tradable)
        return entity

    def set_flags(self, entity_id: str, *, is_active: bool | None = None, is_tradable: bool | None = None) -> None:
        with self._lock:
            entry = self._entries[entity_id]
            if is_active is not None:
                entry.is_active = is_active
            if is_tradable is not None:
                entry.is_tradable = is_tradable

    def list_active_tradable_entities(self) -> list[Entity]:
        with self._lock:
            return [e.entity for e in self._entries.values() if e.is_active and e.is_tradable]


class InMemoryCandleStore:
    """Candle store keyed by (entity_id, timeframe, timestamp)."""

    def __init__(self) -> None:
        self._rows: dict[tuple[str, str, datetime], Candle] = {}
        self._lock = threading.Lock()

    def upsert_candle(self, entity_id: str, timeframe: str, candle: Candle) -> None:
        with self._lock:
            self._rows[(entity_id, timeframe, candle.timestamp)] = candle

    def candles(self, entity_id: str, timeframe: str) -> list[Candle]:
        with self._lock:
            rows = [c for (eid, tf, _), c in self._rows.items() if eid == entity_id and tf == timeframe]
        return sorted(rows, key=lambda c: c.timestamp)

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)


class InMemoryQuoteStore:
    """Keeps the latest quote per entity."""

    def __init__(self) -> None:
        self._quotes: dict[str, Quote] = {}
        self._lock = threading.Lock()

    def save_quote(self, entity_id: str, quote: Quote) -> None:
        with self._lock:
            self._quotes[entity_id] = quote

    def latest(self, entity_id: str) -> Quote | None:
        with self._lock:
            return self._quotes.get(entity_id)
