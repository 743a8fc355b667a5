"""
Shared pytest fixtures for tickspine tests.

This module provides:
- A virtual clock pinned to a known Monday morning
- In-memory and SQLite queues bound to that clock
- A small entity catalog and a scripted market-data fetcher
"""

from pathlib import Path

import pytest

from tests._support import START, ScriptedFetcher, make_candles
from tickspine.collectors.memory import InMemoryCandleStore, InMemoryEntityCatalog, InMemoryQuoteStore
from tickspine.core.clock import ManualClock
from tickspine.queue.memory import InMemoryJobQueue
from tickspine.queue.registry import QueueRegistry
from tickspine.queue.sqlite import SQLiteJobQueue


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Clock / queues
# =============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def memory_queue(clock: ManualClock) -> InMemoryJobQueue:
    return InMemoryJobQueue("data-collection", clock=clock)


@pytest.fixture
def sqlite_queue(tmp_path: Path, clock: ManualClock):
    queue = SQLiteJobQueue("data-collection", str(tmp_path / "queues.db"), clock=clock)
    yield queue
    queue.close()


@pytest.fixture(params=["memory", "sqlite"])
def queue(request: pytest.FixtureRequest, memory_queue: InMemoryJobQueue, tmp_path: Path, clock: ManualClock):
    """Run a test against both queue stores."""
    if request.param == "memory":
        yield memory_queue
        return
    store = SQLiteJobQueue("data-collection", str(tmp_path / "param.db"), clock=clock)
    yield store
    store.close()


@pytest.fixture
def queues(clock: ManualClock) -> QueueRegistry:
    return QueueRegistry(
        [
            InMemoryJobQueue("data-collection", clock=clock),
            InMemoryJobQueue("notification", clock=clock),
        ]
    )


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def catalog() -> InMemoryEntityCatalog:
    catalog = InMemoryEntityCatalog()
    catalog.add("s-1", "005930")
    catalog.add("s-2", "000660")
    catalog.add("s-3", "AAPL")
    catalog.add("s-4", "035720", is_active=False)
    catalog.add("s-5", "068270", is_tradable=False)
    return catalog


@pytest.fixture
def fetcher() -> ScriptedFetcher:
    return ScriptedFetcher(make_candles(3))


@pytest.fixture
def candle_store() -> InMemoryCandleStore:
    return InMemoryCandleStore()


@pytest.fixture
def quote_store() -> InMemoryQuoteStore:
    return InMemoryQuoteStore()
