"""
Composition root: builds queues, worker pools, scheduler and health monitor
from :class:`~tickspine.core.settings.TickSpineSettings`.

    ┌──────────────┐  enqueue   ┌──────────────────┐  dequeue  ┌─────────────┐
    │  Scheduler   │ ─────────▶ │ QueueRegistry    │ ◀──────── │ WorkerPool  │
    │ (6 triggers) │            │ data-collection  │           │ per queue   │
    └──────────────┘            │ analysis ...     │           └─────────────┘
                                └──────────────────┘
                                         ▲ counts / clean
                                ┌──────────────────┐
                                │ HealthMonitor    │
                                └──────────────────┘

Collaborators (catalog, fetcher, stores, transports) are injected; the
defaults are the in-memory reference implementations and the Yahoo chart
fetcher.
"""

from __future__ import annotations

import threading
from datetime import timedelta

from tickspine.collectors.candles import CollectCandlesHandler
from tickspine.collectors.memory import InMemoryCandleStore, InMemoryEntityCatalog, InMemoryQuoteStore
from tickspine.collectors.quotes import CollectQuotesHandler
from tickspine.collectors.yahoo import YahooChartFetcher
from tickspine.core.clock import Clock, SystemClock
from tickspine.core.logging import get_logger
from tickspine.core.protocols import (
    CandleStore,
    EmailTransport,
    EntityCatalog,
    MarketDataFetcher,
    PushTransport,
    QuoteStore,
)
from tickspine.core.settings import TickSpineSettings
from tickspine.execution.registry import HandlerRegistry
from tickspine.execution.worker import WorkerPool
from tickspine.health.monitor import HealthMonitor, HealthThresholds
from tickspine.notifications.handler import SendNotificationHandler
from tickspine.notifications.transports import (
    InMemoryPushSubscriptionStore,
    LogOnlyEmailTransport,
    UnconfiguredPushSender,
    WebPushTransport,
)
from tickspine.queue.memory import InMemoryJobQueue
from tickspine.queue.protocol import JobQueue
from tickspine.queue.registry import QueueRegistry
from tickspine.queue.sqlite import SQLiteJobQueue
from tickspine.scheduling.scheduler import Scheduler
from tickspine.scheduling.triggers import default_candle_triggers

logger = get_logger(__name__)

DATA_COLLECTION_QUEUE = "data-collection"
NOTIFICATION_QUEUE = "notification"


def build_queues(settings: TickSpineSettings, clock: Clock | None = None) -> QueueRegistry:
    """One queue per configured name; ``:memory:`` selects the in-process store.

    Raises:
        QueueUnavailableError: the SQLite file cannot be opened.
    """
    queues: list[JobQueue] = []
    for name in settings.queues:
        if settings.database_path == ":memory:":
            queues.append(InMemoryJobQueue(name, clock=clock))
        else:
            queues.append(SQLiteJobQueue(name, settings.database_path, clock=clock))
    return QueueRegistry(queues)


class Runtime:
    """Everything needed to run the engine in one process."""

    def __init__(
        self,
        settings: TickSpineSettings,
        *,
        catalog: EntityCatalog | None = None,
        fetcher: MarketDataFetcher | None = None,
        candle_store: CandleStore | None = None,
        quote_store: QuoteStore | None = None,
        email: EmailTransport | None = None,
        push: PushTransport | None = None,
        queues: QueueRegistry | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings
        self.clock = clock or SystemClock()
        self.catalog = catalog or InMemoryEntityCatalog()
        self.queues = queues or build_queues(settings, self.clock)

        self._fetcher = fetcher
        self._owned_fetcher: YahooChartFetcher | None = None
        self._fetcher_lock = threading.Lock()
        self.candle_store = candle_store or InMemoryCandleStore()
        self.quote_store = quote_store or InMemoryQuoteStore()
        self.email = email or LogOnlyEmailTransport()
        self.push = push or WebPushTransport(InMemoryPushSubscriptionStore(), UnconfiguredPushSender())

        self.handlers: dict[str, HandlerRegistry] = {name: HandlerRegistry() for name in self.queues.names()}
        self._register_handlers()

        self.pools: dict[str, WorkerPool] = {
            queue.name: WorkerPool(
                queue,
                self.handlers[queue.name],
                concurrency=settings.concurrency_for(queue.name),
                poll_interval=settings.poll_interval_seconds,
                stall_timeout=settings.stall_timeout_seconds,
                clock=self.clock,
            )
            for queue in self.queues
        }

        self.scheduler = Scheduler(
            self.catalog,
            self.queues,
            clock=self.clock,
            default_base_delay_ms=settings.trigger_base_delay_ms,
            default_max_attempts=settings.trigger_max_attempts,
        )
        if settings.enable_default_triggers and self.queues.has(DATA_COLLECTION_QUEUE):
            for trigger_id, schedule, action in default_candle_triggers(settings.market_timezone):
                self.scheduler.register_trigger(schedule, action, trigger_id=trigger_id)

        self.monitor = HealthMonitor(
            self.queues,
            thresholds=HealthThresholds(failed=settings.failed_threshold, waiting=settings.waiting_threshold),
            sample_interval=settings.health_sample_interval_seconds,
            cleanup_interval=settings.cleanup_interval_seconds,
            retention=timedelta(hours=settings.completed_retention_hours),
            clock=self.clock,
        )
        self._running = False

    @property
    def fetcher(self) -> MarketDataFetcher:
        """The injected fetcher, or a Yahoo fetcher built on first use."""
        if self._fetcher is not None:
            return self._fetcher
        with self._fetcher_lock:
            if self._owned_fetcher is None:
                self._owned_fetcher = YahooChartFetcher()
            return self._owned_fetcher

    def _close_fetcher(self) -> None:
        """Close the owned fetcher once no job can still be using it."""
        if any(pool.active_count for pool in self.pools.values()):
            logger.info("fetcher_close_deferred")
            return
        with self._fetcher_lock:
            owned, self._owned_fetcher = self._owned_fetcher, None
        if owned is not None:
            owned.close()

    def _register_handlers(self) -> None:
        if DATA_COLLECTION_QUEUE in self.handlers:
            registry = self.handlers[DATA_COLLECTION_QUEUE]
            registry.register(
                "collect-candles",
                lambda ctx: CollectCandlesHandler(self.fetcher, self.candle_store)(ctx),
                description="Fetch and upsert candles for one entity/timeframe",
            )
            registry.register(
                "collect-quotes",
                lambda ctx: CollectQuotesHandler(self.fetcher, self.quote_store)(ctx),
                description="Fetch and store latest quotes",
            )
        if NOTIFICATION_QUEUE in self.handlers:
            self.handlers[NOTIFICATION_QUEUE].register(
                "send-notification",
                SendNotificationHandler(self.email, self.push),
                description="Deliver a notification by email or web push",
            )

    # === Lifecycle ===

    def start(self) -> None:
        if self._running:
            logger.warning("runtime_already_running")
            return
        for pool in self.pools.values():
            pool.start_background()
        self.scheduler.start()
        self.monitor.start()
        self._running = True
        logger.info("runtime_started", queues=self.queues.names(), triggers=len(self.scheduler.triggers))

    def stop(self) -> None:
        if not self._running:
            return
        self.scheduler.stop()
        self.monitor.stop()
        for pool in self.pools.values():
            pool.stop()
        self._close_fetcher()
        self._running = False
        logger.info("runtime_stopped")

    @property
    def is_running(self) -> bool:
        return self._running
