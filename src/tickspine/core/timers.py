"""Daemon-thread timers.

Each timer owns one thread and one stop event. A timer never waits on
another timer, so a slow callback only delays its own next tick.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)


class TimerThread:
    """Run *callback* repeatedly on a daemon thread.

    The wait before each tick is obtained from ``delay_fn()`` so callers can
    implement both fixed intervals and calendar (cron) rules. Coroutine
    callbacks are executed with ``asyncio.run``. Exceptions raised by the
    callback are logged and the timer keeps running.

    Example:
        >>> timer = TimerThread("health-sample", sample, delay_fn=lambda: 300.0)
        >>> timer.start()
        >>> # ... later ...
        >>> timer.stop()
    """

    def __init__(
        self,
        name: str,
        callback: Callable[[], Any],
        delay_fn: Callable[[], float],
    ) -> None:
        self.name = name
        self._callback = callback
        self._delay_fn = delay_fn
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_count = 0
        self._error_count = 0
        self._last_tick: datetime | None = None
        self._started = False
        self._lock = threading.Lock()

    def start(self) -> None:
        """Start the timer loop in a daemon thread."""
        if self._started:
            logger.warning("Timer %s already started", self.name)
            return

        self._stop_event.clear()

        def _loop() -> None:
            logger.debug("Timer %s started", self.name)
            while not self._stop_event.wait(max(0.0, self._delay_fn())):
                with self._lock:
                    self._tick_count += 1
                    self._last_tick = datetime.now(UTC)
                try:
                    result = self._callback()
                    if inspect.isawaitable(result):
                        asyncio.run(_await(result))
                except Exception as e:
                    with self._lock:
                        self._error_count += 1
                    logger.exception("Timer %s tick failed: %s", self.name, e)
            logger.debug("Timer %s stopped", self.name)

        self._thread = threading.Thread(target=_loop, daemon=True, name=f"tickspine-{self.name}")
        self._thread.start()
        self._started = True

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the loop; waits up to *timeout* seconds for the current tick."""
        if not self._started:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Timer %s did not stop cleanly", self.name)

        self._started = False

    def health(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "healthy": self.is_running,
            "tick_count": self._tick_count,
            "error_count": self._error_count,
            "last_tick": self._last_tick.isoformat() if self._last_tick else None,
        }

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count


class IntervalTimer(TimerThread):
    """Timer with a fixed period in seconds."""

    def __init__(self, name: str, callback: Callable[[], Any], interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        super().__init__(name, callback, delay_fn=lambda: interval_seconds)


async def _await(awaitable: Any) -> Any:
    return await awaitable
