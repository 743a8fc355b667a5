"""
Worker pool: bounded-concurrency consumer of one queue.

Architecture:
    1. ``_poll()`` computes free slots (``concurrency - in flight``) and asks
       the queue for at most that many jobs. Nothing else drives dequeue, so
       a pool never holds more than ``concurrency`` active jobs.
    2. Each claimed job is executed on a ``ThreadPoolExecutor`` sized to the
       concurrency. Coroutine handlers run via ``asyncio.run`` on the worker
       thread.
    3. The outcome is reported back to the queue: ``complete`` on success,
       ``fail`` on any exception (the queue decides between backoff and
       terminal failure). A ``TickSpineError`` raised with
       ``retryable=False`` fails the job terminally on the first attempt.
    4. A job whose name has no handler is logged and completed with
       ``{"handled": False}``. It never counts as a failure and never retries.

Shutdown:
    ``stop()`` stops polling and does not wait for or fail in-flight jobs.
    A job abandoned mid-flight stays ``active`` until stall recovery
    returns it to ``waiting``. The executor is created on first dispatch and
    discarded by ``stop()``, so a stopped pool can be started again.
"""

from __future__ import annotations

import asyncio
import inspect
import signal
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from tickspine.core.clock import Clock, SystemClock
from tickspine.core.errors import TickSpineError, UnknownJobError, describe_error
from tickspine.core.logging import LogContext, get_logger
from tickspine.execution.context import JobContext, JobHandler
from tickspine.execution.registry import HandlerRegistry
from tickspine.queue.models import Job
from tickspine.queue.protocol import JobQueue

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class WorkerStats:
    """Aggregate statistics for a worker pool."""

    total_processed: int = 0
    total_completed: int = 0
    total_failed: int = 0
    total_unhandled: int = 0
    total_stalled_requeued: int = 0
    active_jobs: int = 0
    uptime_seconds: float = 0
    last_poll_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_processed": self.total_processed,
            "total_completed": self.total_completed,
            "total_failed": self.total_failed,
            "total_unhandled": self.total_unhandled,
            "total_stalled_requeued": self.total_stalled_requeued,
            "active_jobs": self.active_jobs,
            "uptime_seconds": round(self.uptime_seconds, 2),
            "last_poll_at": self.last_poll_at.isoformat() if self.last_poll_at else None,
        }


class WorkerPool:
    """Consumes one queue with at most ``concurrency`` jobs in flight.

    Example:
        >>> pool = WorkerPool(queue, concurrency=5)
        >>> pool.register_handler("collect-candles", CollectCandlesHandler(...))
        >>> pool.start_background()
        >>> # ... later ...
        >>> pool.stop()
    """

    def __init__(
        self,
        queue: JobQueue,
        handlers: HandlerRegistry | None = None,
        concurrency: int = 1,
        poll_interval: float = 0.5,
        stall_timeout: float | None = None,
        clock: Clock | None = None,
        worker_id: str | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._queue = queue
        self._registry = handlers or HandlerRegistry()
        self._concurrency = concurrency
        self._poll_interval = poll_interval
        self._stall_timeout = stall_timeout
        self._clock = clock or SystemClock()
        self._worker_id = worker_id or f"{queue.name}-{uuid.uuid4().hex[:8]}"

        self._shutdown = threading.Event()
        self._started_at = _utcnow()
        self._stats = WorkerStats()
        self._stats_lock = threading.Lock()

        self._executor: ThreadPoolExecutor | None = None
        self._executor_lock = threading.Lock()

        self._active_job_ids: set[str] = set()
        self._active_lock = threading.Condition()
        self._thread: threading.Thread | None = None

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def queue(self) -> JobQueue:
        return self._queue

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def handlers(self) -> HandlerRegistry:
        return self._registry

    def register_handler(self, job_name: str, handler: JobHandler, description: str = "") -> None:
        self._registry.register(job_name, handler, description=description)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Run the poll loop in the calling thread until :meth:`stop`.

        Installs SIGINT/SIGTERM handlers when called from the main thread.
        """
        logger.info(
            "worker_pool_starting",
            worker_id=self._worker_id,
            queue=self._queue.name,
            concurrency=self._concurrency,
            poll_interval=self._poll_interval,
            handlers=self._registry.list_handlers(),
        )
        try:
            signal.signal(signal.SIGINT, self._handle_signal)
            signal.signal(signal.SIGTERM, self._handle_signal)
        except (ValueError, OSError):
            pass  # not in main thread

        self._recover_stalled()
        self._run_loop()

    def start_background(self) -> threading.Thread:
        """Start the poll loop in a daemon thread. Returns the thread."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("worker_pool_already_running", worker_id=self._worker_id)
            return self._thread
        self._shutdown.clear()
        self._thread = threading.Thread(
            target=self.start,
            name=f"{self._worker_id}-loop",
            daemon=True,
        )
        self._thread.start()
        return self._thread

    def stop(self, timeout: float = 5.0) -> None:
        """Stop polling. In-flight jobs are left as they are."""
        logger.info("worker_pool_stopping", worker_id=self._worker_id, in_flight=self.active_count)
        self._shutdown.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._shutdown.is_set()

    def _handle_signal(self, signum: int, frame: Any) -> None:
        logger.info("worker_pool_signal", worker_id=self._worker_id, signal=signum)
        self._shutdown.set()

    # ------------------------------------------------------------------ #
    # Main loop
    # ------------------------------------------------------------------ #

    def _run_loop(self) -> None:
        while not self._shutdown.is_set():
            try:
                self._recover_stalled()
                claimed = self._poll()
                if claimed:
                    logger.debug("jobs_claimed", worker_id=self._worker_id, count=claimed)
            except Exception:
                logger.exception("worker_poll_error", worker_id=self._worker_id, queue=self._queue.name)

            with self._stats_lock:
                self._stats.last_poll_at = _utcnow()
            self._shutdown.wait(self._poll_interval)
        logger.info("worker_pool_stopped", worker_id=self._worker_id)

    def run_once(self) -> int:
        """One dispatch cycle: claim up to the free slot count and submit."""
        self._recover_stalled()
        return self._poll()

    def _poll(self) -> int:
        with self._active_lock:
            free = self._concurrency - len(self._active_job_ids)
        if free <= 0:
            return 0

        executor = self._ensure_executor()
        jobs = self._queue.dequeue(free)
        submitted = 0
        for job in jobs:
            with self._active_lock:
                self._active_job_ids.add(job.id)
            try:
                executor.submit(self._execute, job)
            except RuntimeError:
                self._release(job)
                continue
            submitted += 1
        return submitted

    def _ensure_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._concurrency,
                    thread_name_prefix=self._worker_id,
                )
            return self._executor

    def _release(self, job: Job) -> None:
        """Hand a claimed but never started job back to the queue."""
        with self._active_lock:
            self._active_job_ids.discard(job.id)
            self._active_lock.notify_all()
        try:
            self._queue.release(job.id)
        except Exception:
            logger.exception("job_release_failed", queue=self._queue.name, job_id=job.id)
            return
        logger.warning("job_released_unstarted", queue=self._queue.name, job_id=job.id)

    def _recover_stalled(self) -> None:
        if self._stall_timeout is None:
            return
        cutoff = self._clock.now() - timedelta(seconds=self._stall_timeout)
        requeued = self._queue.requeue_stalled(cutoff)
        if requeued:
            with self._stats_lock:
                self._stats.total_stalled_requeued += requeued
            logger.warning("stalled_jobs_requeued", queue=self._queue.name, count=requeued)

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    def _execute(self, job: Job) -> None:
        with LogContext(queue=job.queue, job_id=job.id, job_name=job.name):
            try:
                self._run_job(job)
            except Exception:
                # Outcome could not be recorded; stall recovery will redeliver.
                logger.exception("job_outcome_not_recorded")
            finally:
                with self._active_lock:
                    self._active_job_ids.discard(job.id)
                    self._active_lock.notify_all()

    def _run_job(self, job: Job) -> None:
        try:
            handler = self._registry.get(job.name)
        except UnknownJobError as e:
            logger.warning("unknown_job_name", available=self._registry.list_handlers())
            self._queue.complete(job.id, {"handled": False, "reason": e.message})
            with self._stats_lock:
                self._stats.total_processed += 1
                self._stats.total_unhandled += 1
            return

        ctx = JobContext(
            job=job,
            report_progress=lambda percent: self._queue.report_progress(job.id, percent),
        )
        try:
            result = handler(ctx)
            if inspect.isawaitable(result):
                result = asyncio.run(_await(result))
        except Exception as e:
            retryable = not (isinstance(e, TickSpineError) and not e.retryable)
            updated = self._queue.fail(job.id, e, retryable=retryable)
            with self._stats_lock:
                self._stats.total_processed += 1
                self._stats.total_failed += 1
            logger.warning(
                "job_attempt_failed",
                error=describe_error(e),
                attempts=updated.attempts,
                max_attempts=updated.max_attempts,
                state=updated.state.value,
                retryable=retryable,
            )
            return

        self._queue.complete(job.id, result)
        with self._stats_lock:
            self._stats.total_processed += 1
            self._stats.total_completed += 1
        logger.debug("job_completed")

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    @property
    def active_count(self) -> int:
        with self._active_lock:
            return len(self._active_job_ids)

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no job is in flight. Returns False on timeout."""
        with self._active_lock:
            return self._active_lock.wait_for(lambda: not self._active_job_ids, timeout=timeout)

    def get_stats(self) -> WorkerStats:
        with self._stats_lock:
            self._stats.active_jobs = self.active_count
            self._stats.uptime_seconds = (_utcnow() - self._started_at).total_seconds()
            return WorkerStats(**vars(self._stats))


async def _await(awaitable: Any) -> Any:
    return await awaitable
