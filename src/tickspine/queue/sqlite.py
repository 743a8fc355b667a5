"""SQLite-backed job queue.

Several queues share one database file; each :class:`SQLiteJobQueue`
instance owns a connection and scopes every statement to its queue name.
Claims use the same pattern as a database-polling worker: select candidate
ids, then ``UPDATE ... WHERE id = ? AND state = 'waiting'`` and keep only
the rows whose update actually landed. Writes run inside ``BEGIN
IMMEDIATE`` so two processes polling the same file never claim one job
twice.

Timestamps are stored as fixed-width UTC strings so that SQL string
comparison matches chronological order.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from tickspine.core.clock import Clock, SystemClock
from tickspine.core.errors import InvalidTransitionError, JobNotFoundError, PersistenceError, QueueUnavailableError
from tickspine.queue.models import BackoffPolicy, BackoffType, Job, JobOptions, JobState, QueueCounts
from tickspine.queue.protocol import (
    apply_claim,
    apply_completion,
    apply_failure,
    apply_operator_retry,
    apply_requeue,
    check_clean_state,
    clamp_progress,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS tickspine_jobs (
    id               TEXT PRIMARY KEY,
    queue            TEXT NOT NULL,
    name             TEXT NOT NULL,
    payload          TEXT NOT NULL,
    state            TEXT NOT NULL,
    attempts         INTEGER NOT NULL DEFAULT 0,
    max_attempts     INTEGER NOT NULL DEFAULT 1,
    backoff_type     TEXT NOT NULL DEFAULT 'exponential',
    backoff_delay_ms INTEGER NOT NULL DEFAULT 2000,
    progress         INTEGER NOT NULL DEFAULT 0,
    created_at       TEXT NOT NULL,
    available_at     TEXT,
    started_at       TEXT,
    finished_at      TEXT,
    last_error       TEXT,
    result           TEXT,
    seq              INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tickspine_jobs_claim
    ON tickspine_jobs (queue, state, available_at, seq);
CREATE INDEX IF NOT EXISTS idx_tickspine_jobs_finished
    ON tickspine_jobs (queue, state, finished_at);
"""

_COLUMNS = (
    "id, queue, name, payload, state, attempts, max_attempts, backoff_type, "
    "backoff_delay_ms, progress, created_at, available_at, started_at, "
    "finished_at, last_error, result, seq"
)

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(_TS_FORMAT)


def _parse_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=UTC)


def connect(database_path: str) -> sqlite3.Connection:
    """Open the queue database and ensure the schema exists.

    Raises:
        QueueUnavailableError: the file cannot be opened or initialised.
    """
    try:
        if database_path != ":memory:":
            Path(database_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            database_path = str(Path(database_path).expanduser())
        conn = sqlite3.connect(database_path, check_same_thread=False, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout = 5000")
        if database_path != ":memory:":
            conn.execute("PRAGMA journal_mode = WAL")
        conn.executescript(SCHEMA)
    except (sqlite3.Error, OSError) as e:
        raise QueueUnavailableError(
            f"Cannot open queue database at {database_path}: {e}", cause=e
        ) from e
    return conn


class SQLiteJobQueue:
    """Persistent :class:`~tickspine.queue.protocol.JobQueue` on SQLite."""

    def __init__(
        self,
        name: str,
        database_path: str | None = None,
        *,
        conn: sqlite3.Connection | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.name = name
        self._clock = clock or SystemClock()
        if conn is not None:
            self._conn = conn
            self._owns_conn = False
            try:
                self._conn.executescript(SCHEMA)
            except sqlite3.Error as e:
                raise QueueUnavailableError(f"Cannot initialise queue schema: {e}", cause=e) from e
        elif database_path:
            self._conn = connect(database_path)
            self._owns_conn = True
        else:
            raise ValueError("Either database_path or conn must be provided")
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"SQLiteJobQueue({self.name!r})"

    def close(self) -> None:
        if self._owns_conn:
            self._conn.close()

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #

    @contextmanager
    def _tx(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise PersistenceError(f"Queue {self.name} unavailable: {e}", cause=e).with_context(
                    queue=self.name
                ) from e
            try:
                yield self._conn
            except sqlite3.Error as e:
                self._conn.execute("ROLLBACK")
                raise PersistenceError(f"Queue {self.name} write failed: {e}", cause=e).with_context(
                    queue=self.name
                ) from e
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")

    def _read(self, sql: str, params: tuple[Any, ...]) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise PersistenceError(f"Queue {self.name} read failed: {e}", cause=e).with_context(
                    queue=self.name
                ) from e

    # ------------------------------------------------------------------ #
    # Row mapping
    # ------------------------------------------------------------------ #

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> Job:
        return Job(
            id=row["id"],
            queue=row["queue"],
            name=row["name"],
            payload=json.loads(row["payload"]),
            state=JobState(row["state"]),
            attempts=row["attempts"],
            max_attempts=row["max_attempts"],
            backoff=BackoffPolicy(type=BackoffType(row["backoff_type"]), delay_ms=row["backoff_delay_ms"]),
            progress=row["progress"],
            created_at=_parse_ts(row["created_at"]),
            available_at=_parse_ts(row["available_at"]),
            started_at=_parse_ts(row["started_at"]),
            finished_at=_parse_ts(row["finished_at"]),
            last_error=row["last_error"],
            result=json.loads(row["result"]) if row["result"] is not None else None,
            seq=row["seq"],
        )

    def _load(self, conn: sqlite3.Connection, job_id: str) -> Job:
        row = conn.execute(
            f"SELECT {_COLUMNS} FROM tickspine_jobs WHERE id = ? AND queue = ?",
            (job_id, self.name),
        ).fetchone()
        if row is None:
            raise JobNotFoundError(self.name, job_id)
        return self._row_to_job(row)

    def _save(self, conn: sqlite3.Connection, job: Job, expected: JobState) -> bool:
        cursor = conn.execute(
            "UPDATE tickspine_jobs SET state = ?, attempts = ?, progress = ?, "
            "available_at = ?, started_at = ?, finished_at = ?, last_error = ?, "
            "result = ?, seq = ? "
            "WHERE id = ? AND state = ?",
            (
                job.state.value,
                job.attempts,
                job.progress,
                _ts(job.available_at),
                _ts(job.started_at),
                _ts(job.finished_at),
                job.last_error,
                json.dumps(job.result, default=str) if job.result is not None else None,
                job.seq,
                job.id,
                expected.value,
            ),
        )
        return cursor.rowcount == 1

    @staticmethod
    def _next_seq(conn: sqlite3.Connection) -> int:
        return conn.execute("SELECT COALESCE(MAX(seq), 0) + 1 FROM tickspine_jobs").fetchone()[0]

    # ------------------------------------------------------------------ #
    # Producer side
    # ------------------------------------------------------------------ #

    def enqueue(self, job_name: str, payload: dict[str, Any], options: JobOptions | None = None) -> Job:
        options = options or JobOptions()
        now = self._clock.now()
        job = Job(
            queue=self.name,
            name=job_name,
            payload=dict(payload),
            max_attempts=options.max_attempts,
            backoff=options.backoff,
            created_at=now,
            available_at=now,
        )
        with self._tx() as conn:
            job.seq = self._next_seq(conn)
            conn.execute(
                f"INSERT INTO tickspine_jobs ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    job.id,
                    job.queue,
                    job.name,
                    json.dumps(job.payload, default=str),
                    job.state.value,
                    job.attempts,
                    job.max_attempts,
                    job.backoff.type.value,
                    job.backoff.delay_ms,
                    job.progress,
                    _ts(job.created_at),
                    _ts(job.available_at),
                    None,
                    None,
                    None,
                    None,
                    job.seq,
                ),
            )
        return job

    # ------------------------------------------------------------------ #
    # Consumer side
    # ------------------------------------------------------------------ #

    def dequeue(self, limit: int) -> list[Job]:
        if limit <= 0:
            return []
        now = self._clock.now()
        now_ts = _ts(now)
        claimed: list[Job] = []
        with self._tx() as conn:
            conn.execute(
                "UPDATE tickspine_jobs SET state = 'waiting' "
                "WHERE queue = ? AND state = 'delayed' AND available_at <= ?",
                (self.name, now_ts),
            )
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM tickspine_jobs "
                "WHERE queue = ? AND state = 'waiting' AND available_at <= ? "
                "ORDER BY available_at ASC, seq ASC LIMIT ?",
                (self.name, now_ts, limit),
            ).fetchall()
            for row in rows:
                job = self._row_to_job(row)
                apply_claim(job, now)
                if not self._save(conn, job, JobState.WAITING):
                    continue  # claimed elsewhere
                claimed.append(job)
        return claimed

    def report_progress(self, job_id: str, percent: int) -> None:
        with self._tx() as conn:
            cursor = conn.execute(
                "UPDATE tickspine_jobs SET progress = ? WHERE id = ? AND queue = ?",
                (clamp_progress(percent), job_id, self.name),
            )
            if cursor.rowcount == 0:
                raise JobNotFoundError(self.name, job_id)

    def complete(self, job_id: str, result: Any = None) -> Job:
        with self._tx() as conn:
            job = self._load(conn, job_id)
            previous = job.state
            apply_completion(job, result, self._clock.now())
            self._save(conn, job, previous)
        return job

    def fail(self, job_id: str, error: BaseException | str, *, retryable: bool = True) -> Job:
        with self._tx() as conn:
            job = self._load(conn, job_id)
            previous = job.state
            apply_failure(job, error, self._clock.now(), retryable)
            self._save(conn, job, previous)
        return job

    def release(self, job_id: str) -> Job:
        with self._tx() as conn:
            job = self._load(conn, job_id)
            apply_requeue(job, self._clock.now())
            self._save(conn, job, JobState.ACTIVE)
        return job

    # ------------------------------------------------------------------ #
    # Inspection / maintenance
    # ------------------------------------------------------------------ #

    def counts_by_state(self) -> QueueCounts:
        rows = self._read(
            "SELECT state, COUNT(*) AS n FROM tickspine_jobs WHERE queue = ? GROUP BY state",
            (self.name,),
        )
        tally = {row["state"]: row["n"] for row in rows}
        return QueueCounts(
            waiting=tally.get("waiting", 0),
            active=tally.get("active", 0),
            completed=tally.get("completed", 0),
            failed=tally.get("failed", 0),
            delayed=tally.get("delayed", 0),
        )

    def clean(self, older_than: datetime, state: JobState) -> int:
        check_clean_state(state)
        with self._tx() as conn:
            cursor = conn.execute(
                "DELETE FROM tickspine_jobs "
                "WHERE queue = ? AND state = ? AND finished_at IS NOT NULL AND finished_at < ?",
                (self.name, state.value, _ts(older_than)),
            )
            removed = cursor.rowcount
        if removed:
            logger.debug("Cleaned %d %s job(s) from %s", removed, state.value, self.name)
        return removed

    def retry(self, job_id: str) -> Job:
        with self._tx() as conn:
            job = self._load(conn, job_id)
            apply_operator_retry(job, self._clock.now())
            job.seq = self._next_seq(conn)
            self._save(conn, job, JobState.FAILED)
        return job

    def get(self, job_id: str) -> Job:
        rows = self._read(
            f"SELECT {_COLUMNS} FROM tickspine_jobs WHERE id = ? AND queue = ?",
            (job_id, self.name),
        )
        if not rows:
            raise JobNotFoundError(self.name, job_id)
        return self._row_to_job(rows[0])

    def list_jobs(self, state: JobState, limit: int = 10) -> list[Job]:
        rows = self._read(
            f"SELECT {_COLUMNS} FROM tickspine_jobs WHERE queue = ? AND state = ? "
            "ORDER BY seq DESC LIMIT ?",
            (self.name, state.value, limit),
        )
        return [self._row_to_job(row) for row in rows]

    def remove(self, job_id: str) -> None:
        with self._tx() as conn:
            job = self._load(conn, job_id)
            if job.state is JobState.ACTIVE:
                raise InvalidTransitionError(job.state.value, "removed", job_id)
            conn.execute(
                "DELETE FROM tickspine_jobs WHERE id = ? AND queue = ? AND state = ?",
                (job_id, self.name, job.state.value),
            )

    def requeue_stalled(self, older_than: datetime) -> int:
        now = self._clock.now()
        requeued = 0
        with self._tx() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM tickspine_jobs "
                "WHERE queue = ? AND state = 'active' AND started_at < ?",
                (self.name, _ts(older_than)),
            ).fetchall()
            for row in rows:
                job = self._row_to_job(row)
                apply_requeue(job, now)
                if self._save(conn, job, JobState.ACTIVE):
                    requeued += 1
                    logger.warning("Requeued stalled job %s (%s) in %s", job.id, job.name, self.name)
        return requeued
