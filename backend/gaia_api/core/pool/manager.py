"""
Bounded connection pool for the application database.

One PoolManager per process: built and opened in the FastAPI lifespan (or a
script), passed to consumers, shut down once. Counters are updated inside the
acquire/release/error paths under a single Condition, so get_metrics() always
sees a consistent snapshot.

Invariant: len(idle) + len(leased) + opening <= max_size.
"""

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum
from typing import Any, NamedTuple

import psycopg
from psycopg.pq import TransactionStatus
from pydantic import BaseModel, Field
from tenacity import (
    Retrying,
    after_log,
    before_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from gaia_api.core.config import Settings

from .connect import connect, cursor_columns, cursor_to_dicts, execute
from .errors import (
    ConnectTimeoutError,
    PoolClosedError,
    PoolError,
    PoolExhaustedError,
    QueryError,
)
from .health import HealthResult, PoolMetrics, health_check

_log = logging.getLogger(__name__)

CONNECTIVITY_QUERY = "SELECT NOW()"
_LOG_QUERY_CHARS = 100


class PoolState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    DRAINING = "draining"
    CLOSED = "closed"


class PoolConfig(BaseModel):
    """Connection target and pool limits. Durations are milliseconds."""

    host: str = "localhost"
    port: int = 5432
    database: str = "gaia_commons"
    user: str = "gaia_user"
    password: str = Field(default="", repr=False)
    max_size: int = Field(default=20, ge=1)
    max_waiting: int = Field(default=0, ge=0)
    idle_timeout_ms: int = Field(default=30_000, ge=0)
    connect_timeout_ms: int = Field(default=2_000, ge=0)
    statement_timeout_ms: int = Field(default=30_000, ge=0)
    slow_query_threshold_ms: int = Field(default=1_000, ge=0)
    shutdown_grace_period_ms: int = Field(default=10_000, ge=0)

    @classmethod
    def from_settings(cls, s: Settings) -> "PoolConfig":
        return cls(
            host=s.DB_HOST,
            port=s.DB_PORT,
            database=s.DB_NAME,
            user=s.DB_USER,
            password=s.DB_PASSWORD,
            max_size=s.DB_POOL_MAX,
            max_waiting=s.DB_POOL_MAX_WAITING,
            idle_timeout_ms=s.DB_IDLE_TIMEOUT,
            connect_timeout_ms=s.DB_CONNECTION_TIMEOUT,
            statement_timeout_ms=s.DB_STATEMENT_TIMEOUT,
            slow_query_threshold_ms=s.DB_SLOW_QUERY_THRESHOLD,
            shutdown_grace_period_ms=s.DB_SHUTDOWN_GRACE_PERIOD,
        )


class QueryResult(BaseModel):
    rows: list[dict[str, Any]] = []
    row_count: int = 0
    columns: list[str] = []


class _PoolEntry(NamedTuple):
    conn: Any
    created_at: float  # time.monotonic() when the connection was opened
    last_used: float  # time.monotonic() when last returned to pool


class PoolManager:
    """Bounded pool of connections to one database, with health, retry and metrics."""

    def __init__(
        self,
        config: PoolConfig,
        *,
        connect_fn: Callable[[PoolConfig], Any] = connect,
    ) -> None:
        self._config = config
        self._connect = connect_fn
        self._cond = threading.Condition(threading.Lock())
        self._state = PoolState.UNINITIALIZED
        self._idle: list[_PoolEntry] = []
        self._leased: dict[int, _PoolEntry] = {}
        self._opening = 0
        self._waiting = 0
        self._errors = 0

    @property
    def config(self) -> PoolConfig:
        return self._config

    @property
    def state(self) -> PoolState:
        return self._state

    def open(self) -> "PoolManager":
        with self._cond:
            if self._state != PoolState.UNINITIALIZED:
                raise PoolClosedError(f"Pool cannot be opened from state {self._state.value}")
            self._state = PoolState.READY
        _log.info(
            "Database pool ready (host=%s port=%s db=%s max=%d)",
            self._config.host,
            self._config.port,
            self._config.database,
            self._config.max_size,
        )
        return self

    def __enter__(self) -> "PoolManager":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Leases
    # ------------------------------------------------------------------

    def acquire_connection(self, timeout_ms: int | None = None) -> Any:
        """
        Lease a connection: idle one if any, else open a new one while under
        max_size, else wait until a lease is released.

        Raises PoolClosedError unless READY, PoolExhaustedError when the wait
        queue is full, ConnectTimeoutError when nothing frees up in time.
        Driver errors while opening a connection propagate unchanged.
        """
        if timeout_ms is None:
            timeout_ms = self._config.connect_timeout_ms
        deadline = time.monotonic() + timeout_ms / 1000
        expired: list[_PoolEntry] = []
        try:
            with self._cond:
                while True:
                    self._ensure_ready()
                    expired.extend(self._evict_expired())
                    if self._idle:
                        entry = self._idle.pop()
                        self._leased[id(entry.conn)] = entry
                        return entry.conn
                    if self._total() < self._config.max_size:
                        self._opening += 1
                        break
                    if 0 < self._config.max_waiting <= self._waiting:
                        raise PoolExhaustedError(
                            f"All {self._config.max_size} connections are leased and "
                            f"{self._waiting} callers are already waiting"
                        )
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise ConnectTimeoutError(
                            f"No connection available within {timeout_ms}ms "
                            f"(max={self._config.max_size})"
                        )
                    self._waiting += 1
                    try:
                        self._cond.wait(remaining)
                    finally:
                        self._waiting -= 1
        finally:
            self._close_all(expired)
        return self._open_leased()

    def release(self, conn: Any) -> None:
        """
        Return a leased connection. Open transactions are rolled back; broken
        connections are discarded. Releasing an unknown connection is ignored.
        """
        key = id(conn)
        with self._cond:
            if key not in self._leased:
                _log.warning("Ignoring release of a connection not leased from this pool")
                return
        healthy = self._reset(conn)
        with self._cond:
            entry = self._leased.pop(key, None)
            if entry is None:
                # force-closed by shutdown() while we were resetting it
                return
            keep = healthy and self._state == PoolState.READY
            if keep:
                self._idle.append(entry._replace(last_used=time.monotonic()))
            elif not healthy:
                self._errors += 1
            if self._state == PoolState.READY:
                self._cond.notify()
            else:
                self._cond.notify_all()
        if not keep:
            self._close_quiet(conn)

    @contextmanager
    def connection(self, timeout_ms: int | None = None) -> Iterator[Any]:
        """Lease a connection for the duration of the ``with`` block."""
        conn = self.acquire_connection(timeout_ms)
        try:
            yield conn
        finally:
            self.release(conn)

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Lease a connection inside a transaction: commit on success, rollback on error."""
        with self.connection() as conn, conn.transaction():
            yield conn

    # ------------------------------------------------------------------
    # Queries and diagnostics
    # ------------------------------------------------------------------

    def run_query(
        self, text: str, params: dict | list | tuple | None = None
    ) -> QueryResult:
        param_count = len(params) if params is not None else 0
        with self.connection() as conn:
            start = time.perf_counter()
            try:
                cur = execute(conn, text, params)
                try:
                    columns = cursor_columns(cur)
                    rows = cursor_to_dicts(cur)
                    row_count = cur.rowcount if cur.rowcount >= 0 else len(rows)
                finally:
                    cur.close()
            except Exception as exc:
                duration_ms = (time.perf_counter() - start) * 1000
                _log.error(
                    "Query failed after %.1fms (params=%d): %s",
                    duration_ms,
                    param_count,
                    exc,
                )
                raise QueryError(
                    exc, query=text, duration_ms=duration_ms, param_count=param_count
                ) from exc
            duration_ms = (time.perf_counter() - start) * 1000
        if duration_ms > self._config.slow_query_threshold_ms:
            _log.warning(
                "Slow query (%.1fms, rows=%d): %s",
                duration_ms,
                row_count,
                text[:_LOG_QUERY_CHARS],
            )
        else:
            _log.debug(
                "Executed query (%.1fms, rows=%d): %s",
                duration_ms,
                row_count,
                text[:_LOG_QUERY_CHARS],
            )
        return QueryResult(rows=rows, row_count=row_count, columns=columns)

    def test_connectivity(self, max_retries: int = 3, retry_delay_ms: int = 1_000) -> bool:
        """
        Acquire + SELECT NOW(), up to *max_retries* attempts with a fixed
        *retry_delay_ms* between attempts (so max_retries - 1 waits; no wait
        after the last attempt). True on first success, False once attempts
        are exhausted. Only database and pool errors count as "unreachable";
        anything else propagates.
        """
        retrying = Retrying(
            stop=stop_after_attempt(max(1, max_retries)),
            wait=wait_fixed(retry_delay_ms / 1000),
            retry=retry_if_exception_type((psycopg.Error, PoolError)),
            before=before_log(_log, logging.DEBUG),
            after=after_log(_log, logging.WARNING),
            reraise=True,
        )
        try:
            now = retrying(self._select_now)
        except (psycopg.Error, PoolError) as exc:
            _log.error(
                "Database connection failed after %d attempt(s): %s", max_retries, exc
            )
            return False
        _log.info("Database connected: %s", now)
        return True

    def _select_now(self) -> Any:
        with self.connection() as conn:
            cur = execute(conn, CONNECTIVITY_QUERY)
            try:
                row = cur.fetchone()
            finally:
                cur.close()
        return row[0] if row else None

    def check_health(self) -> HealthResult:
        """Single check (acquire + SELECT 1 + release) with latency. Never raises."""
        start = time.perf_counter()
        healthy = False
        try:
            with self.connection() as conn:
                healthy = health_check(conn)
        except Exception as exc:
            _log.warning("Database health check failed: %s", exc)
        latency_ms = (time.perf_counter() - start) * 1000
        if not healthy:
            _log.warning("Database unhealthy (check took %.1fms)", latency_ms)
        return HealthResult(
            healthy=healthy, metrics=self.get_metrics(), latency_ms=latency_ms
        )

    def get_metrics(self) -> PoolMetrics:
        with self._cond:
            return PoolMetrics(
                total_connections=self._total(),
                idle_connections=len(self._idle),
                waiting_clients=self._waiting,
                errors=self._errors,
            )

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self, grace_period_ms: int | None = None) -> None:
        """
        Close idle connections, reject new acquisitions, wait up to the grace
        period for leases to come back, then force-close whatever is left.
        """
        if grace_period_ms is None:
            grace_period_ms = self._config.shutdown_grace_period_ms
        with self._cond:
            if self._state in (PoolState.DRAINING, PoolState.CLOSED):
                return
            if self._state == PoolState.UNINITIALIZED:
                self._state = PoolState.CLOSED
                return
            self._state = PoolState.DRAINING
            idle, self._idle = self._idle, []
            leased_count = len(self._leased)
            self._cond.notify_all()
        _log.info(
            "Draining database pool (idle=%d, leased=%d)", len(idle), leased_count
        )
        self._close_all(idle)

        deadline = time.monotonic() + grace_period_ms / 1000
        with self._cond:
            while self._leased:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._cond.wait(remaining)
            forced = list(self._leased.values())
            self._leased.clear()
            self._state = PoolState.CLOSED
            self._cond.notify_all()
        if forced:
            _log.warning(
                "Shutdown grace period of %dms elapsed; force-closing %d leased connection(s)",
                grace_period_ms,
                len(forced),
            )
            self._close_all(forced)
        _log.info("Database pool closed")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _total(self) -> int:
        return len(self._idle) + len(self._leased) + self._opening

    def _ensure_ready(self) -> None:
        if self._state == PoolState.READY:
            return
        if self._state == PoolState.UNINITIALIZED:
            raise PoolClosedError("Pool is not open")
        raise PoolClosedError(f"Pool is {self._state.value}")

    def _evict_expired(self) -> list[_PoolEntry]:
        """Drop idle entries past idle_timeout or already closed. Caller holds the lock."""
        timeout = self._config.idle_timeout_ms / 1000
        now = time.monotonic()
        keep: list[_PoolEntry] = []
        expired: list[_PoolEntry] = []
        for e in self._idle:
            if e.conn.closed or (timeout > 0 and now - e.last_used > timeout):
                expired.append(e)
            else:
                keep.append(e)
        if expired:
            self._idle = keep
            _log.debug("Evicting %d idle connection(s)", len(expired))
        return expired

    def _open_leased(self) -> Any:
        """Open a connection for a slot already reserved via ``_opening``."""
        try:
            conn = self._connect(self._config)
        except Exception as exc:
            with self._cond:
                self._opening -= 1
                self._errors += 1
                self._cond.notify()
            _log.warning("Could not open database connection: %s", exc)
            raise
        now = time.monotonic()
        with self._cond:
            self._opening -= 1
            if self._state == PoolState.READY:
                self._leased[id(conn)] = _PoolEntry(conn=conn, created_at=now, last_used=now)
                _log.debug("Opened database connection (total=%d)", self._total())
                return conn
            self._cond.notify_all()
        self._close_quiet(conn)
        raise PoolClosedError(f"Pool is {self._state.value}")

    @staticmethod
    def _reset(conn: Any) -> bool:
        """Make *conn* reusable. False when it must be discarded."""
        if conn.closed or conn.broken:
            return False
        try:
            if conn.info.transaction_status != TransactionStatus.IDLE:
                _log.warning("Connection released inside a transaction; rolling back")
                conn.rollback()
        except psycopg.Error as exc:
            _log.warning("Rollback on release failed, discarding connection: %s", exc)
            return False
        return True

    def _close_all(self, entries: list[_PoolEntry]) -> None:
        for e in entries:
            self._close_quiet(e.conn)

    @staticmethod
    def _close_quiet(conn: Any) -> None:
        try:
            conn.close()
        except Exception as exc:
            _log.debug("Error closing connection: %s", exc)
