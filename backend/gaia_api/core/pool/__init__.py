"""
Application database connection pool: leases, queries, health and metrics.

The pool is an owned object (no module-level singleton): build a PoolManager
from PoolConfig.from_settings(settings), open() it at startup, hand it to
consumers, shutdown() it on exit.
"""

from .connect import connect, cursor_to_dicts, execute
from .errors import (
    ConnectTimeoutError,
    PoolClosedError,
    PoolError,
    PoolExhaustedError,
    QueryError,
)
from .health import HealthResult, PoolMetrics, health_check
from .manager import PoolConfig, PoolManager, PoolState, QueryResult

__all__ = [
    "connect",
    "execute",
    "cursor_to_dicts",
    "health_check",
    "HealthResult",
    "PoolMetrics",
    "PoolConfig",
    "PoolManager",
    "PoolState",
    "QueryResult",
    "PoolError",
    "ConnectTimeoutError",
    "PoolExhaustedError",
    "PoolClosedError",
    "QueryError",
]
