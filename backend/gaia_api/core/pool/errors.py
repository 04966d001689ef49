"""
Typed errors for the application connection pool.
"""

_QUERY_PREVIEW_CHARS = 100


class PoolError(Exception):
    """Base class for connection pool errors."""


class ConnectTimeoutError(PoolError):
    """No connection became available within the connect timeout."""


class PoolExhaustedError(PoolError):
    """Every connection is leased and the wait queue is full."""


class PoolClosedError(PoolError):
    """The pool is not accepting acquisitions (not opened yet, draining or closed)."""


class QueryError(PoolError):
    """
    Driver failure while executing a query.

    The driver exception is kept untouched in ``cause`` (and chained via
    ``raise ... from``). Only the parameter *count* is recorded, never the values.
    """

    def __init__(
        self,
        cause: BaseException,
        *,
        query: str,
        duration_ms: float,
        param_count: int,
    ) -> None:
        self.cause = cause
        self.query = query[:_QUERY_PREVIEW_CHARS]
        self.duration_ms = duration_ms
        self.param_count = param_count
        super().__init__(
            f"Query failed after {duration_ms:.1f}ms "
            f"(params={param_count}): {cause} [query: {self.query!r}]"
        )
