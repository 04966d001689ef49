"""
In-memory stand-ins for psycopg connections.

FakeDatabase.connect is passed as ``connect_fn`` to PoolManager so pool tests
run without a server. Responses are matched on SQL substrings.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any

import psycopg
from psycopg.pq import TransactionStatus

Response = tuple[list[str], list[tuple]]

_DEFAULT_RESPONSES: dict[str, Response] = {
    "SELECT NOW()": (["now"], [(datetime(2026, 1, 1, tzinfo=timezone.utc),)]),
    "information_schema.tables": (["exists"], [(True,)]),
    "SELECT 1": (["?column?"], [(1,)]),
}


class FakeCursor:
    def __init__(self, conn: "FakeConnection") -> None:
        self._conn = conn
        self._rows: list[tuple] = []
        self.description: list[tuple] | None = None
        self.rowcount = -1
        self.closed = False

    def execute(self, sql: str, params: Any = None) -> None:
        self._conn.executed.append((sql, params))
        if self._conn.closed:
            raise psycopg.OperationalError("the connection is closed")
        columns, rows = self._conn.db.respond(sql)
        self.description = [(c,) for c in columns] if columns else None
        self._rows = list(rows)
        self.rowcount = len(self._rows)

    def fetchone(self) -> tuple | None:
        return self._rows[0] if self._rows else None

    def fetchall(self) -> list[tuple]:
        return list(self._rows)

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, db: "FakeDatabase") -> None:
        self.db = db
        self.closed = False
        self.broken = False
        self.info = SimpleNamespace(transaction_status=TransactionStatus.IDLE)
        self.executed: list[tuple[str, Any]] = []
        self.rollbacks = 0
        self.commits = 0

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def rollback(self) -> None:
        self.rollbacks += 1
        self.info.transaction_status = TransactionStatus.IDLE

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self.info.transaction_status = TransactionStatus.INTRANS
        try:
            yield
        except BaseException:
            self.rollback()
            raise
        self.commits += 1
        self.info.transaction_status = TransactionStatus.IDLE

    def close(self) -> None:
        self.closed = True


class FakeDatabase:
    """Connection factory plus canned query responses."""

    def __init__(self) -> None:
        self.down = False
        self.fail_next_connects = 0
        self.responses: dict[str, Response] = {}
        self.errors: dict[str, Exception] = {}
        self.connections: list[FakeConnection] = []
        self.connect_calls = 0
        self._lock = threading.Lock()

    def connect(self, config: Any) -> FakeConnection:
        with self._lock:
            self.connect_calls += 1
            if self.down:
                raise psycopg.OperationalError("connection refused")
            if self.fail_next_connects > 0:
                self.fail_next_connects -= 1
                raise psycopg.OperationalError("connection refused")
            conn = FakeConnection(self)
            self.connections.append(conn)
            return conn

    def respond(self, sql: str) -> Response:
        for fragment, exc in self.errors.items():
            if fragment in sql:
                raise exc
        for table in (self.responses, _DEFAULT_RESPONSES):
            for fragment, response in table.items():
                if fragment in sql:
                    return response
        raise psycopg.errors.SyntaxError(f'syntax error at or near "{sql.split()[0]}"')
