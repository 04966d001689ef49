"""
PostgreSQL connection helpers for the application pool.

Uses psycopg. Connections are opened in autocommit mode so multi-statement
transactions are explicit (``conn.transaction()`` or BEGIN/COMMIT).
"""

import math
from typing import TYPE_CHECKING, Any

import psycopg

if TYPE_CHECKING:
    from .manager import PoolConfig


def connect(config: "PoolConfig") -> psycopg.Connection:
    """
    Open one physical connection described by *config*.

    - connect_timeout: libpq takes whole seconds, so ms are rounded up (min 1s).
    - statement_timeout: passed as a startup option when > 0.
    """
    kwargs: dict[str, Any] = {
        "host": config.host,
        "port": config.port,
        "dbname": config.database,
        "user": config.user,
        "password": config.password,
        "autocommit": True,
    }
    if config.connect_timeout_ms > 0:
        kwargs["connect_timeout"] = max(1, math.ceil(config.connect_timeout_ms / 1000))
    if config.statement_timeout_ms > 0:
        kwargs["options"] = f"-c statement_timeout={config.statement_timeout_ms}"
    return psycopg.connect(**kwargs)


def execute(
    conn: Any,
    sql: str,
    params: dict | list | tuple | None = None,
) -> Any:
    """Execute SQL and return the cursor. Caller uses cursor_to_dicts(cursor) or cursor.rowcount."""
    cur = conn.cursor()
    try:
        if params is not None:
            cur.execute(sql, params)
        else:
            cur.execute(sql)
    except Exception:
        cur.close()
        raise
    return cur


def cursor_to_dicts(cursor: Any) -> list[dict[str, Any]]:
    """Convert cursor result to list of dicts."""
    desc = cursor.description
    if not desc:
        return []
    names = [d[0] for d in desc]
    return [dict(zip(names, row, strict=True)) for row in cursor.fetchall()]


def cursor_columns(cursor: Any) -> list[str]:
    desc = cursor.description
    if not desc:
        return []
    return [d[0] for d in desc]
