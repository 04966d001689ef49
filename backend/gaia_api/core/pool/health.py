"""
Connection health check and result types for the application pool.
"""

from typing import Any

from sqlmodel import SQLModel

from .connect import execute

HEALTH_QUERY = "SELECT 1"


class PoolMetrics(SQLModel):
    """Point-in-time pool counters. ``errors`` is cumulative since open()."""

    total_connections: int = 0
    idle_connections: int = 0
    waiting_clients: int = 0
    errors: int = 0


class HealthResult(SQLModel):
    healthy: bool
    metrics: PoolMetrics
    latency_ms: float


def health_check(conn: Any) -> bool:
    """
    Run SELECT 1 on *conn* and return True if no exception.
    """
    cur = None
    try:
        cur = execute(conn, HEALTH_QUERY)
        cur.fetchone()
        return True
    except Exception:
        return False
    finally:
        if cur is not None:
            cur.close()
