"""
Response schemas for the operational health endpoints.
"""

from sqlmodel import SQLModel

from gaia_api.core.pool import PoolMetrics


class DatabaseStatus(SQLModel):
    connected: bool
    latency_ms: float


class MemoryStatus(SQLModel):
    """Process memory in whole megabytes."""

    rss_mb: int
    vms_mb: int
    percent: float  # rss as a share of physical memory


class HealthStatus(SQLModel):
    status: str  # "healthy" | "unhealthy"
    timestamp: str
    uptime: int
    database: DatabaseStatus
    memory: MemoryStatus
    version: str
    environment: str


class ReadyStatus(SQLModel):
    status: str
    timestamp: str


class LiveStatus(SQLModel):
    status: str = "alive"
    uptime: int
    timestamp: str


class DatabaseMetrics(SQLModel):
    healthy: bool
    latency_ms: float
    pool: PoolMetrics


class MetricsResponse(SQLModel):
    uptime: int
    database: DatabaseMetrics
    memory: MemoryStatus
    timestamp: str
