from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from gaia_api.api.deps import PoolDep, UptimeDep
from gaia_api.core.config import settings
from gaia_api.core.health import (
    check_postgres,
    liveness_check,
    process_memory,
    readiness_check,
)
from gaia_api.models import (
    DatabaseMetrics,
    DatabaseStatus,
    HealthStatus,
    LiveStatus,
    MetricsResponse,
    ReadyStatus,
)

router = APIRouter(tags=["utils"])


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health", response_model=None)
def health(pool: PoolDep, uptime: UptimeDep) -> HealthStatus | JSONResponse:
    """
    Health summary — database connectivity, check latency and process memory.

    Returns 200 when the database answers; 503 (same body, status "unhealthy") otherwise.
    """
    result = check_postgres(pool)
    body = HealthStatus(
        status="healthy" if result.healthy else "unhealthy",
        timestamp=_now_iso(),
        uptime=uptime,
        database=DatabaseStatus(
            connected=result.healthy, latency_ms=round(result.latency_ms, 2)
        ),
        memory=process_memory(),
        version=settings.VERSION,
        environment=settings.ENVIRONMENT,
    )
    if not result.healthy:
        return JSONResponse(status_code=503, content=body.model_dump())
    return body


@router.get("/ready", response_model=None)
def ready(pool: PoolDep) -> ReadyStatus | JSONResponse:
    """
    Readiness check — can the service handle traffic?

    Checks Postgres through the pool. 200 when ready; 503 otherwise.
    """
    ok, failures = readiness_check(pool)
    if not ok:
        return JSONResponse(
            status_code=503,
            content={
                "status": "not ready",
                "reason": "database unavailable",
                "data": failures,
            },
        )
    return ReadyStatus(status="ready", timestamp=_now_iso())


@router.get("/live", response_model=None)
def live(uptime: UptimeDep) -> LiveStatus | JSONResponse:
    """
    Liveness check — is the process alive and responsive?

    Lightweight: no DB I/O.  If this fails the container should be
    restarted by the orchestrator.
    """
    ok, failures = liveness_check()
    if not ok:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "data": failures},
        )
    return LiveStatus(uptime=uptime, timestamp=_now_iso())


@router.get("/metrics")
def metrics(pool: PoolDep, uptime: UptimeDep) -> MetricsResponse:
    """Pool utilisation plus a fresh health check and process memory."""
    result = check_postgres(pool)
    return MetricsResponse(
        uptime=uptime,
        database=DatabaseMetrics(
            healthy=result.healthy,
            latency_ms=round(result.latency_ms, 2),
            pool=result.metrics,
        ),
        memory=process_memory(),
        timestamp=_now_iso(),
    )
