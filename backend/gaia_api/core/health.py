"""
Health-check helpers for liveness and readiness checks.

Liveness  — is the process alive and not deadlocked?  (cheap, no I/O)
Readiness — can it serve traffic?  (Postgres via the application pool)
"""

import logging

import psutil

from gaia_api.core.pool import HealthResult, PoolManager
from gaia_api.models import MemoryStatus

logger = logging.getLogger(__name__)

_MB = 1024 * 1024


def process_memory() -> MemoryStatus:
    """Resident/virtual memory of this process (psutil, no DB I/O)."""
    proc = psutil.Process()
    info = proc.memory_info()
    return MemoryStatus(
        rss_mb=round(info.rss / _MB),
        vms_mb=round(info.vms / _MB),
        percent=round(proc.memory_percent(), 2),
    )


def check_postgres(pool: PoolManager) -> HealthResult:
    """Single pool check (acquire + SELECT 1 + release). Never raises."""
    return pool.check_health()


def liveness_check() -> tuple[bool, list[str]]:
    """
    Lightweight liveness check — just confirms the Python process is responsive.
    No I/O, no DB calls.  Return format matches readiness_check for consistency.
    """
    return (True, [])


def readiness_check(pool: PoolManager) -> tuple[bool, list[str]]:
    """
    Run the Postgres check.
    Returns (ok, list of failure messages). ok is False if any required check fails.
    """
    failures: list[str] = []

    if not check_postgres(pool).healthy:
        failures.append("postgres")

    if failures:
        logger.warning("Readiness check failed: %s", ", ".join(failures))
    return (len(failures) == 0, failures)
