import logging
import sys

from gaia_api.core.config import settings
from gaia_api.core.pool import PoolConfig, PoolManager

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init(pool: PoolManager) -> bool:
    """Wait for the database using the configured fixed-delay retry policy."""
    return pool.test_connectivity(
        max_retries=settings.DB_CONNECT_RETRIES,
        retry_delay_ms=settings.DB_CONNECT_RETRY_DELAY,
    )


def main() -> None:
    logger.info("Initializing service")
    with PoolManager(PoolConfig.from_settings(settings)) as pool:
        ok = init(pool)
    if not ok:
        logger.error("Database unavailable after %d attempt(s)", settings.DB_CONNECT_RETRIES)
        sys.exit(1)
    logger.info("Service finished initializing")


if __name__ == "__main__":
    main()
