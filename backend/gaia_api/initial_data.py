"""Schema verification: make sure the tables the data routes read from exist."""

import logging

from gaia_api.core.config import settings
from gaia_api.core.pool import PoolConfig, PoolManager

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("pilot_stats",)

_TABLE_EXISTS_SQL = """
    SELECT EXISTS (
        SELECT FROM information_schema.tables
        WHERE table_schema = 'public'
        AND table_name = %s
    )
"""


def missing_tables(pool: PoolManager) -> list[str]:
    missing: list[str] = []
    for table in REQUIRED_TABLES:
        result = pool.run_query(_TABLE_EXISTS_SQL, (table,))
        if not result.rows or not result.rows[0]["exists"]:
            missing.append(table)
    return missing


def verify_schema(pool: PoolManager) -> bool:
    """Log whether the schema is in place. Missing tables are reported, not created."""
    missing = missing_tables(pool)
    if missing:
        logger.warning("Tables not found: %s", ", ".join(missing))
        logger.warning(
            "Create them with: psql -U %s -d %s -f schema.sql",
            pool.config.user,
            pool.config.database,
        )
        return False
    logger.info("Database tables verified")
    return True


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    logger.info("Verifying database schema")
    with PoolManager(PoolConfig.from_settings(settings)) as pool:
        verify_schema(pool)
    logger.info("Schema verification finished")


if __name__ == "__main__":
    main()
