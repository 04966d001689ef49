from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from gaia_api.api.deps import get_pool
from gaia_api.core.pool import PoolConfig, PoolManager
from gaia_api.main import app
from tests.utils.fake_db import FakeDatabase


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def pool_config() -> PoolConfig:
    return PoolConfig(
        max_size=3,
        connect_timeout_ms=200,
        idle_timeout_ms=30_000,
        shutdown_grace_period_ms=200,
    )


@pytest.fixture
def pool(
    fake_db: FakeDatabase, pool_config: PoolConfig
) -> Generator[PoolManager, None, None]:
    manager = PoolManager(pool_config, connect_fn=fake_db.connect).open()
    yield manager
    manager.shutdown(grace_period_ms=0)


@pytest.fixture
def client(pool: PoolManager) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_pool] = lambda: pool
    yield TestClient(app)
    app.dependency_overrides.clear()
