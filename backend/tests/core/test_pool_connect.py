"""
Unit tests for core.pool connection helpers: connect, execute, cursor_to_dicts, health_check.
"""

from unittest.mock import MagicMock, patch

import pytest

from gaia_api.core.config import Settings
from gaia_api.core.pool import PoolConfig, connect, cursor_to_dicts, execute, health_check
from tests.utils.fake_db import FakeDatabase


@patch("gaia_api.core.pool.connect.psycopg.connect")
def test_connect_passes_timeouts_and_autocommit(mock_connect: MagicMock) -> None:
    cfg = PoolConfig(
        host="db",
        port=6543,
        database="gaia",
        user="u",
        password="p",
        connect_timeout_ms=1_500,
        statement_timeout_ms=30_000,
    )
    connect(cfg)
    kwargs = mock_connect.call_args.kwargs
    assert kwargs["host"] == "db"
    assert kwargs["port"] == 6543
    assert kwargs["dbname"] == "gaia"
    assert kwargs["user"] == "u"
    assert kwargs["password"] == "p"
    assert kwargs["autocommit"] is True
    # libpq connect_timeout is whole seconds, rounded up
    assert kwargs["connect_timeout"] == 2
    assert kwargs["options"] == "-c statement_timeout=30000"


@patch("gaia_api.core.pool.connect.psycopg.connect")
def test_connect_omits_disabled_timeouts(mock_connect: MagicMock) -> None:
    connect(PoolConfig(connect_timeout_ms=0, statement_timeout_ms=0))
    kwargs = mock_connect.call_args.kwargs
    assert "connect_timeout" not in kwargs
    assert "options" not in kwargs


@patch("gaia_api.core.pool.connect.psycopg.connect")
def test_connect_sub_second_timeout_rounds_to_one(mock_connect: MagicMock) -> None:
    connect(PoolConfig(connect_timeout_ms=200))
    assert mock_connect.call_args.kwargs["connect_timeout"] == 1


def test_execute_with_and_without_params() -> None:
    mock_cur = MagicMock()
    mock_conn = MagicMock()
    mock_conn.cursor.return_value = mock_cur

    assert execute(mock_conn, "SELECT 1") is mock_cur
    mock_cur.execute.assert_called_with("SELECT 1")

    execute(mock_conn, "SELECT %s::text AS value", ["test"])
    mock_cur.execute.assert_called_with("SELECT %s::text AS value", ["test"])


def test_execute_closes_cursor_on_error() -> None:
    mock_cur = MagicMock()
    mock_cur.execute.side_effect = RuntimeError("bad sql")
    mock_conn = MagicMock()
    mock_conn.cursor.return_value = mock_cur

    with pytest.raises(RuntimeError, match="bad sql"):
        execute(mock_conn, "SELEC 1")
    mock_cur.close.assert_called_once()


def test_cursor_to_dicts() -> None:
    cur = MagicMock()
    cur.description = [("id",), ("name",)]
    cur.fetchall.return_value = [(1, "Lincoln Elementary"), (2, "Roosevelt High")]
    assert cursor_to_dicts(cur) == [
        {"id": 1, "name": "Lincoln Elementary"},
        {"id": 2, "name": "Roosevelt High"},
    ]


def test_cursor_to_dicts_without_result_set() -> None:
    cur = MagicMock()
    cur.description = None
    assert cursor_to_dicts(cur) == []


def test_health_check_true_on_live_connection() -> None:
    conn = FakeDatabase().connect(PoolConfig())
    assert health_check(conn) is True


def test_health_check_fails_on_closed_connection() -> None:
    """health_check returns False when connection is closed (execute raises, we catch and return False)."""
    conn = FakeDatabase().connect(PoolConfig())
    conn.close()
    assert health_check(conn) is False


def test_pool_config_from_settings() -> None:
    s = Settings(
        DB_HOST="pg.internal",
        DB_PORT=5433,
        DB_NAME="gaia",
        DB_USER="svc",
        DB_PASSWORD="secret",
        DB_POOL_MAX=5,
        DB_POOL_MAX_WAITING=10,
        DB_IDLE_TIMEOUT=1_000,
        DB_CONNECTION_TIMEOUT=500,
        DB_STATEMENT_TIMEOUT=0,
        DB_SLOW_QUERY_THRESHOLD=250,
        DB_SHUTDOWN_GRACE_PERIOD=3_000,
    )
    cfg = PoolConfig.from_settings(s)
    assert cfg.host == "pg.internal"
    assert cfg.port == 5433
    assert cfg.database == "gaia"
    assert cfg.user == "svc"
    assert cfg.password == "secret"
    assert cfg.max_size == 5
    assert cfg.max_waiting == 10
    assert cfg.idle_timeout_ms == 1_000
    assert cfg.connect_timeout_ms == 500
    assert cfg.statement_timeout_ms == 0
    assert cfg.slow_query_threshold_ms == 250
    assert cfg.shutdown_grace_period_ms == 3_000
    assert "secret" not in repr(cfg)


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in Settings.model_fields:
        if name.startswith("DB_"):
            monkeypatch.delenv(name, raising=False)
    s = Settings(_env_file=None)
    assert s.DB_PORT == 5432
    assert s.DB_POOL_MAX == 20
    assert s.DB_IDLE_TIMEOUT == 30_000
    assert s.DB_CONNECTION_TIMEOUT == 2_000
    assert s.DB_STATEMENT_TIMEOUT == 30_000
    assert s.DB_SLOW_QUERY_THRESHOLD == 1_000
    assert s.DB_SHUTDOWN_GRACE_PERIOD == 10_000
