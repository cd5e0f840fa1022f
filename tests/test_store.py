"""Tests for the metrics store: asyncpg replaced by an in-memory fake connection."""

import asyncio
from typing import Any
from unittest.mock import AsyncMock, patch

import asyncpg  # type: ignore[import-untyped]
import pytest

from src.metrics.store import DataAccessFailure, MetricsStore
from tests.conftest import FakeConnection


def _store(**overrides: Any) -> MetricsStore:
    kwargs: dict[str, Any] = {
        "host": "db.test",
        "port": 5432,
        "user": "monitor",
        "password": "pw",
        "database": "metrics",
    }
    kwargs.update(overrides)
    return MetricsStore(**kwargs)


class TestConnection:
    async def test_connect_is_idempotent(self, fake_connection: FakeConnection) -> None:
        store = _store()

        first = await store.connect()
        second = await store.connect()

        assert first is second is fake_connection
        assert store.is_connected

    async def test_concurrent_first_use_opens_one_connection(self, metric_rows: list[dict[str, Any]]) -> None:
        conn = FakeConnection(metric_rows)

        async def slow_connect(**_: Any) -> FakeConnection:
            await asyncio.sleep(0.01)
            return conn

        mock_connect = AsyncMock(side_effect=slow_connect)
        with patch("src.metrics.store.asyncpg.connect", new=mock_connect):
            store = _store()
            await asyncio.gather(store.list_hostnames(), store.list_hostnames(), store.fetch_all())

        assert mock_connect.await_count == 1

    async def test_reconnects_after_close(self, fake_connection: FakeConnection) -> None:
        store = _store()
        await store.connect()

        await store.close()
        assert not store.is_connected
        assert fake_connection.closed

        fake_connection.closed = False
        await store.connect()
        assert store.is_connected

    async def test_close_without_connection_is_noop(self) -> None:
        await _store().close()

    async def test_connect_failure_raises_data_access_failure(self) -> None:
        with (
            patch("src.metrics.store.asyncpg.connect", new=AsyncMock(side_effect=OSError("refused"))),
            pytest.raises(DataAccessFailure, match="db.test:5432"),
        ):
            await _store().connect()

    async def test_ssl_flag_passes_context(self, fake_connection: FakeConnection) -> None:
        with patch("src.metrics.store.asyncpg.connect", new=AsyncMock(return_value=fake_connection)) as mock_connect:
            await _store(use_ssl=True).connect()

        ssl_arg = mock_connect.await_args.kwargs["ssl"]
        assert ssl_arg is not False
        assert ssl_arg.check_hostname is False

    def test_from_settings(self, mock_settings: Any) -> None:
        store = MetricsStore.from_settings(mock_settings)
        assert store._connect_kwargs["host"] == "db.test"
        assert store._connect_kwargs["database"] == "metrics"
        assert store._connect_kwargs["ssl"] is False


class TestQueries:
    async def test_fetch_by_host_returns_only_that_host(self, fake_connection: FakeConnection) -> None:
        rows = await _store().fetch_by_host("web-01")

        assert len(rows) == 3
        assert all(r["server_hostname"] == "web-01" for r in rows)

    async def test_fetch_by_host_with_window_is_parameterized(self, fake_connection: FakeConnection) -> None:
        await _store().fetch_by_host("db-01", 7)

        query, args = fake_connection.queries[-1]
        assert "make_interval(days => $2)" in query
        assert args == ("db-01", 7)

    async def test_fetch_by_unknown_host_is_empty(self, fake_connection: FakeConnection) -> None:
        assert await _store().fetch_by_host("nope") == []

    async def test_fetch_recent_passes_window(self, fake_connection: FakeConnection) -> None:
        rows = await _store().fetch_recent(3)

        assert len(rows) == 5
        assert fake_connection.queries[-1][1] == (3,)

    async def test_fetch_all_returns_plain_dicts(self, fake_connection: FakeConnection) -> None:
        rows = await _store().fetch_all()

        assert len(rows) == 5
        assert all(isinstance(r, dict) for r in rows)

    async def test_list_hostnames(self, fake_connection: FakeConnection) -> None:
        assert await _store().list_hostnames() == ["db-01", "web-01"]

    async def test_query_error_returns_empty(self, fake_connection: FakeConnection) -> None:
        fake_connection.fetch = AsyncMock(side_effect=asyncpg.PostgresError("relation does not exist"))  # type: ignore[method-assign]

        assert await _store().fetch_all() == []
        assert await _store().list_hostnames() == []

    async def test_connect_error_returns_empty(self) -> None:
        with patch("src.metrics.store.asyncpg.connect", new=AsyncMock(side_effect=OSError("refused"))):
            store = _store()
            assert await store.fetch_by_host("web-01") == []
            assert not store.is_connected

    async def test_ping(self, fake_connection: FakeConnection) -> None:
        assert await _store().ping() is True

    async def test_ping_failure(self) -> None:
        with patch("src.metrics.store.asyncpg.connect", new=AsyncMock(side_effect=OSError("refused"))):
            assert await _store().ping() is False
