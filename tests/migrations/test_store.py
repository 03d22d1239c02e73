"""Tests for the in-memory and SurrealDB state stores."""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from revchain.db.connection import ConnectionError, QueryError
from revchain.migrations.base import HeadRecord, Operation, StoreError
from revchain.migrations.store import (
    APPEND_HISTORY_SQL,
    BOOTSTRAP_SQL,
    HEADS_TABLE,
    SET_HEAD_SQL,
    SurrealStateStore,
)


class TestInMemoryStateStore:
    """Tests for InMemoryStateStore."""

    @pytest.mark.asyncio
    async def test_head_absent(self, memory_store):
        assert await memory_store.get_head("app") is None

    @pytest.mark.asyncio
    async def test_set_and_get_head(self, memory_store):
        record = await memory_store.set_head("app", "R1")

        assert record == HeadRecord("app", "R1")
        assert await memory_store.get_head("app") == "R1"

    @pytest.mark.asyncio
    async def test_set_head_overwrites(self, memory_store):
        await memory_store.set_head("app", "R1")
        await memory_store.set_head("app", "R2")
        await memory_store.set_head("app", None)

        assert await memory_store.get_head("app") is None

    @pytest.mark.asyncio
    async def test_heads_are_per_schema(self, memory_store):
        await memory_store.set_head("app", "A1")
        await memory_store.set_head("billing", "B1")

        assert await memory_store.get_head("app") == "A1"
        assert await memory_store.get_head("billing") == "B1"

    @pytest.mark.asyncio
    async def test_sequential_appends_are_gapless(self, memory_store):
        for i in range(5):
            await memory_store.append_history("app", f"R{i}", Operation.UP)

        history = await memory_store.get_history()
        assert [e.operation_id for e in history] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_concurrent_appends_never_collide(self, memory_store):
        await asyncio.gather(
            *(memory_store.append_history("app", f"R{i}", Operation.UP) for i in range(20))
        )

        ids = [e.operation_id for e in await memory_store.get_history()]
        assert sorted(ids) == list(range(1, 21))

    @pytest.mark.asyncio
    async def test_operation_ids_are_global(self, memory_store):
        await memory_store.append_history("app", "A1", Operation.UP)
        entry = await memory_store.append_history("billing", "B1", Operation.UP)

        assert entry.operation_id == 2

    @pytest.mark.asyncio
    async def test_history_entry_fields(self, memory_store):
        entry = await memory_store.append_history("app", "R1", Operation.DOWN)

        assert entry.migration_name == "R1"
        assert entry.schema_name == "app"
        assert entry.operation is Operation.DOWN
        assert isinstance(entry.timestamp, datetime)

    @pytest.mark.asyncio
    async def test_history_filter_and_limit(self, memory_store):
        await memory_store.append_history("app", "A1", Operation.UP)
        await memory_store.append_history("billing", "B1", Operation.UP)
        await memory_store.append_history("app", "A2", Operation.UP)
        await memory_store.append_history("app", "A2", Operation.DOWN)

        app_history = await memory_store.get_history("app")
        assert [(e.migration_name, e.operation) for e in app_history] == [
            ("A1", Operation.UP),
            ("A2", Operation.UP),
            ("A2", Operation.DOWN),
        ]

        last_two = await memory_store.get_history("app", limit=2)
        assert [e.operation_id for e in last_two] == [3, 4]
        assert await memory_store.get_history("app", limit=0) == []


@pytest.fixture
def surreal_conn():
    conn = AsyncMock()
    conn.query = AsyncMock(return_value=[])
    return conn


@pytest.fixture
def surreal_store(surreal_conn):
    """SurrealStateStore whose connections come from a mock."""
    with patch("revchain.migrations.store.get_connection") as mock_get_conn:
        mock_get_conn.return_value.__aenter__ = AsyncMock(return_value=surreal_conn)
        mock_get_conn.return_value.__aexit__ = AsyncMock(return_value=None)
        yield SurrealStateStore(database="test_db")


class TestSurrealStateStore:
    """Tests for SurrealStateStore with a mocked connection."""

    @pytest.mark.asyncio
    async def test_ensure_schema(self, surreal_store, surreal_conn):
        await surreal_store.ensure_schema()

        surreal_conn.query.assert_called_once_with(BOOTSTRAP_SQL, None)
        assert "IF NOT EXISTS" in BOOTSTRAP_SQL

    @pytest.mark.asyncio
    async def test_get_head(self, surreal_store, surreal_conn):
        surreal_conn.query.return_value = [{"current_head": "R2"}]

        assert await surreal_store.get_head("app") == "R2"
        sql, params = surreal_conn.query.call_args.args
        assert HEADS_TABLE in sql
        assert params == {"schema_name": "app"}

    @pytest.mark.asyncio
    async def test_get_head_absent(self, surreal_store, surreal_conn):
        assert await surreal_store.get_head("app") is None

    @pytest.mark.asyncio
    async def test_get_head_null(self, surreal_store, surreal_conn):
        surreal_conn.query.return_value = [{"current_head": None}]

        assert await surreal_store.get_head("app") is None

    @pytest.mark.asyncio
    async def test_set_head_upserts(self, surreal_store, surreal_conn):
        record = await surreal_store.set_head("app", "R3")

        assert record == HeadRecord("app", "R3")
        surreal_conn.query.assert_called_once_with(
            SET_HEAD_SQL, {"schema_name": "app", "current_head": "R3"}
        )
        assert "UPSERT" in SET_HEAD_SQL

    @pytest.mark.asyncio
    async def test_append_history(self, surreal_store, surreal_conn):
        surreal_conn.query.return_value = [
            {
                "id": "revchain_history:x",
                "operation_id": 7,
                "migration_name": "R1",
                "schema_name": "app",
                "operation": "up",
                "operation_timestamp": "2026-01-02T03:04:05Z",
            }
        ]

        entry = await surreal_store.append_history("app", "R1", Operation.UP)

        assert entry.operation_id == 7
        assert entry.operation is Operation.UP
        assert entry.timestamp.year == 2026
        surreal_conn.query.assert_called_once_with(
            APPEND_HISTORY_SQL,
            {"migration_name": "R1", "schema_name": "app", "operation": "up"},
        )

    @pytest.mark.asyncio
    async def test_append_history_without_record(self, surreal_store, surreal_conn):
        with pytest.raises(StoreError, match="returned no record"):
            await surreal_store.append_history("app", "R1", Operation.UP)

    @pytest.mark.asyncio
    async def test_get_history(self, surreal_store, surreal_conn):
        surreal_conn.query.return_value = [
            {
                "operation_id": i,
                "migration_name": f"R{i}",
                "schema_name": "app",
                "operation": "up",
                "operation_timestamp": datetime(2026, 1, 1, 0, 0, i),
            }
            for i in (1, 2, 3)
        ]

        history = await surreal_store.get_history("app", limit=2)

        assert [e.migration_name for e in history] == ["R2", "R3"]
        sql, params = surreal_conn.query.call_args.args
        assert "ORDER BY operation_id" in sql
        assert params == {"schema_name": "app"}

    @pytest.mark.asyncio
    async def test_query_error_becomes_store_error(self, surreal_store, surreal_conn):
        surreal_conn.query.side_effect = QueryError("Query timeout after 30.0s")

        with pytest.raises(StoreError, match="timeout") as exc_info:
            await surreal_store.set_head("app", "R1")

        assert isinstance(exc_info.value.__cause__, QueryError)

    @pytest.mark.asyncio
    async def test_connection_error_becomes_store_error(self):
        with patch("revchain.migrations.store.get_connection") as mock_get_conn:
            mock_get_conn.return_value.__aenter__ = AsyncMock(
                side_effect=ConnectionError("Failed to create any connections")
            )
            mock_get_conn.return_value.__aexit__ = AsyncMock(return_value=None)

            with pytest.raises(StoreError, match="Failed to create any connections"):
                await SurrealStateStore().get_head("app")
