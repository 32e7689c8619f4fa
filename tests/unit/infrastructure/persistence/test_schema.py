"""Tests for the schema initializer."""

import sqlite3
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from peerlog.domain.exceptions import SchemaError
from peerlog.infrastructure.persistence import Database, ensure_schema
from peerlog.infrastructure.persistence.schema import (
    EVENT_TABLES,
    created_at_trigger_sql,
    get_table,
    p2p_server_table,
    trigger_name,
)

SCHEMA_OBJECTS = (
    "SELECT type, name, tbl_name FROM sqlite_master "
    "WHERE type IN ('table', 'trigger') AND name NOT LIKE 'sqlite_%' ORDER BY type, name"
)


class TestTableDefinitions:
    """Test the predefined table layouts."""

    def test_p2pserver_columns(self) -> None:
        assert [c.name for c in p2p_server_table.columns] == [
            "id",
            "type",
            "name",
            "addr",
            "message",
            "pid",
            "created_at",
        ]

    def test_nodedisc_columns(self) -> None:
        table = get_table("nodedisc")
        assert table is not None
        assert [c.name for c in table.columns] == [
            "id",
            "discV",
            "type",
            "agent",
            "msg",
            "tid",
            "tAddr",
            "tKey",
            "nid",
            "nAddr",
            "nKey",
            "created_at",
        ]

    def test_unknown_table_lookup(self) -> None:
        assert get_table("nope") is None

    def test_trigger_names_are_per_table(self) -> None:
        names = {trigger_name(t) for t in EVENT_TABLES}
        assert names == {"p2pserver_set_created_at", "nodedisc_set_created_at"}

    def test_trigger_sql_is_idempotent_statement(self) -> None:
        sql = created_at_trigger_sql(p2p_server_table)
        assert sql.startswith('CREATE TRIGGER IF NOT EXISTS "p2pserver_set_created_at"')
        assert "WHEN NEW.created_at IS NULL" in sql


class TestEnsureSchema:
    """Test ensure_schema against a real file."""

    @pytest.mark.asyncio
    async def test_creates_tables_and_triggers(self, database: Database, fetch_all) -> None:
        objects = await fetch_all(database, SCHEMA_OBJECTS)
        assert objects == [
            ("table", "nodedisc", "nodedisc"),
            ("table", "p2pserver", "p2pserver"),
            ("trigger", "nodedisc_set_created_at", "nodedisc"),
            ("trigger", "p2pserver_set_created_at", "p2pserver"),
        ]

    @pytest.mark.asyncio
    async def test_rerun_is_a_no_op(self, database: Database, fetch_all) -> None:
        before = await fetch_all(database, SCHEMA_OBJECTS)
        await ensure_schema(database)
        await ensure_schema(database)
        assert await fetch_all(database, SCHEMA_OBJECTS) == before

    @pytest.mark.asyncio
    async def test_rerun_keeps_existing_rows(self, database: Database, fetch_all) -> None:
        async with database.engine.begin() as conn:
            await conn.exec_driver_sql("INSERT INTO p2pserver (type) VALUES ('peer')")
        await ensure_schema(database)
        assert await fetch_all(database, "SELECT COUNT(*) FROM p2pserver") == [(1,)]

    @pytest.mark.asyncio
    async def test_autoincrement_is_declared(self, database: Database, fetch_all) -> None:
        rows = await fetch_all(
            database, "SELECT sql FROM sqlite_master WHERE name = 'p2pserver'"
        )
        assert "AUTOINCREMENT" in rows[0][0]

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_rest(self, database: Database) -> None:
        failure = OperationalError("CREATE TABLE", (), sqlite3.OperationalError("disk I/O error"))
        ensure_table = AsyncMock(side_effect=[failure, None])

        with patch(
            "peerlog.infrastructure.persistence.schema._ensure_table", ensure_table
        ):
            with pytest.raises(SchemaError) as exc_info:
                await ensure_schema(database)

        assert ensure_table.await_count == len(EVENT_TABLES)
        assert exc_info.value.failed_tables == ["p2pserver"]
        assert exc_info.value.__cause__ is failure

    @pytest.mark.asyncio
    async def test_last_error_is_reported(self, database: Database) -> None:
        first = OperationalError("CREATE TABLE", (), sqlite3.OperationalError("first"))
        second = OperationalError("CREATE TABLE", (), sqlite3.OperationalError("second"))

        with patch(
            "peerlog.infrastructure.persistence.schema._ensure_table",
            AsyncMock(side_effect=[first, second]),
        ):
            with pytest.raises(SchemaError) as exc_info:
                await ensure_schema(database)

        assert exc_info.value.failed_tables == ["p2pserver", "nodedisc"]
        assert exc_info.value.__cause__ is second
