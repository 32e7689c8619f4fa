"""Record writer: parameterized inserts under the global write lock.

Two entry points:
    write(table_name, record)  - any table, any columns; the store decides if
                                 they exist
    write_event(event)         - typed events, prebuilt INSERT per table

Both hold Database.write_lock for the whole attempt/backoff loop, so only one
INSERT is ever in flight. Each attempt is its own transaction: a failed attempt
leaves no partial row.

Both must run on the loop that opened the Database. Plain threads (or threads
with their own loop) use write_threadsafe(), which hands the write to that loop.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from peerlog.domain.entities import LogEvent
from peerlog.domain.exceptions import EventLoopMismatch, RetryExhausted, WriteError
from peerlog.infrastructure.persistence.database import Database
from peerlog.infrastructure.persistence.retry import (
    DatabaseLockMetrics,
    RetryPolicy,
    execute_with_retry,
)
from peerlog.infrastructure.persistence.schema import get_table

logger = logging.getLogger(__name__)


class EventWriter:
    """Appends rows to event tables.

    Example:
        writer = EventWriter(db)
        row_id = await writer.write(
            "p2pserver",
            {"type": "peer", "name": "node1", "addr": "10.0.0.1:9000"},
        )
    """

    def __init__(
        self,
        database: Database,
        policy: RetryPolicy | None = None,
        metrics: DatabaseLockMetrics | None = None,
    ) -> None:
        self._db = database
        self._policy = policy or RetryPolicy.from_settings(database.settings.retry)
        self._metrics = metrics or DatabaseLockMetrics.get_instance()
        self._preparer = database.engine.dialect.identifier_preparer
        # table name -> INSERT statement, built on first use
        self._insert_cache: dict[str, sa.Insert] = {}

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def build_insert(
        self, table_name: str, record: Mapping[str, Any]
    ) -> tuple[str, tuple[Any, ...]]:
        """Build the INSERT text and its positional parameters.

        Columns, placeholders and values come out of ONE pass over
        record.items(), so placeholder i always binds column i's value.

        Raises:
            WriteError: Empty record or a non-string column name.
        """
        if not record:
            raise WriteError(f"Refusing to insert an empty record into {table_name}", table_name)

        columns: list[str] = []
        values: list[Any] = []
        for column, value in record.items():
            if not isinstance(column, str) or not column:
                raise WriteError(f"Invalid column name {column!r} for {table_name}", table_name)
            columns.append(self._preparer.quote_identifier(column))
            values.append(value)

        placeholders = ", ".join("?" for _ in columns)
        sql = (
            f"INSERT INTO {self._preparer.quote_identifier(table_name)} "
            f"({', '.join(columns)}) VALUES ({placeholders})"
        )
        return sql, tuple(values)

    async def write(self, table_name: str, record: Mapping[str, Any]) -> int:
        """Insert one record into table_name.

        Returns:
            The new row's id.

        Raises:
            WriteError: Non-contention failure (unknown table/column, constraint).
            RetryExhausted: Still locked after every attempt.
        """
        sql, params = self.build_insert(table_name, record)

        async def attempt() -> int:
            async with self._db.engine.begin() as conn:
                result = await conn.exec_driver_sql(sql, params)
                return result.lastrowid

        return await self._run(table_name, attempt)

    def _insert_for(self, table_name: str) -> sa.Insert:
        stmt = self._insert_cache.get(table_name)
        if stmt is None:
            table = get_table(table_name)
            if table is None:
                raise WriteError(f"No schema registered for table {table_name}", table_name)
            stmt = table.insert()
            self._insert_cache[table_name] = stmt
        return stmt

    async def write_event(self, event: LogEvent) -> int:
        """Insert a typed event into its table.

        Returns:
            The new row's id.

        Raises:
            WriteError, RetryExhausted: As for write().
        """
        stmt = self._insert_for(event.table)
        params = event.to_record()

        async def attempt() -> int:
            async with self._db.engine.begin() as conn:
                result = await conn.execute(stmt, params)
                return result.inserted_primary_key[0]

        return await self._run(event.table, attempt)

    def write_threadsafe(
        self,
        table_name: str,
        record: Mapping[str, Any],
        timeout: float | None = None,
    ) -> int:
        """Blocking write() for threads other than the owning loop's thread.

        Raises:
            EventLoopMismatch: Store not opened yet, or called from the owning
                loop itself (which would block it forever).
            WriteError, RetryExhausted: As for write().
            TimeoutError: The write did not finish within timeout seconds.
        """
        owner = self._db.loop
        if owner is None or owner.is_closed():
            raise EventLoopMismatch(f"Store {self._db.path} is not open")
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is owner:
            raise EventLoopMismatch("write_threadsafe() called from the owning loop; await write()")

        future = asyncio.run_coroutine_threadsafe(self.write(table_name, record), owner)
        return future.result(timeout)

    async def _run(self, table_name: str, attempt: Callable[[], Awaitable[int]]) -> int:
        self._db.check_loop()
        async with self._db.write_lock:
            try:
                row_id = await execute_with_retry(
                    attempt,
                    policy=self._policy,
                    metrics=self._metrics,
                    description=f"insert into {table_name}",
                )
            except RetryExhausted as exc:
                exc.table_name = table_name
                raise
            except SQLAlchemyError as exc:
                logger.error("Insert into %s failed: %s", table_name, exc)
                raise WriteError(f"Insert into {table_name} failed: {exc}", table_name) from exc

        logger.debug("Inserted row %s into %s", row_id, table_name)
        return row_id
