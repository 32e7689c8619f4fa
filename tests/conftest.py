"""Shared fixtures: a throwaway SQLite store per test."""

import logging
import sqlite3
from collections.abc import AsyncGenerator, Awaitable, Callable, Iterator
from pathlib import Path

import pytest
import pytest_asyncio

from peerlog.config import DatabaseSettings, RetrySettings, Settings
from peerlog.infrastructure.persistence import (
    Database,
    DatabaseLockMetrics,
    EventWriter,
    ensure_schema,
)

# Hey future me - short busy timeout and tiny backoff keep the contention tests
# fast. Production defaults are 5s / 100ms.
TEST_BUSY_TIMEOUT_MS = 20


@pytest.fixture(autouse=True)
def restore_root_logging() -> Iterator[None]:
    """configure_logging() swaps root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "events.db"


@pytest.fixture
def settings(db_path: Path) -> Settings:
    return Settings(
        database=DatabaseSettings(
            path=db_path,
            max_open_connections=10,
            max_idle_connections=5,
            busy_timeout_ms=TEST_BUSY_TIMEOUT_MS,
        ),
        retry=RetrySettings(
            max_attempts=3,
            initial_delay=0.01,
            backoff_factor=2.0,
            max_delay=0.05,
        ),
    )


@pytest_asyncio.fixture
async def database(settings: Settings) -> AsyncGenerator[Database, None]:
    """Opened store with the schema in place."""
    db = Database(settings)
    await db.initialize()
    await ensure_schema(db)
    yield db
    await db.close()


@pytest.fixture
def metrics() -> DatabaseLockMetrics:
    return DatabaseLockMetrics()


@pytest.fixture
def writer(database: Database, metrics: DatabaseLockMetrics) -> EventWriter:
    return EventWriter(database, metrics=metrics)


@pytest.fixture
def fetch_all() -> Callable[[Database, str], Awaitable[list[tuple]]]:
    """Run a read query and return plain tuples."""

    async def _fetch(db: Database, sql: str) -> list[tuple]:
        async with db.engine.connect() as conn:
            result = await conn.exec_driver_sql(sql)
            return [tuple(row) for row in result.all()]

    return _fetch


@pytest.fixture
def blocker(database: Database) -> Iterator[sqlite3.Connection]:
    """Separate autocommit connection, used to hold the file lock from outside."""
    conn = sqlite3.connect(str(database.path), isolation_level=None)
    yield conn
    if conn.in_transaction:
        conn.execute("ROLLBACK")
    conn.close()
