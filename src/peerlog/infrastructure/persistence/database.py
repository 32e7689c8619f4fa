"""Store handle: the one SQLAlchemy engine the process writes through."""

import asyncio
import logging
import threading
from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from peerlog.config import Settings
from peerlog.domain.exceptions import EventLoopMismatch, StoreOpenError

logger = logging.getLogger(__name__)


# Hey future me, SQLite creates -wal and -shm files next to the .db file, so the
# DIRECTORY must be writable, not just the file. We don't pre-create the .db file -
# an empty file is fine for SQLite but confusing when debugging.
def _validate_sqlite_path(db_path: Path) -> None:
    """Make sure the parent directory exists and accepts new files."""
    try:
        if db_path.parent and str(db_path.parent) != ".":
            db_path.parent.mkdir(parents=True, exist_ok=True)
            logger.debug("Ensured SQLite parent directory exists: %s", db_path.parent)
    except OSError as exc:
        raise StoreOpenError(
            f"Unable to create SQLite database directory '{db_path.parent}': {exc}. "
            "Check database.path in dbconfig.yaml or the directory permissions."
        ) from exc

    try:
        test_file = db_path.parent / f".{db_path.stem}_write_test"
        test_file.write_bytes(b"test")
        test_file.unlink()
    except OSError as exc:
        raise StoreOpenError(
            f"Unable to write files in database directory '{db_path.parent}': {exc}. "
            "SQLite needs to create the database, -wal and -shm files there."
        ) from exc


class Database:
    """Engine, connection pool, durability mode and the global write lock.

    Construct it once per process (see open_store) and pass it to whatever
    needs to write. Building the object does no I/O; initialize() opens the
    file and switches on WAL.
    """

    def __init__(self, settings: Settings) -> None:
        """Create the engine. Nothing touches the filesystem yet."""
        self.settings = settings
        db_settings = settings.database
        self.path = Path(db_settings.path)

        # max_open = pool_size + max_overflow; idle connections kept = pool_size
        self._engine = create_async_engine(
            db_settings.url,
            echo=db_settings.echo,
            poolclass=AsyncAdaptedQueuePool,
            pool_size=db_settings.max_idle_connections,
            max_overflow=db_settings.max_open_connections - db_settings.max_idle_connections,
            connect_args={
                "check_same_thread": False,
                "timeout": db_settings.busy_timeout_ms / 1000.0,
            },
        )
        self._configure_sqlite_pragmas()

        # Only one INSERT runs at a time, across every table and caller.
        self.write_lock = asyncio.Lock()
        self._init_lock = asyncio.Lock()
        self._initialized = False
        # Set by initialize(); pooled connections are bound to this loop.
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def loop(self) -> asyncio.AbstractEventLoop | None:
        """The event loop that opened the store, or None before initialize()."""
        return self._loop

    def check_loop(self) -> None:
        """Fail fast when called from a loop that does not own the store.

        Awaiting a pooled aiosqlite connection from a foreign loop never
        completes, so refuse before touching the pool or the write lock.

        Raises:
            EventLoopMismatch: If the running loop is not the owning loop.
        """
        if self._loop is None:
            return
        if asyncio.get_running_loop() is not self._loop:
            raise EventLoopMismatch(
                f"Store {self.path} is bound to another event loop; "
                "use EventWriter.write_threadsafe() from other threads"
            )

    def _configure_sqlite_pragmas(self) -> None:
        busy_timeout_ms = self.settings.database.busy_timeout_ms
        wal_mode = self.settings.database.wal_mode

        @event.listens_for(self._engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn: Any, _connection_record: Any) -> None:
            """Set per-connection SQLite pragmas."""
            cursor = dbapi_conn.cursor()
            cursor.execute(f"PRAGMA busy_timeout={busy_timeout_ms}")
            if wal_mode:
                cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

    async def initialize(self) -> None:
        """Open the store and enable write-ahead logging. Idempotent.

        Raises:
            StoreOpenError: If the directory is unusable or SQLite refuses to open.
        """
        async with self._init_lock:
            if self._initialized:
                return

            _validate_sqlite_path(self.path)

            try:
                async with self._engine.connect() as conn:
                    if self.settings.database.wal_mode:
                        result = await conn.exec_driver_sql("PRAGMA journal_mode=WAL")
                        mode = result.scalar()
                        if str(mode).lower() != "wal":
                            logger.warning(
                                "SQLite refused WAL mode for %s (journal_mode=%s)",
                                self.path,
                                mode,
                            )
                    else:
                        await conn.exec_driver_sql("SELECT 1")
            except SQLAlchemyError as exc:
                await self._engine.dispose()
                raise StoreOpenError(
                    f"Unable to open SQLite database '{self.path}': {exc}"
                ) from exc

            self._loop = asyncio.get_running_loop()
            self._initialized = True
            logger.info(
                "Database opened: %s (max_open=%d, max_idle=%d, wal=%s)",
                self.path,
                self.settings.database.max_open_connections,
                self.settings.database.max_idle_connections,
                self.settings.database.wal_mode,
            )

    async def close(self) -> None:
        """Dispose the engine and its pooled connections."""
        await self._engine.dispose()
        self._initialized = False
        self._loop = None

    def get_pool_stats(self) -> dict[str, Any]:
        """Connection pool statistics for monitoring."""
        pool = self._engine.pool
        return {
            "pool_size": getattr(pool, "size", lambda: 0)(),
            "checked_out": getattr(pool, "checkedout", lambda: 0)(),
            "overflow": getattr(pool, "overflow", lambda: 0)(),
            "checked_in": getattr(pool, "checkedin", lambda: 0)(),
            "max_open_connections": self.settings.database.max_open_connections,
            "max_idle_connections": self.settings.database.max_idle_connections,
        }


# =============================================================================
# Process-wide handle
# =============================================================================
# Hey future me - the threading.Lock only guards object construction (no awaits
# inside), so two event loops or two tasks racing on first use still end up with
# ONE engine. Initialization itself is serialized by Database._init_lock.

_store: Database | None = None
_store_lock = threading.Lock()


async def open_store(settings: Settings) -> Database:
    """Return the process-wide Database, creating and opening it on first use.

    Later calls return the existing handle; their settings are ignored. A
    failed open is not remembered, so the next call starts from scratch.

    Raises:
        StoreOpenError: If the store cannot be opened.
    """
    global _store

    with _store_lock:
        if _store is None:
            _store = Database(settings)
        elif _store.settings.database.path != settings.database.path:
            logger.warning(
                "Store already open at %s; ignoring request for %s",
                _store.path,
                settings.database.path,
            )
        db = _store

    try:
        await db.initialize()
    except StoreOpenError:
        # Forget the failed handle so a later call can open with fresh settings.
        with _store_lock:
            if _store is db:
                _store = None
        await db.close()
        raise
    return db


def get_store() -> Database | None:
    """The process-wide Database, or None before open_store()."""
    return _store


async def close_store() -> None:
    """Dispose and forget the process-wide Database (shutdown and tests)."""
    global _store

    with _store_lock:
        db = _store
        _store = None

    if db is not None:
        await db.close()
