"""Table definitions and the idempotent schema initializer.

Every event table has:
    - id INTEGER PRIMARY KEY AUTOINCREMENT (monotonic, never reused)
    - the event's TEXT columns
    - created_at TIMESTAMP, UTC with millisecond precision

and one AFTER INSERT trigger named <table>_set_created_at that fills created_at
when the row was inserted with an explicit NULL. The column DEFAULT covers the
"column omitted" case; the trigger covers the rest, so the timestamp invariant
holds no matter what the writer sends.
"""

import logging

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from peerlog.domain.entities import TABLE_NODE_DISCOVERY, TABLE_P2P_SERVER
from peerlog.domain.exceptions import SchemaError
from peerlog.infrastructure.persistence.database import Database

logger = logging.getLogger(__name__)

# UTC, "YYYY-MM-DD HH:MM:SS.SSS"
CURRENT_TIMESTAMP_MS = "strftime('%Y-%m-%d %H:%M:%f', 'now')"

metadata = sa.MetaData()


def _event_table(name: str, *columns: str) -> sa.Table:
    return sa.Table(
        name,
        metadata,
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        *(sa.Column(column, sa.Text) for column in columns),
        sa.Column(
            "created_at",
            sa.TIMESTAMP,
            server_default=sa.text(f"({CURRENT_TIMESTAMP_MS})"),
        ),
        sqlite_autoincrement=True,
    )


p2p_server_table = _event_table(
    TABLE_P2P_SERVER,
    "type",
    "name",
    "addr",
    "message",
    "pid",
)

node_discovery_table = _event_table(
    TABLE_NODE_DISCOVERY,
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
)

# Creation order for ensure_schema()
EVENT_TABLES: tuple[sa.Table, ...] = (p2p_server_table, node_discovery_table)


def trigger_name(table: sa.Table) -> str:
    return f"{table.name}_set_created_at"


def created_at_trigger_sql(table: sa.Table) -> str:
    """CREATE TRIGGER IF NOT EXISTS statement that back-fills created_at."""
    return (
        f'CREATE TRIGGER IF NOT EXISTS "{trigger_name(table)}" '
        f'AFTER INSERT ON "{table.name}" '
        "FOR EACH ROW WHEN NEW.created_at IS NULL "
        "BEGIN "
        f'UPDATE "{table.name}" SET created_at = {CURRENT_TIMESTAMP_MS} '
        "WHERE id = NEW.id; "
        "END"
    )


async def _ensure_table(database: Database, table: sa.Table) -> None:
    async with database.engine.begin() as conn:
        await conn.run_sync(table.create, checkfirst=True)
        await conn.exec_driver_sql(created_at_trigger_sql(table))


async def ensure_schema(
    database: Database,
    tables: tuple[sa.Table, ...] = EVENT_TABLES,
) -> None:
    """Create every event table and its trigger if missing. Safe to re-run.

    Each table is set up independently: one failure doesn't stop the others.
    Run this before any writer starts; it is not meant to race with inserts.

    Raises:
        SchemaError: After all tables were attempted, if any failed. Chained to
            the last failure.
    """
    failed: list[str] = []
    last_error: SQLAlchemyError | None = None

    for table in tables:
        try:
            await _ensure_table(database, table)
        except SQLAlchemyError as exc:
            logger.error("Failed to create table/trigger for %s: %s", table.name, exc)
            failed.append(table.name)
            last_error = exc
        else:
            logger.debug("Schema ready: %s", table.name)

    if last_error is not None:
        raise SchemaError(
            f"Schema initialization failed for {', '.join(failed)}: {last_error}",
            failed_tables=failed,
        ) from last_error

    logger.info("Schema initialized (%d tables)", len(tables))


def get_table(table_name: str) -> sa.Table | None:
    """Look up a predefined event table by name."""
    return metadata.tables.get(table_name)
