"""Infrastructure persistence layer."""

from .database import Database, close_store, get_store, open_store
from .retry import (
    DatabaseLockMetrics,
    RetryPolicy,
    execute_with_retry,
    is_lock_error,
)
from .schema import (
    EVENT_TABLES,
    ensure_schema,
    get_table,
    metadata,
    node_discovery_table,
    p2p_server_table,
)
from .writer import EventWriter

__all__ = [
    # Store handle
    "Database",
    "open_store",
    "get_store",
    "close_store",
    # Schema
    "metadata",
    "p2p_server_table",
    "node_discovery_table",
    "EVENT_TABLES",
    "ensure_schema",
    "get_table",
    # Writer
    "EventWriter",
    # Retry utilities
    "RetryPolicy",
    "execute_with_retry",
    "is_lock_error",
    "DatabaseLockMetrics",
]
