"""Domain exceptions."""

from typing import Any


class PeerLogException(Exception):
    """Base exception for all peerlog errors."""

    # Hey future me, message is kept as an attribute so handlers can log it without
    # parsing str(exc). Don't raise this directly - pick a subclass so callers can
    # catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


# =============================================================================
# Startup errors - these halt startup
# =============================================================================


class ConfigError(PeerLogException):
    """Configuration file missing, unreadable, or invalid."""

    pass


class StoreOpenError(PeerLogException):
    """The SQLite store could not be opened or configured."""

    pass


class SchemaError(PeerLogException):
    """Creating one or more tables/triggers failed.

    Attributes:
        failed_tables: Names of the tables whose setup failed, in attempt order.
    """

    def __init__(self, message: str, failed_tables: list[str] | None = None) -> None:
        super().__init__(message)
        self.failed_tables = failed_tables or []


# =============================================================================
# Write errors - these go to the immediate caller only
# =============================================================================


class WriteError(PeerLogException):
    """An insert failed for a reason that retrying will not fix.

    Unknown tables or columns, constraint violations and empty records all end
    up here. The underlying driver error (if any) is chained as __cause__.
    """

    def __init__(self, message: str, table_name: str | None = None) -> None:
        super().__init__(message)
        self.table_name = table_name


class LockContention(PeerLogException):
    """Transient "database is locked" condition.

    peerlog itself never raises this: driver lock errors arrive as
    OperationalError. It exists for classification only, so an operation passed
    to execute_with_retry can raise it to ask for another attempt. Callers only
    see it as the cause of RetryExhausted.
    """

    pass


class EventLoopMismatch(PeerLogException):
    """A Database was used from an event loop other than the one that opened it.

    Pooled aiosqlite connections and the write lock belong to the opening loop.
    Threads running their own loop must go through
    EventWriter.write_threadsafe() instead.
    """

    pass


class RetryExhausted(WriteError):
    """Every attempt hit lock contention.

    Subclass of WriteError so "did my write land?" needs one except clause, but
    distinct so callers can back off or alert on sustained contention.
    """

    def __init__(
        self,
        message: str,
        attempts: int,
        total_wait_time: float,
        table_name: str | None = None,
    ) -> None:
        super().__init__(message, table_name=table_name)
        self.attempts = attempts
        self.total_wait_time = total_wait_time


__all__ = [
    "ConfigError",
    "EventLoopMismatch",
    "LockContention",
    "PeerLogException",
    "RetryExhausted",
    "SchemaError",
    "StoreOpenError",
    "WriteError",
]
