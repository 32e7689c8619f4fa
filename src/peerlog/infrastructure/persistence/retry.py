# Hey future me - this is where "database is locked" stops being a caller problem.
#
# SQLite has ONE writer at a time, even in WAL mode. The write lock in Database
# keeps our own inserts from colliding, but another process (or a checkpoint)
# can still hold the file lock. Those locks are short-lived, so we wait and try
# again a bounded number of times, then raise RetryExhausted. Never retry forever,
# never report success when nothing was written.
"""Contention policy: classify lock errors and retry them with backoff."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from sqlalchemy.exc import OperationalError

from peerlog.config import RetrySettings
from peerlog.domain.exceptions import LockContention, RetryExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOCK_INDICATORS = (
    "database is locked",
    "database is busy",
    "database table is locked",
    "sqlite_busy",
)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with exponential backoff.

    backoff_factor=1.0 gives a fixed interval (0.1s, 0.1s, ...).
    """

    max_attempts: int = 3
    initial_delay: float = 0.1
    backoff_factor: float = 2.0
    max_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be non-negative")
        if self.backoff_factor < 1.0:
            raise ValueError(f"backoff_factor must be >= 1.0, got {self.backoff_factor}")

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> RetryPolicy:
        return cls(
            max_attempts=settings.max_attempts,
            initial_delay=settings.initial_delay,
            backoff_factor=settings.backoff_factor,
            max_delay=settings.max_delay,
        )

    def delays(self) -> list[float]:
        """Sleep before each retry; one fewer entry than max_attempts."""
        result: list[float] = []
        delay = self.initial_delay
        for _ in range(self.max_attempts - 1):
            result.append(min(delay, self.max_delay))
            delay *= self.backoff_factor
        return result


class DatabaseLockMetrics:
    """Counters for lock contention on writes.

    Metrics tracked:
    - lock_attempts: Operations that went through the retry policy
    - lock_successes: Operations that succeeded (possibly after retries)
    - lock_failures: Operations that ran out of retries
    - lock_retries: Total retry sleeps taken
    - total_wait_time_ms / max_wait_time_ms: Time spent in backoff
    """

    _instance: DatabaseLockMetrics | None = None

    def __init__(self) -> None:
        self.lock_attempts: int = 0
        self.lock_successes: int = 0
        self.lock_failures: int = 0
        self.lock_retries: int = 0
        self.total_wait_time_ms: float = 0.0
        self.max_wait_time_ms: float = 0.0
        self.last_lock_event: float | None = None

    @classmethod
    def get_instance(cls) -> DatabaseLockMetrics:
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def record_attempt(self) -> None:
        self.lock_attempts += 1

    def record_success(self, wait_time_ms: float = 0.0) -> None:
        """Record a successful operation.

        Args:
            wait_time_ms: Time spent in backoff before it succeeded
        """
        self.lock_successes += 1
        self.total_wait_time_ms += wait_time_ms
        if wait_time_ms > self.max_wait_time_ms:
            self.max_wait_time_ms = wait_time_ms
        if wait_time_ms > 0:
            self.last_lock_event = time.time()

    def record_failure(self) -> None:
        """Record an operation that exhausted its retries."""
        self.lock_failures += 1
        self.last_lock_event = time.time()
        logger.warning(
            "Database lock failure recorded (total failures: %d)", self.lock_failures
        )

    def record_retry(self) -> None:
        self.lock_retries += 1

    def get_stats(self) -> dict[str, Any]:
        """All metrics as a dictionary."""
        return {
            "lock_attempts": self.lock_attempts,
            "lock_successes": self.lock_successes,
            "lock_failures": self.lock_failures,
            "lock_retries": self.lock_retries,
            "total_wait_time_ms": round(self.total_wait_time_ms, 2),
            "max_wait_time_ms": round(self.max_wait_time_ms, 2),
            "failure_rate": round(
                self.lock_failures / self.lock_attempts if self.lock_attempts > 0 else 0,
                4,
            ),
            "retry_rate": round(
                self.lock_retries / self.lock_attempts if self.lock_attempts > 0 else 0,
                4,
            ),
            "last_lock_event_timestamp": self.last_lock_event,
        }

    def reset(self) -> None:
        """Reset all metrics (for testing)."""
        self.lock_attempts = 0
        self.lock_successes = 0
        self.lock_failures = 0
        self.lock_retries = 0
        self.total_wait_time_ms = 0.0
        self.max_wait_time_ms = 0.0
        self.last_lock_event = None


def is_lock_error(exception: BaseException) -> bool:
    """True if the exception is a transient SQLite lock/busy error."""
    if isinstance(exception, LockContention):
        return True
    if not isinstance(exception, OperationalError):
        return False

    # Driver message only: str(exception) also echoes the SQL and bound values.
    orig = exception.orig
    error_msg = str(orig if orig is not None else exception).lower()
    return any(indicator in error_msg for indicator in LOCK_INDICATORS)


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    metrics: DatabaseLockMetrics | None = None,
    description: str = "operation",
) -> T:
    """Run operation, retrying only on lock contention.

    attempting -> succeeded             on success
    attempting -> retry wait -> attempting   on a lock error, attempts left
    attempting -> failed                on a lock error after the last attempt
                                        (RetryExhausted), or any other error

    Args:
        operation: Zero-arg coroutine factory; called once per attempt
        policy: Attempt ceiling and backoff (default RetryPolicy())
        metrics: Where to record contention (default: shared instance)
        description: Label for log messages

    Returns:
        Whatever operation returns on the first successful attempt.

    Raises:
        RetryExhausted: Every attempt failed with a lock error.
        Exception: Any non-lock error, re-raised unchanged on first occurrence.
    """
    policy = policy or RetryPolicy()
    metrics = metrics or DatabaseLockMetrics.get_instance()

    delays = policy.delays()
    total_wait = 0.0
    start_time = time.monotonic()
    last_exception: BaseException | None = None
    metrics.record_attempt()

    for attempt in range(1, policy.max_attempts + 1):
        try:
            result = await operation()
        except Exception as exc:
            if not is_lock_error(exc):
                raise

            last_exception = exc
            if attempt == policy.max_attempts:
                break

            delay = delays[attempt - 1]
            metrics.record_retry()
            logger.warning(
                "Database locked (attempt %d/%d), retrying %s in %.2fs",
                attempt,
                policy.max_attempts,
                description,
                delay,
            )
            await asyncio.sleep(delay)
            total_wait += delay
        else:
            metrics.record_success(total_wait * 1000)
            if attempt > 1:
                logger.info(
                    "%s succeeded after %d attempts (%.2fs waiting)",
                    description,
                    attempt,
                    total_wait,
                )
            return result

    elapsed_ms = (time.monotonic() - start_time) * 1000
    logger.error(
        "Database locked after %d attempts (%.0fms total), giving up on %s",
        policy.max_attempts,
        elapsed_ms,
        description,
    )
    metrics.record_failure()
    raise RetryExhausted(
        f"Database still locked after {policy.max_attempts} attempts: {description}",
        attempts=policy.max_attempts,
        total_wait_time=total_wait,
    ) from last_exception
