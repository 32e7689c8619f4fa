"""Observability infrastructure for structured logging."""

from peerlog.infrastructure.observability.logging import (
    CompactExceptionFormatter,
    CustomJsonFormatter,
    configure_logging,
)

__all__ = [
    "CompactExceptionFormatter",
    "CustomJsonFormatter",
    "configure_logging",
]
