"""Application services."""

from peerlog.application.services.event_log_service import EventLogService

__all__ = ["EventLogService"]
