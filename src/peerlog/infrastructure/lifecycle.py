"""Startup and shutdown for processes that embed the event log.

Startup order matters: logging, then the store, then the schema, and only then
writers. Anything that fails before the yield halts startup; the store is
closed on the way out either way.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from peerlog.application.services import EventLogService
from peerlog.config import Settings
from peerlog.infrastructure.observability import configure_logging
from peerlog.infrastructure.persistence import (
    EventWriter,
    close_store,
    ensure_schema,
    open_store,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_event_log(
    settings: Settings,
    setup_logging: bool = True,
) -> AsyncGenerator[EventLogService, None]:
    """Open the store, make sure the schema exists, and yield a ready service.

    Args:
        settings: Loaded settings (see peerlog.config.load_settings)
        setup_logging: Configure root logging from settings first. Pass False
            when the host process already owns logging.

    Raises:
        StoreOpenError: Store could not be opened.
        SchemaError: Tables or triggers could not be created.
    """
    if setup_logging:
        configure_logging(
            log_level=settings.log_level,
            json_format=settings.log_json_format,
            app_name=settings.app_name,
        )
    logger.info("Starting event log: %s", settings.app_name)

    try:
        db = await open_store(settings)
        await ensure_schema(db)
        service = EventLogService(EventWriter(db))
        logger.info("Event log ready: %s", db.path)
        yield service
    finally:
        await close_store()
        logger.info("Event log stopped")
