"""peerlog - embedded append-only SQLite log for p2p server and node-discovery events."""

from peerlog.application.services import EventLogService
from peerlog.config import Settings, load_settings
from peerlog.domain.entities import LogEvent, NodeDiscoveryEvent, PeerServerEvent
from peerlog.domain.exceptions import (
    ConfigError,
    EventLoopMismatch,
    LockContention,
    PeerLogException,
    RetryExhausted,
    SchemaError,
    StoreOpenError,
    WriteError,
)
from peerlog.infrastructure.lifecycle import open_event_log
from peerlog.infrastructure.persistence import (
    Database,
    EventWriter,
    RetryPolicy,
    ensure_schema,
    open_store,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "Database",
    "EventLoopMismatch",
    "EventLogService",
    "EventWriter",
    "LockContention",
    "LogEvent",
    "NodeDiscoveryEvent",
    "PeerLogException",
    "PeerServerEvent",
    "RetryExhausted",
    "RetryPolicy",
    "SchemaError",
    "Settings",
    "StoreOpenError",
    "WriteError",
    "ensure_schema",
    "load_settings",
    "open_event_log",
    "open_store",
]
