"""Domain entities: the typed log events producers hand to the writer."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar

TABLE_P2P_SERVER = "p2pserver"
TABLE_NODE_DISCOVERY = "nodedisc"


@dataclass(frozen=True)
class PeerServerEvent:
    """Something happened on the p2p server (peer connected, dropped, ...).

    Stored in the p2pserver table. Attribute names match column names.
    """

    table: ClassVar[str] = TABLE_P2P_SERVER

    type: str | None = None
    name: str | None = None
    addr: str | None = None
    message: str | None = None
    pid: str | None = None
    created_at: datetime | None = None

    def to_record(self) -> dict[str, Any]:
        """Column -> value mapping; created_at omitted when unset."""
        record: dict[str, Any] = {
            "type": self.type,
            "name": self.name,
            "addr": self.addr,
            "message": self.message,
            "pid": self.pid,
        }
        if self.created_at is not None:
            record["created_at"] = self.created_at
        return record


@dataclass(frozen=True)
class NodeDiscoveryEvent:
    """A node-discovery protocol event (ping, pong, findnode, ...).

    Stored in the nodedisc table. Python attribute names are snake_case; the
    column names keep the camelCase spelling existing databases use.
    """

    table: ClassVar[str] = TABLE_NODE_DISCOVERY

    # attribute -> column
    COLUMNS: ClassVar[dict[str, str]] = {
        "disc_version": "discV",
        "type": "type",
        "agent": "agent",
        "msg": "msg",
        "target_id": "tid",
        "target_addr": "tAddr",
        "target_key": "tKey",
        "node_id": "nid",
        "node_addr": "nAddr",
        "node_key": "nKey",
    }

    disc_version: str | None = None
    type: str | None = None
    agent: str | None = None
    msg: str | None = None
    target_id: str | None = None
    target_addr: str | None = None
    target_key: str | None = None
    node_id: str | None = None
    node_addr: str | None = None
    node_key: str | None = None
    created_at: datetime | None = None

    def to_record(self) -> dict[str, Any]:
        """Column -> value mapping; created_at omitted when unset."""
        record: dict[str, Any] = {
            column: getattr(self, attr) for attr, column in self.COLUMNS.items()
        }
        if self.created_at is not None:
            record["created_at"] = self.created_at
        return record


# Closed set of event variants the writer knows how to store.
LogEvent = PeerServerEvent | NodeDiscoveryEvent

__all__ = [
    "LogEvent",
    "NodeDiscoveryEvent",
    "PeerServerEvent",
    "TABLE_NODE_DISCOVERY",
    "TABLE_P2P_SERVER",
]
