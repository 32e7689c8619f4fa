"""Event log service - what event producers call."""

import logging
from collections.abc import Mapping
from typing import Any

from peerlog.domain.entities import LogEvent, NodeDiscoveryEvent, PeerServerEvent
from peerlog.infrastructure.persistence import EventWriter

logger = logging.getLogger(__name__)


class EventLogService:
    """Thin facade over EventWriter with one method per event shape.

    Producers pick the method matching their event; the service builds the typed
    event and hands it to the writer. Errors (WriteError, RetryExhausted) go
    straight back to the caller.
    """

    def __init__(self, writer: EventWriter) -> None:
        self._writer = writer

    @property
    def writer(self) -> EventWriter:
        return self._writer

    async def log(self, event: LogEvent) -> int:
        """Persist any typed event. Returns the row id."""
        return await self._writer.write_event(event)

    async def log_peer_server(
        self,
        type: str,  # noqa: A002 - column name
        name: str | None = None,
        addr: str | None = None,
        message: str | None = None,
        pid: str | None = None,
    ) -> int:
        """Record a p2p server event (peer connected, handshake failed, ...)."""
        return await self.log(
            PeerServerEvent(type=type, name=name, addr=addr, message=message, pid=pid)
        )

    async def log_node_discovery(
        self,
        type: str,  # noqa: A002 - column name
        *,
        disc_version: str | None = None,
        agent: str | None = None,
        msg: str | None = None,
        target_id: str | None = None,
        target_addr: str | None = None,
        target_key: str | None = None,
        node_id: str | None = None,
        node_addr: str | None = None,
        node_key: str | None = None,
    ) -> int:
        """Record a node-discovery event (ping, pong, findnode, neighbors, ...)."""
        return await self.log(
            NodeDiscoveryEvent(
                disc_version=disc_version,
                type=type,
                agent=agent,
                msg=msg,
                target_id=target_id,
                target_addr=target_addr,
                target_key=target_key,
                node_id=node_id,
                node_addr=node_addr,
                node_key=node_key,
            )
        )

    async def write(self, table_name: str, record: Mapping[str, Any]) -> int:
        """Untyped escape hatch: insert an arbitrary column mapping."""
        return await self._writer.write(table_name, record)
