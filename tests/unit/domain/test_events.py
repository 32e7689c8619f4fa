"""Tests for typed log events."""

from datetime import UTC, datetime

import pytest

from peerlog.domain.entities import (
    TABLE_NODE_DISCOVERY,
    TABLE_P2P_SERVER,
    NodeDiscoveryEvent,
    PeerServerEvent,
)


class TestPeerServerEvent:
    """Test PeerServerEvent -> p2pserver row mapping."""

    def test_table(self) -> None:
        assert PeerServerEvent.table == TABLE_P2P_SERVER == "p2pserver"

    def test_to_record_omits_unset_created_at(self) -> None:
        event = PeerServerEvent(
            type="peer", name="node1", addr="10.0.0.1:9000", message="connected", pid="123"
        )
        assert event.to_record() == {
            "type": "peer",
            "name": "node1",
            "addr": "10.0.0.1:9000",
            "message": "connected",
            "pid": "123",
        }

    def test_to_record_keeps_explicit_created_at(self) -> None:
        ts = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
        record = PeerServerEvent(type="peer", created_at=ts).to_record()
        assert record["created_at"] == ts

    def test_is_immutable(self) -> None:
        event = PeerServerEvent(type="peer")
        with pytest.raises(AttributeError):
            event.type = "other"  # type: ignore[misc]


class TestNodeDiscoveryEvent:
    """Test NodeDiscoveryEvent -> nodedisc row mapping."""

    def test_table(self) -> None:
        assert NodeDiscoveryEvent.table == TABLE_NODE_DISCOVERY == "nodedisc"

    def test_to_record_uses_column_spelling(self) -> None:
        event = NodeDiscoveryEvent(
            disc_version="v5",
            type="ping",
            agent="geth/1.13",
            msg="sent",
            target_id="t1",
            target_addr="10.0.0.2:30303",
            target_key="tk",
            node_id="n1",
            node_addr="10.0.0.3:30303",
            node_key="nk",
        )
        assert event.to_record() == {
            "discV": "v5",
            "type": "ping",
            "agent": "geth/1.13",
            "msg": "sent",
            "tid": "t1",
            "tAddr": "10.0.0.2:30303",
            "tKey": "tk",
            "nid": "n1",
            "nAddr": "10.0.0.3:30303",
            "nKey": "nk",
        }

    def test_unset_fields_are_none(self) -> None:
        record = NodeDiscoveryEvent(type="pong").to_record()
        assert record["type"] == "pong"
        assert record["nid"] is None
        assert "created_at" not in record
