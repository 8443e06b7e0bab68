# Copyright (C) 2025, Ionic.

# This program is licensed under the Apache License 2.0.
# See LICENSE or go to <https://www.apache.org/licenses/LICENSE-2.0> for full license details.

"""Network-layer records returned by the `/network` and `/monitor` RPCs."""
from datetime import datetime
from typing import Optional

from msgspec import Struct, field, structs

from ionic_tezos_client.coders.variant_coder import TupleRecord


class NetworkStats(Struct):
    """Global network bandwidth totals and usage in B/s."""
    total_sent_str: str = field(name="total_sent")

    total_recv_str: str = field(name="total_recv")

    current_inflow: int

    current_outflow: int

    @property
    def total_sent(self) -> int:
        return int(self.total_sent_str)

    @property
    def total_recv(self) -> int:
        return int(self.total_recv_str)


class NetworkAddress(Struct):
    """A point's address and port."""
    addr: str

    port: int = 0


class NetworkVersion(Struct):
    """Network-layer version of a node."""
    name: str

    major: int

    minor: int


class NetworkMetadata(Struct):
    disable_mempool: bool

    private_node: bool


class NetworkConnection(Struct):
    """Detailed information for one network connection."""
    incoming: bool

    peer_id: str

    id_point: NetworkAddress

    remote_socket_port: int

    versions: list[NetworkVersion]

    private: bool

    local_metadata: NetworkMetadata

    remote_metadata: NetworkMetadata


class NetworkConnectionTime(TupleRecord):
    """Peer address with the time of an event, encoded as ``[{addr, port}, timestamp]``."""

    __tuple_types__ = (NetworkAddress, datetime)
    __slots__ = ("address", "time")

    def __init__(self, address: NetworkAddress, time: datetime):
        self.address = address
        self.time = time

    @classmethod
    def from_items(cls, address: NetworkAddress, time: datetime) -> "NetworkConnectionTime":
        return cls(address, time)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NetworkConnectionTime):
            return NotImplemented
        return self.address == other.address and self.time == other.time

    def __repr__(self) -> str:
        return f"NetworkConnectionTime(address={self.address!r}, time={self.time!r})"


class NetworkPeer(Struct):
    """Peer info; `peer_id` is not part of the object and is filled in by the caller."""
    score: float

    trusted: bool

    state: str

    stat: NetworkStats

    conn_metadata: Optional[NetworkMetadata] = None

    reachable_at: Optional[NetworkAddress] = None

    last_established_connection: Optional[NetworkConnectionTime] = None

    last_seen: Optional[NetworkConnectionTime] = None

    last_failed_connection: Optional[NetworkConnectionTime] = None

    last_rejected_connection: Optional[NetworkConnectionTime] = None

    last_disconnection: Optional[NetworkConnectionTime] = None

    last_miss: Optional[NetworkConnectionTime] = None

    peer_id: str = ""


class NetworkPeerWithID(TupleRecord):
    """Peer encoded as ``[peer_id, {...}]``; decodes to a `NetworkPeer`."""

    __tuple_types__ = (str, NetworkPeer)

    @classmethod
    def from_items(cls, peer_id: str, peer: NetworkPeer) -> NetworkPeer:
        return structs.replace(peer, peer_id=peer_id)


class NetworkPeerLogEntry(Struct):
    """One entry of a peer's connection log."""
    kind: str

    timestamp: datetime

    addr: str = ""

    port: int = 0

    @property
    def address(self) -> NetworkAddress:
        return NetworkAddress(addr=self.addr, port=self.port)


class BootstrappedBlock(Struct):
    """Message of the bootstrapped blocks stream."""
    block: str

    timestamp: datetime
