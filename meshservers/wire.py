"""Packets, routing headers and node kinds exchanged over the drone network."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

NodeId = int
PathTrace = Tuple[Tuple[NodeId, "NodeType"], ...]


class NodeType(enum.Enum):
    """Kind of node taking part in the network."""

    CLIENT = "client"
    DRONE = "drone"
    SERVER = "server"


class NackType(enum.Enum):
    """Reason a packet was refused by a node on its route."""

    ERROR_IN_ROUTING = "error_in_routing"
    DESTINATION_IS_DRONE = "destination_is_drone"
    DROPPED = "dropped"
    UNEXPECTED_RECIPIENT = "unexpected_recipient"


_NACKS_WITH_NODE = frozenset({NackType.ERROR_IN_ROUTING, NackType.UNEXPECTED_RECIPIENT})


class _TracedPath:
    """Stores ``path_trace`` as a tuple of ``(node, kind)`` pairs."""

    def __post_init__(self) -> None:
        object.__setattr__(self, "path_trace", tuple(map(tuple, self.path_trace)))


@dataclass(frozen=True)
class SourceRoutingHeader:
    """Full route of a packet and the position of the hop currently holding it."""

    hop_index: int
    hops: Tuple[NodeId, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "hops", tuple(self.hops))

    @classmethod
    def with_first_hop(cls, hops) -> "SourceRoutingHeader":
        """Header for a packet that is about to leave the first node of ``hops``."""
        return cls(1, tuple(hops))

    def current_hop(self) -> Optional[NodeId]:
        """The node the header points at, or None if the index is off the route."""
        if 0 <= self.hop_index < len(self.hops):
            return self.hops[self.hop_index]
        return None

    def destination(self) -> Optional[NodeId]:
        """The last node of the route, or None for an empty route."""
        return self.hops[-1] if self.hops else None

    def reversed(self) -> "SourceRoutingHeader":
        """Route back from the current hop to the origin, ready to be sent."""
        travelled = self.hops[: self.hop_index + 1]
        return SourceRoutingHeader.with_first_hop(travelled[::-1])


@dataclass(frozen=True)
class Ack:
    fragment_index: int


@dataclass(frozen=True)
class Nack:
    fragment_index: int
    nack_type: NackType
    node_id: Optional[NodeId] = None

    def __post_init__(self) -> None:
        if self.nack_type in _NACKS_WITH_NODE and self.node_id is None:
            raise ValueError(f"{self.nack_type.name} nack needs a node id")


@dataclass(frozen=True)
class Fragment:
    fragment_index: int
    total_n_fragments: int
    data: bytes = b""


@dataclass(frozen=True)
class FloodRequest(_TracedPath):
    flood_id: int
    initiator_id: NodeId
    path_trace: PathTrace = ()


@dataclass(frozen=True)
class FloodResponse(_TracedPath):
    flood_id: int
    path_trace: PathTrace = ()


PacketType = Union[Fragment, Ack, Nack, FloodRequest, FloodResponse]
_INDEXED = (Fragment, Ack, Nack)


@dataclass(frozen=True)
class Packet:
    routing_header: SourceRoutingHeader
    session_id: int
    pack_type: PacketType = field(default_factory=lambda: Ack(0))

    def fragment_index(self) -> int:
        """Index of the fragment the packet carries or refers to; 0 for flooding."""
        return self.pack_type.fragment_index if isinstance(self.pack_type, _INDEXED) else 0

    @classmethod
    def new_nack(cls, routing_header: SourceRoutingHeader, session_id: int, nack: Nack) -> "Packet":
        return cls(routing_header, session_id, nack)