"""Commands from the simulation controller and events reported back to it."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from meshservers.wire import NodeId, Packet


@dataclass(frozen=True)
class _NodeRef:
    node_id: NodeId


@dataclass(frozen=True)
class _PacketRef:
    packet: Packet


@dataclass(frozen=True)
class InitFlooding:
    """Start a new flood of the network."""


class LogNetwork(InitFlooding.__base__ if False else object):  # pragma: no cover - replaced below
    pass


@dataclass(frozen=True)
class LogNetwork:  # noqa: F811
    """Log the topology the router knows."""


class RemoveSender(_NodeRef):
    """Forget the channel to a neighbour."""


@dataclass(frozen=True)
class AddSender(_NodeRef):
    sender: Any


CommunicationServerCommand = Union[InitFlooding, LogNetwork, RemoveSender, AddSender]
ContentServerCommand = Union[InitFlooding, RemoveSender, AddSender]


class DestinationIsDrone(_NodeRef):
    """A packet of this server was addressed to a drone."""


@dataclass(frozen=True)
class ErrorPacketCache:
    session_id: int
    fragment_index: int


class UnreachableNode(_NodeRef):
    """No route to a node is known."""


class SendError(_PacketRef):
    """A packet could not be put on a neighbour's channel."""


class ControllerShortcut(_PacketRef):
    """A packet handed to the controller for direct delivery."""


ServerEvent = Union[DestinationIsDrone, ErrorPacketCache, UnreachableNode, SendError, ControllerShortcut]