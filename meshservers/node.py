"""Packet sending shared by every server on the network."""

from __future__ import annotations

import logging
import queue
import time
from typing import Any, Dict, Optional

from meshservers.commands import ControllerShortcut, SendError
from meshservers.wire import Ack, FloodRequest, FloodResponse, Fragment, Nack, NodeId, Packet

log = logging.getLogger(__name__)


class UnreachableDestination(Exception):
    """No known route leads to the destination."""

    def __init__(self, destination: NodeId) -> None:
        super().__init__(f"destination {destination} is unreachable")
        self.destination = destination


def _deliver(channel: Any, item: Any) -> bool:
    try:
        channel.put_nowait(item)
    except queue.Full:
        return False
    return True


class ServerNode:
    """A server attached to neighbouring drones through packet channels.

    The router, message factory and packet cache are collaborators supplied
    by the caller; channels are queue-like objects with ``put_nowait``.
    """

    def __init__(
        self,
        node_id: NodeId,
        router: Any,
        message_factory: Any,
        packet_cache: Any,
        packet_recv: Any,
        packet_send: Dict[NodeId, Any],
        controller_send: Any,
        controller_recv: Any,
        settle_delay: float = 2.0,
    ) -> None:
        self.id = node_id
        self.router = router
        self.message_factory = message_factory
        self.packet_cache = packet_cache
        self.packet_recv = packet_recv
        self.packet_send = dict(packet_send)
        self.controller_send = controller_send
        self.controller_recv = controller_recv
        self.settle_delay = settle_delay

    @property
    def label(self) -> str:
        return f"{type(self).__name__} {self.id}"

    def send_packet(self, packet: Packet, sender: Optional[Any] = None) -> None:
        """Route a packet by its kind: replies may shortcut, floods go to ``sender``."""
        kind = packet.pack_type
        if isinstance(kind, (Ack, Nack, FloodResponse)):
            self._send_or_shortcut(packet)
        elif isinstance(kind, FloodRequest):
            if sender is not None:
                self.send_to_sender(packet, sender)
        elif isinstance(kind, Fragment):
            dest = packet.routing_header.current_hop()
            if dest is None:
                log.error("[%s] error taking next hop", self.label)
                return
            log.info("[%s] sending packet to neighbour %s", self.label, dest)
            self._send_to_neighbour_id(packet, dest)

    def send_to_sender(self, packet: Packet, sender: Any) -> None:
        log.info("[%s] sending packet", self.label)
        if not _deliver(sender, packet):
            self.send_controller(SendError(packet))
            log.error(
                "[%s] error in sending packet (session: %s, fragment: %s)",
                self.label,
                packet.session_id,
                packet.fragment_index(),
            )

    def _send_to_neighbour_id(self, packet: Packet, neighbour_id: NodeId) -> None:
        sender = self.packet_send.get(neighbour_id)
        if sender is None:
            log.error("[%s] cannot send message, destination %s is unreachable", self.label, neighbour_id)
            return
        self.send_to_sender(packet, sender)

    def _send_or_shortcut(self, packet: Packet) -> None:
        log.info("[%s] sending packet %r", self.label, packet)
        sender = self._get_sender(packet)
        if sender is None or not _deliver(sender, packet):
            self.send_controller(ControllerShortcut(packet))

    def _get_sender(self, packet: Packet) -> Optional[Any]:
        hop = packet.routing_header.current_hop()
        if hop is None:
            return None
        return self.packet_send.get(hop)

    def send_controller(self, event: Any) -> None:
        if not _deliver(self.controller_send, event):
            log.error("[%s] error in sending to sim-controller. Message: [%r]", self.label, event)

    def flood_network(self) -> None:
        """Send one flood request to every neighbour, then wait for replies to settle."""
        requests = self.router.get_flood_requests(len(self.packet_send))
        for sender, request in zip(list(self.packet_send.values()), requests):
            self.send_packet(request, sender)
        time.sleep(self.settle_delay)