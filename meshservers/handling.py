"""Packet, nack and controller-command handling common to all servers."""

from __future__ import annotations

import dataclasses
import logging
import queue
from typing import Any, Optional

from meshservers.commands import (
    AddSender,
    DestinationIsDrone,
    ErrorPacketCache,
    InitFlooding,
    LogNetwork,
    RemoveSender,
    UnreachableNode,
)
from meshservers.messages import GetServerType, Message, ServerType, ServerTypeReply
from meshservers.node import ServerNode, UnreachableDestination
from meshservers.wire import (
    Ack,
    FloodRequest,
    FloodResponse,
    Fragment,
    Nack,
    NackType,
    NodeId,
    NodeType,
    Packet,
    SourceRoutingHeader,
)

log = logging.getLogger(__name__)

_FLOOD_AFTER_RESENDS = 100


class PacketHandlingServer(ServerNode):
    """A server node that reacts to packets from drones and commands from the controller.

    Subclasses decide what to answer to client requests by overriding
    ``handle_message``; the default answers ``GetServerType`` and reports
    every other request as a wrong one.
    """

    server_type: ServerType = ServerType.CHAT
    # Whether the fragment ack goes out before the reassembled message is handled.
    _ack_before_handling: bool = False
    # Whether a cached packet is sent again on its old route when no new route exists.
    _resend_when_unreachable: bool = False
    _poll_interval: float = 0.01

    def run(self, stop_event: Optional[Any] = None) -> None:
        """Flood the network, then serve packets (first) and commands until stopped."""
        self.flood_network()
        while stop_event is None or not stop_event.is_set():
            try:
                packet = self.packet_recv.get_nowait()
            except queue.Empty:
                pass
            else:
                self.handle_packet(packet)
                continue
            try:
                command = self.controller_recv.get(timeout=self._poll_interval)
            except queue.Empty:
                continue
            self.handle_command(command)

    def handle_packet(self, packet: Packet) -> None:
        kind = packet.pack_type
        if isinstance(kind, Fragment):
            self._process_message_fragment(packet, kind)
        elif isinstance(kind, Ack):
            self.packet_cache.take_packet((packet.session_id, kind.fragment_index))
        elif isinstance(kind, Nack):
            self.handle_nack(kind, packet.session_id, packet.routing_header.hops[0])
        elif isinstance(kind, FloodRequest):
            self.send_packet(self._flood_response(kind, packet.session_id))
        elif isinstance(kind, FloodResponse):
            self.router.handle_flood_response(kind)

    def _process_message_fragment(self, packet: Packet, fragment: Fragment) -> None:
        if not self._check_packet(packet, fragment.fragment_index):
            back = SourceRoutingHeader.with_first_hop(packet.routing_header.hops[::-1])
            nack = Nack(fragment.fragment_index, NackType.UNEXPECTED_RECIPIENT, self.id)
            self.send_packet(Packet.new_nack(back, packet.session_id, nack))
            return
        if self._ack_before_handling:
            self._send_ack(fragment.fragment_index, packet)
        message = self.message_factory.received_fragment(
            fragment, packet.session_id, packet.routing_header.hops[0]
        )
        if message is not None:
            self.handle_message(message)
        elif not self._ack_before_handling:
            log.error("[%s] error processing message fragment", self.label)
        if not self._ack_before_handling:
            self._send_ack(fragment.fragment_index, packet)

    def handle_nack(self, nack: Nack, session_id: int, source_id: NodeId) -> None:
        kind = nack.nack_type
        if kind is NackType.ERROR_IN_ROUTING:
            log.error("[%s] error_in_routing(%s)", self.label, nack.node_id)
            self.router.drone_crashed(nack.node_id)
            self._resend_for_nack(session_id, nack.fragment_index, nack.node_id)
        elif kind is NackType.DESTINATION_IS_DRONE:
            log.error("[%s] destination is a drone", self.label)
            self.send_controller(DestinationIsDrone(self.id))
        elif kind is NackType.UNEXPECTED_RECIPIENT:
            log.error("[%s] packet dropped or unexpected recipient", self.label)
            self._resend_for_nack(session_id, nack.fragment_index, nack.node_id)
        elif kind is NackType.DROPPED:
            log.error("[%s] packet dropped", self.label)
            self._resend_for_nack(session_id, nack.fragment_index, source_id)

    def _resend_for_nack(self, session_id: int, fragment_index: int, nack_src: NodeId) -> None:
        log.info("[%s] marked dropped %s", self.label, nack_src)
        cached = self.packet_cache.get_value((session_id, fragment_index))
        if cached is None:
            log.error(
                "[%s] error extracting from cache (%s, %s) nack_src: %s",
                self.label,
                session_id,
                fragment_index,
                nack_src,
            )
            self.send_controller(ErrorPacketCache(session_id, fragment_index))
            return
        packet, frequency = cached
        self.router.dropped_fragment(nack_src)
        destination = packet.routing_header.destination()
        if destination is None:
            return
        try:
            header = self.router.get_source_routing_header(destination)
        except UnreachableDestination:
            self.send_controller(UnreachableNode(destination))
            if self._resend_when_unreachable:
                self.send_packet(packet)
            return
        self.send_packet(dataclasses.replace(packet, routing_header=header))
        if frequency > _FLOOD_AFTER_RESENDS:
            self.flood_network()

    def _check_packet(self, packet: Packet, fragment_index: Optional[int]) -> bool:
        """True if this server is the hop the packet points at; otherwise nack it back."""
        if packet.routing_header.current_hop() == self.id:
            return True
        nack = Nack(fragment_index or 0, NackType.UNEXPECTED_RECIPIENT, self.id)
        self.send_packet(
            Packet(packet.routing_header.reversed(), packet.session_id, nack)
        )
        return False

    def _flood_response(self, request: FloodRequest, session_id: int) -> Packet:
        path_trace = request.path_trace + ((self.id, NodeType.SERVER),)
        hops = [node for node, _ in reversed(path_trace)]
        if hops[-1] != request.initiator_id:
            hops.append(request.initiator_id)
        return Packet(
            SourceRoutingHeader.with_first_hop(hops),
            session_id,
            FloodResponse(request.flood_id, path_trace),
        )

    def _send_ack(self, fragment_index: int, packet: Packet) -> None:
        back = SourceRoutingHeader.with_first_hop(packet.routing_header.hops[::-1])
        self.send_packet(Packet(back, packet.session_id, Ack(fragment_index)))

    def handle_command(self, command: Any) -> None:
        if isinstance(command, InitFlooding):
            self.flood_network()
        elif isinstance(command, LogNetwork):
            self.router.log_network()
        elif isinstance(command, RemoveSender):
            if self.packet_send.pop(command.node_id, None) is not None:
                log.info("[%s] sender removed successfully", self.label)
            else:
                log.warning("[%s] sender [ Drone %s ] not found", self.label, command.node_id)
            self.router.remove_neighbour(command.node_id)
            self.flood_network()
        elif isinstance(command, AddSender):
            if command.node_id in self.packet_send:
                log.warning("[%s] is already connected to [ Drone %s ]", self.label, command.node_id)
                return
            self.packet_send[command.node_id] = command.sender
            log.info("[%s] sender added successfully", self.label)
            self.router.add_neighbour(command.node_id)
            self.flood_network()

    def handle_message(self, message: Message) -> None:
        request = message.from_client()
        if request is None:
            log.error("[%s] received message is not from a client", self.label)
            return
        if isinstance(request, GetServerType):
            self.send_message_to_client(ServerTypeReply(self.server_type), message.source_id)
        else:
            log.error("[%s] wrong request %r", self.label, request)

    def send_message_to_client(self, server_message: Any, destination_id: NodeId) -> None:
        """Fragment a message, cache every fragment and send it along a known route."""
        try:
            header = self.router.get_source_routing_header(destination_id)
        except UnreachableDestination:
            log.error(
                "[%s] cannot send message, destination %s is unreachable",
                self.label,
                destination_id,
            )
            return
        for fragment_packet in self.message_factory.get_message_from_message_content(
            server_message, header, destination_id
        ):
            self.packet_cache.insert_packet(fragment_packet)
            self.send_packet(fragment_packet)
        log.info("message sent to client %s: %r", destination_id, server_message)