import queue
import threading

import pytest

from meshservers.commands import (
    AddSender,
    DestinationIsDrone,
    ErrorPacketCache,
    InitFlooding,
    LogNetwork,
    RemoveSender,
    UnreachableNode,
)
from meshservers.handling import PacketHandlingServer
from meshservers.messages import (
    GetFile,
    GetServerType,
    Message,
    ServerType,
    ServerTypeReply,
    SuccessfulLogOut,
)
from meshservers.node import UnreachableDestination
from meshservers.wire import (
    Ack,
    FloodRequest,
    FloodResponse,
    Fragment,
    Nack,
    NackType,
    NodeType,
    Packet,
    SourceRoutingHeader,
)

SERVER, DRONE, CLIENT = 1, 2, 5
INBOUND = SourceRoutingHeader(2, (CLIENT, DRONE, SERVER))


class RecordingRouter:
    def __init__(self, routes):
        self.routes = dict(routes)
        self.calls = []

    def get_source_routing_header(self, destination):
        if destination not in self.routes:
            raise UnreachableDestination(destination)
        return SourceRoutingHeader.with_first_hop(self.routes[destination])

    def get_flood_requests(self, count):
        trace = ((SERVER, NodeType.SERVER),)
        return [Packet(SourceRoutingHeader(0, ()), 100 + i, FloodRequest(i, SERVER, trace)) for i in range(count)]

    def __getattr__(self, name):
        labels = {
            "handle_flood_response": "flood_response", "drone_crashed": "crashed",
            "dropped_fragment": "dropped", "remove_neighbour": "remove",
            "add_neighbour": "add", "log_network": "log",
        }
        if name not in labels:
            raise AttributeError(name)
        return lambda *args: self.calls.append((labels[name], *args))


class FakeFactory:
    def __init__(self, message=None):
        self.message = message
        self.received = []
        self.sent = []

    def received_fragment(self, fragment, session_id, source):
        self.received.append((fragment, session_id, source))
        return self.message

    def get_message_from_message_content(self, content, header, destination):
        self.sent.append((content, destination))
        return [Packet(header, 77, Fragment(0, 1, repr(content).encode()))]


class FakeCache:
    def __init__(self, values=None):
        self.values = dict(values or {})
        self.inserted = []
        self.taken = []

    def insert_packet(self, packet):
        self.inserted.append(packet)

    def take_packet(self, key):
        self.taken.append(key)

    def get_value(self, key):
        return self.values.get(key)


class ContentLike(PacketHandlingServer):
    server_type = ServerType.TEXT
    _ack_before_handling = True
    _resend_when_unreachable = True


def pending(channel):
    return [channel.get_nowait() for _ in range(channel.qsize())]


def make(cls=PacketHandlingServer, routes=None, message=None, cached=None):
    drone_q, controller_q = queue.Queue(), queue.Queue()
    server = cls(
        SERVER,
        RecordingRouter({CLIENT: (SERVER, DRONE, CLIENT)} if routes is None else routes),
        FakeFactory(message),
        FakeCache(cached),
        queue.Queue(),
        {DRONE: drone_q},
        controller_q,
        queue.Queue(),
        0,
    )
    return server, drone_q, controller_q


def incoming(pack_type, session=10):
    return Packet(INBOUND, session, pack_type)


def cached(hop=3, freq=1):
    return {(10, 0): (Packet(SourceRoutingHeader(1, (SERVER, hop, CLIENT)), 10, Fragment(0, 1)), freq)}


def test_ack_releases_cached_packet():
    server, _, _ = make()
    server.handle_packet(incoming(Ack(3), session=9))
    assert server.packet_cache.taken == [(9, 3)]


@pytest.mark.parametrize(
    "trace, hops",
    [
        (((CLIENT, NodeType.CLIENT), (DRONE, NodeType.DRONE)), (SERVER, DRONE, CLIENT)),
        (((DRONE, NodeType.DRONE),), (SERVER, DRONE, CLIENT)),
    ],
)
def test_flood_request_answered_back_along_path(trace, hops):
    server, drone_q, _ = make()
    server.handle_packet(incoming(FloodRequest(4, CLIENT, trace), session=33))
    (reply,) = pending(drone_q)
    assert reply.session_id == 33
    assert reply.routing_header == SourceRoutingHeader(1, hops)
    assert reply.pack_type == FloodResponse(4, trace + ((SERVER, NodeType.SERVER),))


def test_flood_response_goes_to_router():
    server, _, _ = make()
    response = FloodResponse(8, ((SERVER, NodeType.SERVER),))
    server.handle_packet(incoming(response))
    assert server.router.calls == [("flood_response", response)]


def test_fragment_for_other_node_is_nacked_twice():
    server, drone_q, _ = make()
    server.handle_packet(Packet(SourceRoutingHeader(2, (CLIENT, DRONE, 3)), 10, Fragment(6, 9)))
    sent = pending(drone_q)
    assert [p.pack_type for p in sent] == [Nack(6, NackType.UNEXPECTED_RECIPIENT, SERVER)] * 2
    assert {p.routing_header.hops for p in sent} == {(3, DRONE, CLIENT)}
    assert server.message_factory.received == []


@pytest.mark.parametrize(
    "cls, server_type, ack_first",
    [(PacketHandlingServer, ServerType.CHAT, False), (ContentLike, ServerType.TEXT, True)],
)
def test_fragment_handled_and_acked(cls, server_type, ack_first):
    server, drone_q, _ = make(cls=cls, message=Message(CLIENT, GetServerType()))
    server.handle_packet(incoming(Fragment(0, 1)))
    sent = pending(drone_q)
    ack, reply = sent if ack_first else sent[::-1]
    assert ack.pack_type == Ack(0)
    assert ack.routing_header.hops == (SERVER, DRONE, CLIENT)
    assert isinstance(reply.pack_type, Fragment)
    assert server.message_factory.sent == [(ServerTypeReply(server_type), CLIENT)]
    assert server.packet_cache.inserted == [reply]


def test_incomplete_message_only_acked():
    server, drone_q, _ = make(message=None)
    server.handle_packet(incoming(Fragment(2, 5)))
    assert [p.pack_type for p in pending(drone_q)] == [Ack(2)]
    assert server.message_factory.received[0][1:] == (10, CLIENT)


def test_dropped_nack_resends_on_new_route():
    server, drone_q, _ = make(cached=cached())
    server.handle_packet(Packet(SourceRoutingHeader(1, (DRONE, SERVER)), 10, Nack(0, NackType.DROPPED)))
    (resent,) = pending(drone_q)
    assert resent == Packet(SourceRoutingHeader(1, (SERVER, DRONE, CLIENT)), 10, Fragment(0, 1))
    assert ("dropped", DRONE) in server.router.calls


def test_error_in_routing_marks_crash():
    server, drone_q, _ = make(cached=cached())
    server.handle_nack(Nack(0, NackType.ERROR_IN_ROUTING, 3), 10, DRONE)
    assert server.router.calls == [("crashed", 3), ("dropped", 3)]
    assert len(pending(drone_q)) == 1


@pytest.mark.parametrize(
    "nack, session, event, sent",
    [
        (Nack(4, NackType.UNEXPECTED_RECIPIENT, 3), 11, ErrorPacketCache(11, 4), []),
        (Nack(0, NackType.DESTINATION_IS_DRONE), 10, DestinationIsDrone(SERVER), []),
    ],
)
def test_nack_reported_to_controller(nack, session, event, sent):
    server, drone_q, controller_q = make()
    server.handle_nack(nack, session, DRONE)
    assert pending(controller_q) == [event]
    assert pending(drone_q) == sent


@pytest.mark.parametrize("cls, resends", [(PacketHandlingServer, False), (ContentLike, True)])
def test_unreachable_after_nack(cls, resends):
    entry = cached(hop=DRONE)
    server, drone_q, controller_q = make(cls=cls, routes={}, cached=entry)
    server.handle_nack(Nack(0, NackType.DROPPED), 10, DRONE)
    assert pending(controller_q) == [UnreachableNode(CLIENT)]
    assert pending(drone_q) == ([entry[(10, 0)][0]] if resends else [])


def test_frequent_resend_triggers_flood():
    server, drone_q, _ = make(cached=cached(freq=101))
    server.handle_nack(Nack(0, NackType.DROPPED), 10, DRONE)
    assert [type(p.pack_type) for p in pending(drone_q)] == [Fragment, FloodRequest]


def test_add_sender_registers_and_floods():
    server, _, _ = make()
    new_q = queue.Queue()
    server.handle_command(AddSender(7, new_q))
    assert server.packet_send[7] is new_q
    assert ("add", 7) in server.router.calls
    assert len(pending(new_q)) == 1


def test_add_existing_sender_is_ignored():
    server, drone_q, _ = make()
    server.handle_command(AddSender(DRONE, queue.Queue()))
    assert server.packet_send[DRONE] is drone_q
    assert server.router.calls == []


def test_remove_sender_forgets_neighbour():
    server, drone_q, _ = make()
    server.handle_command(RemoveSender(DRONE))
    assert DRONE not in server.packet_send
    assert server.router.calls == [("remove", DRONE)]
    assert pending(drone_q) == []


def test_log_network_and_init_flooding():
    server, drone_q, _ = make()
    server.handle_command(LogNetwork())
    server.handle_command(InitFlooding())
    assert server.router.calls == [("log",)]
    assert [type(p.pack_type) for p in pending(drone_q)] == [FloodRequest]


def test_message_to_unreachable_client_not_sent():
    server, drone_q, _ = make(routes={})
    server.send_message_to_client(SuccessfulLogOut(), CLIENT)
    assert (server.packet_cache.inserted, pending(drone_q)) == ([], [])


@pytest.mark.parametrize("content", [SuccessfulLogOut(), GetFile("file1")])
def test_message_without_reply(content):
    server, drone_q, _ = make()
    server.handle_message(Message(CLIENT, content))
    assert (server.message_factory.sent, pending(drone_q)) == ([], [])


def test_run_serves_packets_until_stopped():
    server, drone_q, _ = make()
    server.packet_recv.put(incoming(Ack(1), session=4))
    stop = threading.Event()
    worker = threading.Thread(target=server.run, args=(stop,))
    worker.start()
    for _ in range(200):
        if server.packet_cache.taken:
            break
        threading.Event().wait(0.01)
    stop.set()
    worker.join(timeout=5)
    assert not worker.is_alive()
    assert server.packet_cache.taken == [(4, 1)]
    assert isinstance(pending(drone_q)[0].pack_type, FloodRequest)


def test_nack_needs_node_for_unexpected_recipient():
    server = make()[0]
    with pytest.raises(ValueError):
        server.handle_nack(Nack(0, NackType.UNEXPECTED_RECIPIENT), 1, DRONE)