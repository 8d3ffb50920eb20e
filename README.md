# meshservers

Server nodes for a simulated drone mesh network that uses source routing.
Every packet carries the full list of hops it travels, servers learn the
topology by flooding, and a simulation controller can reconfigure a running
server by sending it commands.

Two kinds of server are provided:

- `CommunicationServer` (`meshservers.communication_server`) is a chat
  server. Clients register, ask for the list of registered clients, send each
  other messages through the server and log out.
- `ContentServer` (`meshservers.content_server`) serves text files or
  images, depending on its `ServerType` (`TEXT` or `MEDIA`). Clients ask for
  the list of files and then for a single file; images are re-encoded as JPEG
  and sent base64-encoded.

Both build on `PacketHandlingServer` (`meshservers.handling`), which builds on
`ServerNode` (`meshservers.node`).

## Installation

From a checkout of the project:

```
pip install .
```

Python 3.10 or later is required. Pillow is used to read and re-encode images.

## Building blocks

- `meshservers.wire`: the packets on the wire. `Packet`,
  `SourceRoutingHeader` (`with_first_hop`, `current_hop`, `destination`,
  `reversed`), `Fragment`, `Ack`, `Nack` with its `NackType`, `FloodRequest`,
  `FloodResponse` and `NodeType`.
- `meshservers.messages`: high-level messages. Client requests
  (`GetServerType`, `RegisterToChat`, `Logout`, `GetClientList`,
  `SendMessage`, `GetFilesList`, `GetFile`, `GetMedia`), server replies
  (`ServerTypeReply`, `SuccessfulRegistration`, `SuccessfulLogOut`,
  `ClientList`, `MessageReceived`, `UnreachableClient`, `FilesList`, `File`,
  `Media`), the `Message` envelope and `ServerType`.
- `meshservers.commands`: controller commands (`InitFlooding`,
  `LogNetwork`, `RemoveSender`, `AddSender`) and the events a server reports
  back (`DestinationIsDrone`, `ErrorPacketCache`, `UnreachableNode`,
  `SendError`, `ControllerShortcut`).
- `meshservers.node`: `ServerNode`, which puts packets on neighbour
  channels, and `UnreachableDestination`, the exception a router raises when
  it knows no route.

## What you supply

The package does not contain a router, a fragmenting message factory or a
packet cache. A server is handed these as collaborators and calls them as
follows:

- `router`: `get_flood_requests(count)` returns flood-request packets,
  `handle_flood_response(response)`, `get_source_routing_header(destination)`
  returns a `SourceRoutingHeader` or raises `UnreachableDestination`,
  `drone_crashed(node_id)`, `dropped_fragment(node_id)`,
  `add_neighbour(node_id)`, `remove_neighbour(node_id)` and `log_network()`.
- `message_factory`: `received_fragment(fragment, session_id, source_id)`
  returns a `Message` once all fragments are in, else `None`;
  `get_message_from_message_content(server_message, header, destination_id)`
  returns the fragment packets of an outgoing reply.
- `packet_cache`: `insert_packet(packet)`,
  `take_packet((session_id, fragment_index))` and
  `get_value((session_id, fragment_index))`, which returns
  `(packet, times_resent)` or `None`.

Channels are queue-like objects: outgoing ones need `put_nowait`, incoming
ones `get_nowait` and `get(timeout=...)`. `queue.Queue` works.

## Running a server

```python
import queue
import threading

from meshservers.communication_server import CommunicationServer

packets_in = queue.Queue()
commands_in = queue.Queue()
events_out = queue.Queue()
to_drone_7 = queue.Queue()

server = CommunicationServer(
    node_id=20,
    router=router,                    # your router
    message_factory=message_factory,  # your message factory
    packet_cache=packet_cache,        # your packet cache
    packet_recv=packets_in,
    packet_send={7: to_drone_7},
    controller_send=events_out,
    controller_recv=commands_in,
    settle_delay=2.0,
)

stop = threading.Event()
threading.Thread(target=server.run, args=(stop,), daemon=True).start()
```

`run` floods the network, sleeps `settle_delay` seconds, and then serves
packets and controller commands until `stop` is set (or forever without it).
Waiting packets are always handled before waiting commands.

A `ContentServer` also takes `server_type` and an optional `base_dir`. Text
files are read from `src/text_files` and images from `src/data_files` below
`base_dir`, or below the current working directory when `base_dir` is not
given. The offered names are `file1`…`file5` (`fileN.html`) for a text server
and `media1`…`media5` (`mediaN.jpg`) for a media server. A `GetFile` for an
unknown name is ignored; a `GetMedia` for an unknown name uses the name itself
as the image path. Files that cannot be read are logged and not answered.

## Behaviour in short

- A message fragment addressed to this server is acknowledged; a fragment
  that reached the wrong node is answered with an `UNEXPECTED_RECIPIENT` nack.
- Acks, nacks and flood responses that cannot be put on a neighbour's channel
  are handed to the controller as `ControllerShortcut` events; other packets
  that cannot be delivered produce `SendError` events.
- On a nack the server takes the fragment from its packet cache, asks the
  router for a new route and resends it. If the cache has no such fragment an
  `ErrorPacketCache` event is sent; if no route exists an `UnreachableNode`
  event is sent (a `ContentServer` then also resends on the old route). A
  fragment resent more than 100 times triggers a new flood.
- `AddSender` adds a neighbour and floods, unless the neighbour is already
  known. `RemoveSender` removes a neighbour and always floods.
- A chat server refuses file requests and a content server refuses chat
  requests; both only log the wrong request.

Diagnostics go through the standard `logging` module.

## Tests

```
pip install ".[test]"
pytest
```