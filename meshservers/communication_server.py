"""Chat server: registers clients and relays messages between them."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from meshservers.handling import PacketHandlingServer
from meshservers.messages import (
    ClientList,
    GetClientList,
    GetFile,
    GetFilesList,
    GetMedia,
    GetServerType,
    Logout,
    Message,
    MessageReceived,
    RegisterToChat,
    SendMessage,
    ServerType,
    ServerTypeReply,
    SuccessfulLogOut,
    SuccessfulRegistration,
    UnreachableClient,
)
from meshservers.wire import NodeId

log = logging.getLogger(__name__)


class CommunicationServer(PacketHandlingServer):
    """A chat server keeping the list of registered clients."""

    server_type = ServerType.CHAT

    def __init__(self, node_id: NodeId, router: Any, message_factory: Any, packet_cache: Any,
                 packet_recv: Any, packet_send: Dict[NodeId, Any], controller_send: Any,
                 controller_recv: Any, settle_delay: float = 2.0) -> None:
        super().__init__(node_id, router, message_factory, packet_cache, packet_recv,
                         packet_send, controller_send, controller_recv, settle_delay)
        self.registered_clients: List[NodeId] = []

    def _note(self, level: int, text: str, *args: Any) -> None:
        log.log(level, "[%s] " + text, self.label, *args)

    def handle_message(self, message: Message) -> None:
        self._note(logging.INFO, "received a message %r", message)
        request = message.from_client()
        if request is None:
            self._note(logging.ERROR, "received message is not from a client")
            return
        source = message.source_id
        registered = self.registered_clients

        match request:
            case GetServerType():
                self.send_message_to_client(ServerTypeReply(self.server_type), source)
            case RegisterToChat() if source in registered:
                self._note(logging.ERROR, "client %s already registered to chat", source)
            case RegisterToChat():
                registered.append(source)
                self.send_message_to_client(SuccessfulRegistration(), source)
                self._note(logging.INFO, "client %s registered to chat", source)
            case Logout() if source in registered:
                registered.remove(source)
                self.send_message_to_client(SuccessfulLogOut(), source)
                self._note(logging.INFO, "client %s logged out", source)
            case Logout():
                self._note(logging.ERROR, "client %s not registered to chat", source)
            case GetClientList():
                self.send_message_to_client(ClientList(registered), source)
            case SendMessage(recipient_id=recipient, content=content):
                if recipient in registered and source in registered:
                    self.send_message_to_client(MessageReceived(source, content), recipient)
                else:
                    self.send_message_to_client(UnreachableClient(source), recipient)
                    self._note(logging.ERROR, "client %s is not registered to chat", recipient)
            case GetFilesList() | GetFile() | GetMedia():
                self._note(logging.ERROR, "this is not a media server, wrong request")