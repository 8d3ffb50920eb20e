"""High-level messages exchanged between clients and servers."""

from __future__ import annotations

import enum
import typing
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from meshservers.wire import NodeId


class ServerType(enum.Enum):
    """What a server offers to clients."""

    CHAT = "chat"
    TEXT = "text"
    MEDIA = "media"


@dataclass(frozen=True)
class _Signal:
    """A message that carries nothing but its kind."""


class _TupleField:
    """Stores the field named by ``_tuple_field`` as a tuple."""

    _tuple_field = ""

    def __post_init__(self) -> None:
        name = self._tuple_field
        object.__setattr__(self, name, tuple(getattr(self, name)))


class GetServerType(_Signal):
    """Asks which kind of server this is."""


class RegisterToChat(_Signal):
    """Asks to join the chat."""


class Logout(_Signal):
    """Asks to leave the chat."""


class GetClientList(_Signal):
    """Asks for the registered chat clients."""


class GetFilesList(_Signal):
    """Asks for the files a content server offers."""


@dataclass(frozen=True)
class SendMessage:
    recipient_id: NodeId
    content: str


@dataclass(frozen=True)
class GetFile:
    file_name: str


@dataclass(frozen=True)
class GetMedia:
    file_name: str


ClientMessage = Union[
    GetServerType, RegisterToChat, Logout, GetClientList, SendMessage, GetFilesList, GetFile, GetMedia
]
CLIENT_MESSAGES = typing.get_args(ClientMessage)


@dataclass(frozen=True)
class ServerTypeReply:
    server_type: ServerType


class SuccessfulRegistration(_Signal):
    """Confirms a chat registration."""


class SuccessfulLogOut(_Signal):
    """Confirms a chat logout."""


@dataclass(frozen=True)
class ClientList(_TupleField):
    clients: Tuple[NodeId, ...] = ()
    _tuple_field = "clients"


@dataclass(frozen=True)
class MessageReceived:
    sender_id: NodeId
    content: str


@dataclass(frozen=True)
class UnreachableClient:
    client_id: NodeId


@dataclass(frozen=True)
class FilesList(_TupleField):
    files: Tuple[str, ...] = ()
    _tuple_field = "files"


@dataclass(frozen=True)
class File:
    file_id: str
    size: int
    content: str


@dataclass(frozen=True)
class Media:
    file_name: str
    data: str


ServerMessage = Union[
    ServerTypeReply,
    SuccessfulRegistration,
    SuccessfulLogOut,
    ClientList,
    MessageReceived,
    UnreachableClient,
    FilesList,
    File,
    Media,
]


@dataclass(frozen=True)
class Message:
    """A reassembled message and the node it came from."""

    source_id: NodeId
    content: Union[ClientMessage, ServerMessage]
    session_id: int = 0

    def from_client(self) -> Optional[ClientMessage]:
        """The client request carried, or None when the message came from a server."""
        return self.content if isinstance(self.content, CLIENT_MESSAGES) else None