"""Text and media server: lists its files and sends their content to clients."""

from __future__ import annotations

import base64
import io
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from PIL import Image

from meshservers.handling import PacketHandlingServer
from meshservers.messages import (
    File,
    FilesList,
    GetClientList,
    GetFile,
    GetFilesList,
    GetMedia,
    GetServerType,
    Logout,
    Media,
    Message,
    RegisterToChat,
    SendMessage,
    ServerType,
    ServerTypeReply,
)
from meshservers.wire import NodeId

log = logging.getLogger(__name__)

_CATALOGUES: Dict[ServerType, Dict[str, str]] = {
    ServerType.TEXT: {f"file{n}": f"file{n}.html" for n in range(1, 6)},
    ServerType.MEDIA: {f"media{n}": f"media{n}.jpg" for n in range(1, 6)},
    ServerType.CHAT: {},
}


class ContentServer(PacketHandlingServer):
    """A server offering text files or images, depending on its type.

    Text files are read from ``<base_dir>/src/text_files`` and images from
    ``<base_dir>/src/data_files``; without ``base_dir`` the working directory
    at the time of the request is used.
    """

    _ack_before_handling = True
    _resend_when_unreachable = True

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
        server_type: ServerType,
        base_dir: Optional[Union[str, Path]] = None,
        settle_delay: float = 2.0,
    ) -> None:
        super().__init__(
            node_id,
            router,
            message_factory,
            packet_cache,
            packet_recv,
            packet_send,
            controller_send,
            controller_recv,
            settle_delay,
        )
        self.server_type = server_type
        self.base_dir = base_dir
        self.file_list: Dict[str, str] = dict(_CATALOGUES[server_type])

    def _root(self) -> Path:
        return Path(self.base_dir) if self.base_dir is not None else Path.cwd()

    def _print_error(self, file_name: str, error: Exception) -> None:
        log.error("[%s] failed to read file %s, error: %s", self.label, file_name, error)

    def handle_message(self, message: Message) -> None:
        request = message.from_client()
        if request is None:
            log.error("[%s] received message is not from a client", self.label)
            return
        source = message.source_id

        match request:
            case GetServerType():
                self.send_message_to_client(ServerTypeReply(self.server_type), source)
            case GetFilesList():
                self.send_message_to_client(FilesList(list(self.file_list)), source)
            case GetMedia(file_name=file_name):
                self._send_media(file_name, source)
            case GetFile(file_name=file_name):
                self._send_file(file_name, source)
            case RegisterToChat() | Logout() | GetClientList() | SendMessage():
                log.error("[%s] this is not a chat server, wrong request", self.label)

    def _send_media(self, file_name: str, destination: NodeId) -> None:
        relative = self.file_list.get(file_name, file_name)
        try:
            path = self._root() / "src" / "data_files" / relative
            with Image.open(path) as image:
                image.load()
                buffer = io.BytesIO()
                image.save(buffer, format="JPEG")
        except (OSError, ValueError) as error:
            self._print_error(file_name, error)
            return
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
        self.send_message_to_client(Media(file_name, encoded), destination)

    def _send_file(self, file_name: str, destination: NodeId) -> None:
        relative = self.file_list.get(file_name)
        if relative is None:
            return
        try:
            root = self._root()
        except OSError:
            return
        log.info("reading file: %s", root)
        try:
            content = (root / "src" / "text_files" / relative).read_text(encoding="utf-8")
        except (OSError, ValueError) as error:
            self._print_error(file_name, error)
            return
        size = len(content.encode("utf-8"))
        self.send_message_to_client(File(file_name, size, content), destination)