"""Common surface shared by the primary and secondary transports."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

from .config import ChatSettings
from .conversation import ConversationStore
from .observable import ObservableValue
from .peer_table import PeerTable
from .state import ChatMessage, LocalPeer
from . import status


logger = logging.getLogger(__name__)


class ChatTransport(ABC):
    """Estado observável e comandos que todo transporte expõe.

    Cada transporte é dono exclusivo da sua ``PeerTable`` e do seu
    ``ConversationStore``; quem observa recebe apenas snapshots imutáveis.
    """

    def __init__(self, settings: ChatSettings, local: LocalPeer) -> None:
        self.settings = settings
        self.local = local
        self.peer_table = PeerTable()
        self.conversations = ConversationStore()
        self.connection_status: ObservableValue[str] = ObservableValue(
            status.INITIALIZING, name="connection_status"
        )

    @property
    def peers(self) -> ObservableValue:
        return self.peer_table.peers

    @property
    def messages(self) -> ObservableValue:
        return self.conversations.messages

    @property
    def unread(self) -> ObservableValue:
        return self.conversations.unread

    @property
    @abstractmethod
    def is_discovering(self) -> ObservableValue[bool]:
        ...

    @abstractmethod
    def start(self) -> None:
        ...

    @abstractmethod
    def start_discovery(self) -> bool:
        ...

    @abstractmethod
    def stop_discovery(self) -> None:
        ...

    @abstractmethod
    def send_message(self, peer_id: str, text: str) -> Optional[ChatMessage]:
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    def clear_unread(self, peer_id: str) -> None:
        self.conversations.clear_unread(peer_id)

    def set_status(self, text: str) -> None:
        logger.debug("status: %s", text)
        self.connection_status.set(text)
