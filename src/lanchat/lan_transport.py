"""Primary transport: UDP broadcast discovery plus per-peer TCP messaging."""
from __future__ import annotations

import logging
from typing import Optional

from .config import ChatSettings
from .discovery import DiscoveryEngine
from .errors import NotReady
from .message_router import MessageRouter
from .observable import ObservableValue
from .state import ChatMessage, LocalPeer
from .transport import ChatTransport
from . import status


logger = logging.getLogger(__name__)


class LanTransport(ChatTransport):
    """Coordena descoberta, servidor TCP e envio no Wi-Fi comum."""

    def __init__(self, settings: ChatSettings, local: LocalPeer) -> None:
        super().__init__(settings, local)
        self.router = MessageRouter(
            settings, local, self.peer_table, self.conversations, on_status=self.set_status
        )
        self.discovery = DiscoveryEngine(
            settings,
            local,
            self.peer_table,
            port_provider=lambda: self.router.active_port,
            on_status=self.set_status,
        )
        self._running = False

    @property
    def is_discovering(self) -> ObservableValue[bool]:
        return self.discovery.is_discovering

    @property
    def active_port(self) -> Optional[int]:
        return self.router.active_port

    @property
    def is_restricted(self) -> bool:
        return self._running and not self.router.is_bound

    def start(self) -> None:
        if self._running:
            logger.debug("Transporte LAN já iniciado; ignorando chamada extra.")
            return
        self._running = True
        logger.info("Inicializando transporte LAN para %s (%s)", self.local.display_name, self.local.peer_id)
        self.router.bind_listening_port()
        self.discovery.start_sweeper()

    def start_discovery(self) -> bool:
        try:
            self.discovery.start()
        except NotReady as exc:
            logger.error("Não é possível iniciar descoberta: %s", exc)
            self.set_status(status.CANNOT_DISCOVER)
            return False
        return True

    def stop_discovery(self) -> None:
        self.discovery.stop()

    def send_message(self, peer_id: str, text: str) -> Optional[ChatMessage]:
        return self.router.send(peer_id, text)

    def close(self) -> None:
        if not self._running:
            return
        logger.info("Encerrando transporte LAN...")
        self.discovery.close()
        self.router.close()
        self._running = False
