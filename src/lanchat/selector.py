"""Transport selector: the single entry point used by the UI layer."""
from __future__ import annotations

import logging
import threading
from types import MappingProxyType
from typing import Callable, List, Optional, Tuple

from .config import ChatSettings
from .errors import TransportUnavailable
from .lan_transport import LanTransport
from .link_transport import GroupLink, HotspotGroupLink, LinkTransport
from .observable import ObservableValue
from .state import ChatMessage, LocalPeer, PeerRecord, TransportMode
from .transport import ChatTransport
from . import status


logger = logging.getLogger(__name__)

GroupLinkFactory = Callable[[ChatSettings], GroupLink]


class TransportSelector:
    """Encaminha comandos ao transporte ativo e agrega o estado observável.

    Apenas um transporte fica vivo por vez. Os observáveis públicos
    (``peers``, ``is_discovering``, ``connection_status``,
    ``messages_by_peer``, ``unread_by_peer``) refletem somente o transporte
    ativo; eventos do inativo são ignorados.
    """

    def __init__(
        self,
        settings: Optional[ChatSettings] = None,
        group_link_factory: Optional[GroupLinkFactory] = None,
    ) -> None:
        self.settings = settings or ChatSettings()
        self.group_link_factory = group_link_factory or HotspotGroupLink
        self.local: Optional[LocalPeer] = None
        self.peers: ObservableValue[Tuple[PeerRecord, ...]] = ObservableValue((), name="peers")
        self.is_discovering: ObservableValue[bool] = ObservableValue(False, name="is_discovering")
        self.connection_status: ObservableValue[str] = ObservableValue(status.INITIALIZING, name="connection_status")
        self.messages_by_peer = ObservableValue(MappingProxyType({}), name="messages_by_peer")
        self.unread_by_peer = ObservableValue(MappingProxyType({}), name="unread_by_peer")
        self.mode: ObservableValue[TransportMode] = ObservableValue(TransportMode.PRIMARY, name="mode")
        self._lan: Optional[LanTransport] = None
        self._link: Optional[LinkTransport] = None
        self._active: Optional[ChatTransport] = None
        self._unsubscribers: List[Callable[[], None]] = []
        self._lock = threading.RLock()

    @property
    def lan(self) -> Optional[LanTransport]:
        return self._lan

    @property
    def link(self) -> Optional[LinkTransport]:
        return self._link

    @property
    def active(self) -> Optional[ChatTransport]:
        return self._active

    def initialize(self, display_name: str, peer_id: str) -> None:
        """Chamado uma vez, depois que identidade e permissões existem."""

        with self._lock:
            if self._lan is not None:
                logger.debug("Seletor já inicializado; ignorando chamada extra.")
                return
            self.local = LocalPeer(peer_id=peer_id, display_name=display_name)
            self._lan = LanTransport(self.settings, self.local)
            self._activate(self._lan)
        self._lan.start()
        logger.info("Seletor inicializado em modo %s", TransportMode.PRIMARY.value)

    def start_discovery(self) -> bool:
        transport = self._active
        if transport is None:
            return False
        return transport.start_discovery()

    def stop_discovery(self) -> None:
        transport = self._active
        if transport is not None:
            transport.stop_discovery()

    def send_message(self, peer_id: str, text: str) -> Optional[ChatMessage]:
        transport = self._active
        if transport is None:
            return None
        return transport.send_message(peer_id, text)

    def clear_unread(self, peer_id: str) -> None:
        transport = self._active
        if transport is not None:
            transport.clear_unread(peer_id)

    def connect_link_peer(self, address: str) -> None:
        """Entra no grupo de ``address``; no-op fora do modo secundário."""

        if self._active is self._link and self._link is not None:
            self._link.connect_peer(address)

    def history(self, peer_id: str) -> Tuple[ChatMessage, ...]:
        return tuple(self.messages_by_peer.value.get(peer_id, ()))

    def is_network_restricted(self) -> bool:
        lan = self._lan
        return self.mode.value is TransportMode.PRIMARY and lan is not None and lan.is_restricted

    def switch_transport(self, mode: TransportMode) -> None:
        """Troca o transporte ativo.

        A descoberta do transporte atual é interrompida e a lista de peers
        visível é limpa para não misturar peers de transportes diferentes.

        Raises:
            TransportUnavailable: Se o link de grupo não puder ser registrado.
        """
        with self._lock:
            if self._lan is None or self.local is None:
                raise RuntimeError("switch_transport() chamado antes de initialize()")
            if mode is self.mode.value:
                return
            logger.info("Trocando para o modo %s...", mode.value)
            if mode is TransportMode.SECONDARY:
                self._lan.stop_discovery()
                link = LinkTransport(self.settings, self.local, self.group_link_factory(self.settings))
                link.start()
                self._link = link
                self._activate(link)
                self.mode.set(TransportMode.SECONDARY)
                self.connection_status.set(status.SWITCHED_TO_LINK)
            else:
                link, self._link = self._link, None
                # derruba o link por completo antes de voltar ao primário
                if link is not None:
                    link.close()
                self._lan.peer_table.clear()
                self._activate(self._lan)
                self.mode.set(TransportMode.PRIMARY)
                self.connection_status.set(status.SWITCHED_TO_LAN)
            self.peers.set(())
        logger.info("Modo %s ativo", mode.value)

    def shutdown(self) -> None:
        with self._lock:
            for unsubscribe in self._unsubscribers:
                unsubscribe()
            self._unsubscribers = []
            link, self._link = self._link, None
            lan = self._lan
            self._active = None
        if link is not None:
            link.close()
        if lan is not None:
            lan.close()
        logger.info("Seletor encerrado")

    def _activate(self, transport: ChatTransport) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._active = transport
        pairs = [
            (transport.peers, self.peers),
            (transport.is_discovering, self.is_discovering),
            (transport.connection_status, self.connection_status),
            (transport.messages, self.messages_by_peer),
            (transport.unread, self.unread_by_peer),
        ]
        self._unsubscribers = [source.subscribe(self._forwarder(transport, target)) for source, target in pairs]
        self.is_discovering.set(transport.is_discovering.value)
        self.messages_by_peer.set(transport.messages.value)
        self.unread_by_peer.set(transport.unread.value)
        self.connection_status.set(transport.connection_status.value)

    def _forwarder(self, transport: ChatTransport, target: ObservableValue) -> Callable[[object], None]:
        def _forward(value: object) -> None:
            if self._active is transport:
                target.set(value)

        return _forward
