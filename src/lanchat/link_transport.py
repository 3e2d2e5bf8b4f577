"""Secondary transport over a direct group link (hotspot / Wi-Fi Direct style).

A formação do grupo é uma capacidade externa exposta por ``GroupLink``. O
núcleo só cuida do fluxo de mensagens: o dono do grupo aceita a conexão em
``link_port`` e o cliente conecta no endereço do dono; as duas pontas usam
o mesmo JSON por linha do transporte LAN sobre um único socket.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .config import ChatSettings
from .errors import BindFailed, ConnectFailed, SendFailed, TransportUnavailable
from .observable import ObservableValue
from .peer_connection import PeerConnection
from .peer_server import PeerServer
from .state import ChatMessage, LocalPeer, MessageEnvelope, PeerRecord
from .transport import ChatTransport
from . import status


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LinkDevice:
    """Dispositivo visível na camada de link."""

    address: str
    name: str


class GroupLink(ABC):
    """Interface da camada de formação de grupo.

    Implementações avisam o ``LinkTransport`` registrado chamando
    ``on_peers_changed``, ``on_group_formed`` e ``on_group_lost``.
    """

    @abstractmethod
    def register(self, listener: "LinkTransport") -> None:
        ...

    @abstractmethod
    def unregister(self) -> None:
        ...

    @abstractmethod
    def start_discovery(self) -> None:
        ...

    @abstractmethod
    def stop_discovery(self) -> None:
        ...

    @abstractmethod
    def connect(self, address: str) -> None:
        ...

    @abstractmethod
    def disconnect(self) -> None:
        ...


class HotspotGroupLink(GroupLink):
    """Grupo no estilo hotspot: o dono é conhecido pelo endereço.

    Com ``link_owner_address`` vazio este dispositivo é o dono e o grupo se
    forma no registro. Caso contrário a descoberta lista apenas o dono, e
    ``connect`` entra no grupo dele.
    """

    def __init__(self, settings: ChatSettings) -> None:
        self.owner_address = settings.link_owner_address
        self._listener: Optional["LinkTransport"] = None
        self._formed = False

    @property
    def is_owner(self) -> bool:
        return not self.owner_address

    def register(self, listener: "LinkTransport") -> None:
        self._listener = listener
        logger.info("Link de grupo registrado (%s)", "dono" if self.is_owner else "cliente")
        if self.is_owner:
            self._form(True, None)

    def unregister(self) -> None:
        self._listener = None
        self._formed = False

    def start_discovery(self) -> None:
        if self._listener is None:
            return
        devices = [] if self.is_owner else [LinkDevice(self.owner_address, "dono do grupo")]
        self._listener.on_peers_changed(devices)

    def stop_discovery(self) -> None:
        logger.debug("Descoberta do link encerrada")

    def connect(self, address: str) -> None:
        if self.is_owner:
            logger.warning("Dono do grupo não conecta em outro dono (%s)", address)
            return
        self._form(False, address)

    def disconnect(self) -> None:
        if not self._formed:
            return
        self._formed = False
        if self._listener is not None:
            self._listener.on_group_lost()

    def _form(self, is_owner: bool, owner_address: Optional[str]) -> None:
        if self._listener is None or self._formed:
            return
        self._formed = True
        self._listener.on_group_formed(is_owner, owner_address)


class LinkTransport(ChatTransport):
    """Transporte de fallback para redes onde o broadcast UDP é bloqueado."""

    def __init__(self, settings: ChatSettings, local: LocalPeer, link: GroupLink) -> None:
        super().__init__(settings, local)
        self.link = link
        self._is_discovering: ObservableValue[bool] = ObservableValue(False, name="is_discovering")
        self._lock = threading.RLock()
        self._server: Optional[PeerServer] = None
        self._connection: Optional[PeerConnection] = None
        self._registered = False

    @property
    def is_discovering(self) -> ObservableValue[bool]:
        return self._is_discovering

    @property
    def is_connected(self) -> bool:
        connection = self._connection
        return connection is not None and not connection.closed

    def start(self) -> None:
        if self._registered:
            return
        try:
            self.link.register(self)
        except Exception as exc:
            raise TransportUnavailable(f"Falha ao registrar link de grupo: {exc}") from exc
        self._registered = True

    def start_discovery(self) -> bool:
        with self._lock:
            self._is_discovering.set(True)
        self.set_status(status.LINK_DISCOVERING)
        try:
            self.link.start_discovery()
        except Exception as exc:
            logger.error("Descoberta do link falhou: %s", exc)
            self._is_discovering.set(False)
            self.set_status(f"Descoberta falhou: {exc}")
            return False
        return True

    def stop_discovery(self) -> None:
        with self._lock:
            if not self._is_discovering.value:
                return
            self._is_discovering.set(False)
        self.link.stop_discovery()
        self.set_status(status.peers_found(len(self.peer_table)))

    def connect_peer(self, address: str) -> None:
        self.set_status(f"Conectando a {address}...")
        self.link.connect(address)

    def send_message(self, peer_id: str, text: str) -> Optional[ChatMessage]:
        connection = self._connection
        if connection is None or connection.closed:
            logger.error("Nenhuma conexão de grupo ativa")
            self.set_status(status.LINK_NO_CONNECTION)
            return None
        message = ChatMessage(
            text=text,
            sender_name=self.local.display_name,
            sender_id=self.local.peer_id,
            is_local=True,
        )
        try:
            connection.send_envelope(message.to_envelope())
        except (SendFailed, ValueError) as exc:
            logger.error("Falha ao enviar pelo link: %s", exc)
            self.set_status(status.send_failed(peer_id, exc))
            return None
        self.conversations.append(peer_id, message)
        logger.info("Mensagem enviada pelo link: %s", text[:40])
        return message

    def close(self) -> None:
        self.stop_discovery()
        try:
            self.link.disconnect()
        finally:
            self.link.unregister()
            self._registered = False
            self._teardown()
        logger.info("Transporte de grupo encerrado")

    # Callbacks da camada de link

    def on_peers_changed(self, devices: Sequence[LinkDevice]) -> None:
        records: List[PeerRecord] = [
            PeerRecord(
                peer_id=device.address,
                display_name=device.name,
                address=device.address,
                port=self.settings.link_port,
            )
            for device in devices
        ]
        self.peer_table.replace_all(records)

    def on_group_formed(self, is_owner: bool, owner_address: Optional[str]) -> None:
        logger.info("Grupo formado - dono: %s, endereço: %s", is_owner, owner_address)
        if is_owner:
            self._start_owner_server()
        elif owner_address:
            self._connect_to_owner(owner_address)

    def on_group_lost(self) -> None:
        self._teardown()
        self.set_status(status.LINK_DISCONNECTED)

    def _start_owner_server(self) -> None:
        server = PeerServer(
            self.settings.listen_host,
            on_envelope=self._on_envelope,
            on_connection=self._adopt,
        )
        try:
            server.bind([self.settings.link_port])
        except BindFailed as exc:
            logger.error("Servidor do grupo não iniciou: %s", exc)
            self.set_status(f"Erro no servidor do grupo: {exc}")
            return
        server.start()
        with self._lock:
            self._server = server
        self.set_status(status.link_connected(True))

    def _connect_to_owner(self, address: str) -> None:
        owner = PeerRecord(peer_id=address, display_name=address, address=address, port=self.settings.link_port)
        try:
            connection = PeerConnection.connect_outbound(owner, [], timeout=self.settings.connect_timeout)
        except ConnectFailed as exc:
            logger.error("Erro ao conectar no dono do grupo: %s", exc)
            self.set_status(f"Erro de conexão: {exc}")
            return
        self._adopt(connection)
        threading.Thread(
            target=connection.read_envelopes,
            args=(lambda envelope: self._on_envelope(envelope, connection),),
            name=f"link-reader-{address}",
            daemon=True,
        ).start()
        self.set_status(status.link_connected(False))

    def _adopt(self, connection: PeerConnection) -> None:
        # o grupo tem um único socket ativo; a conexão mais recente vence
        with self._lock:
            previous, self._connection = self._connection, connection
        if previous is not None and previous is not connection:
            previous.close()

    def _on_envelope(self, envelope: MessageEnvelope, connection: PeerConnection) -> None:
        self.peer_table.upsert(
            PeerRecord(
                peer_id=envelope.sender_id,
                display_name=envelope.sender_name,
                address="",
                port=self.settings.link_port,
            )
        )
        self.conversations.append(envelope.sender_id, ChatMessage.from_envelope(envelope))
        self.conversations.increment_unread(envelope.sender_id)
        logger.info("Mensagem recebida pelo link de %s: %s", envelope.sender_name, envelope.text[:40])

    def _teardown(self) -> None:
        with self._lock:
            server, self._server = self._server, None
            connection, self._connection = self._connection, None
        if connection is not None:
            connection.close()
        if server is not None:
            server.stop()
