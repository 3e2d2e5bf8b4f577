"""Routing helpers for direct peer messages."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional, Sequence

from .config import ChatSettings
from .conversation import ConversationStore
from .errors import BindFailed, ConnectFailed, SendFailed
from .peer_connection import PeerConnection
from .peer_server import PeerServer
from .peer_table import PeerTable
from .state import ChatMessage, LocalPeer, MessageEnvelope, PeerRecord
from . import status


logger = logging.getLogger(__name__)


class MessageRouter:
    """Motor de mensagens: servidor TCP + pool de conexões outbound.

    Responsabilidades:
    - Associar a porta de escuta por fallback e manter o laço de accept.
    - Converter envelopes recebidos em ``ChatMessage`` e marcar como não lidos.
    - Criar sob demanda uma conexão por peer, reaproveitada nos envios.
    - Descartar a conexão em cache após qualquer erro de escrita.
    """

    def __init__(
        self,
        settings: ChatSettings,
        local: LocalPeer,
        peer_table: PeerTable,
        conversations: ConversationStore,
        on_status: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.settings = settings
        self.local = local
        self.peer_table = peer_table
        self.conversations = conversations
        self._on_status = on_status
        self.server = PeerServer(
            settings.listen_host,
            on_envelope=self._on_envelope,
            on_attempt=lambda port: self._report(status.trying_port(port)),
        )
        self._connections: Dict[str, PeerConnection] = {}
        self._pool_lock = threading.Lock()
        self._peer_locks: Dict[str, threading.Lock] = {}

    @property
    def active_port(self) -> Optional[int]:
        """Porta de escuta ativa, ou ``None`` enquanto Unbound."""

        return self.server.port if self.server.is_bound else None

    @property
    def is_bound(self) -> bool:
        return self.server.is_bound

    def bind_listening_port(self, ports: Optional[Sequence[int]] = None) -> Optional[int]:
        """Associa a porta de escuta e inicia o laço de accept.

        Returns:
            A porta ativa, ou ``None`` se a rede estiver restrita (Unbound).
        """
        candidates = list(ports if ports is not None else self.settings.message_ports)
        try:
            port = self.server.bind(candidates)
        except BindFailed as exc:
            logger.error("CRÍTICO: servidor não iniciou em nenhuma porta: %s", exc)
            self._report(status.RESTRICTED)
            return None
        self.server.start()
        self._report(status.server_running(port))
        return port

    def connect(self, peer: PeerRecord) -> PeerConnection:
        """Abre uma conexão outbound com fallback de portas.

        Raises:
            ConnectFailed: Se todas as portas falharem.
        """
        return PeerConnection.connect_outbound(
            peer, self.settings.message_ports, timeout=self.settings.connect_timeout
        )

    def send(self, peer_id: str, text: str) -> Optional[ChatMessage]:
        """Envia ``text`` para ``peer_id``.

        Nunca levanta exceção: em falha registra, publica o status e retorna
        ``None`` sem tocar no histórico.
        """
        peer = self.peer_table.get(peer_id)
        if peer is None:
            logger.warning("[Router] peer %s desconhecido, não é possível enviar", peer_id)
            self._report(status.send_failed(peer_id, "peer desconhecido"))
            return None

        with self._lock_for(peer_id):
            try:
                connection = self._get_or_connect(peer)
            except ConnectFailed as exc:
                logger.error("[Router] %s", exc)
                self._report(status.send_failed(peer.display_name, "nenhuma porta respondeu"))
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
                self._evict(peer_id, connection)
                logger.error("[Router] falha ao enviar para %s: %s", peer_id, exc)
                self._report(status.send_failed(peer.display_name, exc))
                return None
            self.conversations.append(peer_id, message)

        logger.info("[Router] SEND %s: %s", peer.display_name, text[:40])
        return message

    def has_connection(self, peer_id: str) -> bool:
        with self._pool_lock:
            return peer_id in self._connections

    def close(self) -> None:
        self.server.stop()
        with self._pool_lock:
            connections = list(self._connections.values())
            self._connections.clear()
        for connection in connections:
            connection.close()

    def _get_or_connect(self, peer: PeerRecord) -> PeerConnection:
        with self._pool_lock:
            connection = self._connections.get(peer.peer_id)
        if connection is not None and not connection.closed:
            return connection
        connection = self.connect(peer)
        with self._pool_lock:
            self._connections[peer.peer_id] = connection
        return connection

    def _evict(self, peer_id: str, connection: PeerConnection) -> None:
        with self._pool_lock:
            if self._connections.get(peer_id) is connection:
                del self._connections[peer_id]
        connection.close()

    def _lock_for(self, peer_id: str) -> threading.Lock:
        # get-or-create serializado por peer; evita sockets duplicados
        with self._pool_lock:
            lock = self._peer_locks.get(peer_id)
            if lock is None:
                lock = self._peer_locks[peer_id] = threading.Lock()
            return lock

    def _on_envelope(self, envelope: MessageEnvelope, connection: PeerConnection) -> None:
        message = ChatMessage.from_envelope(envelope)
        self.conversations.append(envelope.sender_id, message)
        self.conversations.increment_unread(envelope.sender_id)
        logger.info("[Router] RECV de %s: %s", envelope.sender_name, envelope.text[:40])

    def _report(self, text: str) -> None:
        if self._on_status:
            self._on_status(text)
