"""TCP server responsible for inbound peer connections."""
from __future__ import annotations

import logging
import socket
import threading
from typing import Callable, List, Optional, Sequence, Set, Tuple

from .errors import BindFailed
from .peer_connection import PeerConnection
from .state import MessageEnvelope


logger = logging.getLogger(__name__)
ACCEPT_POLL_SECONDS = 1.0


class PeerServer:
    """Escuta conexões inbound e entrega cada envelope recebido.

    A porta é escolhida por fallback: as candidatas são tentadas em ordem e
    a primeira que aceitar o bind vence. Cada conexão aceita ganha sua
    própria thread de leitura, então um peer lento não bloqueia os demais.
    """

    def __init__(
        self,
        listen_host: str,
        on_envelope: Callable[[MessageEnvelope, PeerConnection], None],
        on_connection: Optional[Callable[[PeerConnection], None]] = None,
        on_attempt: Optional[Callable[[int], None]] = None,
        backlog: int = 64,
    ) -> None:
        self.listen_host = listen_host
        self.on_envelope = on_envelope
        self.on_connection = on_connection
        self.on_attempt = on_attempt
        self.backlog = backlog
        self.port: Optional[int] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._server_socket: Optional[socket.socket] = None
        self._connections: Set[PeerConnection] = set()
        self._connections_lock = threading.Lock()

    @property
    def is_bound(self) -> bool:
        return self._server_socket is not None

    def bind(self, ports: Sequence[int]) -> int:
        """Associa a primeira porta livre da lista.

        Raises:
            BindFailed: Se todas as portas falharem.
        """
        for port in ports:
            if self.on_attempt:
                self.on_attempt(port)
            server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            try:
                server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                server.bind((self.listen_host, port))
                server.listen(self.backlog)
            except OSError as exc:
                server.close()
                logger.warning("Porta %d indisponível: %s", port, exc)
                continue
            self._server_socket = server
            self.port = server.getsockname()[1]
            logger.info("PeerServer associado em %s:%s", self.listen_host, self.port)
            return self.port
        raise BindFailed(ports)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        server = self._server_socket
        if server is None:
            raise RuntimeError("PeerServer.start() chamado antes de bind()")

        def _loop() -> None:
            logger.info("PeerServer escutando em %s:%s", self.listen_host, self.port)
            server.settimeout(ACCEPT_POLL_SECONDS)
            while not self._stop_event.is_set():
                try:
                    conn, addr = server.accept()
                except socket.timeout:
                    continue
                except OSError:
                    break
                conn.settimeout(None)
                threading.Thread(
                    target=self._handle_connection,
                    args=(conn, addr),
                    name=f"peer-inbound-{addr[0]}:{addr[1]}",
                    daemon=True,
                ).start()

        self._stop_event.clear()
        self._thread = threading.Thread(target=_loop, name="peer-server", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._server_socket:
            try:
                self._server_socket.close()
            except OSError:
                pass
            self._server_socket = None
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2)
        self._thread = None
        with self._connections_lock:
            connections: List[PeerConnection] = list(self._connections)
            self._connections.clear()
        for connection in connections:
            connection.close()

    def _handle_connection(self, conn: socket.socket, addr: Tuple[str, int]) -> None:
        connection = PeerConnection.from_inbound(conn, addr)
        with self._connections_lock:
            if self._stop_event.is_set():
                connection.close()
                return
            self._connections.add(connection)
        logger.info("[%s] conexão inbound aceita", connection.label)
        try:
            if self.on_connection:
                self.on_connection(connection)
            connection.read_envelopes(lambda envelope: self.on_envelope(envelope, connection))
        except Exception:
            logger.exception("[%s] erro ao processar conexão; fechando socket", connection.label)
            connection.close()
        finally:
            with self._connections_lock:
                self._connections.discard(connection)
