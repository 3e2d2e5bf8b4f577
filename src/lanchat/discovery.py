"""UDP broadcast presence protocol: announce, listen and evict stale peers."""
from __future__ import annotations

import logging
import socket
import threading
import time
from typing import Callable, List, Optional, Tuple

from .codec import MAX_DATAGRAM_BYTES, decode_announcement, encode_announcement
from .config import ChatSettings
from .errors import DecodeError, NotReady
from .observable import ObservableValue
from .peer_table import PeerTable
from .state import LocalPeer, PeerRecord
from . import status


logger = logging.getLogger(__name__)


class DiscoveryEngine:
    """Descoberta por broadcast: ``Idle -> Discovering -> Idle``.

    Uma sessão roda três tarefas independentes: a rajada de anúncios, o
    ouvinte UDP e um watchdog que encerra a sessão após
    ``discovery_duration``. A varredura de peers inativos é separada e roda
    sempre, com ou sem sessão ativa.
    """

    def __init__(
        self,
        settings: ChatSettings,
        local: LocalPeer,
        peer_table: PeerTable,
        port_provider: Callable[[], Optional[int]],
        on_status: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.local = local
        self.peer_table = peer_table
        self.port_provider = port_provider
        self._on_status = on_status
        self._clock = clock
        self.is_discovering: ObservableValue[bool] = ObservableValue(False, name="is_discovering")
        self._lock = threading.RLock()
        self._session_stop: Optional[threading.Event] = None
        self._threads: List[threading.Thread] = []
        self._watchdog: Optional[threading.Timer] = None
        self._sweeper_thread: Optional[threading.Thread] = None
        self._sweeper_stop = threading.Event()

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def start(self) -> None:
        """Inicia uma sessão de descoberta.

        Raises:
            NotReady: Se o motor de mensagens ainda não tem porta de escuta.
        """
        with self._lock:
            if self.is_discovering.value:
                logger.debug("Descoberta já em andamento")
                return
            if not self.port_provider():
                raise NotReady("não há porta de mensagens para anunciar")

            # resultados de uma sessão anterior não devem aparecer
            self.peer_table.clear()
            stop_event = threading.Event()
            self._session_stop = stop_event
            self._threads = [
                threading.Thread(
                    target=self._broadcast_loop, args=(stop_event,), name="discovery-broadcast", daemon=True
                ),
                threading.Thread(
                    target=self._listen_loop, args=(stop_event,), name="discovery-listen", daemon=True
                ),
            ]
            self._watchdog = threading.Timer(
                self.settings.discovery_duration, self._on_timeout, args=(stop_event,)
            )
            self._watchdog.daemon = True
            self.is_discovering.set(True)
            self._report(status.DISCOVERING)
            for thread in self._threads:
                thread.start()
            self._watchdog.start()
        logger.info("Descoberta iniciada (duração %.0fs)", self.settings.discovery_duration)

    def stop(self) -> None:
        self._stop_session(None)

    def _stop_session(self, expected: Optional[threading.Event]) -> None:
        with self._lock:
            if not self.is_discovering.value:
                return
            if expected is not None and self._session_stop is not expected:
                # watchdog de uma sessão anterior
                return
            if self._session_stop:
                self._session_stop.set()
            if self._watchdog:
                self._watchdog.cancel()
            threads, self._threads = self._threads, []
            self._session_stop = None
            self._watchdog = None
            self.is_discovering.set(False)
        current = threading.current_thread()
        for thread in threads:
            if thread is not current and thread.is_alive():
                thread.join(timeout=self.settings.discovery_receive_timeout + 1.0)
        count = len(self.peer_table)
        self._report(status.peers_found(count))
        logger.info("Descoberta encerrada - %d peer(s) encontrado(s)", count)

    def start_sweeper(self) -> None:
        """Varredura contínua de peers inativos, independente da descoberta."""

        if self._sweeper_thread and self._sweeper_thread.is_alive():
            return

        def _loop() -> None:
            while not self._sweeper_stop.wait(self.settings.sweep_interval):
                self.sweep_once()

        self._sweeper_stop.clear()
        self._sweeper_thread = threading.Thread(target=_loop, name="discovery-sweeper", daemon=True)
        self._sweeper_thread.start()

    def stop_sweeper(self) -> None:
        if not self._sweeper_thread:
            return
        self._sweeper_stop.set()
        self._sweeper_thread.join(timeout=2)
        self._sweeper_thread = None

    def sweep_once(self) -> int:
        return self.peer_table.evict_stale(self.now_ms(), int(self.settings.stale_threshold * 1000))

    def close(self) -> None:
        self.stop()
        self.stop_sweeper()

    def handle_datagram(self, data: bytes, addr: Tuple[str, int]) -> Optional[PeerRecord]:
        """Processa um datagrama recebido.

        Datagramas malformados e anúncios do próprio peer são descartados.
        """
        try:
            announcement = decode_announcement(data)
        except DecodeError as exc:
            logger.warning("Datagrama de descoberta inválido de %s: %s", addr[0], exc)
            return None
        if announcement.peer_id == self.local.peer_id:
            return None
        record = PeerRecord(
            peer_id=announcement.peer_id,
            display_name=announcement.display_name,
            address=addr[0],
            port=announcement.listen_port,
            last_seen_at=self.now_ms(),
        )
        if self.peer_table.upsert(record):
            logger.info("Peer encontrado: %s em %s:%d", record.display_name, record.address, record.port)
        return record

    def _broadcast_loop(self, stop_event: threading.Event) -> None:
        sock: Optional[socket.socket] = None
        try:
            while not stop_event.is_set():
                port = self.port_provider()
                if sock is None:
                    try:
                        sock = self._open_broadcast_socket()
                    except OSError as exc:
                        logger.error("Erro ao abrir socket de broadcast: %s", exc)
                if sock is not None and port:
                    payload = encode_announcement(self.local.peer_id, self.local.display_name, port)
                    target = (self.settings.broadcast_address, self.settings.discovery_port)
                    for _ in range(self.settings.broadcast_burst):
                        try:
                            sock.sendto(payload, target)
                        except OSError as exc:
                            logger.warning("Erro de broadcast: %s", exc)
                            break
                    logger.debug("Anúncio enviado: %s na porta %s", self.local.display_name, port)
                stop_event.wait(self.settings.broadcast_interval)
        finally:
            if sock is not None:
                sock.close()

    def _listen_loop(self, stop_event: threading.Event) -> None:
        sock: Optional[socket.socket] = None
        try:
            while not stop_event.is_set():
                if sock is None:
                    try:
                        sock = self._open_listen_socket()
                    except OSError as exc:
                        logger.error("Erro ao associar porta de descoberta %d: %s",
                                     self.settings.discovery_port, exc)
                        stop_event.wait(self.settings.broadcast_interval)
                        continue
                try:
                    data, addr = sock.recvfrom(MAX_DATAGRAM_BYTES)
                except socket.timeout:
                    continue
                except OSError as exc:
                    if not stop_event.is_set():
                        logger.warning("Erro no ouvinte de descoberta: %s", exc)
                    sock.close()
                    sock = None
                    stop_event.wait(self.settings.discovery_receive_timeout)
                    continue
                if stop_event.is_set():
                    break
                self.handle_datagram(data, addr)
        finally:
            if sock is not None:
                sock.close()

    def _open_broadcast_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        return sock

    def _open_listen_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                try:
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
                except OSError:
                    logger.debug("SO_REUSEPORT não suportado neste sistema")
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.bind(("", self.settings.discovery_port))
            # timeout curto: permite observar o cancelamento sem bloquear
            sock.settimeout(self.settings.discovery_receive_timeout)
        except OSError:
            sock.close()
            raise
        return sock

    def _on_timeout(self, stop_event: threading.Event) -> None:
        logger.info("Tempo de descoberta esgotado")
        self._stop_session(stop_event)

    def _report(self, text: str) -> None:
        if self._on_status:
            self._on_status(text)
