"""Abstrações para conexões TCP com outros peers."""
from __future__ import annotations

import logging
import socket
import threading
from typing import Callable, List, Optional, Sequence, Tuple

from .codec import LineReader, decode_message, encode_message
from .errors import ConnectFailed, DecodeError, SendFailed
from .state import MessageEnvelope, PeerRecord


logger = logging.getLogger(__name__)


def candidate_ports(preferred: int, fallback: Sequence[int]) -> List[int]:
    """Porta conhecida do peer primeiro, depois as candidatas sem repetir."""

    ports = [preferred] if preferred else []
    ports.extend(port for port in fallback if port != preferred)
    return ports


class PeerConnection:
    """Representa uma conexão (inbound ou outbound) com outro peer.

    Conexões outbound só escrevem; o outro lado lê. Conexões inbound (ou a
    conexão única do link de grupo) usam ``read_envelopes`` para o laço de
    recepção.
    """

    def __init__(self, label: str, sock: socket.socket, is_outbound: bool, port: int = 0) -> None:
        self.label = label
        self.socket = sock
        self.is_outbound = is_outbound
        self.port = port
        self._write_lock = threading.Lock()
        self._closed = threading.Event()

    @classmethod
    def from_inbound(cls, sock: socket.socket, addr: Tuple[str, int]) -> "PeerConnection":
        return cls(f"{addr[0]}:{addr[1]}", sock, is_outbound=False, port=addr[1])

    @classmethod
    def connect_outbound(
        cls,
        peer: PeerRecord,
        fallback_ports: Sequence[int],
        timeout: float,
    ) -> "PeerConnection":
        """Tenta a última porta conhecida do peer e depois as candidatas.

        Raises:
            ConnectFailed: Se nenhuma porta aceitar a conexão.
        """
        ports = candidate_ports(peer.port, fallback_ports)
        for port in ports:
            try:
                sock = socket.create_connection((peer.address, port), timeout=timeout)
            except OSError as exc:
                logger.warning("[%s] porta %d falhou: %s", peer.peer_id, port, exc)
                continue
            # timeout só para o connect; escritas bloqueiam normalmente
            sock.settimeout(None)
            logger.info("[%s] conectado em %s:%d", peer.peer_id, peer.address, port)
            return cls(peer.peer_id, sock, is_outbound=True, port=port)
        raise ConnectFailed(peer.peer_id, ports)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def send_envelope(self, envelope: MessageEnvelope) -> None:
        """Escreve um envelope como uma linha.

        Raises:
            SendFailed: Em qualquer erro de I/O; a conexão fica fechada.
        """
        data = encode_message(envelope)
        with self._write_lock:
            if self.closed:
                raise SendFailed(f"Conexão com {self.label} já está fechada")
            try:
                self.socket.sendall(data)
            except OSError as exc:
                logger.warning("[%s] erro ao enviar dados: %s", self.label, exc)
                self.close()
                raise SendFailed(f"Erro de I/O com {self.label}: {exc}") from exc

    def read_envelopes(self, on_envelope: Callable[[MessageEnvelope], None]) -> None:
        """Lê linhas até o peer fechar ou ocorrer erro de I/O.

        Linhas malformadas são registradas e ignoradas; o laço continua.
        """
        reader = LineReader(self.socket)
        try:
            while not self.closed:
                try:
                    line = reader.read_line()
                except DecodeError as exc:
                    logger.warning("[%s] linha descartada: %s", self.label, exc)
                    continue
                if line is None:
                    logger.debug("[%s] conexão encerrada pelo peer", self.label)
                    break
                if not line.strip():
                    continue
                try:
                    envelope = decode_message(line)
                except DecodeError as exc:
                    logger.warning("[%s] mensagem inválida recebida: %s", self.label, exc)
                    continue
                on_envelope(envelope)
        except OSError as exc:
            if not self.closed:
                logger.debug("[%s] erro de socket: %s", self.label, exc)
        finally:
            self.close()

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        finally:
            self.socket.close()
