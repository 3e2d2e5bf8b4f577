"""Wire codec for discovery datagrams and newline-framed message records."""
from __future__ import annotations

import json
import socket
from typing import Any, Dict, Optional

from .config import MAX_PORT, MIN_PORT
from .errors import DecodeError
from .state import DiscoveryAnnouncement, MessageEnvelope


MAX_LINE_BYTES = 32 * 1024
MAX_DATAGRAM_BYTES = 2048

_ANNOUNCEMENT_FIELDS = {"peerId": str, "displayName": str, "listenPort": int}
_MESSAGE_FIELDS = {
    "messageId": str,
    "text": str,
    "senderName": str,
    "senderId": str,
    "timestampMs": int,
}


def _dumps(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _loads(data: bytes | str, required: Dict[str, type]) -> Dict[str, Any]:
    """Decodifica um objeto JSON exigindo todos os campos com o tipo certo."""

    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"Registro não é UTF-8 válido: {exc}") from exc
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"JSON inválido: {exc}") from exc
    if not isinstance(payload, dict):
        raise DecodeError(f"Registro deve ser um objeto JSON, recebido: {type(payload).__name__}")

    for name, expected in required.items():
        if name not in payload:
            raise DecodeError(f"Campo obrigatório ausente: {name}")
        value = payload[name]
        # bool é subclasse de int; não aceitar true/false como porta/timestamp
        if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
            raise DecodeError(f"Campo {name} com tipo inválido: {type(value).__name__}")
    return payload


def encode_announcement(peer_id: str, display_name: str, port: int) -> bytes:
    """Serializa um anúncio de presença (um datagrama, sem delimitador)."""

    return _dumps({"peerId": peer_id, "displayName": display_name, "listenPort": port})


def decode_announcement(data: bytes) -> DiscoveryAnnouncement:
    payload = _loads(data, _ANNOUNCEMENT_FIELDS)
    port = payload["listenPort"]
    if not MIN_PORT <= port <= MAX_PORT:
        raise DecodeError(f"listenPort fora do intervalo: {port}")
    return DiscoveryAnnouncement(
        peer_id=payload["peerId"],
        display_name=payload["displayName"],
        listen_port=payload["listenPort"],
    )


def encode_message(envelope: MessageEnvelope) -> bytes:
    """Serializa um envelope como uma linha terminada em ``\\n``."""

    encoded = _dumps(
        {
            "messageId": envelope.message_id,
            "text": envelope.text,
            "senderName": envelope.sender_name,
            "senderId": envelope.sender_id,
            "timestampMs": envelope.timestamp_ms,
        }
    ) + b"\n"
    if len(encoded) > MAX_LINE_BYTES:
        raise ValueError("Payload excede 32KiB")
    return encoded


def decode_message(line: bytes | str) -> MessageEnvelope:
    payload = _loads(line, _MESSAGE_FIELDS)
    return MessageEnvelope(
        message_id=payload["messageId"],
        text=payload["text"],
        sender_name=payload["senderName"],
        sender_id=payload["senderId"],
        timestamp_ms=payload["timestampMs"],
    )


class LineReader:
    """Lê linhas de um socket TCP preservando bytes após o ``\\n``.

    ``read_line`` retorna ``None`` quando o outro lado fecha a conexão.
    Linhas maiores que ``MAX_LINE_BYTES`` levantam ``DecodeError`` e são
    descartadas até o próximo delimitador.
    """

    def __init__(self, sock: socket.socket, max_line_bytes: int = MAX_LINE_BYTES) -> None:
        self.socket = sock
        self.max_line_bytes = max_line_bytes
        self._buffer = b""
        self._discarding = False

    def read_line(self) -> Optional[bytes]:
        while True:
            newline = self._buffer.find(b"\n")
            if newline >= 0:
                line = self._buffer[:newline]
                self._buffer = self._buffer[newline + 1:]
                if self._discarding:
                    self._discarding = False
                    continue
                if len(line) > self.max_line_bytes:
                    raise DecodeError("Linha maior que o limite permitido")
                return line.rstrip(b"\r")
            if len(self._buffer) > self.max_line_bytes:
                self._buffer = b""
                if not self._discarding:
                    self._discarding = True
                    raise DecodeError("Linha maior que o limite permitido")
            chunk = self.socket.recv(4096)
            if not chunk:
                if self._buffer and not self._discarding:
                    line, self._buffer = self._buffer, b""
                    return line
                return None
            self._buffer += chunk
