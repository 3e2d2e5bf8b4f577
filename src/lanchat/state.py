"""Shared data models for the LAN chat runtime."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4


def now_ms() -> int:
    """Relógio de parede em milissegundos."""

    return int(time.time() * 1000)


class TransportMode(Enum):
    PRIMARY = "lan"
    SECONDARY = "link"


@dataclass(frozen=True, slots=True)
class LocalPeer:
    """Identidade deste processo (id estável por instalação + nome exibido)."""

    peer_id: str
    display_name: str


@dataclass(frozen=True, slots=True)
class PeerRecord:
    """Representa um peer conhecido conforme mantido na ``PeerTable``.

    ``address`` fica vazio em transportes sem IP (link de grupo).
    """

    peer_id: str
    display_name: str
    address: str
    port: int
    last_seen_at: int = field(default_factory=now_ms)


@dataclass(frozen=True, slots=True)
class DiscoveryAnnouncement:
    """Datagrama de presença enviado a cada tick de broadcast."""

    peer_id: str
    display_name: str
    listen_port: int


@dataclass(frozen=True, slots=True)
class MessageEnvelope:
    """Representação de uma mensagem no fio (uma linha JSON)."""

    message_id: str
    text: str
    sender_name: str
    sender_id: str
    timestamp_ms: int


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """Mensagem de uma conversa; ``is_local`` indica autoria deste processo."""

    text: str
    sender_name: str
    sender_id: str
    message_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp_ms: int = field(default_factory=now_ms)
    is_local: bool = False

    def to_envelope(self) -> MessageEnvelope:
        return MessageEnvelope(
            message_id=self.message_id,
            text=self.text,
            sender_name=self.sender_name,
            sender_id=self.sender_id,
            timestamp_ms=self.timestamp_ms,
        )

    @classmethod
    def from_envelope(cls, envelope: MessageEnvelope) -> "ChatMessage":
        """Envelopes recebidos nunca são locais."""

        return cls(
            text=envelope.text,
            sender_name=envelope.sender_name,
            sender_id=envelope.sender_id,
            message_id=envelope.message_id,
            timestamp_ms=envelope.timestamp_ms,
            is_local=False,
        )
