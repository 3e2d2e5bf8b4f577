"""Per-peer append-only message logs and unread counters."""
from __future__ import annotations

import threading
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple

from .observable import ObservableValue
from .state import ChatMessage


MessagesSnapshot = Mapping[str, Tuple[ChatMessage, ...]]
UnreadSnapshot = Mapping[str, int]


class ConversationStore:
    """Histórico de conversas por peer.

    Os logs só crescem: nada é reordenado nem removido. Cada mutação publica
    um snapshot novo e imutável em ``messages``/``unread`` ainda sob o lock,
    para que snapshots nunca sejam publicados fora de ordem.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._logs: Dict[str, List[ChatMessage]] = {}
        self._unread: Dict[str, int] = {}
        self.messages: ObservableValue[MessagesSnapshot] = ObservableValue(
            MappingProxyType({}), name="messages"
        )
        self.unread: ObservableValue[UnreadSnapshot] = ObservableValue(
            MappingProxyType({}), name="unread"
        )

    def append(self, peer_id: str, message: ChatMessage) -> None:
        with self._lock:
            self._logs.setdefault(peer_id, []).append(message)
            self.messages.set(self._messages_snapshot())

    def increment_unread(self, peer_id: str) -> int:
        with self._lock:
            count = self._unread.get(peer_id, 0) + 1
            self._unread[peer_id] = count
            self.unread.set(MappingProxyType(dict(self._unread)))
        return count

    def clear_unread(self, peer_id: str) -> None:
        """Zera o contador do peer; o histórico não é alterado."""

        with self._lock:
            if self._unread.pop(peer_id, None) is None:
                return
            self.unread.set(MappingProxyType(dict(self._unread)))

    def history(self, peer_id: str) -> Tuple[ChatMessage, ...]:
        with self._lock:
            return tuple(self._logs.get(peer_id, ()))

    def unread_count(self, peer_id: str) -> int:
        with self._lock:
            return self._unread.get(peer_id, 0)

    def _messages_snapshot(self) -> MessagesSnapshot:
        return MappingProxyType({peer_id: tuple(log) for peer_id, log in self._logs.items()})
