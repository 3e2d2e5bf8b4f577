"""Thread-safe in-memory registry of peers known to the local node."""
from __future__ import annotations

import logging
from threading import RLock
from typing import Iterable, Optional, Tuple

from .observable import ObservableValue
from .state import PeerRecord


logger = logging.getLogger(__name__)


class PeerTable:
    """Tabela de presença indexada por ``peer_id``.

    A coleção inteira é substituída a cada escrita (tupla imutável), então
    leitores concorrentes nunca veem um registro pela metade. A ordem de
    inserção é preservada para manter a listagem estável na interface.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self.peers: ObservableValue[Tuple[PeerRecord, ...]] = ObservableValue((), name="peers")

    def upsert(self, peer: PeerRecord) -> bool:
        """Adiciona ou substitui um peer.

        ``last_seen_at`` nunca retrocede: um anúncio atrasado mantém o
        instante mais recente já visto.

        Returns:
            True se é um peer novo, False se já existia.
        """
        with self._lock:
            current = self.peers.value
            for index, existing in enumerate(current):
                if existing.peer_id != peer.peer_id:
                    continue
                if existing.last_seen_at > peer.last_seen_at:
                    peer = PeerRecord(
                        peer_id=peer.peer_id,
                        display_name=peer.display_name,
                        address=peer.address,
                        port=peer.port,
                        last_seen_at=existing.last_seen_at,
                    )
                self.peers.set(current[:index] + (peer,) + current[index + 1:])
                return False
            self.peers.set(current + (peer,))
            return True

    def evict_stale(self, now_ms: int, threshold_ms: int) -> int:
        """Remove peers com ``now - last_seen_at >= threshold``.

        Returns:
            Quantidade de peers removidos.
        """
        with self._lock:
            current = self.peers.value
            active = tuple(peer for peer in current if now_ms - peer.last_seen_at < threshold_ms)
            removed = len(current) - len(active)
            if removed:
                self.peers.set(active)
                logger.info("%d peer(s) inativo(s) removido(s); ativos: %d", removed, len(active))
        return removed

    def replace_all(self, peers: Iterable[PeerRecord]) -> None:
        """Substitui a tabela inteira (listas vindas da camada de link)."""

        with self._lock:
            unique = {}
            for peer in peers:
                unique[peer.peer_id] = peer
            self.peers.set(tuple(unique.values()))

    def snapshot(self) -> Tuple[PeerRecord, ...]:
        return self.peers.value

    def get(self, peer_id: str) -> Optional[PeerRecord]:
        for peer in self.peers.value:
            if peer.peer_id == peer_id:
                return peer
        return None

    def exists(self, peer_id: str) -> bool:
        return self.get(peer_id) is not None

    def remove(self, peer_id: str) -> None:
        with self._lock:
            self.peers.set(tuple(p for p in self.peers.value if p.peer_id != peer_id))

    def clear(self) -> None:
        with self._lock:
            self.peers.set(())

    def __len__(self) -> int:
        return len(self.peers.value)
