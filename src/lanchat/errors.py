"""Error taxonomy shared by the discovery and messaging layers."""
from __future__ import annotations

from typing import Sequence


class ChatError(RuntimeError):
    """Erro genérico do núcleo de chat."""


class DecodeError(ChatError, ValueError):
    """Registro de fio malformado; o chamador descarta e segue lendo."""


class BindFailed(ChatError):
    """Nenhuma das portas candidatas pôde ser associada."""

    def __init__(self, ports: Sequence[int]) -> None:
        self.ports = list(ports)
        super().__init__(f"Nenhuma porta disponível entre {self.ports}")


class ConnectFailed(ChatError):
    """Todas as portas candidatas do peer recusaram ou expiraram."""

    def __init__(self, peer_id: str, ports: Sequence[int]) -> None:
        self.peer_id = peer_id
        self.ports = list(ports)
        super().__init__(f"Não foi possível conectar a {peer_id} nas portas {self.ports}")


class SendFailed(ChatError):
    """Erro de I/O durante a escrita de uma mensagem."""


class NotReady(ChatError):
    """Descoberta solicitada antes de existir uma porta para anunciar."""


class TransportUnavailable(ChatError):
    """O transporte secundário não pôde ser inicializado."""
