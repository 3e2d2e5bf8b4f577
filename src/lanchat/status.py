"""Human-readable status texts published on ``connection_status``."""
from __future__ import annotations


# A camada de interface procura este trecho para oferecer o transporte
# secundário; não alterar sem ajustar quem consome.
RESTRICTED_TOKEN = "todas as portas bloqueadas"

INITIALIZING = "Inicializando..."
RESTRICTED = f"Rede restrita - {RESTRICTED_TOKEN}"
DISCOVERING = "Descobrindo peers..."
CANNOT_DISCOVER = "Não é possível descobrir: servidor inativo"
NO_PEERS_FOUND = "Nenhum peer encontrado"
LINK_DISCOVERING = "Descobrindo peers do grupo..."
LINK_NO_CONNECTION = "Nenhuma conexão de grupo ativa"
LINK_DISCONNECTED = "Desconectado do grupo"
SWITCHED_TO_LAN = "Modo Wi-Fi normal ativado"
SWITCHED_TO_LINK = "Modo grupo direto ativado"


def trying_port(port: int) -> str:
    return f"Tentando porta {port}..."


def server_running(port: int) -> str:
    return f"Servidor ativo na porta {port}"


def peers_found(count: int) -> str:
    if count <= 0:
        return NO_PEERS_FOUND
    return f"{count} peer(s) encontrado(s)"


def send_failed(target: str, reason: object) -> str:
    return f"Falha ao enviar para {target}: {reason}"


def link_connected(is_owner: bool) -> str:
    return "Conectado como dono do grupo" if is_owner else "Conectado como cliente do grupo"


def is_restricted(status: str) -> bool:
    return RESTRICTED_TOKEN in status
