"""Configuration helpers for the LAN chat peer.

Responsabilidades:
- Carregar ``config.json`` e aplicar defaults seguros.
- Permitir override do nível de log por variável de ambiente.
- Validar limites (portas, intervalos de descoberta, limiar de staleness).
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional


MIN_PORT = 1
MAX_PORT = 65535
MAX_NAME_LENGTH = 64
LOG_LEVEL_ENV = "LANCHAT_LOG_LEVEL"

# Portas raramente bloqueadas vêm primeiro (redes institucionais costumam
# liberar apenas 443/80).
DEFAULT_MESSAGE_PORTS = [443, 80, 8080, 53, 8888, 9090, 5353, 49152]


class ConfigValidationError(ValueError):
    """Erro de validação de configuração."""
    pass


def validate_name(name: str) -> str:
    """Valida o nome exibido (até 64 caracteres)."""
    if not isinstance(name, str):
        raise ConfigValidationError(f"name deve ser string, recebido: {type(name).__name__}")
    if len(name.strip()) == 0:
        raise ConfigValidationError("name não pode ser vazio")
    if len(name) > MAX_NAME_LENGTH:
        raise ConfigValidationError(f"name excede {MAX_NAME_LENGTH} caracteres: {len(name)}")
    return name


def validate_port(port: int) -> int:
    """Valida uma porta (1-65535)."""
    if not isinstance(port, int) or isinstance(port, bool):
        raise ConfigValidationError(f"port deve ser inteiro, recebido: {type(port).__name__}")
    if port < MIN_PORT or port > MAX_PORT:
        raise ConfigValidationError(f"port deve estar entre {MIN_PORT} e {MAX_PORT}, recebido: {port}")
    return port


def validate_positive(label: str, value: float) -> float:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ConfigValidationError(f"{label} deve ser numérico, recebido: {type(value).__name__}")
    if value <= 0:
        raise ConfigValidationError(f"{label} deve ser positivo, recebido: {value}")
    return value


@dataclass(slots=True)
class ChatSettings:
    """Conjunto de parâmetros centrais do peer.

    Os defaults reproduzem o comportamento do app em redes Wi-Fi comuns.
    Nada aqui é reconfigurável em tempo de execução: os componentes leem os
    valores na construção.
    """

    display_name: str = "anon"
    discovery_port: int = 9999
    message_ports: List[int] = field(default_factory=lambda: list(DEFAULT_MESSAGE_PORTS))
    broadcast_address: str = "255.255.255.255"
    listen_host: str = "0.0.0.0"
    broadcast_interval: float = 1.0  # segundos entre rajadas
    broadcast_burst: int = 3  # datagramas por rajada, compensa perda de pacotes
    discovery_duration: float = 30.0  # sessão de descoberta se encerra sozinha
    stale_threshold: float = 35.0  # maior que um ciclo completo de descoberta
    sweep_interval: float = 5.0
    discovery_receive_timeout: float = 1.0
    connect_timeout: float = 5.0
    link_port: int = 8888
    link_owner_address: str = ""  # vazio: este dispositivo é o dono do grupo
    identity_file: Path = field(default_factory=lambda: Path.home() / ".lanchat" / "identity.json")
    log_level: str = "INFO"
    save_logs_to_file: bool = False
    log_file_path: Optional[Path] = None
    config_file: Optional[Path] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """Valida todos os campos.

        Raises:
            ConfigValidationError: Se algum campo estiver fora dos limites.
        """
        validate_name(self.display_name)
        validate_port(self.discovery_port)
        validate_port(self.link_port)
        if not self.message_ports:
            raise ConfigValidationError("message_ports não pode ser vazio")
        for port in self.message_ports:
            validate_port(port)
        validate_positive("broadcast_interval", self.broadcast_interval)
        validate_positive("discovery_duration", self.discovery_duration)
        validate_positive("stale_threshold", self.stale_threshold)
        validate_positive("sweep_interval", self.sweep_interval)
        validate_positive("discovery_receive_timeout", self.discovery_receive_timeout)
        validate_positive("connect_timeout", self.connect_timeout)
        if not isinstance(self.broadcast_burst, int) or self.broadcast_burst < 1:
            raise ConfigValidationError(f"broadcast_burst deve ser >= 1, recebido: {self.broadcast_burst}")
        if self.stale_threshold <= self.broadcast_interval:
            raise ConfigValidationError(
                "stale_threshold deve ser maior que broadcast_interval "
                f"({self.stale_threshold} <= {self.broadcast_interval})"
            )

    def apply_env(self, environ: Optional[Dict[str, str]] = None) -> None:
        env = os.environ if environ is None else environ
        level = env.get(LOG_LEVEL_ENV)
        if level:
            self.log_level = level.upper()

    @classmethod
    def from_file(cls, path: Optional[Path]) -> "ChatSettings":
        """Carrega configurações de um arquivo JSON, se existir."""

        if path is None or not path.exists():
            return cls(config_file=path)

        with path.open("r", encoding="utf-8") as fp:
            try:
                raw_data = json.load(fp)
            except json.JSONDecodeError as exc:
                raise ConfigValidationError(f"{path} não é um JSON válido: {exc}") from exc
        if not isinstance(raw_data, dict):
            raise ConfigValidationError(f"{path} deve conter um objeto JSON")

        known_fields = {f.name for f in fields(cls)}
        init_kwargs: Dict[str, Any] = {
            key: value for key, value in raw_data.items() if key in known_fields and key != "config_file"
        }
        for path_field in ("identity_file", "log_file_path"):
            if init_kwargs.get(path_field):
                init_kwargs[path_field] = Path(init_kwargs[path_field])
        if "message_ports" in init_kwargs:
            if not isinstance(init_kwargs["message_ports"], list):
                raise ConfigValidationError("message_ports deve ser uma lista de portas")
            init_kwargs["message_ports"] = list(init_kwargs["message_ports"])
        extra = {key: value for key, value in raw_data.items() if key not in known_fields}
        settings = cls(**init_kwargs, config_file=path)
        settings.extra.update(extra)
        settings.validate()  # Valida após carregar
        return settings

    def to_dict(self) -> Dict[str, Any]:
        """Exporta a configuração atual (útil para logs e debug)."""

        return {
            "display_name": self.display_name,
            "discovery_port": self.discovery_port,
            "message_ports": list(self.message_ports),
            "broadcast_address": self.broadcast_address,
            "listen_host": self.listen_host,
            "broadcast_interval": self.broadcast_interval,
            "broadcast_burst": self.broadcast_burst,
            "discovery_duration": self.discovery_duration,
            "stale_threshold": self.stale_threshold,
            "sweep_interval": self.sweep_interval,
            "discovery_receive_timeout": self.discovery_receive_timeout,
            "connect_timeout": self.connect_timeout,
            "link_port": self.link_port,
            "link_owner_address": self.link_owner_address,
            "identity_file": str(self.identity_file),
            "log_level": self.log_level,
            "save_logs_to_file": self.save_logs_to_file,
            "log_file_path": str(self.log_file_path) if self.log_file_path else None,
            "extra": self.extra,
        }
