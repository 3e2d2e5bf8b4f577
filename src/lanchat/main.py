"""Entry-point helper for running the LAN chat peer."""
from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from .cli import CommandLineInterface
from .config import ChatSettings, ConfigValidationError
from .identity import IdentityStore
from .selector import TransportSelector


LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"


def find_default_config() -> Path | None:
    """Procura config.json no diretório do módulo ou diretório atual."""
    module_dir = Path(__file__).parent
    config_in_module = module_dir / "config.json"
    if config_in_module.exists():
        return config_in_module

    config_in_cwd = Path.cwd() / "config.json"
    if config_in_cwd.exists():
        return config_in_cwd

    return None


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chat P2P em rede local")
    parser.add_argument("--config", type=Path, help="Caminho para arquivo de configuração", default=None)
    parser.add_argument("--name", help="Nome exibido para os outros peers", default=None)
    parser.add_argument("--identity", type=Path, help="Arquivo de identidade (peer id)", default=None)
    parser.add_argument("--log-level", help="Override de nível de log", default=None)
    return parser


def configure_logging(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    config_path = args.config if args.config else find_default_config()
    try:
        settings = ChatSettings.from_file(config_path)
    except ConfigValidationError as exc:
        print(f"Configuração inválida: {exc}", file=sys.stderr)
        return 2

    if config_path:
        print(f"Configuração carregada de: {config_path}")
    else:
        print("Usando configurações padrão (config.json não encontrado)")

    settings.apply_env()
    if args.log_level:
        settings.log_level = args.log_level.upper()
    if args.identity:
        settings.identity_file = args.identity

    log_file = None
    if settings.save_logs_to_file:
        log_file = settings.log_file_path or settings.identity_file.parent / "lanchat.log"
    configure_logging(settings.log_level, log_file)

    try:
        peer_id, display_name = IdentityStore(settings.identity_file).load_or_create(
            args.name, default_name=settings.display_name
        )
    except ConfigValidationError as exc:
        print(f"Nome inválido: {exc}", file=sys.stderr)
        return 2
    settings.display_name = display_name

    selector = TransportSelector(settings)
    shutdown_event = threading.Event()
    cli = CommandLineInterface(selector, on_quit=shutdown_event.set)

    def signal_handler(sig, frame):
        print("\nRecebido sinal de interrupção. Encerrando...")
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        selector.initialize(display_name, peer_id)
        cli.start()
        print(f"\nlanchat iniciado como {display_name} ({peer_id})")
        print(selector.connection_status.value)
        print("Digite /help para ver os comandos disponíveis.\n")

        while not shutdown_event.is_set():
            if not cli.is_running:
                break
            shutdown_event.wait(timeout=0.5)

    except KeyboardInterrupt:
        pass
    finally:
        cli.stop()
        selector.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
