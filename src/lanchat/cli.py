"""Command-line interface for the LAN chat peer."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Mapping, Optional, Tuple

from .errors import TransportUnavailable
from .selector import TransportSelector
from .state import ChatMessage, TransportMode

logger = logging.getLogger(__name__)

class CommandLineInterface:
    """Responsável pelos comandos `/peers`, `/msg`, `/discover`, etc."""

    def __init__(
        self,
        selector: TransportSelector,
        on_quit: Optional[Callable[[], None]] = None,
        prompt: str = "lanchat> ",
    ) -> None:
        self.selector = selector
        self.on_quit = on_quit
        self.prompt = prompt
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._output_callback: Optional[Callable[[str], None]] = None
        self._seen: Dict[str, int] = {}
        self._unsubscribe: Optional[Callable[[], None]] = None

    def attach_output(self, callback: Callable[[str], None]) -> None:
        """Permite redirecionar mensagens da CLI para testes/UI."""

        self._output_callback = callback

    def start(self) -> None:
        """Inicia o loop interativo em uma thread dedicada."""
        if self._thread and self._thread.is_alive():
            return

        self.watch_messages()

        def _loop() -> None:
            while not self._stop_event.is_set():
                try:
                    user_input = input(self.prompt)
                except (EOFError, KeyboardInterrupt):
                    break
                self.handle_command(user_input.strip())

        self._stop_event.clear()
        self._thread = threading.Thread(target=_loop, name="cli", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        if self._thread and self._thread.is_alive():
            self._stop_event.set()
            if self._thread is not threading.current_thread():
                self._thread.join(timeout=2)
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def watch_messages(self) -> None:
        """Exibe mensagens recebidas assim que chegam."""

        if self._unsubscribe is None:
            self._seen = {peer_id: len(log) for peer_id, log in self.selector.messages_by_peer.value.items()}
            self._unsubscribe = self.selector.messages_by_peer.subscribe(self._on_messages)

    def handle_command(self, raw_command: str) -> None:
        if not raw_command or not raw_command.startswith("/"):
            return

        parts = raw_command.split()
        command = parts[0].lower()

        try:
            if command == "/peers":
                self._cmd_peers()
            elif command == "/discover":
                self._cmd_discover()
            elif command == "/stop":
                self.selector.stop_discovery()
                self._emit(self.selector.connection_status.value)
            elif command == "/msg":
                self._cmd_msg(parts[1:])
            elif command == "/history":
                self._cmd_history(parts[1:])
            elif command == "/unread":
                self._cmd_unread()
            elif command == "/mode":
                self._cmd_mode(parts[1:])
            elif command == "/join":
                self._cmd_join(parts[1:])
            elif command == "/status":
                self._cmd_status()
            elif command == "/log":
                self._cmd_log(parts[1:])
            elif command == "/quit":
                self._cmd_quit()
            elif command == "/help":
                self._cmd_help()
            else:
                self._emit(f"Comando desconhecido: {command}")

        except Exception as exc:
            logger.exception("Erro executando %s", command)
            self._emit(f"Erro executando {command}: {exc}")

    def _cmd_peers(self) -> None:
        peers = self.selector.peers.value
        if not peers:
            self._emit("Nenhum peer conhecido")
            return

        unread = self.selector.unread_by_peer.value
        self._emit("PEERS CONHECIDOS")
        for peer in peers:
            peer_line = f"  {peer.display_name} | {peer.peer_id}"
            if peer.address:
                peer_line += f" | {peer.address}:{peer.port}"
            count = unread.get(peer.peer_id, 0)
            if count:
                peer_line += f" | {count} não lida(s)"
            self._emit(peer_line)
        self._emit(f"\nTotal: {len(peers)} peers")

    def _cmd_discover(self) -> None:
        if self.selector.start_discovery():
            self._emit("Descoberta iniciada; use /peers para ver resultados")
        else:
            self._emit(self.selector.connection_status.value)
            if self.selector.is_network_restricted():
                self._emit("Rede restrita: experimente /mode link")

    def _cmd_msg(self, args: list) -> None:
        if len(args) < 2:
            self._emit("Uso: /msg <peer> <mensagem>")
            self._emit("Exemplo: /msg maria Olá, como vai?")
            return

        peer_id = self._resolve_peer(args[0])
        message_text = " ".join(args[1:])
        message = self.selector.send_message(peer_id, message_text)
        if message:
            self._emit(f"-> [{args[0]}] {message_text}")
        else:
            self._emit(f"Erro: {self.selector.connection_status.value}")

    def _cmd_history(self, args: list) -> None:
        if len(args) != 1:
            self._emit("Uso: /history <peer>")
            return
        peer_id = self._resolve_peer(args[0])
        history = self.selector.history(peer_id)
        # abrir a conversa conta como leitura
        self.selector.clear_unread(peer_id)
        if not history:
            self._emit(f"Nenhuma mensagem com {args[0]}")
            return
        for message in history:
            self._emit(self._format(message))

    def _cmd_unread(self) -> None:
        unread = self.selector.unread_by_peer.value
        if not unread:
            self._emit("Nenhuma mensagem não lida")
            return
        for peer_id, count in unread.items():
            self._emit(f"  {self._peer_name(peer_id)}: {count}")

    def _cmd_mode(self, args: list) -> None:
        if not args:
            self._emit(f"Modo atual: {self.selector.mode.value.value}")
            self._emit("Uso: /mode <lan|link>")
            return
        try:
            mode = TransportMode(args[0].lower())
        except ValueError:
            self._emit(f"Modo inválido: {args[0]}. Use: lan, link")
            return
        try:
            self.selector.switch_transport(mode)
        except TransportUnavailable as exc:
            self._emit(f"Erro: {exc}")
            return
        self._emit(self.selector.connection_status.value)

    def _cmd_join(self, args: list) -> None:
        if len(args) != 1:
            self._emit("Uso: /join <endereço do dono do grupo>")
            return
        if self.selector.mode.value is not TransportMode.SECONDARY:
            self._emit("Disponível apenas no modo link (/mode link)")
            return
        self.selector.connect_link_peer(args[0])
        self._emit(self.selector.connection_status.value)

    def _cmd_log(self, args: list) -> None:
        if not args:
            current_level = logging.getLevelName(logging.getLogger().getEffectiveLevel())
            self._emit(f"Nível de log atual: {current_level}")
            self._emit("Uso: /log <DEBUG|INFO|WARNING|ERROR>")
            return

        level_name = args[0].upper()
        level_map = {
            "DEBUG": logging.DEBUG,
            "INFO": logging.INFO,
            "WARNING": logging.WARNING,
            "ERROR": logging.ERROR
        }

        if level_name not in level_map:
            self._emit(f"Nível inválido: {level_name}. Use: {', '.join(level_map.keys())}")
            return

        logging.getLogger().setLevel(level_map[level_name])
        self._emit(f"Nível de log alterado para: {level_name}")

    def _cmd_quit(self) -> None:
        self._emit("Encerrando lanchat...")
        self._stop_event.set()
        if self.on_quit:
            self.on_quit()

    def _cmd_status(self) -> None:
        """Exibe identidade, modo e configurações principais."""
        settings = self.selector.settings
        local = self.selector.local
        lan = self.selector.lan
        port = lan.active_port if lan else None
        config_file = settings.config_file if settings.config_file else "(padrão)"

        lines = [
            f"  Arquivo de config: {config_file}",
            f"  Peer ID:           {local.peer_id if local else '-'}",
            f"  Nome:              {local.display_name if local else '-'}",
            f"  Modo:              {self.selector.mode.value.value}",
            f"  Status:            {self.selector.connection_status.value}",
            f"  Porta de mensagens:{' ' + str(port) if port else ' (nenhuma)'}",
            f"  Porta descoberta:  {settings.discovery_port}",
            f"  Portas candidatas: {', '.join(str(p) for p in settings.message_ports)}",
            f"  Descobrindo:       {'sim' if self.selector.is_discovering.value else 'não'}",
        ]
        self._emit("\n".join(lines))

    def _cmd_help(self) -> None:
        help_text = """
PEERS:
  /peers              - Listar peers conhecidos
  /discover           - Iniciar descoberta
  /stop               - Interromper descoberta

MENSAGENS:
  /msg <peer> <msg>   - Mensagem direta (peer por nome ou id)
  /history <peer>     - Mostrar conversa e marcar como lida
  /unread             - Contadores de não lidas

TRANSPORTE:
  /mode [lan|link]    - Mostrar/trocar transporte
  /join <endereço>    - Entrar no grupo (modo link)

SISTEMA:
  /status             - Mostrar estado atual
  /log <nível>        - Ajustar nível de log
  /help               - Mostrar esta ajuda
  /quit               - Encerrar aplicação
        """
        self._emit(help_text)

    def _resolve_peer(self, token: str) -> str:
        """Aceita o id ou o nome exibido do peer."""
        for peer in self.selector.peers.value:
            if token == peer.peer_id:
                return peer.peer_id
        for peer in self.selector.peers.value:
            if token == peer.display_name:
                return peer.peer_id
        return token

    def _peer_name(self, peer_id: str) -> str:
        for peer in self.selector.peers.value:
            if peer.peer_id == peer_id:
                return peer.display_name
        return peer_id

    def _on_messages(self, snapshot: Mapping[str, Tuple[ChatMessage, ...]]) -> None:
        for peer_id, log in snapshot.items():
            seen = self._seen.get(peer_id, 0)
            for message in log[seen:]:
                if not message.is_local:
                    self._emit(f"\n{self._format(message)}")
            self._seen[peer_id] = len(log)

    @staticmethod
    def _format(message: ChatMessage) -> str:
        author = "você" if message.is_local else message.sender_name
        return f"[{author}] {message.text}"

    def _emit(self, message: str) -> None:
        if self._output_callback:
            self._output_callback(message)
        else:
            print(message)
