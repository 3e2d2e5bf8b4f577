"""Per-installation identity persistence (peer id + display name)."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional, Tuple
from uuid import uuid4

from .config import validate_name


logger = logging.getLogger(__name__)


class IdentityStore:
    """Guarda o ``peer_id`` estável e o último nome usado em um arquivo JSON.

    O id é gerado uma única vez por instalação; o nome pode mudar a cada
    execução. A escrita é atômica (arquivo temporário + ``os.replace``).
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> Tuple[Optional[str], Optional[str]]:
        if not self.path.exists():
            logger.info("Arquivo de identidade não encontrado (%s)", self.path)
            return None, None
        try:
            with self.path.open("r", encoding="utf-8") as fp:
                raw = json.load(fp)
        except json.JSONDecodeError:
            logger.error("Arquivo %s corrompido; uma nova identidade será criada", self.path)
            return None, None
        if not isinstance(raw, dict):
            logger.error("Arquivo %s em formato inesperado", self.path)
            return None, None
        peer_id = raw.get("peer_id")
        display_name = raw.get("display_name")
        return (
            peer_id if isinstance(peer_id, str) and peer_id else None,
            display_name if isinstance(display_name, str) and display_name else None,
        )

    def save(self, peer_id: str, display_name: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as fp:
            json.dump({"peer_id": peer_id, "display_name": display_name}, fp, ensure_ascii=False, indent=2)
            fp.flush()
            os.fsync(fp.fileno())
        os.replace(tmp_path, self.path)
        logger.debug("Identidade salva em %s", self.path)

    def load_or_create(self, display_name: Optional[str] = None, default_name: str = "anon") -> Tuple[str, str]:
        """Retorna ``(peer_id, display_name)``, criando o id se necessário.

        Um ``display_name`` explícito substitui o salvo e é persistido.
        """
        peer_id, saved_name = self.load()
        name = validate_name(display_name or saved_name or default_name)
        created = peer_id is None
        if created:
            peer_id = str(uuid4())
            logger.info("Nova identidade gerada: %s", peer_id)
        if created or name != saved_name:
            self.save(peer_id, name)
        return peer_id, name
