"""Minimal observable value used for the externally-observed state."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, List, TypeVar


logger = logging.getLogger(__name__)
T = TypeVar("T")


class ObservableValue(Generic[T]):
    """Guarda um valor imutável e notifica assinantes a cada mudança.

    Assinantes são chamados fora do lock, na thread que publicou o valor.
    Exceções levantadas por um assinante são registradas e não interrompem
    quem publicou.
    """

    def __init__(self, initial: T, name: str = "") -> None:
        self._value = initial
        self._name = name
        self._lock = threading.Lock()
        self._subscribers: List[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        with self._lock:
            return self._value

    def set(self, value: T) -> None:
        with self._lock:
            if value == self._value:
                return
            self._value = value
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(value)
            except Exception:
                logger.exception("Assinante de %s falhou", self._name or "observable")

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Registra ``callback`` e retorna a função que cancela a assinatura."""

        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe
