"""Shared fixtures: loopback settings, free ports and polling helpers."""
from __future__ import annotations

import socket
import time
from typing import Callable, List

import pytest

from lanchat.config import ChatSettings


def free_port(kind: int = socket.SOCK_STREAM) -> int:
    with socket.socket(socket.AF_INET, kind) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def occupy_port() -> socket.socket:
    """Mantém uma porta TCP ocupada até o socket ser fechado."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    return sock


def wait_for(predicate: Callable[[], object], timeout: float = 5.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


@pytest.fixture
def make_settings(tmp_path) -> Callable[..., ChatSettings]:
    def _factory(**overrides) -> ChatSettings:
        values = dict(
            display_name="tester",
            listen_host="127.0.0.1",
            message_ports=[free_port()],
            discovery_port=free_port(socket.SOCK_DGRAM),
            broadcast_address="127.0.0.1",
            broadcast_interval=0.05,
            broadcast_burst=2,
            discovery_duration=10.0,
            stale_threshold=30.0,
            sweep_interval=0.05,
            discovery_receive_timeout=0.1,
            connect_timeout=1.0,
            link_port=free_port(),
            identity_file=tmp_path / "identity.json",
        )
        values.update(overrides)
        return ChatSettings(**values)

    return _factory


@pytest.fixture
def closing() -> Callable:
    """Registra objetos com ``close()``/``shutdown()`` para encerrar no teardown."""
    resources: List[object] = []

    def _register(resource):
        resources.append(resource)
        return resource

    yield _register
    for resource in reversed(resources):
        closer = getattr(resource, "shutdown", None) or getattr(resource, "close")
        closer()
