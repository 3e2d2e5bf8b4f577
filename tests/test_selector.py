from typing import List

import pytest

from lanchat.errors import TransportUnavailable
from lanchat.link_transport import GroupLink, LinkDevice
from lanchat.selector import TransportSelector
from lanchat.state import PeerRecord, TransportMode
from lanchat import status

from conftest import occupy_port, wait_for


class RecordingGroupLink(GroupLink):
    """Link de grupo falso que só registra as chamadas recebidas."""

    def __init__(self, settings=None, fail_register=False):
        self.calls: List[str] = []
        self.listener = None
        self.fail_register = fail_register

    def register(self, listener):
        self.calls.append("register")
        if self.fail_register:
            raise OSError("wifi desligado")
        self.listener = listener

    def unregister(self):
        self.calls.append("unregister")
        self.listener = None

    def start_discovery(self):
        self.calls.append("start_discovery")
        self.listener.on_peers_changed([LinkDevice("aa:bb", "tablet"), LinkDevice("cc:dd", "celular")])

    def stop_discovery(self):
        self.calls.append("stop_discovery")

    def connect(self, address):
        self.calls.append(f"connect:{address}")

    def disconnect(self):
        self.calls.append("disconnect")


@pytest.fixture
def selector_factory(make_settings, closing):
    def _factory(link=None, **overrides):
        factory = (lambda settings: link) if link is not None else None
        return closing(TransportSelector(make_settings(**overrides), group_link_factory=factory))

    return _factory


def test_initialize_binds_and_forwards_lan_state(selector_factory):
    selector = selector_factory()
    selector.initialize("alice", "alice-id")
    assert selector.mode.value is TransportMode.PRIMARY
    assert selector.connection_status.value == status.server_running(selector.lan.active_port)

    record = PeerRecord("bob-id", "bob", "127.0.0.1", 9000)
    selector.lan.peer_table.upsert(record)
    assert selector.peers.value == (record,)


def test_initialize_twice_keeps_first_transport(selector_factory):
    selector = selector_factory()
    selector.initialize("alice", "alice-id")
    lan = selector.lan
    selector.initialize("outro", "outro-id")
    assert selector.lan is lan
    assert selector.local.display_name == "alice"


def test_switch_before_initialize_is_an_error(selector_factory):
    with pytest.raises(RuntimeError):
        selector_factory().switch_transport(TransportMode.SECONDARY)


def test_switch_to_link_hides_lan_peers_and_routes_commands(selector_factory):
    link = RecordingGroupLink()
    selector = selector_factory(link=link)
    selector.initialize("alice", "alice-id")
    selector.lan.peer_table.upsert(PeerRecord("bob-id", "bob", "127.0.0.1", 9000))

    selector.switch_transport(TransportMode.SECONDARY)
    assert selector.mode.value is TransportMode.SECONDARY
    assert selector.peers.value == ()
    assert selector.connection_status.value == status.SWITCHED_TO_LINK
    assert link.calls == ["register"]

    # eventos do transporte inativo não vazam
    selector.lan.peer_table.upsert(PeerRecord("carol-id", "carol", "127.0.0.2", 9000))
    assert selector.peers.value == ()

    assert selector.start_discovery() is True
    assert selector.is_discovering.value is True
    assert [peer.peer_id for peer in selector.peers.value] == ["aa:bb", "cc:dd"]

    selector.connect_link_peer("aa:bb")
    assert "connect:aa:bb" in link.calls
    assert selector.send_message("aa:bb", "oi") is None
    assert selector.connection_status.value == status.LINK_NO_CONNECTION


def test_switch_back_tears_link_down(selector_factory):
    link = RecordingGroupLink()
    selector = selector_factory(link=link)
    selector.initialize("alice", "alice-id")
    selector.switch_transport(TransportMode.SECONDARY)
    selector.start_discovery()

    selector.switch_transport(TransportMode.PRIMARY)
    assert selector.mode.value is TransportMode.PRIMARY
    assert selector.link is None
    assert selector.peers.value == ()
    assert selector.is_discovering.value is False
    assert selector.connection_status.value == status.SWITCHED_TO_LAN
    assert link.calls[-3:] == ["stop_discovery", "disconnect", "unregister"]
    assert len(selector.lan.peer_table) == 0


def test_switch_to_current_mode_is_noop(selector_factory):
    link = RecordingGroupLink()
    selector = selector_factory(link=link)
    selector.initialize("alice", "alice-id")
    selector.switch_transport(TransportMode.PRIMARY)
    assert link.calls == []


def test_link_registration_failure_keeps_primary(selector_factory):
    selector = selector_factory(link=RecordingGroupLink(fail_register=True))
    selector.initialize("alice", "alice-id")
    with pytest.raises(TransportUnavailable):
        selector.switch_transport(TransportMode.SECONDARY)
    assert selector.mode.value is TransportMode.PRIMARY
    assert selector.active is selector.lan


def test_network_restricted_when_every_port_is_taken(selector_factory):
    taken = [occupy_port() for _ in range(2)]
    try:
        selector = selector_factory(
            link=RecordingGroupLink(), message_ports=[sock.getsockname()[1] for sock in taken]
        )
        selector.initialize("alice", "alice-id")
        assert selector.is_network_restricted()
        assert status.is_restricted(selector.connection_status.value)
        assert selector.start_discovery() is False

        selector.switch_transport(TransportMode.SECONDARY)
        assert not selector.is_network_restricted()
    finally:
        for sock in taken:
            sock.close()


def test_history_and_unread_come_from_active_transport(selector_factory):
    selector = selector_factory()
    selector.initialize("alice", "alice-id")
    assert selector.history("ninguem") == ()
    selector.clear_unread("ninguem")
    assert len(selector.unread_by_peer.value) == 0


def test_hotspot_link_exchanges_messages_between_owner_and_client(make_settings, closing):
    owner_settings = make_settings()
    client_settings = make_settings(link_port=owner_settings.link_port, link_owner_address="127.0.0.1")
    owner = closing(TransportSelector(owner_settings))
    client = closing(TransportSelector(client_settings))
    owner.initialize("dona", "owner-id")
    client.initialize("cliente", "client-id")

    owner.switch_transport(TransportMode.SECONDARY)
    client.switch_transport(TransportMode.SECONDARY)
    assert owner.link.connection_status.value == status.link_connected(True)
    assert owner.connection_status.value == status.SWITCHED_TO_LINK

    assert client.start_discovery()
    assert [peer.address for peer in client.peers.value] == ["127.0.0.1"]
    client.connect_link_peer("127.0.0.1")
    assert client.connection_status.value == status.link_connected(False)

    assert client.send_message("127.0.0.1", "oi dona") is not None
    assert wait_for(lambda: owner.history("client-id"))
    assert owner.history("client-id")[0].text == "oi dona"
    assert owner.unread_by_peer.value["client-id"] == 1
    assert any(peer.peer_id == "client-id" for peer in owner.peers.value)

    assert owner.send_message("client-id", "oi cliente") is not None
    assert wait_for(lambda: client.history("owner-id"))
    assert client.history("owner-id")[0].text == "oi cliente"

    client.switch_transport(TransportMode.PRIMARY)
    assert client.connection_status.value == status.SWITCHED_TO_LAN
