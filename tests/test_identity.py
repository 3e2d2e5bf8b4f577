import json

import pytest

from lanchat.config import ConfigValidationError
from lanchat.identity import IdentityStore


def test_creates_identity_once(tmp_path):
    store = IdentityStore(tmp_path / "sub" / "identity.json")
    peer_id, name = store.load_or_create()
    assert name == "anon"
    assert peer_id
    assert store.load_or_create() == (peer_id, "anon")
    assert not (tmp_path / "sub" / "identity.json.tmp").exists()


def test_explicit_name_replaces_saved_one_and_keeps_id(tmp_path):
    store = IdentityStore(tmp_path / "identity.json")
    peer_id, _ = store.load_or_create("ana")
    assert store.load_or_create("beto") == (peer_id, "beto")
    # sem nome explícito vale o último salvo, não o padrão
    assert store.load_or_create(default_name="anon") == (peer_id, "beto")
    assert json.loads((tmp_path / "identity.json").read_text(encoding="utf-8")) == {
        "peer_id": peer_id,
        "display_name": "beto",
    }


def test_corrupt_file_generates_new_identity(tmp_path):
    path = tmp_path / "identity.json"
    path.write_text("{nao e json", encoding="utf-8")
    store = IdentityStore(path)
    assert store.load() == (None, None)
    peer_id, name = store.load_or_create("ana")
    assert store.load() == (peer_id, "ana")


def test_invalid_name_is_rejected(tmp_path):
    with pytest.raises(ConfigValidationError):
        IdentityStore(tmp_path / "identity.json").load_or_create("x" * 100)
