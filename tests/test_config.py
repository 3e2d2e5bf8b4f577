import json
from pathlib import Path

import pytest

from lanchat.config import (
    DEFAULT_MESSAGE_PORTS,
    LOG_LEVEL_ENV,
    ChatSettings,
    ConfigValidationError,
    validate_name,
    validate_port,
)


def write_config(tmp_path: Path, data) -> Path:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_defaults_are_valid():
    settings = ChatSettings()
    settings.validate()
    assert settings.discovery_port == 9999
    assert settings.message_ports == DEFAULT_MESSAGE_PORTS
    assert settings.message_ports is not DEFAULT_MESSAGE_PORTS
    assert settings.broadcast_burst == 3
    assert settings.stale_threshold > settings.broadcast_interval


def test_missing_file_returns_defaults(tmp_path):
    settings = ChatSettings.from_file(tmp_path / "nao_existe.json")
    assert settings.discovery_port == 9999
    assert settings.config_file == tmp_path / "nao_existe.json"
    assert ChatSettings.from_file(None).config_file is None


def test_from_file_loads_known_fields_and_keeps_extras(tmp_path):
    path = write_config(
        tmp_path,
        {
            "display_name": "maria",
            "message_ports": [8080, 9090],
            "identity_file": str(tmp_path / "id.json"),
            "tema": "escuro",
        },
    )
    settings = ChatSettings.from_file(path)
    assert settings.display_name == "maria"
    assert settings.message_ports == [8080, 9090]
    assert settings.identity_file == tmp_path / "id.json"
    assert settings.extra == {"tema": "escuro"}
    assert settings.config_file == path
    assert settings.to_dict()["extra"] == {"tema": "escuro"}


@pytest.mark.parametrize(
    "data",
    [
        {"discovery_port": 0},
        {"discovery_port": 70000},
        {"message_ports": []},
        {"message_ports": 443},
        {"message_ports": [443, "80"]},
        {"broadcast_burst": 0},
        {"broadcast_interval": -1},
        {"stale_threshold": 1.0, "broadcast_interval": 1.0},
        {"display_name": "   "},
        {"display_name": "x" * 65},
    ],
)
def test_invalid_values_are_rejected(tmp_path, data):
    with pytest.raises(ConfigValidationError):
        ChatSettings.from_file(write_config(tmp_path, data))


def test_malformed_json_is_a_validation_error(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{port: ", encoding="utf-8")
    with pytest.raises(ConfigValidationError):
        ChatSettings.from_file(path)


def test_env_overrides_log_level():
    settings = ChatSettings()
    settings.apply_env({LOG_LEVEL_ENV: "debug"})
    assert settings.log_level == "DEBUG"
    settings.apply_env({})
    assert settings.log_level == "DEBUG"


def test_validators():
    assert validate_port(443) == 443
    with pytest.raises(ConfigValidationError):
        validate_port(True)
    assert validate_name("ana") == "ana"
    with pytest.raises(ConfigValidationError):
        validate_name(None)
