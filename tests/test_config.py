from __future__ import annotations

import pytest

from netloader_client.config import DEFAULT_CONFIG, ConfigError, default_config, load_config
from netloader_server.config import load_server_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in DEFAULT_CONFIG:
        monkeypatch.delenv(f"NETLOADER_{key.upper()}", raising=False)
    for key in ("SERVER_PORT", "SERVER_PROTOCOL_VERSION", "SERVER_ALLOWED_EXTENSIONS"):
        monkeypatch.delenv(key, raising=False)


def test_load_config_coerces_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("NETLOADER_READ_TIMEOUT", "1.5")
    monkeypatch.setenv("NETLOADER_RELAY_OUTPUT", "no")
    monkeypatch.setenv("NETLOADER_DEVICE_PORT", "4000")

    config = load_config(str(tmp_path / "missing.env"))

    assert config["read_timeout"] == 1.5
    assert config["relay_output"] is False
    assert config["device_port"] == 4000
    assert config["max_frame_size"] == DEFAULT_CONFIG["max_frame_size"]


def test_load_config_reads_env_file(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("NETLOADER_TARGET_HOST=10.0.0.5\n", encoding="utf-8")

    config = load_config(str(env_file))

    assert config["target_host"] == "10.0.0.5"


def test_each_load_returns_an_independent_config(tmp_path):
    first = load_config(str(tmp_path / "missing.env"), overrides={"target_host": "10.0.0.9"})
    second = load_config(str(tmp_path / "missing.env"))
    assert first["target_host"] == "10.0.0.9"
    assert second["target_host"] == ""
    assert DEFAULT_CONFIG["target_host"] == ""


def test_invalid_values_are_rejected(monkeypatch, tmp_path):
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "missing.env"), overrides={"unknown": 1})
    with pytest.raises(ConfigError):
        default_config(device_port=70000)
    with pytest.raises(ConfigError):
        default_config(max_frame_size=1024 * 1024)
    monkeypatch.setenv("NETLOADER_CONNECT_TIMEOUT", "soon")
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "missing.env"))


def test_server_config_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("SERVER_PORT", "30000")
    monkeypatch.setenv("SERVER_PROTOCOL_VERSION", "2")

    config = load_server_config(str(tmp_path / "missing.env"))

    assert config["port"] == 30000
    assert config["protocol_version"] == 2
    assert config["allowed_extensions"] == ""
