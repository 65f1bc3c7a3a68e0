from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from netloader_shared.protocol import MAX_FRAME_SIZE, SERVER_PORT

DEFAULT_CONFIG: Dict[str, Any] = {
    "target_host": "",  # set to bypass discovery
    "device_port": SERVER_PORT,
    "broadcast_address": "255.255.255.255",
    "discovery_port": SERVER_PORT,
    "discovery_timeout": 2.0,
    "discovery_retries": 3,
    "connect_timeout": 5.0,
    "read_timeout": 5.0,
    "write_timeout": 10.0,
    "launch_ack_timeout": 10.0,
    "max_frame_size": MAX_FRAME_SIZE,
    "relay_output": True,
    "client_name": "netloader-py",
    "log_level": "INFO",
}


class ConfigError(Exception):
    """Raised when configuration values are invalid."""

    pass


def load_config(env_path: str = ".env", overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build a deployer configuration from env file/environment variables.

    Every call returns a fresh dictionary; callers thread it explicitly into
    discovery and session objects.
    """
    if os.path.exists(env_path):
        load_dotenv(env_path)

    config: Dict[str, Any] = {}
    for key, default_value in DEFAULT_CONFIG.items():
        env_key = f"NETLOADER_{key.upper()}"
        value = os.getenv(env_key, default_value)
        config[key] = _coerce_type(value, type(default_value))

    for key, value in (overrides or {}).items():
        if key not in DEFAULT_CONFIG:
            raise ConfigError(f"Unknown config key {key}")
        config[key] = _coerce_type(value, type(DEFAULT_CONFIG[key]))

    validate_config(config)
    logging.getLogger().setLevel(config["log_level"])
    return config


def _coerce_type(value: Any, target_type: type) -> Any:
    if isinstance(value, target_type):
        return value
    try:
        if target_type is bool:
            return str(value).lower() in ("1", "true", "yes", "on")
        return target_type(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Cannot convert {value} to {target_type}") from exc


def validate_config(config: Dict[str, Any]) -> None:
    for key in ("device_port", "discovery_port"):
        if not (1 <= int(config[key]) <= 65535):
            raise ConfigError(f"{key} must be between 1 and 65535")
    for key in ("discovery_timeout", "connect_timeout", "read_timeout", "write_timeout", "launch_ack_timeout"):
        if config[key] <= 0:
            raise ConfigError(f"{key} must be positive")
    if config["discovery_retries"] < 1:
        raise ConfigError("discovery_retries must be at least 1")
    if not (1 <= config["max_frame_size"] <= MAX_FRAME_SIZE):
        raise ConfigError(f"max_frame_size must be between 1 and {MAX_FRAME_SIZE}")


def default_config(**overrides: Any) -> Dict[str, Any]:
    """Defaults without touching the environment."""
    config = {**DEFAULT_CONFIG, **overrides}
    validate_config(config)
    return config


__all__ = ["DEFAULT_CONFIG", "ConfigError", "default_config", "load_config", "validate_config"]
