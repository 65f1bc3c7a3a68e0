from __future__ import annotations

import os
from typing import Any, Dict

from dotenv import load_dotenv

from netloader_shared.protocol import PROTOCOL_VERSION, SERVER_PORT

DEFAULT_SERVER_CONFIG: Dict[str, Any] = {
    "host": "0.0.0.0",
    "port": SERVER_PORT,
    "discovery_port": SERVER_PORT,
    "protocol_version": PROTOCOL_VERSION,
    "display_name": "netloader-device",
    "storage_dir": "data/uploads",
    "allowed_extensions": "",  # comma separated, empty accepts anything
    "max_storage_bytes": 0,  # 0 = unlimited
    "read_timeout": 30.0,
    "log_level": "INFO",
}


def load_server_config(env_path: str = ".env") -> Dict[str, Any]:
    """Build the device emulator configuration from env/.env; returns a fresh dict."""
    if os.path.exists(env_path):
        load_dotenv(env_path)
    config = DEFAULT_SERVER_CONFIG.copy()
    config["host"] = os.getenv("SERVER_HOST", config["host"])
    config["port"] = int(os.getenv("SERVER_PORT", config["port"]))
    config["discovery_port"] = int(os.getenv("SERVER_DISCOVERY_PORT", config["discovery_port"]))
    config["protocol_version"] = int(os.getenv("SERVER_PROTOCOL_VERSION", config["protocol_version"]))
    config["display_name"] = os.getenv("SERVER_DISPLAY_NAME", config["display_name"])
    config["storage_dir"] = os.getenv("SERVER_STORAGE_DIR", config["storage_dir"])
    config["allowed_extensions"] = os.getenv("SERVER_ALLOWED_EXTENSIONS", config["allowed_extensions"])
    config["max_storage_bytes"] = int(os.getenv("SERVER_MAX_STORAGE_BYTES", config["max_storage_bytes"]))
    config["read_timeout"] = float(os.getenv("SERVER_READ_TIMEOUT", config["read_timeout"]))
    config["log_level"] = os.getenv("SERVER_LOG_LEVEL", config["log_level"])
    return config


__all__ = ["DEFAULT_SERVER_CONFIG", "load_server_config"]
