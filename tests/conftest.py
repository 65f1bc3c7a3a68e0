from __future__ import annotations

import asyncio
import contextlib
import time

import pytest

from netloader_client.config import default_config
from netloader_server.config import DEFAULT_SERVER_CONFIG
from netloader_server.core import DeviceServer


@pytest.fixture
def server_config(tmp_path):
    return {
        **DEFAULT_SERVER_CONFIG,
        "host": "127.0.0.1",
        "port": 0,
        "discovery_port": 0,
        "storage_dir": str(tmp_path / "uploads"),
        "read_timeout": 5.0,
    }


@pytest.fixture
def client_config():
    return default_config(
        connect_timeout=2.0,
        read_timeout=2.0,
        write_timeout=2.0,
        launch_ack_timeout=2.0,
        discovery_timeout=0.5,
        broadcast_address="127.0.0.1",
    )


@pytest.fixture
def running_device(server_config):
    """Async context manager factory starting a device emulator on loopback."""

    @contextlib.asynccontextmanager
    async def _run(launcher=None, **overrides):
        device = DeviceServer({**server_config, **overrides}, launcher=launcher)
        await device.start()
        try:
            yield device
        finally:
            await device.stop()

    return _run


@pytest.fixture
def wait_until():
    """Poll `predicate` inside the running loop until it holds."""

    async def _wait(predicate, timeout: float = 3.0) -> None:
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() > deadline:
                raise AssertionError("condition not reached in time")
            await asyncio.sleep(0.01)

    return _wait


@pytest.fixture
def make_artifact(tmp_path):
    def _make(name: str = "demo.bin", size: int = 0):
        path = tmp_path / name
        path.write_bytes(bytes(i % 251 for i in range(size)))
        return path

    return _make
