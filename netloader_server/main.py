from __future__ import annotations

import asyncio
import logging

from netloader_server.config import load_server_config
from netloader_server.core import DeviceServer
from netloader_server.workers import DiscoveryResponder


async def run_server() -> None:
    config = load_server_config()
    logging.basicConfig(level=config["log_level"])

    device = DeviceServer(config)
    await device.start()
    responder = DiscoveryResponder(
        config["host"],
        config["discovery_port"],
        protocol_version=config["protocol_version"],
        tcp_port=device.port,
        display_name=config["display_name"],
    )
    await responder.start()
    try:
        await asyncio.Event().wait()  # keep running
    finally:
        await responder.stop()
        await device.stop()


def main() -> None:
    try:
        asyncio.run(run_server())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
