from __future__ import annotations

import asyncio
import errno
import socket

import pytest

from netloader_client.features import DeviceDiscovery
from netloader_server.workers import DiscoveryResponder
from netloader_shared.protocol import DiscoveryTimeout, NoNetworkInterface, encode_announcement, is_query


def _free_udp_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class _ChattyDevice(asyncio.DatagramProtocol):
    """Answers every query twice, plus a second device port and some noise."""

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        if not is_query(data):
            return
        self.transport.sendto(b"garbage", addr)
        self.transport.sendto(encode_announcement(3, 28280, "first"), addr)
        self.transport.sendto(encode_announcement(3, 28280, "first"), addr)
        self.transport.sendto(encode_announcement(2, 28281, "second"), addr)


def test_discovers_responder(client_config):
    async def scenario():
        responder = DiscoveryResponder("127.0.0.1", 0, protocol_version=3, tcp_port=4321, display_name="bench")
        await responder.start()
        try:
            discovery = DeviceDiscovery({**client_config, "discovery_port": responder.port})
            devices = await discovery.discover(timeout=0.5)
        finally:
            await responder.stop()
        return devices, responder.queries

    devices, queries = asyncio.run(scenario())

    assert queries == 1
    assert len(devices) == 1
    assert devices[0].address == ("127.0.0.1", 4321)
    assert devices[0].display_name == "bench"
    assert devices[0].protocol_version == 3


def test_replies_are_deduplicated_by_address(client_config):
    async def scenario():
        loop = asyncio.get_running_loop()
        transport, _ = await loop.create_datagram_endpoint(_ChattyDevice, local_addr=("127.0.0.1", 0))
        port = transport.get_extra_info("sockname")[1]
        try:
            return await DeviceDiscovery({**client_config, "discovery_port": port}).discover(timeout=0.5)
        finally:
            transport.close()

    devices = asyncio.run(scenario())

    assert [device.address for device in devices] == [("127.0.0.1", 28280), ("127.0.0.1", 28281)]
    assert [device.display_name for device in devices] == ["first", "second"]


def test_repeated_rounds_find_the_same_devices(client_config):
    async def scenario():
        loop = asyncio.get_running_loop()
        transport, _ = await loop.create_datagram_endpoint(_ChattyDevice, local_addr=("127.0.0.1", 0))
        port = transport.get_extra_info("sockname")[1]
        discovery = DeviceDiscovery({**client_config, "discovery_port": port})
        try:
            first = await discovery.discover(timeout=0.3)
            second = await discovery.discover(timeout=0.3)
        finally:
            transport.close()
        return first, second

    first, second = asyncio.run(scenario())

    assert set(first) == set(second)
    assert len(first) == 2


def test_silent_network_yields_empty_result(client_config):
    discovery = DeviceDiscovery({**client_config, "discovery_port": _free_udp_port()})

    devices = asyncio.run(discovery.discover(timeout=2.0))

    assert devices == []


def test_discover_one_demands_a_device(client_config):
    discovery = DeviceDiscovery({**client_config, "discovery_port": _free_udp_port()})

    with pytest.raises(DiscoveryTimeout):
        asyncio.run(discovery.discover_one(timeout=0.2))


def test_timeout_must_be_positive(client_config):
    with pytest.raises(ValueError):
        asyncio.run(DeviceDiscovery(client_config).discover(timeout=0))


def test_missing_broadcast_interface(client_config, monkeypatch):
    def _no_interface():
        raise OSError(errno.ENETUNREACH, "Network is unreachable")

    monkeypatch.setattr(DeviceDiscovery, "_open_socket", staticmethod(_no_interface))

    with pytest.raises(NoNetworkInterface):
        asyncio.run(DeviceDiscovery(client_config).discover(timeout=0.2))
