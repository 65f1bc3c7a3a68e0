from __future__ import annotations

import asyncio
import socket

import pytest

from netloader_client.core import DeploySession, SessionState
from netloader_client.features import ArtifactDescriptor, TransferSession
from netloader_shared.protocol import (
    ConnectionRefused,
    DeviceAnnouncement,
    FrameKind,
    HandshakeTimeout,
    ProtocolVersionMismatch,
    SessionStateError,
)


def _device(port: int) -> DeviceAnnouncement:
    return DeviceAnnouncement.direct("127.0.0.1", port)


def test_handshake_reaches_transfer_ready(client_config, running_device):
    async def scenario():
        async with running_device(display_name="bench") as device:
            session = DeploySession(_device(device.port), client_config)
            hello = await session.connect()
            state = session.state
            await session.close()
            return hello, state, session

    hello, state, session = asyncio.run(scenario())

    assert hello.version == 3
    assert hello.name == "bench"
    assert state == SessionState.TRANSFERRING
    assert session.state == SessionState.CLOSED
    assert session.connection.closed


def test_incompatible_device_gets_no_payload(client_config, running_device, wait_until):
    async def scenario():
        async with running_device(protocol_version=1) as device:
            session = DeploySession(_device(device.port), client_config)
            with pytest.raises(ProtocolVersionMismatch) as info:
                await session.connect()
            await wait_until(lambda: len(device.history) == 1)
            return info.value, session, device.history[0]

    error, session, ctx = asyncio.run(scenario())

    assert error.local_version == 3
    assert error.peer_version == 1
    assert session.state == SessionState.FAILED
    assert session.connection.closed
    assert ctx.frames == [FrameKind.HELLO]
    assert ctx.count(FrameKind.DATA) == 0


def test_older_device_inside_window_accepts_upload(client_config, running_device, make_artifact, wait_until):
    artifact = ArtifactDescriptor.from_path(make_artifact(size=100))

    async def scenario():
        async with running_device(protocol_version=2) as device:
            session = DeploySession(_device(device.port), client_config)
            hello = await session.connect()
            await TransferSession(session, artifact).run()
            await session.close()
            await wait_until(lambda: len(device.history) == 1)
            return hello, device.history[0]

    hello, ctx = asyncio.run(scenario())

    assert hello.version == 2
    assert ctx.peer_version == 3
    assert ctx.upload_complete
    assert ctx.bytes_received == 100


def test_silent_device_times_out_handshake(client_config):
    async def scenario():
        async def _mute(reader, writer):
            await reader.read()
            writer.close()

        server = await asyncio.start_server(_mute, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        session = DeploySession(_device(port), {**client_config, "read_timeout": 0.2})
        try:
            with pytest.raises(HandshakeTimeout):
                await session.connect()
        finally:
            server.close()
            await server.wait_closed()
        return session

    session = asyncio.run(scenario())

    assert session.state == SessionState.FAILED
    assert session.connection.closed


def test_refused_connection(client_config):
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    session = DeploySession(_device(port), client_config)

    with pytest.raises(ConnectionRefused) as info:
        asyncio.run(session.connect())

    assert info.value.retry_safe
    assert session.state == SessionState.FAILED
    assert session.connection is None


def test_illegal_transitions_are_refused(client_config):
    session = DeploySession(_device(1), client_config)
    with pytest.raises(SessionStateError):
        session.transition(SessionState.RELAYING)
    session.abort()
    assert session.state == SessionState.FAILED
    with pytest.raises(SessionStateError):
        session.transition(SessionState.CLOSED)
