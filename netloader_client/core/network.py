from __future__ import annotations

import asyncio
import logging
from typing import Optional, Type, TypeVar

from netloader_shared.protocol import (
    MAX_FRAME_SIZE,
    PROTOCOL_VERSION,
    ConnectFailed,
    ConnectionRefused,
    ControlPayload,
    Frame,
    FrameKind,
    HandshakeTimeout,
    HelloPayload,
    ProtocolError,
    TruncatedFrame,
    UnexpectedFrame,
    framing,
    validator,
)

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=ControlPayload)


class NetworkError(ProtocolError):
    """Frame level I/O failure on the control connection."""

    pass


class ControlConnection:
    """Reliable byte-stream connection to a device speaking the framed protocol."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        peer: str = "",
        write_timeout: Optional[float] = None,
        max_frame_size: int = MAX_FRAME_SIZE,
    ) -> None:
        self.reader = reader
        self.writer = writer
        self.peer = peer or str(writer.get_extra_info("peername"))
        self.write_timeout = write_timeout
        self.max_frame_size = max_frame_size
        self.peer_hello: Optional[HelloPayload] = None
        self._closed = False

    @classmethod
    async def open(
        cls,
        host: str,
        port: int,
        connect_timeout: float,
        write_timeout: Optional[float] = None,
    ) -> "ControlConnection":
        try:
            reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=connect_timeout)
        except ConnectionRefusedError as exc:
            raise ConnectionRefused(f"Connection to {host}:{port} refused") from exc
        except asyncio.TimeoutError as exc:
            raise ConnectFailed(f"Connection to {host}:{port} timed out after {connect_timeout}s") from exc
        except OSError as exc:
            raise ConnectFailed(f"Connection to {host}:{port} failed: {exc}") from exc
        logger.info("Connected to %s:%s", host, port)
        return cls(reader, writer, peer=f"{host}:{port}", write_timeout=write_timeout)

    @property
    def closed(self) -> bool:
        return self._closed

    def abort(self) -> None:
        """Drop the transport without waiting for it to flush."""
        if not self._closed:
            self._closed = True
            self.writer.close()
            logger.debug("Connection to %s aborted", self.peer)

    async def close(self) -> None:
        if self._closed:
            return
        self.abort()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError) as exc:
            logger.debug("Error while closing connection to %s: %s", self.peer, exc)
        logger.info("Connection to %s closed", self.peer)

    async def send_frame(self, kind: FrameKind, payload: bytes = b"") -> None:
        if self._closed:
            raise NetworkError(f"Connection to {self.peer} is closed")
        self.writer.write(framing.encode_frame(kind, payload))
        await asyncio.wait_for(self.writer.drain(), timeout=self.write_timeout)
        logger.debug("Sent %s frame (%s bytes)", kind.name, len(payload))

    async def send_model(self, model: ControlPayload) -> None:
        await self.send_frame(model.kind, model.to_bytes())

    async def read_frame(self, timeout: Optional[float] = None) -> Optional[Frame]:
        """Read the next frame; None means the device closed the stream."""
        return await asyncio.wait_for(framing.read_frame(self.reader, self.max_frame_size), timeout=timeout)

    async def read_model(self, model_cls: Type[PayloadT], timeout: Optional[float] = None) -> PayloadT:
        """Read the next frame and parse it as `model_cls`."""
        expected = model_cls.model_fields["kind"].default
        frame = await self.read_frame(timeout)
        if frame is None:
            raise TruncatedFrame(f"{self.peer} closed the connection while a {expected.name} frame was expected")
        if frame.kind != expected:
            raise UnexpectedFrame(f"Expected {expected.name} frame, got {frame.kind.name}")
        return model_cls.from_bytes(frame.payload)

    async def handshake(self, read_timeout: float, version: int = PROTOCOL_VERSION, name: str = "") -> HelloPayload:
        """Exchange HELLO frames and check the device's protocol version."""
        try:
            await self.send_model(HelloPayload(version=version, name=name or None))
            hello = await self.read_model(HelloPayload, timeout=read_timeout)
        except asyncio.TimeoutError as exc:
            raise HandshakeTimeout(f"No handshake from {self.peer} within {read_timeout}s") from exc
        except (ConnectionError, OSError) as exc:
            raise NetworkError(f"Handshake with {self.peer} failed: {exc}") from exc
        validator.validate_version(hello.version, version)
        self.peer_hello = hello
        logger.info("Handshake with %s complete (device v%s%s)", self.peer, hello.version,
                    f", {hello.name}" if hello.name else "")
        return hello
