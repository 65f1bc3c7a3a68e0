from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

from netloader_shared.protocol import (
    ENCODING,
    MAX_FRAME_SIZE,
    DeviceStatus,
    Frame,
    FrameKind,
    HelloPayload,
    LaunchAckPayload,
    MetadataPayload,
    ProtocolError,
    StatusPayload,
    UnexpectedFrame,
    framing,
    kinds_in_group,
    validator,
)

from .connection import ConnectionContext

logger = logging.getLogger(__name__)

TRANSFER_KINDS = frozenset(kinds_in_group("transfer"))


@dataclass
class LaunchOutcome:
    started: bool
    output: Optional[AsyncIterator[str]] = None
    error_message: Optional[str] = None


Launcher = Callable[[Path, List[str]], Awaitable[LaunchOutcome]]


async def log_launcher(path: Path, argv: List[str]) -> LaunchOutcome:
    """Default launcher: records the request without executing anything."""
    logger.info("Launch requested for %s with argv %s", path, argv)
    return LaunchOutcome(started=True)


class DeviceServer:
    """Device side of the control connection: handshake, upload, launch, console relay."""

    def __init__(self, config: Dict[str, Any], launcher: Optional[Launcher] = None) -> None:
        self.host: str = config["host"]
        self.port: int = int(config["port"])
        self.version: int = int(config["protocol_version"])
        self.display_name: str = config.get("display_name") or ""
        self.storage_dir = Path(config["storage_dir"])
        self.allowed_extensions = {
            ext.strip().lower() if ext.strip().startswith(".") else f".{ext.strip().lower()}"
            for ext in str(config.get("allowed_extensions") or "").split(",")
            if ext.strip()
        }
        self.max_storage_bytes = int(config.get("max_storage_bytes") or 0)
        self.read_timeout = float(config.get("read_timeout") or 30.0)
        self.launcher: Launcher = launcher or log_launcher
        self.history: List[ConnectionContext] = []
        self._server: Optional[asyncio.AbstractServer] = None

    async def start(self) -> None:
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self._server = await asyncio.start_server(self._handle_client, self.host, self.port)
        self.port = self._server.sockets[0].getsockname()[1]
        logger.info("Device listening on %s:%s (protocol v%s)", self.host, self.port, self.version)

    async def stop(self) -> None:
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        ctx = ConnectionContext(reader=reader, writer=writer, peername=str(writer.get_extra_info("peername")))
        logger.info("Host %s connected", ctx.peername)
        try:
            await self._serve(ctx)
        except ProtocolError as exc:
            logger.warning("Protocol error for %s: %s", ctx.peername, exc)
            await self._send_error(ctx, exc)
        except asyncio.TimeoutError:
            logger.warning("Host %s went silent", ctx.peername)
        except (ConnectionResetError, ConnectionAbortedError, BrokenPipeError, OSError) as exc:
            logger.info("Host %s connection reset: %s", ctx.peername, exc)
        except Exception as exc:
            logger.exception("Unhandled error: %s", exc)
        finally:
            if ctx.upload_path and not ctx.upload_complete:
                ctx.upload_path.unlink(missing_ok=True)
                logger.info("Removed partial upload %s", ctx.upload_path)
            try:
                writer.close()
                await writer.wait_closed()
            except Exception as e:
                logger.debug("Error during writer cleanup: %s", e)
            ctx.mark_closed()
            self.history.append(ctx)

    async def _serve(self, ctx: ConnectionContext) -> None:
        hello_frame = await self._read(ctx)
        if hello_frame is None:
            return
        hello = self._parse(hello_frame, HelloPayload)
        ctx.peer_version = hello.version
        await self._send(ctx, FrameKind.HELLO, HelloPayload(version=self.version, name=self.display_name or None).to_bytes())
        if not validator.is_compatible(hello.version, self.version):
            logger.warning("Host %s speaks protocol v%s, device v%s", ctx.peername, hello.version, self.version)
            return

        metadata_frame = await self._read(ctx)
        if metadata_frame is None:
            return
        metadata = self._parse(metadata_frame, MetadataPayload)
        status = self._prepare_upload(ctx, metadata)
        await self._send_status(ctx, status)
        if status != DeviceStatus.OK:
            return

        if not await self._receive_upload(ctx):
            return

        launch_frame = await self._read(ctx)
        if launch_frame is None:
            return
        if launch_frame.kind != FrameKind.LAUNCH:
            raise UnexpectedFrame(f"Expected LAUNCH frame, got {launch_frame.kind.name}")
        await self._launch(ctx)

    def _prepare_upload(self, ctx: ConnectionContext, metadata: MetadataPayload) -> DeviceStatus:
        file_name = Path(metadata.file_name).name
        if self.allowed_extensions and Path(file_name).suffix.lower() not in self.allowed_extensions:
            logger.warning("Rejecting %s: extension not recognized", file_name)
            return DeviceStatus.UNRECOGNIZED_EXTENSION
        if self.max_storage_bytes and self._storage_used() + metadata.file_size > self.max_storage_bytes:
            logger.warning("Rejecting %s: %s bytes do not fit", file_name, metadata.file_size)
            return DeviceStatus.INSUFFICIENT_SPACE
        path = self.storage_dir / file_name
        try:
            path.write_bytes(b"")
        except OSError as exc:
            logger.warning("Cannot create %s: %s", path, exc)
            return DeviceStatus.COULD_NOT_CREATE_FILE
        ctx.upload_path = path
        ctx.declared_size = metadata.file_size
        ctx.argv = list(metadata.argv)
        logger.info("Receiving %s (%s bytes) from %s", file_name, metadata.file_size, ctx.peername)
        return DeviceStatus.OK

    async def _receive_upload(self, ctx: ConnectionContext) -> bool:
        assert ctx.upload_path is not None
        with ctx.upload_path.open("wb") as fp:
            while True:
                frame = await self._read(ctx)
                if frame is None:
                    logger.info("Host %s disconnected mid-transfer", ctx.peername)
                    return False
                if frame.kind not in TRANSFER_KINDS:
                    raise UnexpectedFrame(f"Unexpected {frame.kind.name} frame during upload")
                if frame.kind == FrameKind.END:
                    break
                ctx.bytes_received += frame.length
                if ctx.bytes_received > ctx.declared_size:
                    await self._send_status(ctx, DeviceStatus.SIZE_MISMATCH, "More data than declared")
                    return False
                fp.write(frame.payload)
        if ctx.bytes_received != ctx.declared_size:
            await self._send_status(
                ctx,
                DeviceStatus.SIZE_MISMATCH,
                f"Received {ctx.bytes_received} of {ctx.declared_size} bytes",
            )
            return False
        ctx.upload_complete = True
        await self._send_status(ctx, DeviceStatus.OK)
        logger.info("Stored %s (%s bytes)", ctx.upload_path, ctx.bytes_received)
        return True

    async def _launch(self, ctx: ConnectionContext) -> None:
        assert ctx.upload_path is not None
        outcome = await self.launcher(ctx.upload_path, ctx.argv)
        ctx.launched = outcome.started
        ack = LaunchAckPayload(
            started=outcome.started,
            relay=outcome.started and outcome.output is not None,
            error_message=outcome.error_message,
        )
        await self._send(ctx, FrameKind.LAUNCH_ACK, ack.to_bytes())
        if not ack.relay:
            return
        async for text in outcome.output:
            data = text.encode(ENCODING)
            for offset in range(0, len(data), MAX_FRAME_SIZE):
                await self._send(ctx, FrameKind.OUTPUT, data[offset : offset + MAX_FRAME_SIZE])
        await self._send(ctx, FrameKind.OUTPUT_END)
        logger.info("Console relay to %s finished", ctx.peername)

    def _storage_used(self) -> int:
        return sum(path.stat().st_size for path in self.storage_dir.iterdir() if path.is_file())

    async def _read(self, ctx: ConnectionContext) -> Optional[Frame]:
        frame = await asyncio.wait_for(framing.read_frame(ctx.reader), timeout=self.read_timeout)
        if frame is not None:
            ctx.record(frame.kind)
        return frame

    @staticmethod
    def _parse(frame: Frame, model_cls):
        expected = model_cls.model_fields["kind"].default
        if frame.kind != expected:
            raise UnexpectedFrame(f"Expected {expected.name} frame, got {frame.kind.name}")
        body = frame.json()
        validator.validate_payload(frame.kind, body)
        return model_cls.from_dict(body)

    async def _send_status(self, ctx: ConnectionContext, status: DeviceStatus, message: str = "") -> None:
        payload = StatusPayload(code=int(status), error_message=message or None)
        await self._send(ctx, FrameKind.STATUS, payload.to_bytes())

    async def _send_error(self, ctx: ConnectionContext, error: ProtocolError) -> None:
        try:
            await self._send(ctx, FrameKind.STATUS, StatusPayload.from_dict(error.to_payload()).to_bytes())
        except (ConnectionError, OSError) as exc:
            logger.debug("Cannot report error to %s: %s", ctx.peername, exc)

    async def _send(self, ctx: ConnectionContext, kind: FrameKind, payload: bytes = b"") -> None:
        await framing.write_frame(ctx.writer, Frame(kind, payload))
