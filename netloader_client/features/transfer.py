from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

from netloader_client.core.network import NetworkError
from netloader_client.core.session import DeploySession, SessionState
from netloader_shared.protocol import (
    ENCODING,
    MAX_ARGS_SIZE,
    MAX_FRAME_SIZE,
    DeviceRejected,
    FrameKind,
    MetadataPayload,
    ProtocolError,
    SizeMismatch,
    StatusPayload,
    TransferIOError,
    TruncatedFrame,
)

logger = logging.getLogger(__name__)

ProgressObserver = Callable[[int, int], None]


@dataclass(frozen=True)
class ArtifactDescriptor:
    path: Path
    file_name: str
    size_bytes: int
    argv: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_path(cls, path: Union[str, Path], argv: Sequence[str] = ()) -> "ArtifactDescriptor":
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(path)
        return cls(path=path, file_name=path.name, size_bytes=path.stat().st_size, argv=tuple(argv))


def pack_argv(argv: Sequence[str], limit: int = MAX_ARGS_SIZE) -> List[str]:
    """Keep the leading arguments whose NUL-terminated encoding fits in `limit` bytes."""
    packed: List[str] = []
    used = 0
    for arg in argv:
        size = len(arg.encode(ENCODING)) + 1
        if used + size > limit:
            logger.warning("Argument list exceeds %s bytes, dropping %s argument(s)", limit, len(argv) - len(packed))
            break
        packed.append(arg)
        used += size
    return packed


def frame_count(size_bytes: int, max_frame_size: int = MAX_FRAME_SIZE) -> int:
    return -(-size_bytes // max_frame_size)


class TransferSession:
    """Streams an artifact over a handshaken session as METADATA, DATA..., END."""

    def __init__(
        self,
        session: DeploySession,
        artifact: ArtifactDescriptor,
        on_progress: Optional[ProgressObserver] = None,
        max_frame_size: Optional[int] = None,
    ) -> None:
        self.session = session
        self.artifact = artifact
        self.on_progress = on_progress
        self.max_frame_size = int(max_frame_size or session.config.get("max_frame_size", MAX_FRAME_SIZE))
        self.read_timeout = float(session.config["read_timeout"])
        self.frames_sent = 0

    async def run(self) -> int:
        """Transmit the artifact; returns the number of bytes sent."""
        connection = self.session.require(SessionState.TRANSFERRING)
        if self.session.transfer_complete:
            raise ProtocolError("Artifact already transferred on this session")
        try:
            metadata = MetadataPayload(
                file_name=self.artifact.file_name,
                file_size=self.artifact.size_bytes,
                argv=pack_argv(self.artifact.argv),
            )
            await connection.send_model(metadata)
            await self._expect_status("metadata")
            await self._send_data()
            if self.session.bytes_sent != self.artifact.size_bytes:
                raise SizeMismatch(self.artifact.size_bytes, self.session.bytes_sent)
            await connection.send_frame(FrameKind.END)
            await self._expect_status("transfer")
        except asyncio.CancelledError:
            self.session.abort()
            raise
        except (TruncatedFrame, NetworkError, asyncio.TimeoutError, ConnectionError, OSError) as exc:
            error = TransferIOError(f"Transfer of {self.artifact.file_name} to {connection.peer} failed: {exc!r}")
            await self.session.fail(error)
            raise error from exc
        except Exception as exc:
            await self.session.fail(exc)
            raise
        self.session.transfer_complete = True
        logger.info(
            "Sent %s (%s bytes in %s frames) to %s",
            self.artifact.file_name,
            self.session.bytes_sent,
            self.frames_sent,
            connection.peer,
        )
        return self.session.bytes_sent

    async def _send_data(self) -> None:
        connection = self.session.connection
        assert connection is not None
        total = self.artifact.size_bytes
        with self.artifact.path.open("rb") as fp:
            while True:
                chunk = fp.read(self.max_frame_size)
                if not chunk:
                    break
                if self.session.bytes_sent + len(chunk) > total:
                    raise SizeMismatch(total, self.session.bytes_sent + len(chunk))
                await connection.send_frame(FrameKind.DATA, chunk)
                self.frames_sent += 1
                self.session.bytes_sent += len(chunk)
                logger.debug(
                    "%s bytes sent (%.2f%%)",
                    self.session.bytes_sent,
                    self.session.bytes_sent * 100.0 / total,
                )
                if self.on_progress:
                    self.on_progress(self.session.bytes_sent, total)

    async def _expect_status(self, stage: str) -> None:
        assert self.session.connection is not None
        status = await self.session.connection.read_model(StatusPayload, timeout=self.read_timeout)
        if not status.ok:
            raise DeviceRejected(status.code, status.error_message or "")
        logger.debug("Device accepted %s", stage)
