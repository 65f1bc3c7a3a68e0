from __future__ import annotations

import asyncio
import codecs
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from netloader_client.core.session import DeploySession, SessionState
from netloader_shared.protocol import (
    ENCODING,
    FrameKind,
    LaunchAckPayload,
    LaunchAckTimeout,
    LaunchRejected,
    ProtocolError,
    RelayIOError,
    SessionStateError,
    TruncatedFrame,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LaunchResult:
    started: bool
    relay: bool


class LaunchCommand:
    """Asks the device to execute the uploaded artifact and relays its console."""

    def __init__(self, session: DeploySession, ack_timeout: Optional[float] = None) -> None:
        self.session = session
        if ack_timeout is None:
            ack_timeout = session.config["launch_ack_timeout"]
        self.ack_timeout = float(ack_timeout)
        self._relay_started = False

    async def launch(self) -> LaunchResult:
        connection = self.session.require(SessionState.TRANSFERRING)
        if not self.session.transfer_complete:
            raise SessionStateError("Launch requested before the artifact transfer completed")
        try:
            await connection.send_frame(FrameKind.LAUNCH)
            self.session.transition(SessionState.AWAITING_LAUNCH_ACK)
            ack = await connection.read_model(LaunchAckPayload, timeout=self.ack_timeout)
        except asyncio.CancelledError:
            self.session.abort()
            raise
        except asyncio.TimeoutError as exc:
            error = LaunchAckTimeout(
                f"No launch acknowledgement from {connection.peer} within {self.ack_timeout}s; "
                "the artifact may be running"
            )
            await self.session.fail(error)
            raise error from exc
        except (TruncatedFrame, ConnectionError, OSError) as exc:
            error = LaunchAckTimeout(f"Connection to {connection.peer} lost while awaiting launch acknowledgement: {exc}")
            await self.session.fail(error)
            raise error from exc
        except Exception as exc:
            await self.session.fail(exc)
            raise

        if not ack.started:
            error = LaunchRejected(ack.error_message or "Device refused to start the artifact")
            await self.session.fail(error)
            raise error
        logger.info("Device %s started %s", connection.peer, "with console relay" if ack.relay else "the artifact")
        if ack.relay:
            self.session.transition(SessionState.RELAYING)
        else:
            await self.session.close()
        return LaunchResult(started=True, relay=ack.relay)

    async def relay(self) -> AsyncIterator[str]:
        """Yield remote console output line by line until the device ends it.

        A trailing line without a newline is flushed when the output ends.
        """
        connection = self.session.require(SessionState.RELAYING)
        if self._relay_started:
            raise SessionStateError("Console relay can only be consumed once per session")
        self._relay_started = True
        decoder = codecs.getincrementaldecoder(ENCODING)(errors="replace")
        buffer = ""
        try:
            while True:
                try:
                    frame = await connection.read_frame()
                except ProtocolError as exc:
                    raise RelayIOError(f"Console relay from {connection.peer} broke: {exc}") from exc
                except (ConnectionError, OSError) as exc:
                    raise RelayIOError(f"Console relay from {connection.peer} failed: {exc}") from exc
                if frame is None or frame.kind == FrameKind.OUTPUT_END:
                    break
                if frame.kind != FrameKind.OUTPUT:
                    raise RelayIOError(f"Unexpected {frame.kind.name} frame during relay")
                buffer += decoder.decode(frame.payload)
                *lines, buffer = buffer.split("\n")
                for line in lines:
                    yield line.rstrip("\r")
            buffer += decoder.decode(b"", final=True)
            if buffer:
                yield buffer.rstrip("\r")
        except asyncio.CancelledError:
            self.session.abort()
            raise
        except GeneratorExit:
            self.session.abort(SessionState.CLOSED)
            raise
        except Exception as exc:
            await self.session.fail(exc)
            raise
        await self.session.close()
        logger.info("Console relay from %s ended", connection.peer)
