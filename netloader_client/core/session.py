from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from typing import Any, Dict, FrozenSet, Optional

from netloader_shared.protocol import (
    PROTOCOL_VERSION,
    DeviceAnnouncement,
    HelloPayload,
    ProtocolError,
    SessionStateError,
)

from .network import ControlConnection

logger = logging.getLogger(__name__)


class SessionState(StrEnum):
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    TRANSFERRING = "transferring"
    AWAITING_LAUNCH_ACK = "awaiting_launch_ack"
    RELAYING = "relaying"
    CLOSED = "closed"
    FAILED = "failed"


TERMINAL_STATES: FrozenSet[SessionState] = frozenset({SessionState.CLOSED, SessionState.FAILED})

ALLOWED_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.CONNECTING: frozenset({SessionState.HANDSHAKING}),
    SessionState.HANDSHAKING: frozenset({SessionState.TRANSFERRING}),
    SessionState.TRANSFERRING: frozenset({SessionState.AWAITING_LAUNCH_ACK}),
    SessionState.AWAITING_LAUNCH_ACK: frozenset({SessionState.RELAYING, SessionState.CLOSED}),
    SessionState.RELAYING: frozenset({SessionState.CLOSED}),
    SessionState.CLOSED: frozenset(),
    SessionState.FAILED: frozenset(),
}


class DeploySession:
    """State of one deployment attempt, from connect through launch/relay to closure.

    The session exclusively owns its control connection; every failure path
    goes through :meth:`fail`, which releases the connection before the error
    reaches the caller.
    """

    def __init__(self, device: DeviceAnnouncement, config: Dict[str, Any]) -> None:
        self.device = device
        self.config = config
        self.state: SessionState = SessionState.CONNECTING
        self.connection: Optional[ControlConnection] = None
        self.bytes_sent: int = 0
        self.transfer_complete: bool = False
        self.peer_hello: Optional[HelloPayload] = None
        self.error: Optional[BaseException] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, new_state: SessionState) -> None:
        if new_state in TERMINAL_STATES and not self.is_terminal:
            self.state = new_state
        elif new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise SessionStateError(f"Illegal session transition {self.state} -> {new_state}")
        else:
            self.state = new_state
        logger.debug("Session with %s is now %s", self.device.host, self.state)

    def require(self, state: SessionState) -> ControlConnection:
        """Return the live connection, checking the session is in `state`."""
        if self.state != state or self.connection is None:
            raise SessionStateError(f"Session is {self.state}, expected {state}")
        return self.connection

    async def connect(self) -> HelloPayload:
        """Open the control connection and run the version handshake."""
        if self.state != SessionState.CONNECTING:
            raise SessionStateError(f"Session is {self.state}, expected {SessionState.CONNECTING}")
        try:
            self.connection = await ControlConnection.open(
                self.device.host,
                self.device.port,
                connect_timeout=float(self.config["connect_timeout"]),
                write_timeout=float(self.config["write_timeout"]),
            )
            self.connection.max_frame_size = int(self.config["max_frame_size"])
            self.transition(SessionState.HANDSHAKING)
            self.peer_hello = await self.connection.handshake(
                read_timeout=float(self.config["read_timeout"]),
                version=PROTOCOL_VERSION,
                name=self.config.get("client_name", ""),
            )
        except asyncio.CancelledError:
            self.abort()
            raise
        except ProtocolError as exc:
            await self.fail(exc)
            raise
        self.transition(SessionState.TRANSFERRING)
        return self.peer_hello

    async def fail(self, exc: Optional[BaseException] = None) -> None:
        if exc is not None:
            self.error = exc
            logger.warning("Session with %s failed: %s", self.device.host, exc)
        if not self.is_terminal:
            self.transition(SessionState.FAILED)
        if self.connection:
            await self.connection.close()

    def abort(self, state: SessionState = SessionState.FAILED) -> None:
        """Synchronous teardown used when the surrounding task is cancelled."""
        if not self.is_terminal:
            self.transition(state)
        if self.connection:
            self.connection.abort()

    async def close(self) -> None:
        if not self.is_terminal:
            self.transition(SessionState.CLOSED)
        if self.connection:
            await self.connection.close()

    async def __aenter__(self) -> "DeploySession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None and not self.is_terminal:
            await self.fail(exc)
        else:
            await self.close()
