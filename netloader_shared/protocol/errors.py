from __future__ import annotations

from enum import IntEnum
from typing import ClassVar, Optional


class DeviceStatus(IntEnum):
    """Status codes a device answers METADATA / END frames with."""

    OK = 0
    COULD_NOT_CREATE_FILE = -1
    INSUFFICIENT_SPACE = -2
    UNRECOGNIZED_EXTENSION = -3
    SIZE_MISMATCH = -4
    BAD_REQUEST = -5


class ErrorCode(IntEnum):
    """Deployment error codes."""

    NO_NETWORK_INTERFACE = 1001
    DISCOVERY_TIMEOUT = 1002
    CONNECTION_REFUSED = 1003
    CONNECT_FAILED = 1004
    HANDSHAKE_TIMEOUT = 1005
    VERSION_MISMATCH = 1006
    SIZE_MISMATCH = 1007
    TRANSFER_IO = 1008
    LAUNCH_ACK_TIMEOUT = 1009
    RELAY_IO = 1010
    DEVICE_REJECTED = 1011
    LAUNCH_REJECTED = 1012
    FRAME_TOO_LARGE = 1013
    TRUNCATED_FRAME = 1014
    UNEXPECTED_FRAME = 1015
    INVALID_PAYLOAD = 1016
    INVALID_STATE = 1017


class ProtocolError(Exception):
    """Structured deployment exception carrying an error code and message.

    ``retry_safe`` tells the caller whether the device is known to be
    untouched (re-running the pipeline from discovery is safe) or may be in
    an unknown state, e.g. the launch request went out but was never
    acknowledged.
    """

    code: ClassVar[Optional[ErrorCode]] = None
    retry_safe: ClassVar[bool] = True

    def __init__(self, message: str = "", code: Optional[ErrorCode] = None) -> None:
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(f"{self.code.name if self.code else 'ERROR'}: {message}")

    def to_payload(self, status: DeviceStatus = DeviceStatus.BAD_REQUEST) -> dict:
        """Map error into a STATUS frame body."""
        return {"code": int(status), "error_message": self.message}


class NoNetworkInterface(ProtocolError):
    code = ErrorCode.NO_NETWORK_INTERFACE


class DiscoveryTimeout(ProtocolError):
    code = ErrorCode.DISCOVERY_TIMEOUT


class ConnectFailed(ProtocolError):
    code = ErrorCode.CONNECT_FAILED


class ConnectionRefused(ConnectFailed):
    code = ErrorCode.CONNECTION_REFUSED


class HandshakeTimeout(ProtocolError):
    code = ErrorCode.HANDSHAKE_TIMEOUT


class ProtocolVersionMismatch(ProtocolError):
    code = ErrorCode.VERSION_MISMATCH

    def __init__(self, local_version: int, peer_version: int) -> None:
        self.local_version = local_version
        self.peer_version = peer_version
        super().__init__(f"Protocol version mismatch: local {local_version}, device {peer_version}")


class SizeMismatch(ProtocolError):
    code = ErrorCode.SIZE_MISMATCH

    def __init__(self, declared: int, actual: int) -> None:
        self.declared = declared
        self.actual = actual
        super().__init__(f"Artifact size changed: declared {declared} bytes, read {actual}")


class TransferIOError(ProtocolError):
    code = ErrorCode.TRANSFER_IO


class LaunchAckTimeout(ProtocolError):
    code = ErrorCode.LAUNCH_ACK_TIMEOUT
    retry_safe = False


class RelayIOError(ProtocolError):
    code = ErrorCode.RELAY_IO
    retry_safe = False


class DeviceRejected(ProtocolError):
    code = ErrorCode.DEVICE_REJECTED

    def __init__(self, status: int, message: str = "") -> None:
        try:
            self.status: object = DeviceStatus(status)
            label = self.status.name.replace("_", " ").lower()
        except ValueError:
            self.status = status
            label = f"unknown error {status}"
        super().__init__(f"Device rejected transfer: {label}" + (f" ({message})" if message else ""))


class LaunchRejected(ProtocolError):
    code = ErrorCode.LAUNCH_REJECTED


class FrameTooLarge(ProtocolError):
    code = ErrorCode.FRAME_TOO_LARGE


class TruncatedFrame(ProtocolError):
    code = ErrorCode.TRUNCATED_FRAME


class UnexpectedFrame(ProtocolError):
    code = ErrorCode.UNEXPECTED_FRAME


class InvalidPayload(ProtocolError):
    code = ErrorCode.INVALID_PAYLOAD


class SessionStateError(ProtocolError):
    code = ErrorCode.INVALID_STATE


__all__ = [
    "DeviceStatus",
    "ErrorCode",
    "ProtocolError",
    "NoNetworkInterface",
    "DiscoveryTimeout",
    "ConnectFailed",
    "ConnectionRefused",
    "HandshakeTimeout",
    "ProtocolVersionMismatch",
    "SizeMismatch",
    "TransferIOError",
    "LaunchAckTimeout",
    "RelayIOError",
    "DeviceRejected",
    "LaunchRejected",
    "FrameTooLarge",
    "TruncatedFrame",
    "UnexpectedFrame",
    "InvalidPayload",
    "SessionStateError",
]
