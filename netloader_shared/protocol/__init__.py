"""
Shared protocol package that centralizes frame kinds, payload models, framing helpers,
discovery datagrams and validation utilities for both the host and the device.
"""

from .constants import (
    ENCODING,
    HEADER_SIZE,
    MAX_ARGS_SIZE,
    MAX_FRAME_SIZE,
    MIN_PROTOCOL_VERSION,
    PROTOCOL_VERSION,
    SERVER_PORT,
)
from .discovery import decode_announcement, encode_announcement, encode_query, is_query
from .errors import (
    ConnectFailed,
    ConnectionRefused,
    DeviceRejected,
    DeviceStatus,
    DiscoveryTimeout,
    ErrorCode,
    FrameTooLarge,
    HandshakeTimeout,
    InvalidPayload,
    LaunchAckTimeout,
    LaunchRejected,
    NoNetworkInterface,
    ProtocolError,
    ProtocolVersionMismatch,
    RelayIOError,
    SessionStateError,
    SizeMismatch,
    TransferIOError,
    TruncatedFrame,
    UnexpectedFrame,
)
from .framing import Frame, decode_frame, encode_frame, read_frame, write_frame
from .kinds import FrameKind, is_frame_kind, kinds_in_group
from .messages import (
    ControlPayload,
    DeviceAnnouncement,
    HelloPayload,
    LaunchAckPayload,
    MetadataPayload,
    StatusPayload,
)
from .validator import is_compatible, load_schema, validate_payload, validate_version

__all__ = [
    "ENCODING",
    "HEADER_SIZE",
    "MAX_ARGS_SIZE",
    "MAX_FRAME_SIZE",
    "MIN_PROTOCOL_VERSION",
    "PROTOCOL_VERSION",
    "SERVER_PORT",
    "encode_query",
    "is_query",
    "encode_announcement",
    "decode_announcement",
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
    "Frame",
    "encode_frame",
    "decode_frame",
    "read_frame",
    "write_frame",
    "FrameKind",
    "is_frame_kind",
    "kinds_in_group",
    "ControlPayload",
    "DeviceAnnouncement",
    "HelloPayload",
    "MetadataPayload",
    "StatusPayload",
    "LaunchAckPayload",
    "load_schema",
    "is_compatible",
    "validate_payload",
    "validate_version",
]
