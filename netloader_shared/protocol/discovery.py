"""Discovery datagram codec.

A host broadcasts the query magic on the well-known UDP port; every
listening device answers the query's source address with the reply magic,
its protocol version, the TCP port it accepts transfers on and an optional
short display name.
"""

from __future__ import annotations

import struct
from typing import Optional

from .constants import (
    ANNOUNCEMENT_BODY,
    DISCOVERY_QUERY,
    DISCOVERY_REPLY,
    ENCODING,
    MAX_DISPLAY_NAME,
)
from .errors import InvalidPayload
from .messages import DeviceAnnouncement


def encode_query() -> bytes:
    return DISCOVERY_QUERY


def is_query(data: bytes) -> bool:
    return data[: len(DISCOVERY_QUERY)] == DISCOVERY_QUERY


def encode_announcement(protocol_version: int, port: int, display_name: Optional[str] = None) -> bytes:
    name = (display_name or "").encode(ENCODING)[:MAX_DISPLAY_NAME]
    return DISCOVERY_REPLY + ANNOUNCEMENT_BODY.pack(protocol_version, port) + name


def decode_announcement(data: bytes, host: str) -> DeviceAnnouncement:
    """Parse a reply datagram received from `host`."""
    if data[: len(DISCOVERY_REPLY)] != DISCOVERY_REPLY:
        raise InvalidPayload(f"Invalid response message: {data[:16]!r}")
    body = data[len(DISCOVERY_REPLY) :]
    try:
        version, port = ANNOUNCEMENT_BODY.unpack_from(body)
    except struct.error as exc:
        raise InvalidPayload("Truncated announcement") from exc
    name = body[ANNOUNCEMENT_BODY.size :][:MAX_DISPLAY_NAME].decode(ENCODING, errors="replace") or None
    return DeviceAnnouncement(host=host, port=port, display_name=name, protocol_version=version)


__all__ = ["encode_query", "is_query", "encode_announcement", "decode_announcement"]
