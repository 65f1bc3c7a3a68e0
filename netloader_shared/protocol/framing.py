from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from .constants import ENCODING, FRAME_HEADER, HEADER_SIZE, MAX_FRAME_SIZE
from .errors import FrameTooLarge, InvalidPayload, TruncatedFrame, UnexpectedFrame
from .kinds import JSON_KINDS, FrameKind, is_frame_kind, normalize_kind


@dataclass(frozen=True)
class Frame:
    """A tagged, length-prefixed unit of the control connection."""

    kind: FrameKind
    payload: bytes = b""

    @property
    def length(self) -> int:
        return len(self.payload)

    def json(self) -> Dict[str, Any]:
        if self.kind not in JSON_KINDS:
            raise UnexpectedFrame(f"{self.kind.name} frames carry raw bytes, not JSON")
        return decode_json(self.payload)


def encode_frame(kind: Union[int, FrameKind], payload: bytes = b"", max_size: int = MAX_FRAME_SIZE) -> bytes:
    """
    Encode a frame: 1 byte kind + 4 bytes little-endian length + payload.
    """
    if not is_frame_kind(int(kind)):
        raise UnexpectedFrame(f"Unknown frame kind {int(kind)}")
    if len(payload) > max_size:
        raise FrameTooLarge(f"Payload of {len(payload)} bytes exceeds frame limit {max_size}")
    return FRAME_HEADER.pack(int(kind), len(payload)) + payload


def decode_header(header: bytes, max_size: int = MAX_FRAME_SIZE) -> Tuple[FrameKind, int]:
    """Split a frame header into its kind and payload length."""
    if len(header) < HEADER_SIZE:
        raise TruncatedFrame("Incomplete frame header")
    tag, length = FRAME_HEADER.unpack(header[:HEADER_SIZE])
    try:
        kind = normalize_kind(tag)
    except ValueError as exc:
        raise UnexpectedFrame(f"Unknown frame kind 0x{tag:02x}") from exc
    if length > max_size:
        raise FrameTooLarge(f"Declared payload of {length} bytes exceeds frame limit {max_size}")
    return kind, length


def decode_frame(data: bytes, max_size: int = MAX_FRAME_SIZE) -> Frame:
    """Decode one complete frame from a byte buffer."""
    kind, length = decode_header(data, max_size)
    payload = data[HEADER_SIZE : HEADER_SIZE + length]
    if len(payload) != length:
        raise TruncatedFrame("Frame payload truncated")
    return Frame(kind, payload)


def encode_json(body: Dict[str, Any]) -> bytes:
    """Encode a JSON control payload."""
    try:
        return json.dumps(body, ensure_ascii=False, separators=(",", ":")).encode(ENCODING)
    except (TypeError, ValueError) as exc:
        raise InvalidPayload(f"Encode failed: {exc}") from exc


def decode_json(payload: bytes) -> Dict[str, Any]:
    """Decode a JSON control payload into a dictionary."""
    try:
        body = json.loads(payload.decode(ENCODING))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidPayload(f"Decode failed: {exc}") from exc
    if not isinstance(body, dict):
        raise InvalidPayload("Control payload must be a JSON object")
    return body


async def read_frame(reader: asyncio.StreamReader, max_size: int = MAX_FRAME_SIZE) -> Optional[Frame]:
    """
    Read a single frame from the stream.
    Returns None when the peer closed the stream cleanly on a frame boundary.
    """
    try:
        header = await reader.readexactly(HEADER_SIZE)
    except asyncio.IncompleteReadError as exc:
        if not exc.partial:
            return None
        raise TruncatedFrame("Stream closed inside a frame header") from exc
    kind, length = decode_header(header, max_size)
    try:
        payload = await reader.readexactly(length) if length else b""
    except asyncio.IncompleteReadError as exc:
        raise TruncatedFrame(f"Stream closed after {len(exc.partial)} of {length} payload bytes") from exc
    return Frame(kind, payload)


async def write_frame(writer: asyncio.StreamWriter, frame: Frame) -> None:
    """Write one frame and wait for the transport buffer to drain."""
    writer.write(encode_frame(frame.kind, frame.payload))
    await writer.drain()


__all__ = [
    "Frame",
    "encode_frame",
    "decode_header",
    "decode_frame",
    "encode_json",
    "decode_json",
    "read_frame",
    "write_frame",
]
