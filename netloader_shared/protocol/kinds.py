from __future__ import annotations

from enum import IntEnum
from typing import Dict, Iterable, Union


class FrameKind(IntEnum):
    """
    Tag byte leading every frame on the control connection.
    Values are part of the wire contract and must never be renumbered.
    """

    HELLO = 0x01
    METADATA = 0x02
    DATA = 0x03
    END = 0x04
    STATUS = 0x05
    LAUNCH = 0x06
    LAUNCH_ACK = 0x07
    OUTPUT = 0x08
    OUTPUT_END = 0x09


FRAME_GROUPS: Dict[FrameKind, str] = {
    FrameKind.HELLO: "control",
    FrameKind.METADATA: "control",
    FrameKind.STATUS: "control",
    FrameKind.LAUNCH: "control",
    FrameKind.LAUNCH_ACK: "control",
    FrameKind.DATA: "transfer",
    FrameKind.END: "transfer",
    FrameKind.OUTPUT: "output",
    FrameKind.OUTPUT_END: "output",
}

# Frames whose payload is a JSON document
JSON_KINDS = frozenset(
    {FrameKind.HELLO, FrameKind.METADATA, FrameKind.STATUS, FrameKind.LAUNCH_ACK}
)


def normalize_kind(kind: Union[int, FrameKind]) -> FrameKind:
    """Convert a raw tag byte into a FrameKind, raising ValueError when unknown."""
    return kind if isinstance(kind, FrameKind) else FrameKind(kind)


def is_frame_kind(value: int) -> bool:
    """Check if `value` is a known frame tag."""
    try:
        FrameKind(value)
        return True
    except ValueError:
        return False


def kinds_in_group(group: str) -> Iterable[FrameKind]:
    """Yield frame kinds belonging to the specified logical group."""
    for kind, grp in FRAME_GROUPS.items():
        if grp == group:
            yield kind


__all__ = [
    "FrameKind",
    "FRAME_GROUPS",
    "JSON_KINDS",
    "normalize_kind",
    "is_frame_kind",
    "kinds_in_group",
]
