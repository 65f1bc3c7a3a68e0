from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .constants import MAX_DISPLAY_NAME, PROTOCOL_VERSION
from .errors import DeviceStatus, InvalidPayload
from .framing import decode_json, encode_json
from .kinds import FrameKind


class ControlPayload(BaseModel):
    """Base for every JSON body carried by a control frame."""

    model_config = ConfigDict(extra="ignore")

    kind: FrameKind = Field(..., exclude=True)

    def to_bytes(self) -> bytes:
        return encode_json(self.model_dump(exclude_none=True))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ControlPayload":
        try:
            return cls(**data)
        except ValidationError as exc:
            raise InvalidPayload(f"{cls.__name__} validation failed: {exc}") from exc

    @classmethod
    def from_bytes(cls, payload: bytes) -> "ControlPayload":
        return cls.from_dict(decode_json(payload))


class HelloPayload(ControlPayload):
    kind: FrameKind = Field(default=FrameKind.HELLO, frozen=True, exclude=True)
    version: int = Field(default=PROTOCOL_VERSION, ge=0)
    name: Optional[str] = None


class MetadataPayload(ControlPayload):
    kind: FrameKind = Field(default=FrameKind.METADATA, frozen=True, exclude=True)
    file_name: str = Field(..., min_length=1)
    file_size: int = Field(..., ge=0)
    argv: List[str] = Field(default_factory=list)


class StatusPayload(ControlPayload):
    kind: FrameKind = Field(default=FrameKind.STATUS, frozen=True, exclude=True)
    code: int = int(DeviceStatus.OK)
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.code == DeviceStatus.OK


class LaunchAckPayload(ControlPayload):
    kind: FrameKind = Field(default=FrameKind.LAUNCH_ACK, frozen=True, exclude=True)
    started: bool
    relay: bool = False
    error_message: Optional[str] = None


class DeviceAnnouncement(BaseModel):
    """A device that answered a discovery query."""

    model_config = ConfigDict(frozen=True)

    host: str
    port: int = Field(..., ge=0, le=65535)
    display_name: Optional[str] = Field(default=None, max_length=MAX_DISPLAY_NAME)
    protocol_version: int = Field(..., ge=0)

    @property
    def address(self) -> Tuple[str, int]:
        return self.host, self.port

    def __str__(self) -> str:
        name = f" ({self.display_name})" if self.display_name else ""
        return f"{self.host}:{self.port}{name} v{self.protocol_version}"

    @classmethod
    def direct(cls, host: str, port: int) -> "DeviceAnnouncement":
        """Announcement for a device addressed explicitly, bypassing discovery."""
        return cls(host=host, port=port, protocol_version=PROTOCOL_VERSION)


__all__ = [
    "ControlPayload",
    "HelloPayload",
    "MetadataPayload",
    "StatusPayload",
    "LaunchAckPayload",
    "DeviceAnnouncement",
]
