from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Union

import jsonschema

from .constants import MIN_PROTOCOL_VERSION, PROTOCOL_VERSION
from .errors import InvalidPayload, ProtocolVersionMismatch
from .kinds import FrameKind, normalize_kind

SCHEMA_DIR = Path(__file__).parent / "schemas"

# Mapping frame kind -> schema filename (relative to SCHEMA_DIR)
SCHEMA_REGISTRY: Dict[FrameKind, str] = {
    FrameKind.HELLO: "hello.json",
    FrameKind.METADATA: "metadata.json",
    FrameKind.STATUS: "status.json",
    FrameKind.LAUNCH_ACK: "launch_ack.json",
}


def _schema_path(kind: FrameKind) -> Optional[Path]:
    filename = SCHEMA_REGISTRY.get(kind)
    if not filename:
        return None
    path = SCHEMA_DIR / filename
    return path if path.exists() else None


@lru_cache(maxsize=16)
def load_schema(kind: Union[int, FrameKind]) -> Optional[dict]:
    """Load JSON schema for a frame kind if present."""
    path = _schema_path(normalize_kind(kind))
    if not path:
        return None
    with path.open("r", encoding="utf-8") as fp:
        return json.load(fp)


def is_compatible(peer_version: int, local_version: int = PROTOCOL_VERSION) -> bool:
    """Two peers are compatible when both versions lie inside the supported window."""
    return all(MIN_PROTOCOL_VERSION <= version <= PROTOCOL_VERSION for version in (peer_version, local_version))


def validate_version(peer_version: int, local_version: int = PROTOCOL_VERSION) -> None:
    """Ensure the peer speaks a supported protocol version."""
    if not is_compatible(peer_version, local_version):
        raise ProtocolVersionMismatch(local_version, peer_version)


def validate_payload(kind: Union[int, FrameKind], body: Dict[str, Any], schema: Optional[dict] = None) -> None:
    """Run json-schema validation of a control payload."""
    if not schema:
        schema = load_schema(kind)
    if schema:
        try:
            jsonschema.validate(instance=body, schema=schema)
        except jsonschema.ValidationError as exc:
            raise InvalidPayload(f"Schema validation failed: {exc.message}") from exc


__all__ = ["load_schema", "is_compatible", "validate_version", "validate_payload"]
