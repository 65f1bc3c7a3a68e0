from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from netloader_shared.protocol import FrameKind


@dataclass
class ConnectionContext:
    reader: any  # asyncio.StreamReader
    writer: any  # asyncio.StreamWriter
    peername: str
    peer_version: Optional[int] = None
    upload_path: Optional[Path] = None
    declared_size: int = 0
    bytes_received: int = 0
    argv: List[str] = field(default_factory=list)
    upload_complete: bool = False
    launched: bool = False
    frames: List[FrameKind] = field(default_factory=list)
    opened_at: float = field(default_factory=time.time)
    closed_at: Optional[float] = None

    def record(self, kind: FrameKind) -> None:
        self.frames.append(kind)

    def count(self, kind: FrameKind) -> int:
        return sum(1 for seen in self.frames if seen == kind)

    def mark_closed(self) -> None:
        self.closed_at = time.time()
