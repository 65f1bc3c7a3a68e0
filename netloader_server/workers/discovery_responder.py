from __future__ import annotations

import asyncio
import logging
from typing import Optional, Tuple

from netloader_shared.protocol import encode_announcement, is_query

logger = logging.getLogger(__name__)


class _ResponderProtocol(asyncio.DatagramProtocol):
    def __init__(self, responder: "DiscoveryResponder") -> None:
        self.responder = responder
        self.transport: Optional[asyncio.DatagramTransport] = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport  # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        if not is_query(data):
            logger.debug("Ignoring datagram from %s: %r", addr, data[:16])
            return
        assert self.transport is not None
        self.transport.sendto(self.responder.announcement(), addr)
        self.responder.queries += 1
        logger.debug("Answered discovery query from %s", addr)

    def error_received(self, exc: Exception) -> None:
        logger.debug("Discovery socket error: %s", exc)


class DiscoveryResponder:
    """Answers broadcast discovery queries with this device's announcement."""

    def __init__(
        self,
        host: str,
        port: int,
        protocol_version: int,
        tcp_port: int,
        display_name: str = "",
    ) -> None:
        self.host = host
        self.port = port
        self.protocol_version = protocol_version
        self.tcp_port = tcp_port
        self.display_name = display_name
        self.queries = 0
        self._transport: Optional[asyncio.DatagramTransport] = None

    def announcement(self) -> bytes:
        return encode_announcement(self.protocol_version, self.tcp_port, self.display_name or None)

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        self._transport, _ = await loop.create_datagram_endpoint(
            lambda: _ResponderProtocol(self),
            local_addr=(self.host, self.port),
            allow_broadcast=True,
        )
        self.port = self._transport.get_extra_info("sockname")[1]
        logger.info("Discovery responder listening on %s:%s", self.host, self.port)

    async def stop(self) -> None:
        if self._transport:
            self._transport.close()
            self._transport = None
            logger.info("Discovery responder stopped")
