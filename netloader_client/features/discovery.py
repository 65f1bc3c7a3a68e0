from __future__ import annotations

import asyncio
import logging
import socket
from typing import Any, Dict, List, Optional, Tuple

from netloader_shared.protocol import (
    DeviceAnnouncement,
    DiscoveryTimeout,
    InvalidPayload,
    NoNetworkInterface,
    decode_announcement,
    encode_query,
)
from netloader_shared.protocol.constants import MAX_DATAGRAM_SIZE

logger = logging.getLogger(__name__)


class DeviceDiscovery:
    """Locate listening devices with a UDP broadcast round."""

    def __init__(self, config: Dict[str, Any]) -> None:
        self.config = config
        self.broadcast_address: str = config["broadcast_address"]
        self.port: int = int(config["discovery_port"])
        self.timeout: float = float(config["discovery_timeout"])

    async def discover(
        self,
        broadcast_address: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> List[DeviceAnnouncement]:
        """Broadcast one query and collect every reply until the timeout expires.

        Returns announcements in arrival order, one per device address. An
        empty list means nobody answered; it is not an error.
        """
        timeout = self.timeout if timeout is None else timeout
        if timeout <= 0:
            raise ValueError("Discovery timeout must be positive")
        target = (broadcast_address or self.broadcast_address, self.port)

        try:
            sock = self._open_socket()
        except OSError as exc:
            raise NoNetworkInterface(f"Cannot open a broadcast socket: {exc}") from exc
        loop = asyncio.get_running_loop()
        try:
            logger.debug("Sending discovery query to %s:%s", *target)
            try:
                await loop.sock_sendto(sock, encode_query(), target)
            except OSError as exc:
                raise NoNetworkInterface(f"Discovery broadcast to {target[0]} failed: {exc}") from exc
            devices = await self._collect(sock, timeout)
        finally:
            sock.close()
        logger.info("Discovery round found %s device(s)", len(devices))
        return devices

    async def discover_one(
        self,
        broadcast_address: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> DeviceAnnouncement:
        """Like :meth:`discover`, but at least one responder is required."""
        devices = await self.discover(broadcast_address, timeout)
        if not devices:
            raise DiscoveryTimeout("No device answered the discovery query")
        return devices[0]

    @staticmethod
    def _open_socket() -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.setblocking(False)
            sock.bind(("0.0.0.0", 0))
        except OSError:
            sock.close()
            raise
        return sock

    async def _collect(self, sock: socket.socket, timeout: float) -> List[DeviceAnnouncement]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        seen: Dict[Tuple[str, int], DeviceAnnouncement] = {}
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            try:
                data, (host, _port) = await asyncio.wait_for(
                    loop.sock_recvfrom(sock, MAX_DATAGRAM_SIZE), timeout=remaining
                )
            except asyncio.TimeoutError:
                break
            except ConnectionRefusedError:
                # ICMP port unreachable from a host without a listener
                continue
            try:
                device = decode_announcement(data, host)
            except (InvalidPayload, ValueError) as exc:
                logger.debug("Ignoring reply from %s: %s", host, exc)
                continue
            if device.address in seen:
                continue
            seen[device.address] = device
            logger.debug("Discovered %s", device)
        return list(seen.values())
