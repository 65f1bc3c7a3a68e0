"""Protocol-wide constants shared by the host deployer and the device."""

import struct

PROTOCOL_VERSION = 3
MIN_PROTOCOL_VERSION = 2
ENCODING = "utf-8"

SERVER_PORT = 28280  # TCP transfers and UDP discovery on the device

# Frame header: 1 byte kind + 4 bytes little-endian payload length
FRAME_HEADER = struct.Struct("<BI")
HEADER_SIZE = FRAME_HEADER.size
MAX_FRAME_SIZE = 64 * 1024

# Discovery datagrams
DISCOVERY_QUERY = b"nxboot"
DISCOVERY_REPLY = b"bootnx"
ANNOUNCEMENT_BODY = struct.Struct("<IH")  # protocol version, tcp port
MAX_DISPLAY_NAME = 32
MAX_DATAGRAM_SIZE = 256

# NUL-terminated argv block limit on the device
MAX_ARGS_SIZE = 3072

__all__ = [
    "PROTOCOL_VERSION",
    "MIN_PROTOCOL_VERSION",
    "ENCODING",
    "SERVER_PORT",
    "FRAME_HEADER",
    "HEADER_SIZE",
    "MAX_FRAME_SIZE",
    "DISCOVERY_QUERY",
    "DISCOVERY_REPLY",
    "ANNOUNCEMENT_BODY",
    "MAX_DISPLAY_NAME",
    "MAX_DATAGRAM_SIZE",
    "MAX_ARGS_SIZE",
]
