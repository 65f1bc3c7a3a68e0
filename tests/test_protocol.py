import asyncio

import pytest

from netloader_shared.protocol import (
    DeviceRejected,
    DeviceStatus,
    FrameKind,
    FrameTooLarge,
    InvalidPayload,
    MetadataPayload,
    ProtocolVersionMismatch,
    StatusPayload,
    TruncatedFrame,
    UnexpectedFrame,
    decode_announcement,
    decode_frame,
    encode_announcement,
    encode_frame,
    encode_query,
    is_compatible,
    is_query,
    read_frame,
    validate_payload,
    validate_version,
)


def test_frame_header_layout():
    assert encode_frame(FrameKind.DATA, b"abc") == b"\x03\x03\x00\x00\x00abc"
    assert encode_frame(FrameKind.END) == b"\x04\x00\x00\x00\x00"


def test_decode_frame_reads_declared_payload():
    frame = decode_frame(encode_frame(FrameKind.OUTPUT, "héllo".encode("utf-8")))
    assert frame.kind == FrameKind.OUTPUT
    assert frame.length == 6
    assert frame.payload.decode("utf-8") == "héllo"
    with pytest.raises(UnexpectedFrame):
        frame.json()


def test_oversized_frames_are_rejected():
    with pytest.raises(FrameTooLarge):
        encode_frame(FrameKind.DATA, b"x" * 11, max_size=10)
    header = b"\x03" + (70000).to_bytes(4, "little")
    with pytest.raises(FrameTooLarge):
        decode_frame(header)


def test_unknown_kind_and_truncation():
    with pytest.raises(UnexpectedFrame):
        decode_frame(b"\x7f\x00\x00\x00\x00")
    with pytest.raises(TruncatedFrame):
        decode_frame(b"\x03\x05\x00\x00\x00ab")
    with pytest.raises(TruncatedFrame):
        decode_frame(b"\x03\x05")


def test_read_frame_stream_boundaries():
    async def scenario():
        reader = asyncio.StreamReader()
        reader.feed_data(encode_frame(FrameKind.DATA, b"chunk"))
        reader.feed_eof()
        first = await read_frame(reader)
        second = await read_frame(reader)
        return first, second

    first, second = asyncio.run(scenario())
    assert first.kind == FrameKind.DATA and first.payload == b"chunk"
    assert second is None


def test_read_frame_truncated_payload():
    async def scenario():
        reader = asyncio.StreamReader()
        reader.feed_data(encode_frame(FrameKind.DATA, b"chunk")[:-2])
        reader.feed_eof()
        await read_frame(reader)

    with pytest.raises(TruncatedFrame):
        asyncio.run(scenario())


def test_announcement_codec():
    datagram = encode_announcement(3, 28280, "living-room")
    assert datagram.startswith(b"bootnx")
    device = decode_announcement(datagram, "192.168.1.20")
    assert device.address == ("192.168.1.20", 28280)
    assert device.display_name == "living-room"
    assert device.protocol_version == 3

    anonymous = decode_announcement(encode_announcement(2, 5000), "10.0.0.2")
    assert anonymous.display_name is None


def test_announcement_rejects_garbage():
    assert is_query(encode_query())
    assert not is_query(b"bootnx")
    with pytest.raises(InvalidPayload):
        decode_announcement(b"nxboot", "10.0.0.2")
    with pytest.raises(InvalidPayload):
        decode_announcement(b"bootnx\x03\x00", "10.0.0.2")


@pytest.mark.parametrize("peer", [2, 3])
def test_compatible_versions(peer):
    validate_version(peer, 3)


@pytest.mark.parametrize(
    "peer, local, expected",
    [(3, 3, True), (3, 2, True), (2, 2, True), (3, 1, False), (4, 3, False)],
)
def test_version_window_is_symmetric(peer, local, expected):
    assert is_compatible(peer, local) is expected
    assert is_compatible(local, peer) is expected


@pytest.mark.parametrize("peer", [0, 1, 4])
def test_incompatible_versions_name_both_sides(peer):
    with pytest.raises(ProtocolVersionMismatch) as info:
        validate_version(peer, 3)
    assert info.value.local_version == 3
    assert info.value.peer_version == peer
    assert str(peer) in str(info.value)


def test_metadata_payload_schema_and_model():
    payload = MetadataPayload(file_name="demo.bin", file_size=10, argv=["demo.bin", "-v"])
    assert payload.to_bytes() == b'{"file_name":"demo.bin","file_size":10,"argv":["demo.bin","-v"]}'
    with pytest.raises(InvalidPayload):
        validate_payload(FrameKind.METADATA, {"file_name": "demo.bin"})
    with pytest.raises(InvalidPayload):
        MetadataPayload.from_bytes(b'{"file_name":"demo.bin","file_size":-1}')


def test_status_payload_and_device_rejection():
    status = StatusPayload.from_bytes(b'{"code":-2,"error_message":"full"}')
    assert not status.ok
    error = DeviceRejected(status.code, status.error_message)
    assert error.status == DeviceStatus.INSUFFICIENT_SPACE
    assert "insufficient space" in str(error)
    assert "unknown error -42" in str(DeviceRejected(-42))
