"""Tests for the FPGA firmware upload."""

import struct

import pytest
from fakes import OK, FakeTransport, parse_frame, status

from usbscope.command import ACCEPTING_UPLOAD
from usbscope.errors import UploadFrameRejected, UploadRejected
from usbscope.firmware import SUB_CHUNK_SIZE, firmware_loaded, upload_firmware
from usbscope.link import RegisterLink
from usbscope.registers import Address

DATA_SIZE = 100


def _handshake(data_size: int = DATA_SIZE) -> bytes:
    # Device reports its buffer size, which includes the 4-byte frame index
    return status(ACCEPTING_UPLOAD, data_size + 4)


def _image(size: int) -> bytes:
    return bytes(i % 251 for i in range(size))


def _sent_frames(transport: FakeTransport) -> list[bytes]:
    """Reassemble firmware frames from the writes between acknowledgements."""
    frames: list[bytes] = []
    current: list[bytes] = []
    chunks_started = False
    for kind, data in transport.events:
        if kind == "read":
            if chunks_started and current:
                frames.append(b"".join(current))
            current = []
            chunks_started = True
        elif chunks_started:
            assert isinstance(data, bytes)
            current.append(data)
    if current:
        frames.append(b"".join(current))
    return frames


def test_upload_announces_image_length(
    link: RegisterLink, transport: FakeTransport
) -> None:
    """Verify the upload starts with the image length register write."""
    transport.queue(_handshake(), OK)

    upload_firmware(link, _image(10))

    assert parse_frame(transport.writes[0]) == (
        Address.FPGA_UPLOAD,
        struct.pack("<I", 10),
    )


def test_upload_splits_image_into_indexed_frames(
    link: RegisterLink, transport: FakeTransport
) -> None:
    """Verify an image of 2*D + 7 bytes is sent as three indexed frames."""
    image = _image(2 * DATA_SIZE + 7)
    transport.queue(_handshake(), OK, OK, OK)

    frame_count = upload_firmware(link, image)

    frames = _sent_frames(transport)
    assert frame_count == 3
    assert len(frames) == 3
    assert [struct.unpack_from("<I", f)[0] for f in frames] == [0, 1, 2]
    assert [len(f) - 4 for f in frames] == [DATA_SIZE, DATA_SIZE, 7]
    assert b"".join(f[4:] for f in frames) == image


def test_upload_sub_chunks_are_at_most_64_bytes(
    link: RegisterLink, transport: FakeTransport
) -> None:
    """Verify frames go out in 64-byte writes without reads in between."""
    transport.queue(_handshake(), OK, OK, OK)

    upload_firmware(link, _image(2 * DATA_SIZE + 7))

    chunk_sizes = [len(data) for data in transport.writes[1:]]
    assert chunk_sizes == [64, 40, 64, 40, 11]
    assert all(size <= SUB_CHUNK_SIZE for size in chunk_sizes)
    # handshake + one acknowledgement per frame
    assert len(transport.reads) == 4


def test_upload_stops_at_rejected_frame(
    link: RegisterLink, transport: FakeTransport
) -> None:
    """Verify a refused frame 1 raises and frame 2 is never sent."""
    transport.queue(_handshake(), OK, status(0x45), OK)

    with pytest.raises(UploadFrameRejected) as info:
        upload_firmware(link, _image(2 * DATA_SIZE + 7))

    assert info.value.frame_index == 1
    assert info.value.actual == 0x45
    frames = _sent_frames(transport)
    assert [struct.unpack_from("<I", f)[0] for f in frames] == [0, 1]


def test_upload_rejected_handshake(
    link: RegisterLink, transport: FakeTransport
) -> None:
    """Verify a handshake without the accepting status raises UploadRejected."""
    transport.queue(status(0x45, 0))

    with pytest.raises(UploadRejected, match="0x45"):
        upload_firmware(link, _image(10))

    assert len(transport.writes) == 1


def test_upload_rejects_unusable_buffer_size(
    link: RegisterLink, transport: FakeTransport
) -> None:
    """Verify a buffer no larger than the frame header is refused."""
    transport.queue(status(ACCEPTING_UPLOAD, 4))

    with pytest.raises(UploadRejected, match="buffer size"):
        upload_firmware(link, _image(10))


# firmware_loaded tests


def test_firmware_loaded_true(link: RegisterLink, transport: FakeTransport) -> None:
    """Verify a query value of 1 means the FPGA is programmed."""
    transport.queue(status(value=1))

    assert firmware_loaded(link) is True
    assert transport.commands() == [(Address.FPGA_UPLOAD_QUERY, b"\x00")]


def test_firmware_loaded_false(link: RegisterLink, transport: FakeTransport) -> None:
    """Verify a query value of 0 means the FPGA needs an upload."""
    transport.queue(status(value=0))

    assert firmware_loaded(link) is False
