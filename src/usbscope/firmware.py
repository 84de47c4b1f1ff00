"""Front-end (FPGA) firmware upload."""

from __future__ import annotations

import logging
import math
import struct

from usbscope.command import (
    ACCEPTING_UPLOAD,
    AFFIRMATIVE,
    STATUS_RESPONSE_SIZE,
    decode_status,
    decode_value,
)
from usbscope.errors import UnexpectedResponse, UploadFrameRejected, UploadRejected
from usbscope.link import RegisterLink
from usbscope.registers import Address

logger = logging.getLogger(__name__)

FRAME_HEADER = struct.Struct("<I")
# Largest single bulk write the device accepts during upload
SUB_CHUNK_SIZE = 64


def firmware_loaded(link: RegisterLink) -> bool:
    """Ask the device whether the FPGA already holds a bitstream."""
    response = link.query(Address.FPGA_UPLOAD_QUERY, b"\x00", STATUS_RESPONSE_SIZE)
    return decode_value(response) == 1


def upload_firmware(link: RegisterLink, image: bytes) -> int:
    """Upload an FPGA bitstream.

    The device announces its receive-buffer size; the image is sent in
    frames of that size (minus the 4-byte frame index header), each split
    into 64-byte bulk writes. Every frame must be acknowledged before the
    next one is sent.

    Args:
        link: Register link to the opened device
        image: Firmware image

    Returns:
        Number of frames sent

    Raises:
        UploadRejected: If the device does not accept the upload
        UploadFrameRejected: If a frame is not acknowledged
    """
    link.send(Address.FPGA_UPLOAD, struct.pack("<I", len(image)))
    try:
        handshake = link.expect(ACCEPTING_UPLOAD, Address.FPGA_UPLOAD)
    except UnexpectedResponse as ex:
        raise UploadRejected(
            f"Device refused a {len(image)} byte firmware upload: "
            f"response 0x{ex.actual:02x}, expected 0x{ACCEPTING_UPLOAD:02x}"
        ) from ex

    buffer_size = decode_value(handshake)
    data_size = buffer_size - FRAME_HEADER.size
    if data_size <= 0:
        raise UploadRejected(f"Device reported an unusable buffer size: {buffer_size}")

    frame_count = math.ceil(len(image) / data_size)
    logger.info(
        "Uploading %d byte firmware in %d frames of %d bytes",
        len(image),
        frame_count,
        data_size,
    )

    for frame_index, start in enumerate(range(0, len(image), data_size)):
        frame = FRAME_HEADER.pack(frame_index) + image[start : start + data_size]
        for offset in range(0, len(frame), SUB_CHUNK_SIZE):
            link.write_raw(frame[offset : offset + SUB_CHUNK_SIZE])

        actual = decode_status(link.receive(STATUS_RESPONSE_SIZE))
        if actual != AFFIRMATIVE:
            raise UploadFrameRejected(frame_index, actual)
        logger.debug("Firmware frame %d/%d acknowledged", frame_index + 1, frame_count)

    logger.info("Firmware upload complete")
    return frame_count
