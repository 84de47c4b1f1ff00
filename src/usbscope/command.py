"""Command frame codec.

Every register operation is a single frame, little endian::

    Offset  Size  Field
    0       4     address
    4       1     payload length
    5       n     payload (n <= 255)

The device answers register writes with a 5-byte status response::

    Offset  Size  Field
    0       1     status character
    1       4     value (little endian)

Nothing in this module touches the transport.
"""

from __future__ import annotations

import struct

from usbscope.errors import EmptyResponse, EncodingError

HEADER = struct.Struct("<IB")
STATUS_VALUE = struct.Struct("<I")

MAX_PAYLOAD_SIZE = 0xFF
STATUS_RESPONSE_SIZE = 5

# Status characters
AFFIRMATIVE = 0x53  # 'S'
ACCEPTING_UPLOAD = 0x44  # 'D'
DEVICE_TYPE = 0x56  # 'V'


def encode_command(address: int, payload: bytes) -> bytes:
    """Pack a register address and its payload into a command frame.

    Args:
        address: 32-bit protocol address
        payload: Raw payload bytes (at most 255)

    Returns:
        The frame, ``5 + len(payload)`` bytes long

    Raises:
        EncodingError: If the payload or the address does not fit the frame
    """
    if len(payload) > MAX_PAYLOAD_SIZE:
        raise EncodingError(
            f"Payload of {len(payload)} bytes for register 0x{address:x} "
            f"exceeds {MAX_PAYLOAD_SIZE} bytes"
        )
    if not 0 <= address <= 0xFFFFFFFF:
        raise EncodingError(f"Address {address:#x} does not fit in 32 bits")
    return HEADER.pack(address, len(payload)) + bytes(payload)


def decode_status(response: bytes) -> int:
    """Return the status byte of a response."""
    if not response:
        raise EmptyResponse("Device returned an empty response")
    return response[0]


def decode_value(response: bytes) -> int:
    """Return the 32-bit value carried by a 5-byte status response."""
    if len(response) < STATUS_RESPONSE_SIZE:
        raise EmptyResponse(
            f"Status response too short ({len(response)} bytes) to hold a value"
        )
    (value,) = STATUS_VALUE.unpack_from(response, 1)
    return value
