"""Calibration table parsing from the instrument flash dump.

Flash layout (2002 bytes)::

    Offset  Size        Field
    0       u16 (BE)    header magic 0xAA55 (bytes AA 55)
    2       u32 (LE)    layout version, always 2
    6       u16[60]     calibration values (LE), nested field/channel/range
    206     u8          OEM flag
    207     char[4]     firmware version (ASCII)
    212     char[15]    serial number (ASCII)
"""

from __future__ import annotations

import binascii
import enum
import logging
import struct
from dataclasses import dataclass

from usbscope.errors import InvalidFlashHeader, UnsupportedFlashVersion
from usbscope.options import Channel, VoltageRange

logger = logging.getLogger(__name__)

FLASH_SIZE = 2002
FLASH_MAGIC = 0xAA55
FLASH_VERSION = 2

CALIBRATION_OFFSET = 6
FIRMWARE_VERSION_OFFSET = 207
FIRMWARE_VERSION_LENGTH = 4
SERIAL_NUMBER_OFFSET = 212
SERIAL_NUMBER_LENGTH = 15

CHANNEL_COUNT = len(Channel)
RANGE_COUNT = len(VoltageRange)

_HEADER = struct.Struct(">H")
_VERSION = struct.Struct("<I")
_ROW = struct.Struct(f"<{RANGE_COUNT}H")


class CalibrationField(enum.IntEnum):
    GAIN = 0
    AMPLITUDE = 1
    COMPENSATION = 2


FIELD_COUNT = len(CalibrationField)
MIN_FLASH_SIZE = SERIAL_NUMBER_OFFSET + SERIAL_NUMBER_LENGTH


@dataclass(frozen=True)
class CalibrationTable:
    """Per-channel, per-range correction values read once from flash.

    ``values[field][channel][voltage_range]`` mirrors the flash nesting.
    """

    values: tuple[tuple[tuple[int, ...], ...], ...]

    def get(
        self, channel: Channel, field: CalibrationField, voltage_range: VoltageRange
    ) -> int:
        return self.values[field][channel][voltage_range]

    def gain(self, channel: Channel, voltage_range: VoltageRange) -> int:
        return self.get(channel, CalibrationField.GAIN, voltage_range)

    def amplitude(self, channel: Channel, voltage_range: VoltageRange) -> int:
        return self.get(channel, CalibrationField.AMPLITUDE, voltage_range)

    def compensation(self, channel: Channel, voltage_range: VoltageRange) -> int:
        return self.get(channel, CalibrationField.COMPENSATION, voltage_range)


@dataclass(frozen=True)
class FlashInfo:
    """Everything the core takes from a flash dump."""

    calibration: CalibrationTable
    firmware_version: str
    serial_number: str
    crc32: int


def _read_ascii(dump: bytes, offset: int, length: int) -> str:
    raw = bytes(dump[offset : offset + length])
    return raw.decode("ascii", errors="replace").rstrip("\x00")


def load_calibration(dump: bytes) -> FlashInfo:
    """Parse a flash dump into a calibration table and device identity.

    The CRC-32 of the dump is logged for diagnosis only; a mismatch against
    a previous read is never grounds for rejecting the dump.

    Args:
        dump: Raw flash-read response

    Returns:
        FlashInfo with the immutable calibration table

    Raises:
        InvalidFlashHeader: If the dump is truncated or the magic is wrong
        UnsupportedFlashVersion: If the layout version is not 2
    """
    if len(dump) < MIN_FLASH_SIZE:
        raise InvalidFlashHeader(
            f"Flash dump too short: {len(dump)} bytes, need {MIN_FLASH_SIZE}"
        )

    (header,) = _HEADER.unpack_from(dump, 0)
    if header != FLASH_MAGIC:
        raise InvalidFlashHeader(
            f"Expected flash header to be 0x{FLASH_MAGIC:x}, but was 0x{header:x}"
        )

    (version,) = _VERSION.unpack_from(dump, _HEADER.size)
    if version != FLASH_VERSION:
        raise UnsupportedFlashVersion(
            f"Expected flash version to be {FLASH_VERSION}, but was {version}"
        )

    offset = CALIBRATION_OFFSET
    fields: list[tuple[tuple[int, ...], ...]] = []
    for _field in CalibrationField:
        channels: list[tuple[int, ...]] = []
        for _channel in Channel:
            channels.append(_ROW.unpack_from(dump, offset))
            offset += _ROW.size
        fields.append(tuple(channels))
    table = CalibrationTable(values=tuple(fields))

    crc = binascii.crc32(bytes(dump)) & 0xFFFFFFFF
    info = FlashInfo(
        calibration=table,
        firmware_version=_read_ascii(
            dump, FIRMWARE_VERSION_OFFSET, FIRMWARE_VERSION_LENGTH
        ),
        serial_number=_read_ascii(dump, SERIAL_NUMBER_OFFSET, SERIAL_NUMBER_LENGTH),
        crc32=crc,
    )

    logger.info("Fetched flash crc32: 0x%08x", crc)
    logger.info("Device %s: %s", info.firmware_version, info.serial_number)
    if logger.isEnabledFor(logging.DEBUG):
        for field in CalibrationField:
            for channel in Channel:
                logger.debug(
                    "calibration %s %s: %s",
                    field.name,
                    channel.name,
                    table.values[field][channel],
                )
    return info
