"""Acquisition arm sequence, frame fetch and the continuous sampling loop.

Sample frame layout (5211 bytes)::

    Offset  Size  Field
    0       1     channel (CH1=0x00, CH2=0x01)
    1       110   frequency meter counters, cursor, trigger buffer
    111     5100  ADC buffer, samples read as i16 (LE) every 4 bytes
"""

from __future__ import annotations

import logging
import struct
from collections.abc import Callable

from usbscope.errors import ArmFailed, UnexpectedResponse
from usbscope.link import RegisterLink
from usbscope.registers import Address
from usbscope.sample_frame import SampleFrame

logger = logging.getLogger(__name__)

FRAME_SIZE = 5211
SAMPLE_OFFSET = 111
SAMPLE_STRIDE = 4
SAMPLE_COUNT = 1275
SAMPLE_SCALE = 1 / 3096

_SAMPLE = struct.Struct("<h")

# Channel 1 and channel 2 "on" markers of the data request
DATA_REQUEST = bytes([0x05, 0x05])

ARM_SEQUENCE: tuple[tuple[Address, bytes], ...] = (
    (Address.CH1_TRIGGER_HOLDOFF_ARG, bytes([0x00])),
    (Address.CH1_TRIGGER_HOLDOFF_INDEX, bytes([0x42])),
    (Address.DEEP_MEMORY, struct.pack("<H", 0x13EC)),
    (Address.SYNC_OUTPUT, bytes([0x00])),
    (Address.SAMPLE, bytes([0x00])),
    (Address.PRE_TRIGGER, struct.pack("<H", 0x09F1)),
    (Address.SUF_TRIGGER, struct.pack("<I", 0x09FB)),
    (Address.EMPTY, bytes([0x01])),
)


def decode_sample_frame(buffer: bytes) -> SampleFrame:
    """Decode a raw acquisition buffer into voltages.

    Decoding stops at the end of the buffer, so a truncated frame yields
    fewer than SAMPLE_COUNT samples instead of an error.
    """
    channel = buffer[0] if buffer else 0
    voltages: list[float] = []
    offset = SAMPLE_OFFSET
    while len(voltages) < SAMPLE_COUNT and offset + _SAMPLE.size <= len(buffer):
        (raw,) = _SAMPLE.unpack_from(buffer, offset)
        voltages.append(raw * SAMPLE_SCALE)
        offset += SAMPLE_STRIDE

    if len(voltages) < SAMPLE_COUNT:
        logger.warning(
            "Short sample frame: %d bytes, decoded %d of %d samples",
            len(buffer),
            len(voltages),
            SAMPLE_COUNT,
        )
    return SampleFrame(channel=channel, voltages=voltages)


def arm(link: RegisterLink) -> None:
    """Write the one-time acquisition setup registers.

    Raises:
        ArmFailed: If any register write is refused
    """
    for address, payload in ARM_SEQUENCE:
        try:
            link.write_register(address, payload)
        except UnexpectedResponse as ex:
            raise ArmFailed(address, ex.expected, ex.actual) from ex
    logger.debug("Acquisition armed")


def fetch_frame(link: RegisterLink) -> SampleFrame:
    """Run one acquisition cycle and return the decoded frame."""
    link.write_register(Address.TRIGGER_DONE, bytes([0x00]))
    link.write_register(Address.DATA_FINISHED, bytes([0x00]))
    # The device starts streaming instead of answering with a status
    link.send(Address.GET_DATA, DATA_REQUEST)
    frame = decode_sample_frame(link.receive(FRAME_SIZE))
    logger.debug("Frame from channel %d: %d samples", frame.channel, len(frame.voltages))
    return frame


def sample_continuously(
    link: RegisterLink,
    on_sample: Callable[[list[float]], None],
    should_stop: Callable[[], bool] | None = None,
    max_cycles: int | None = None,
) -> int:
    """Arm the device and deliver decoded frames until told to stop.

    ``should_stop`` and ``max_cycles`` are only checked between cycles, so
    the device is never left halfway through a register sequence. Any
    refused register write ends the loop by propagating its error.

    Args:
        link: Register link to a configured device
        on_sample: Called inline with each frame's voltages; keep it short
        should_stop: Polled before each cycle; True ends the loop
        max_cycles: Optional bound on the number of cycles

    Returns:
        Number of completed cycles
    """
    arm(link)

    cycles = 0
    while max_cycles is None or cycles < max_cycles:
        if should_stop is not None and should_stop():
            break
        frame = fetch_frame(link)
        on_sample(frame.voltages)
        cycles += 1

    logger.info("Sampling stopped after %d cycles", cycles)
    return cycles
