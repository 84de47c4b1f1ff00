"""Channel, timebase and trigger configuration."""

from __future__ import annotations

import logging
import struct

from usbscope.calibration import CalibrationTable
from usbscope.errors import PreconditionViolation
from usbscope.link import RegisterLink
from usbscope.options import (
    Channel,
    ChannelOptions,
    EdgeTriggerOptions,
    Timebase,
    TriggerMode,
    TriggerSlope,
    TriggerSource,
    VoltageRange,
)
from usbscope.registers import (
    CHANNEL_ADDRESS,
    TRIGGER_EDGE_LEVEL_ADDRESS,
    VOLT_GAIN_ADDRESS,
    ZERO_OFFSET_ADDRESS,
    Address,
)

logger = logging.getLogger(__name__)

# Set by the vendor software on every channel write ("delay attenuation"?);
# meaning undocumented.
CHANNEL_FIXED_FLAG = 0x02

# Trigger sweep selector, one of 0, 1, 2 in the vendor software; meaning
# unknown, always 0 here.
TRIGGER_SWEEP = 0

EDGE_LEVEL_MAX = 127
EDGE_LEVEL_MIN = -128
EDGE_HYSTERESIS = 10


def configure_phase_fine(link: RegisterLink) -> None:
    """Zero the phase-fine register; must precede channel and trigger setup."""
    link.write_register(Address.PHASE_FINE, struct.pack("<H", 0))


def channel_bit_field(options: ChannelOptions) -> int:
    """Build the 8-bit channel register value."""
    field = 0
    if options.enabled:
        field |= 0x80
    field |= (options.coupling & 0x3) << 5
    field |= CHANNEL_FIXED_FLAG
    return field


def zero_offset(
    calibration: CalibrationTable, channel: Channel, voltage_range: VoltageRange
) -> int:
    """Zero-offset register value for a flat, centred trace.

    The vendor formula also subtracts a term proportional to the vertical
    position; position is not supported so the trace sits at centre.
    """
    compensation = calibration.compensation(channel, voltage_range)
    amplitude = calibration.amplitude(channel, voltage_range)
    return (compensation - amplitude // 100) & 0xFFFF


def configure_channel(
    link: RegisterLink,
    calibration: CalibrationTable | None,
    options: ChannelOptions,
) -> None:
    """Enable/couple a channel and apply its calibrated gain and offset.

    Args:
        link: Register link to the opened device
        calibration: Table loaded from the device flash
        options: Channel settings

    Raises:
        PreconditionViolation: If no calibration table has been loaded
        UnexpectedResponse: If any of the three writes is refused
    """
    if calibration is None:
        raise PreconditionViolation("configure a channel", "uncalibrated")

    channel = options.channel
    link.write_register(
        CHANNEL_ADDRESS[channel], bytes([channel_bit_field(options)])
    )

    gain = calibration.gain(channel, options.voltage_range)
    link.write_register(VOLT_GAIN_ADDRESS[channel], struct.pack("<H", gain))

    offset = zero_offset(calibration, channel, options.voltage_range)
    link.write_register(ZERO_OFFSET_ADDRESS[channel], struct.pack("<H", offset))

    logger.info(
        "Configured %s: %s, %s, %s, gain=%d, zero offset=%d",
        channel.name,
        "on" if options.enabled else "off",
        options.voltage_range.name,
        options.coupling.name,
        gain,
        offset,
    )


def set_channels_on(link: RegisterLink, channels: list[Channel]) -> None:
    """Write the channel-on mask (bit 0 = CH1, bit 1 = CH2)."""
    mask = 0
    for channel in channels:
        mask |= 1 << channel
    link.write_register(Address.CHANNEL_ON, bytes([mask]))


def configure_timebase(link: RegisterLink, timebase: Timebase) -> None:
    link.write_register(Address.TIMEBASE, struct.pack("<I", timebase))


def edge_levels(level: int, slope: TriggerSlope) -> tuple[int, int]:
    """Compute the (upper, lower) edge-level window for a trigger level.

    The window is EDGE_HYSTERESIS counts wide, above the level for falling
    edges and below it for rising edges, shifted back into the signed 8-bit
    range when it would overflow.
    """
    if slope == TriggerSlope.RISING:
        upper, lower = level, level - EDGE_HYSTERESIS
    else:
        upper, lower = level + EDGE_HYSTERESIS, level

    if upper > EDGE_LEVEL_MAX:
        upper = EDGE_LEVEL_MAX
        lower = upper - EDGE_HYSTERESIS
    if lower < EDGE_LEVEL_MIN:
        lower = EDGE_LEVEL_MIN
        upper = lower + EDGE_HYSTERESIS
    return upper, lower


def trigger_type_word(options: EdgeTriggerOptions) -> int:
    """Build the 16-bit value of the shared trigger register."""
    word = 0
    trigger_type = int(options.type)
    source = int(options.source)

    if options.mode == TriggerMode.SINGLE:
        word |= (trigger_type & 0x1) << 8
        word |= ((trigger_type >> 1) & 0x1) << 14
        if options.source == TriggerSource.EXTERNAL:
            word |= 0x1
        else:
            word |= (source & 0x1) << 13
    else:
        word |= 1 << 15
        word |= (trigger_type & 0x1) << 13
        word |= ((trigger_type >> 1) & 0x1) << 8
        word |= (source & 0x1) << 14

    word |= (int(options.slope) & 0x1) << 12
    if options.mode == TriggerMode.SINGLE:
        word |= (TRIGGER_SWEEP & 0x1) << 10
        word |= ((TRIGGER_SWEEP >> 1) & 0x1) << 11
    return word


def configure_edge_trigger(link: RegisterLink, options: EdgeTriggerOptions) -> None:
    """Write the edge-level window and the trigger type word."""
    upper, lower = edge_levels(options.trigger_level, options.slope)
    link.write_register(
        TRIGGER_EDGE_LEVEL_ADDRESS[options.source], struct.pack("<bb", upper, lower)
    )

    word = trigger_type_word(options)
    link.write_register(Address.TRIGGER, struct.pack("<H", word))
    logger.info(
        "Configured %s edge trigger on %s: window [%d, %d], word=0x%04x",
        options.slope.name,
        options.source.name,
        lower,
        upper,
        word,
    )
