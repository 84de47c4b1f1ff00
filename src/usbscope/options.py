"""Configuration enums and option records for usbscope."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class Channel(enum.IntEnum):
    CH1 = 0
    CH2 = 1


class VoltageRange(enum.IntEnum):
    """Vertical range per division, used as the calibration column index."""

    MV5 = 0
    MV10 = 1
    MV20 = 2
    MV50 = 3
    MV100 = 4
    MV200 = 5
    MV500 = 6
    V1 = 7
    V2 = 8
    V5 = 9


class Coupling(enum.IntEnum):
    AC = 0
    DC = 1
    GND = 2


class Timebase(enum.IntEnum):
    """Sampling-rate codes, written verbatim to the timebase register."""

    MSPS100 = 0x1
    MSPS50 = 0x2
    MSPS32 = 0x3
    MSPS16 = 0x6
    MSPS8 = 0x18
    MSPS4 = 0x30
    # Observed in the vendor software, rate unknown
    VENDOR_DEFAULT = 0x50
    MSPS2 = 0x60
    MSPS1 = 0xC0
    KSPS500 = 0x180
    KSPS250 = 0x300
    KSPS125 = 0x600
    KSPS62 = 0xC00


class TriggerSource(enum.IntEnum):
    CH1 = 0
    CH2 = 1
    EXTERNAL = 2


class TriggerType(enum.IntEnum):
    EDGE = 0
    SLOPE = 1
    VIDEO = 2
    PULSE = 3


class TriggerMode(enum.IntEnum):
    SINGLE = 0
    ALTERNATE = 1


class TriggerSlope(enum.IntEnum):
    RISING = 0
    FALLING = 1


@dataclass(frozen=True)
class ChannelOptions:
    """Settings for one input channel."""

    channel: Channel
    enabled: bool
    voltage_range: VoltageRange
    coupling: Coupling


@dataclass(frozen=True)
class EdgeTriggerOptions:
    """Settings for the edge trigger.

    ``trigger_level`` is in ADC counts (signed 8-bit range) and is clamped so
    both edge bounds stay representable.
    """

    source: TriggerSource
    slope: TriggerSlope
    mode: TriggerMode = TriggerMode.SINGLE
    type: TriggerType = TriggerType.EDGE
    holdoff_seconds: float = 0.0
    trigger_level: int = 0
