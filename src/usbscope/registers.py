"""Protocol register map.

Several logical registers share a protocol address (the external trigger
reuses the channel 1 holdoff registers, and the "empty" flag shares its
address with the external edge level); those appear as enum aliases.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from types import MappingProxyType

from usbscope.options import Channel, TriggerSource


class Address(enum.IntEnum):
    CH1 = 0x111
    CH2 = 0x110
    CH1_VOLT_GAIN = 0x116
    CH2_VOLT_GAIN = 0x114
    CH1_ZERO_OFFSET = 0x10A
    CH2_ZERO_OFFSET = 0x108
    CH1_FREQUENCY_REFERENCE = 0x4A
    CH2_FREQUENCY_REFERENCE = 0x4B
    TIMEBASE = 0x52
    PHASE_FINE = 0x18
    TRIGGER = 0x24
    TRIGGER_DONE = 0x1
    CH1_TRIGGER_HOLDOFF_ARG = 0x26
    CH1_TRIGGER_HOLDOFF_INDEX = 0x27
    CH2_TRIGGER_HOLDOFF_ARG = 0x2A
    CH2_TRIGGER_HOLDOFF_INDEX = 0x2B
    EXT_TRIGGER_HOLDOFF_ARG = 0x26
    EXT_TRIGGER_HOLDOFF_INDEX = 0x27
    CH1_TRIGGER_EDGE_LEVEL = 0x2E
    CH2_TRIGGER_EDGE_LEVEL = 0x30
    EXT_TRIGGER_EDGE_LEVEL = 0x10C
    PRE_TRIGGER = 0x5A
    SUF_TRIGGER = 0x56
    DEEP_MEMORY = 0x5C
    # Roll mode for slow timebases. The vendor software writes 0 here
    # before arming but acquisition works without it; not written.
    SLOW_MOVE = 0xA
    CHANNEL_ON = 0xB
    SYNC_OUTPUT = 0x6
    SAMPLE = 0x9
    EMPTY = 0x10C
    DATA_FINISHED = 0x7A
    GET_DATA = 0x1000
    DEVICE_TYPE = 0x4001
    READ_FLASH = 0x1B0
    FPGA_UPLOAD_QUERY = 0x223
    FPGA_UPLOAD = 0x4000


CHANNEL_ADDRESS: Mapping[Channel, Address] = MappingProxyType(
    {
        Channel.CH1: Address.CH1,
        Channel.CH2: Address.CH2,
    }
)

VOLT_GAIN_ADDRESS: Mapping[Channel, Address] = MappingProxyType(
    {
        Channel.CH1: Address.CH1_VOLT_GAIN,
        Channel.CH2: Address.CH2_VOLT_GAIN,
    }
)

ZERO_OFFSET_ADDRESS: Mapping[Channel, Address] = MappingProxyType(
    {
        Channel.CH1: Address.CH1_ZERO_OFFSET,
        Channel.CH2: Address.CH2_ZERO_OFFSET,
    }
)

FREQUENCY_REFERENCE_ADDRESS: Mapping[Channel, Address] = MappingProxyType(
    {
        Channel.CH1: Address.CH1_FREQUENCY_REFERENCE,
        Channel.CH2: Address.CH2_FREQUENCY_REFERENCE,
    }
)

TRIGGER_HOLDOFF_ARG_ADDRESS: Mapping[TriggerSource, Address] = MappingProxyType(
    {
        TriggerSource.CH1: Address.CH1_TRIGGER_HOLDOFF_ARG,
        TriggerSource.CH2: Address.CH2_TRIGGER_HOLDOFF_ARG,
        TriggerSource.EXTERNAL: Address.EXT_TRIGGER_HOLDOFF_ARG,
    }
)

TRIGGER_HOLDOFF_INDEX_ADDRESS: Mapping[TriggerSource, Address] = MappingProxyType(
    {
        TriggerSource.CH1: Address.CH1_TRIGGER_HOLDOFF_INDEX,
        TriggerSource.CH2: Address.CH2_TRIGGER_HOLDOFF_INDEX,
        TriggerSource.EXTERNAL: Address.EXT_TRIGGER_HOLDOFF_INDEX,
    }
)

TRIGGER_EDGE_LEVEL_ADDRESS: Mapping[TriggerSource, Address] = MappingProxyType(
    {
        TriggerSource.CH1: Address.CH1_TRIGGER_EDGE_LEVEL,
        TriggerSource.CH2: Address.CH2_TRIGGER_EDGE_LEVEL,
        TriggerSource.EXTERNAL: Address.EXT_TRIGGER_EDGE_LEVEL,
    }
)


def register_name(address: int) -> str:
    """Human-readable name of a protocol address for log messages."""
    try:
        return f"{Address(address).name}(0x{address:x})"
    except ValueError:
        return f"0x{address:x}"
