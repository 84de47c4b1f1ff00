"""Tests for channel, timebase and trigger configuration."""

import struct

import pytest
from fakes import OK, FakeTransport, status

from usbscope.calibration import CalibrationTable
from usbscope.configuration import (
    channel_bit_field,
    configure_channel,
    configure_edge_trigger,
    configure_phase_fine,
    configure_timebase,
    edge_levels,
    set_channels_on,
    trigger_type_word,
    zero_offset,
)
from usbscope.errors import PreconditionViolation, UnexpectedResponse
from usbscope.link import RegisterLink
from usbscope.options import (
    Channel,
    ChannelOptions,
    Coupling,
    EdgeTriggerOptions,
    Timebase,
    TriggerMode,
    TriggerSlope,
    TriggerSource,
    TriggerType,
    VoltageRange,
)
from usbscope.registers import Address


def _channel(
    channel: Channel = Channel.CH1,
    enabled: bool = True,
    voltage_range: VoltageRange = VoltageRange.V1,
    coupling: Coupling = Coupling.DC,
) -> ChannelOptions:
    return ChannelOptions(
        channel=channel,
        enabled=enabled,
        voltage_range=voltage_range,
        coupling=coupling,
    )


# channel_bit_field tests


def test_channel_bit_field_enabled_dc() -> None:
    """Verify enable bit, DC coupling and the fixed flag are combined."""
    assert channel_bit_field(_channel(enabled=True, coupling=Coupling.DC)) == 0xA2


def test_channel_bit_field_disabled_ac_keeps_fixed_flag() -> None:
    """Verify the fixed flag is set even for a disabled AC channel."""
    assert channel_bit_field(_channel(enabled=False, coupling=Coupling.AC)) == 0x02


def test_channel_bit_field_ground_coupling() -> None:
    """Verify GND coupling lands in bits 6-5."""
    assert channel_bit_field(_channel(coupling=Coupling.GND)) == 0xC2


# configure_channel tests


def test_configure_channel_writes_field_gain_offset(
    link: RegisterLink, transport: FakeTransport, calibration: CalibrationTable
) -> None:
    """Verify the three channel registers are written in order."""
    transport.queue(OK, OK, OK)

    configure_channel(link, calibration, _channel())

    # CH1 V1: gain=7, amplitude=1007, compensation=2007 -> 2007 - 10
    assert transport.commands() == [
        (Address.CH1, b"\xa2"),
        (Address.CH1_VOLT_GAIN, struct.pack("<H", 7)),
        (Address.CH1_ZERO_OFFSET, struct.pack("<H", 1997)),
    ]


def test_configure_channel_uses_channel_two_registers(
    link: RegisterLink, transport: FakeTransport, calibration: CalibrationTable
) -> None:
    """Verify channel 2 uses its own registers and calibration row."""
    transport.queue(OK, OK, OK)

    configure_channel(
        link, calibration, _channel(channel=Channel.CH2, voltage_range=VoltageRange.V5)
    )

    # CH2 V5: gain=109, amplitude=1109, compensation=2109 -> 2109 - 11
    assert transport.commands() == [
        (Address.CH2, b"\xa2"),
        (Address.CH2_VOLT_GAIN, struct.pack("<H", 109)),
        (Address.CH2_ZERO_OFFSET, struct.pack("<H", 2098)),
    ]


def test_configure_channel_without_calibration_writes_nothing(
    link: RegisterLink, transport: FakeTransport
) -> None:
    """Verify a missing table fails before any register write."""
    with pytest.raises(PreconditionViolation):
        configure_channel(link, None, _channel())

    assert transport.writes == []


def test_configure_channel_aborts_on_refused_gain(
    link: RegisterLink, transport: FakeTransport, calibration: CalibrationTable
) -> None:
    """Verify a refused gain write aborts before the offset write."""
    transport.queue(OK, status(0x45))

    with pytest.raises(UnexpectedResponse) as info:
        configure_channel(link, calibration, _channel())

    assert info.value.address == Address.CH1_VOLT_GAIN
    assert len(transport.writes) == 2


def test_zero_offset_wraps_to_sixteen_bits() -> None:
    """Verify a negative offset wraps like the device register does."""
    row = tuple(0 for _ in range(10))
    amplitude = tuple(500 for _ in range(10))
    table = CalibrationTable(values=((row, row), (amplitude, amplitude), (row, row)))

    assert zero_offset(table, Channel.CH1, VoltageRange.V1) == 0xFFFB


# configure_timebase / configure_phase_fine / set_channels_on tests


def test_configure_timebase_writes_code_as_u32(
    link: RegisterLink, transport: FakeTransport
) -> None:
    """Verify the timebase code is written verbatim as 4 bytes."""
    transport.queue(OK)

    configure_timebase(link, Timebase.VENDOR_DEFAULT)

    assert transport.commands() == [(Address.TIMEBASE, b"\x50\x00\x00\x00")]


def test_configure_phase_fine_zeroes_register(
    link: RegisterLink, transport: FakeTransport
) -> None:
    """Verify phase fine is written as a 16-bit zero."""
    transport.queue(OK)

    configure_phase_fine(link)

    assert transport.commands() == [(Address.PHASE_FINE, b"\x00\x00")]


def test_set_channels_on_writes_mask(
    link: RegisterLink, transport: FakeTransport
) -> None:
    """Verify the channel-on mask has one bit per channel."""
    transport.queue(OK, OK)

    set_channels_on(link, [Channel.CH1, Channel.CH2])
    set_channels_on(link, [Channel.CH2])

    assert transport.commands() == [
        (Address.CHANNEL_ON, b"\x03"),
        (Address.CHANNEL_ON, b"\x02"),
    ]


# edge_levels tests


@pytest.mark.parametrize(
    ("level", "slope", "expected"),
    [
        (50, TriggerSlope.RISING, (50, 40)),
        (50, TriggerSlope.FALLING, (60, 50)),
        (200, TriggerSlope.RISING, (127, 117)),
        (120, TriggerSlope.FALLING, (127, 117)),
        (-200, TriggerSlope.FALLING, (-118, -128)),
        (-125, TriggerSlope.RISING, (-118, -128)),
        (127, TriggerSlope.RISING, (127, 117)),
    ],
)
def test_edge_levels(
    level: int, slope: TriggerSlope, expected: tuple[int, int]
) -> None:
    """Verify slope orientation and clamping of the edge window."""
    assert edge_levels(level, slope) == expected


# trigger_type_word tests


def _trigger(
    source: TriggerSource = TriggerSource.CH1,
    slope: TriggerSlope = TriggerSlope.RISING,
    mode: TriggerMode = TriggerMode.SINGLE,
    trigger_type: TriggerType = TriggerType.EDGE,
    level: int = 0,
) -> EdgeTriggerOptions:
    return EdgeTriggerOptions(
        source=source, slope=slope, mode=mode, type=trigger_type, trigger_level=level
    )


def test_trigger_word_single_edge_ch1_rising_is_zero() -> None:
    """Verify the default trigger contributes no bits."""
    assert trigger_type_word(_trigger()) == 0x0000


def test_trigger_word_single_external_falling() -> None:
    """Verify external source sets bit 0 and falling slope sets bit 12."""
    word = trigger_type_word(
        _trigger(source=TriggerSource.EXTERNAL, slope=TriggerSlope.FALLING)
    )

    assert word == 0x0001 | 0x1000


def test_trigger_word_single_ch2_sets_bit13() -> None:
    """Verify channel 2 as source sets bit 13 in single mode."""
    assert trigger_type_word(_trigger(source=TriggerSource.CH2)) == 0x2000


def test_trigger_word_single_pulse_type_bits() -> None:
    """Verify type bit 0 goes to bit 8 and type bit 1 to bit 14."""
    word = trigger_type_word(_trigger(trigger_type=TriggerType.PULSE))

    assert word == 0x0100 | 0x4000


def test_trigger_word_alternate_mode() -> None:
    """Verify the alternate-mode bit layout."""
    word = trigger_type_word(
        _trigger(
            source=TriggerSource.CH2,
            slope=TriggerSlope.FALLING,
            mode=TriggerMode.ALTERNATE,
            trigger_type=TriggerType.SLOPE,
        )
    )

    assert word == 0x8000 | 0x2000 | 0x4000 | 0x1000


def test_trigger_word_alternate_video_type_uses_bit8() -> None:
    """Verify type bit 1 goes to bit 8 in alternate mode."""
    word = trigger_type_word(
        _trigger(mode=TriggerMode.ALTERNATE, trigger_type=TriggerType.VIDEO)
    )

    assert word == 0x8000 | 0x0100


# configure_edge_trigger tests


def test_configure_edge_trigger_writes_level_then_word(
    link: RegisterLink, transport: FakeTransport
) -> None:
    """Verify the edge window goes to the source register before the word."""
    transport.queue(OK, OK)

    configure_edge_trigger(link, _trigger(level=50))

    assert transport.commands() == [
        (Address.CH1_TRIGGER_EDGE_LEVEL, struct.pack("<bb", 50, 40)),
        (Address.TRIGGER, b"\x00\x00"),
    ]


def test_configure_edge_trigger_clamped_levels_are_signed_bytes(
    link: RegisterLink, transport: FakeTransport
) -> None:
    """Verify clamped negative levels are written as signed 8-bit values."""
    transport.queue(OK, OK)

    configure_edge_trigger(
        link, _trigger(source=TriggerSource.CH2, slope=TriggerSlope.FALLING, level=-200)
    )

    assert transport.commands() == [
        (Address.CH2_TRIGGER_EDGE_LEVEL, b"\x8a\x80"),
        (Address.TRIGGER, struct.pack("<H", 0x3000)),
    ]


def test_configure_edge_trigger_aborts_when_level_refused(
    link: RegisterLink, transport: FakeTransport
) -> None:
    """Verify the trigger word is not written after a refused level write."""
    transport.queue(status(0x45))

    with pytest.raises(UnexpectedResponse) as info:
        configure_edge_trigger(link, _trigger(source=TriggerSource.EXTERNAL))

    assert info.value.address == Address.EXT_TRIGGER_EDGE_LEVEL
    assert len(transport.writes) == 1
