"""Shared test fixtures for usbscope tests."""

import pytest
from fakes import FakeTransport, make_flash_dump

from usbscope.calibration import CalibrationTable, load_calibration
from usbscope.link import RegisterLink


@pytest.fixture
def transport() -> FakeTransport:
    """Provide a scripted fake transport."""
    return FakeTransport()


@pytest.fixture
def link(transport: FakeTransport) -> RegisterLink:
    """Provide a register link over the fake transport."""
    return RegisterLink(transport, transport.endpoints)


@pytest.fixture
def calibration() -> CalibrationTable:
    """Provide a calibration table parsed from make_flash_dump()."""
    return load_calibration(make_flash_dump()).calibration
