"""Bulk transport interface and its pyusb implementation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import usb.core
import usb.util

from usbscope.errors import TransportError

if TYPE_CHECKING:
    from usb.core import Device

logger = logging.getLogger(__name__)

USB_VENDOR_ID = 0x5345
USB_PRODUCT_ID = 0x1234
USB_CONFIGURATION = 1
USB_INTERFACE = 0
USB_TIMEOUT_MS = 1000

DEVICE_FILTER = {"idVendor": USB_VENDOR_ID, "idProduct": USB_PRODUCT_ID}


@dataclass(frozen=True)
class Endpoints:
    """Bulk endpoint addresses of the claimed interface."""

    inbound: int
    outbound: int


class Transport(Protocol):
    """Protocol defining the raw link the device-control core runs over."""

    def open(self) -> None:
        """Open the device."""
        ...

    def select_configuration(self, configuration: int) -> None:
        """Select the active device configuration."""
        ...

    def claim_interface(self, interface: int) -> None:
        """Claim an interface of the active configuration."""
        ...

    def list_endpoints(self) -> Endpoints:
        """Return the bulk in/out endpoints of the claimed interface."""
        ...

    def write(self, endpoint: int, data: bytes) -> None:
        """Write bytes; returns once the link has accepted them."""
        ...

    def read(self, endpoint: int, max_length: int) -> bytes:
        """Block until a response of up to max_length bytes arrives."""
        ...

    def close(self) -> None:
        """Release the device."""
        ...


class UsbTransport:
    """Transport over libusb using pyusb."""

    def __init__(
        self,
        vendor_id: int = USB_VENDOR_ID,
        product_id: int = USB_PRODUCT_ID,
        timeout_ms: int = USB_TIMEOUT_MS,
        device: Device | None = None,
    ) -> None:
        """Initialize without touching the bus.

        Args:
            vendor_id: USB vendor id to look for on open()
            product_id: USB product id to look for on open()
            timeout_ms: Timeout applied to every bulk read and write
            device: Already located pyusb device (skips the bus lookup)
        """
        self._vendor_id = vendor_id
        self._product_id = product_id
        self._timeout_ms = timeout_ms
        self._device = device
        self._interface: int | None = None

    def _require_device(self) -> Device:
        if self._device is None:
            raise TransportError("USB device is not open")
        return self._device

    def open(self) -> None:
        if self._device is None:
            try:
                self._device = usb.core.find(
                    idVendor=self._vendor_id, idProduct=self._product_id
                )
            except (usb.core.USBError, usb.core.NoBackendError) as ex:
                raise TransportError(f"USB lookup failed: {ex}") from ex
            if self._device is None:
                raise TransportError(
                    f"USB device {self._vendor_id:04X}:{self._product_id:04X} "
                    "not found"
                )
        logger.debug("Opened USB device %s", self._device)

    def select_configuration(self, configuration: int) -> None:
        device = self._require_device()
        try:
            device.set_configuration(configuration)
        except usb.core.USBError as ex:
            raise TransportError(
                f"Selecting configuration {configuration} failed: {ex}"
            ) from ex

    def claim_interface(self, interface: int) -> None:
        device = self._require_device()
        try:
            usb.util.claim_interface(device, interface)
        except usb.core.USBError as ex:
            raise TransportError(f"Claiming interface {interface} failed: {ex}") from ex
        self._interface = interface

    def list_endpoints(self) -> Endpoints:
        device = self._require_device()
        interface = USB_INTERFACE if self._interface is None else self._interface
        try:
            intf = device.get_active_configuration()[(interface, 0)]
        except usb.core.USBError as ex:
            raise TransportError(f"Reading interface descriptor failed: {ex}") from ex

        inbound = usb.util.find_descriptor(
            intf,
            custom_match=lambda ep: usb.util.endpoint_direction(ep.bEndpointAddress)
            == usb.util.ENDPOINT_IN,
        )
        outbound = usb.util.find_descriptor(
            intf,
            custom_match=lambda ep: usb.util.endpoint_direction(ep.bEndpointAddress)
            == usb.util.ENDPOINT_OUT,
        )
        if inbound is None or outbound is None:
            raise TransportError("The device is missing a bulk in or out endpoint")
        return Endpoints(
            inbound=inbound.bEndpointAddress, outbound=outbound.bEndpointAddress
        )

    def write(self, endpoint: int, data: bytes) -> None:
        device = self._require_device()
        try:
            device.write(endpoint, data, self._timeout_ms)
        except usb.core.USBError as ex:
            raise TransportError(f"Bulk write to 0x{endpoint:02x} failed: {ex}") from ex

    def read(self, endpoint: int, max_length: int) -> bytes:
        device = self._require_device()
        try:
            return bytes(device.read(endpoint, max_length, self._timeout_ms))
        except usb.core.USBError as ex:
            raise TransportError(f"Bulk read from 0x{endpoint:02x} failed: {ex}") from ex

    def close(self) -> None:
        if self._device is None:
            return
        try:
            if self._interface is not None:
                usb.util.release_interface(self._device, self._interface)
            usb.util.dispose_resources(self._device)
        except usb.core.USBError as ex:
            raise TransportError(f"Releasing USB device failed: {ex}") from ex
        finally:
            self._device = None
            self._interface = None
