"""Device session: sequences the protocol into the legal lifecycle."""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable, Sequence
from types import TracebackType

from usbscope import acquisition, configuration, firmware
from usbscope.calibration import FLASH_SIZE, CalibrationTable, load_calibration
from usbscope.command import DEVICE_TYPE, STATUS_RESPONSE_SIZE, decode_status
from usbscope.errors import (
    DeviceIdentityMismatch,
    PreconditionViolation,
    ScopeError,
    SessionClosed,
)
from usbscope.link import RegisterLink
from usbscope.options import Channel, ChannelOptions, EdgeTriggerOptions, Timebase
from usbscope.registers import Address
from usbscope.sample_frame import SampleFrame
from usbscope.transport import USB_CONFIGURATION, USB_INTERFACE, Transport

logger = logging.getLogger(__name__)


class SessionStage(enum.Enum):
    DISCONNECTED = "disconnected"
    OPENED = "opened"
    CALIBRATED = "calibrated"
    FIRMWARE_LOADED = "firmware loaded"
    CONFIGURED = "configured"
    SAMPLING = "sampling"
    CLOSED = "closed"

    def __str__(self) -> str:
        return self.value


class Session:
    """One oscilloscope behind one transport.

    Stages only move forward: open(), load_calibration(), load_firmware(),
    configure(), then sample_continuously() or fetch_frame(). Calling an
    operation in the wrong stage raises PreconditionViolation; after close()
    every operation raises SessionClosed.

    All operations are serialized by a lock. sample_continuously() keeps the
    lock for the whole run, so other threads (close() included) wait until
    its stop predicate ends it.
    """

    def __init__(self, transport: Transport) -> None:
        self._transport = transport
        self._lock = threading.RLock()
        self._stage = SessionStage.DISCONNECTED
        self._link: RegisterLink | None = None
        self._calibration: CalibrationTable | None = None
        self._firmware_version = ""
        self._serial_number = ""
        self._armed = False

    def __enter__(self) -> Session:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def stage(self) -> SessionStage:
        return self._stage

    @property
    def calibration(self) -> CalibrationTable | None:
        return self._calibration

    @property
    def firmware_version(self) -> str:
        return self._firmware_version

    @property
    def serial_number(self) -> str:
        return self._serial_number

    def _require(self, operation: str, *stages: SessionStage) -> RegisterLink:
        if self._stage == SessionStage.CLOSED:
            raise SessionClosed(f"Cannot {operation}: session is closed")
        if self._stage not in stages:
            raise PreconditionViolation(operation, self._stage)
        if self._link is None:
            raise SessionClosed(f"Cannot {operation}: device link is not open")
        return self._link

    def _advance(self, stage: SessionStage) -> None:
        logger.info("Session %s -> %s", self._stage, stage)
        self._stage = stage

    def open(self) -> None:
        """Open the transport, claim the interface and check the device type.

        Raises:
            DeviceIdentityMismatch: If the device is not the expected model;
                the session is closed
            TransportError: If the transport cannot be opened; the session
                is closed
        """
        with self._lock:
            if self._stage == SessionStage.CLOSED:
                raise SessionClosed("Cannot open: session is closed")
            if self._stage != SessionStage.DISCONNECTED:
                raise PreconditionViolation("open", self._stage)

            try:
                self._transport.open()
                self._transport.select_configuration(USB_CONFIGURATION)
                self._transport.claim_interface(USB_INTERFACE)
                endpoints = self._transport.list_endpoints()
                link = RegisterLink(self._transport, endpoints)

                response = link.query(
                    Address.DEVICE_TYPE, bytes([DEVICE_TYPE]), STATUS_RESPONSE_SIZE
                )
                device_type = decode_status(response)
                if device_type != DEVICE_TYPE:
                    raise DeviceIdentityMismatch(DEVICE_TYPE, device_type)
            except ScopeError:
                self._shutdown()
                raise

            self._link = link
            self._advance(SessionStage.OPENED)

    def load_calibration(self) -> CalibrationTable:
        """Read the flash dump and build the calibration table."""
        with self._lock:
            link = self._require("load calibration", SessionStage.OPENED)
            dump = link.query(Address.READ_FLASH, bytes([0x01]), FLASH_SIZE)
            info = load_calibration(dump)

            self._calibration = info.calibration
            self._firmware_version = info.firmware_version
            self._serial_number = info.serial_number
            self._advance(SessionStage.CALIBRATED)
            return info.calibration

    def load_firmware(self, image: bytes, force: bool = False) -> int:
        """Upload the front-end firmware unless it is already loaded.

        A failed upload leaves the session calibrated; the whole image must
        be uploaded again.

        Args:
            image: FPGA bitstream
            force: Upload even when the device reports a loaded bitstream

        Returns:
            Number of frames sent (0 when the upload was skipped)
        """
        with self._lock:
            link = self._require("load firmware", SessionStage.CALIBRATED)
            if not force and firmware.firmware_loaded(link):
                logger.info("Firmware already loaded, skipping upload")
                frames = 0
            else:
                frames = firmware.upload_firmware(link, image)
            self._advance(SessionStage.FIRMWARE_LOADED)
            return frames

    def configure(
        self,
        channels: Sequence[ChannelOptions],
        timebase: Timebase,
        trigger: EdgeTriggerOptions,
    ) -> None:
        """Apply phase fine, channel, timebase and trigger settings in order.

        May be called again once configured to change settings.
        """
        with self._lock:
            link = self._require(
                "configure", SessionStage.FIRMWARE_LOADED, SessionStage.CONFIGURED
            )

            configuration.configure_phase_fine(link)
            for options in channels:
                configuration.configure_channel(link, self._calibration, options)
            configuration.configure_timebase(link, timebase)
            configuration.configure_edge_trigger(link, trigger)

            self._armed = False
            if self._stage != SessionStage.CONFIGURED:
                self._advance(SessionStage.CONFIGURED)

    def set_channels_on(self, channels: list[Channel]) -> None:
        """Write the channel-on mask of a configured device."""
        with self._lock:
            link = self._require("switch channels", SessionStage.CONFIGURED)
            configuration.set_channels_on(link, channels)

    def fetch_frame(self) -> SampleFrame:
        """Acquire a single frame, arming the device first if needed."""
        with self._lock:
            link = self._require("fetch a frame", SessionStage.CONFIGURED)
            try:
                if not self._armed:
                    acquisition.arm(link)
                    self._armed = True
                return acquisition.fetch_frame(link)
            except ScopeError:
                self._shutdown()
                raise

    def sample_continuously(
        self,
        on_sample: Callable[[list[float]], None],
        should_stop: Callable[[], bool] | None = None,
        max_cycles: int | None = None,
    ) -> int:
        """Run the acquisition loop until should_stop() or max_cycles.

        A refused register write or a transport failure is fatal to the
        session: the transport is closed and the error propagates.

        Returns:
            Number of completed cycles
        """
        with self._lock:
            link = self._require("start sampling", SessionStage.CONFIGURED)
            self._advance(SessionStage.SAMPLING)
            try:
                cycles = acquisition.sample_continuously(
                    link, on_sample, should_stop, max_cycles
                )
            except ScopeError:
                self._shutdown()
                raise
            finally:
                if self._stage == SessionStage.SAMPLING:
                    self._armed = True
                    self._advance(SessionStage.CONFIGURED)
            return cycles

    def _shutdown(self) -> None:
        try:
            self._transport.close()
        except ScopeError:
            logger.exception("Closing transport failed")
        finally:
            self._link = None
            self._advance(SessionStage.CLOSED)

    def close(self) -> None:
        """Close the transport. Irreversible; safe to call more than once."""
        with self._lock:
            if self._stage == SessionStage.CLOSED:
                return
            try:
                self._transport.close()
            finally:
                self._link = None
                self._advance(SessionStage.CLOSED)
