"""Exceptions raised by the usbscope device-control core."""

from __future__ import annotations


def _hex(value: int | None) -> str:
    return "none" if value is None else f"0x{value:02x}"


class ScopeError(Exception):
    """Base class for all usbscope errors."""


class EncodingError(ScopeError):
    """Raised when an outgoing command frame cannot be encoded."""


class EmptyResponse(ScopeError):
    """Raised when the device answers with zero bytes."""


class UnexpectedResponse(ScopeError):
    """Raised when a response status byte differs from the expected one."""

    def __init__(self, address: int | None, expected: int, actual: int) -> None:
        self.address = address
        self.expected = expected
        self.actual = actual
        where = "" if address is None else f" to register {_hex(address)}"
        super().__init__(
            f"Expected a response of {_hex(expected)}{where}, "
            f"but got {_hex(actual)}"
        )


class ArmFailed(UnexpectedResponse):
    """Raised when a register write of the acquisition arm sequence fails."""


class InvalidFlashHeader(ScopeError):
    """Raised when a flash dump does not start with the flash magic."""


class UnsupportedFlashVersion(ScopeError):
    """Raised when a flash dump carries a layout version we cannot parse."""


class UploadRejected(ScopeError):
    """Raised when the device refuses to start a firmware upload."""


class UploadFrameRejected(ScopeError):
    """Raised when the device does not acknowledge a firmware frame.

    The front-end is left in an unknown programmed state; the whole upload
    has to be restarted.
    """

    def __init__(self, frame_index: int, actual: int) -> None:
        self.frame_index = frame_index
        self.actual = actual
        super().__init__(
            f"Firmware frame {frame_index} rejected with response {_hex(actual)}"
        )


class DeviceIdentityMismatch(ScopeError):
    """Raised when the connected device reports an unexpected device type."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Expected device type to be {_hex(expected)}, but was {_hex(actual)}"
        )


class PreconditionViolation(ScopeError):
    """Raised when an operation is attempted out of lifecycle order."""

    def __init__(self, operation: str, stage: object) -> None:
        self.operation = operation
        self.stage = stage
        super().__init__(f"Cannot {operation} while session is {stage}")


class TransportError(ScopeError):
    """Raised when the underlying transport fails."""


class SessionClosed(ScopeError):
    """Raised for any operation on a closed session."""
