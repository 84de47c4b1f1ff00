"""Half-duplex request/response channel over a claimed transport."""

from __future__ import annotations

import logging

from usbscope.command import (
    AFFIRMATIVE,
    STATUS_RESPONSE_SIZE,
    decode_status,
    encode_command,
)
from usbscope.errors import UnexpectedResponse
from usbscope.registers import register_name
from usbscope.transport import Endpoints, Transport

logger = logging.getLogger(__name__)


class RegisterLink:
    """Sends command frames and reads their responses, one at a time.

    Callers must consume the response of a request before issuing the next
    one; the device has no notion of request ids.
    """

    def __init__(self, transport: Transport, endpoints: Endpoints) -> None:
        self._transport = transport
        self._endpoints = endpoints

    def send(self, address: int, payload: bytes) -> None:
        """Send one command frame without reading a response."""
        frame = encode_command(address, payload)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("-> %s %s", register_name(address), payload.hex())
        self._transport.write(self._endpoints.outbound, frame)

    def write_raw(self, data: bytes) -> None:
        """Write bytes that are not a command frame (firmware data)."""
        self._transport.write(self._endpoints.outbound, data)

    def receive(self, length: int) -> bytes:
        data = self._transport.read(self._endpoints.inbound, length)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("<- %d bytes %s", len(data), data[:STATUS_RESPONSE_SIZE].hex())
        return data

    def expect(
        self,
        expected: int,
        address: int | None = None,
        length: int = STATUS_RESPONSE_SIZE,
    ) -> bytes:
        """Read a response and require its status byte.

        Args:
            expected: Required status byte
            address: Register the response belongs to, for error reporting
            length: Maximum response length to read

        Returns:
            The full response

        Raises:
            UnexpectedResponse: If the status byte differs
        """
        response = self.receive(length)
        actual = decode_status(response)
        if actual != expected:
            raise UnexpectedResponse(address, expected, actual)
        return response

    def query(self, address: int, payload: bytes, length: int) -> bytes:
        """Send a command and return its raw response."""
        self.send(address, payload)
        return self.receive(length)

    def write_register(self, address: int, payload: bytes) -> None:
        """Write a register and require the affirmative response."""
        self.send(address, payload)
        self.expect(AFFIRMATIVE, address)
