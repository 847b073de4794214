"""
USB Serial Transport

Transport implementation for the USB-serial barcode scanner.
Wraps pyserial with an async interface compatible with BaseTransport.
"""

import asyncio
from typing import Any, Callable, Optional

import serial

from ...logging_utils import get_module_logger
from ..protocol import (
    DEFAULT_BAUDRATE,
    DEFAULT_BYTESIZE,
    DEFAULT_FRAME_INTERVAL,
    DEFAULT_PARITY,
    DEFAULT_STOPBITS,
    DEFAULT_WRITE_TIMEOUT,
)
from .base_transport import BaseTransport, TransportError

logger = get_module_logger("SerialTransport")


class SerialTransport(BaseTransport):
    """
    USB serial transport for the scanner (9600 8N1 by default).

    The pyserial read timeout equals the framing interval, so one
    ``read_chunk`` call blocks at most one inactivity window.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUDRATE,
        read_timeout: float = DEFAULT_FRAME_INTERVAL,
        write_timeout: float = DEFAULT_WRITE_TIMEOUT,
        serial_factory: Callable[..., Any] = serial.Serial,
    ):
        """
        Initialize the serial transport.

        Args:
            port: Serial port path (e.g., '/dev/ttyACM0')
            baudrate: Serial baudrate
            read_timeout: Read operation timeout in seconds
            write_timeout: Write operation timeout in seconds
            serial_factory: Callable building the port object (tests swap this)
        """
        super().__init__()
        self.port = port
        self.baudrate = baudrate
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self._serial_factory = serial_factory
        self._serial: Optional[Any] = None

    @property
    def is_connected(self) -> bool:
        """Check if the serial port is connected and open."""
        return self._serial is not None and self._serial.is_open

    async def connect(self) -> None:
        if self.is_connected:
            logger.warning("Already connected to %s", self.port)
            return

        # The open keeps running in its worker thread if we are cancelled
        opening = asyncio.ensure_future(asyncio.to_thread(self._open_port))
        try:
            self._serial = await asyncio.shield(opening)
        except asyncio.CancelledError:
            opening.add_done_callback(self._close_abandoned)
            raise
        except (serial.SerialException, OSError, ValueError) as e:
            self._serial = None
            self._connected = False
            raise TransportError(f"Failed to open {self.port}: {e}") from e

        self._connected = True
        logger.info("Opened %s at %d baud", self.port, self.baudrate)

    def _open_port(self) -> Any:
        port = self._serial_factory(
            port=self.port,
            baudrate=self.baudrate,
            bytesize=DEFAULT_BYTESIZE,
            parity=DEFAULT_PARITY,
            stopbits=DEFAULT_STOPBITS,
            timeout=self.read_timeout,
            write_timeout=self.write_timeout,
        )
        try:
            port.reset_input_buffer()
        except (serial.SerialException, OSError):
            port.close()
            raise
        return port

    def _close_abandoned(self, opening: "asyncio.Future[Any]") -> None:
        if opening.cancelled() or opening.exception() is not None:
            return
        try:
            opening.result().close()
            logger.info("Closed %s opened after connect was cancelled", self.port)
        except (serial.SerialException, OSError) as e:
            logger.error("Error closing abandoned %s: %s", self.port, e)

    async def disconnect(self) -> None:
        """Close the serial connection."""
        port, self._serial = self._serial, None
        self._connected = False
        if port is None:
            return
        try:
            await asyncio.to_thread(port.close)
            logger.info("Closed %s", self.port)
        except (serial.SerialException, OSError) as e:
            logger.error("Error closing %s: %s", self.port, e)

    async def write(self, data: bytes) -> None:
        if not self.is_connected:
            raise TransportError(f"Cannot write to {self.port}: not connected")

        try:
            await asyncio.to_thread(self._serial.write, data)
            await asyncio.to_thread(self._serial.flush)
        except (serial.SerialException, OSError) as e:
            raise TransportError(f"Write error on {self.port}: {e}") from e
        logger.debug("Wrote to %s: %r", self.port, data)

    async def read_chunk(self) -> Optional[bytes]:
        if not self.is_connected:
            raise TransportError(f"Cannot read from {self.port}: not connected")

        port = self._serial
        try:
            data = await asyncio.to_thread(lambda: port.read(max(1, port.in_waiting)))
        except (serial.SerialException, OSError) as e:
            raise TransportError(f"Read error on {self.port}: {e}") from e
        return data if data else None


__all__ = ["SerialTransport"]
