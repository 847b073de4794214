"""Byte transports for the scanner link."""

from .base_transport import BaseTransport, TransportError
from .serial_transport import SerialTransport

__all__ = ["BaseTransport", "SerialTransport", "TransportError"]
