"""
Base Transport

Abstract byte-level transport between the agent and the scanner.
"""

from abc import ABC, abstractmethod
from typing import Optional


class BaseTransport(ABC):
    """
    Abstract base class for scanner transport layers.

    Implementations must surface a lost device as an exception from
    ``read_chunk``/``write`` so the link can report a disconnect.
    """

    def __init__(self):
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Check if the transport is connected."""
        return self._connected

    @abstractmethod
    async def connect(self) -> None:
        """
        Open the connection.

        Raises:
            TransportError: if the device cannot be opened
        """
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection. Safe to call when already closed."""
        ...

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """
        Write bytes to the device.

        Raises:
            TransportError: if the device went away
        """
        ...

    @abstractmethod
    async def read_chunk(self) -> Optional[bytes]:
        """
        Wait up to one inactivity window for incoming bytes.

        Returns:
            The bytes read, or None if the line stayed quiet

        Raises:
            TransportError: if the device went away
        """
        ...


class TransportError(IOError):
    """The underlying device could not be opened, read or written."""


__all__ = ["BaseTransport", "TransportError"]
