"""
Inter-byte timeout framing.

The scanner sends a barcode as a burst of bytes with no terminator. A frame
is complete once the line has been silent for ``interval`` seconds.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from .protocol import DEFAULT_FRAME_INTERVAL, LED_ECHO_SIGNATURE


class InterByteFramer:
    """Accumulates bytes and releases them as a frame after a quiet gap."""

    def __init__(
        self,
        interval: float = DEFAULT_FRAME_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.interval = interval
        self._clock = clock
        self._buffer = bytearray()
        self._last_byte_at: Optional[float] = None

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet released."""
        return len(self._buffer)

    def feed(self, data: bytes) -> None:
        if not data:
            return
        self._buffer.extend(data)
        self._last_byte_at = self._clock()

    def poll(self) -> Optional[bytes]:
        """Return the buffered frame if the line has been idle long enough."""
        if not self._buffer or self._last_byte_at is None:
            return None
        if self._clock() - self._last_byte_at < self.interval:
            return None
        return self._take()

    def reset(self) -> None:
        """Drop any partial frame (e.g. after the port went away)."""
        self._buffer.clear()
        self._last_byte_at = None

    def _take(self) -> bytes:
        frame = bytes(self._buffer)
        self.reset()
        return frame


def decode_frame(frame: bytes) -> str:
    """Decode a raw frame to trimmed text."""
    return frame.decode('utf-8', errors='replace').strip()


def is_led_echo(text: str) -> bool:
    """True for the scanner's acknowledgement of an LED command."""
    return LED_ECHO_SIGNATURE in text


__all__ = ["InterByteFramer", "decode_frame", "is_led_echo"]
