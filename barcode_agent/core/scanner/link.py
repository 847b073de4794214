"""
Scanner Link - owns the connection to the barcode source.

Publishes ``LinkEvent``s onto the queue it was constructed with:

- ``connected`` once per successful ``open``
- ``disconnected`` once per close or lost port (never without a prior connect)
- ``barcode`` per decoded, non-echo frame
- ``error`` when ``open`` fails

In hardware mode bytes are framed by inactivity gap and LED feedback is
written to the port. In ``stdin``/``http`` mode a substitute source feeds
barcodes directly and feedback is a logged no-op.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional, TextIO

from ..asyncio_utils import cancel_tasks, create_logged_task
from ..logging_utils import get_module_logger
from .events import LinkEvent
from .framing import InterByteFramer, decode_frame, is_led_echo
from .protocol import (
    DEFAULT_BAUDRATE,
    DEFAULT_FRAME_INTERVAL,
    DEFAULT_HTTP_HOST,
    DEFAULT_HTTP_PORT,
    LED_COMMAND,
    LED_DATA,
    FeedbackPattern,
    ScannerMode,
)
from .sources import HttpScanSource, StdinScanSource
from .transports import BaseTransport, SerialTransport, TransportError

TransportFactory = Callable[[str], BaseTransport]


class ScannerLink:
    """Connection to a single scanner (or its test substitute)."""

    def __init__(
        self,
        events: asyncio.Queue,
        mode: ScannerMode = ScannerMode.HARDWARE,
        *,
        baudrate: int = DEFAULT_BAUDRATE,
        frame_interval: float = DEFAULT_FRAME_INTERVAL,
        http_host: str = DEFAULT_HTTP_HOST,
        http_port: int = DEFAULT_HTTP_PORT,
        transport_factory: Optional[TransportFactory] = None,
        stdin: Optional[TextIO] = None,
    ):
        self.events = events
        self.mode = mode
        self.baudrate = baudrate
        self.frame_interval = frame_interval
        self.http_host = http_host
        self.http_port = http_port
        self.logger = get_module_logger("ScannerLink")

        self._transport_factory = transport_factory or self._default_transport
        self._stdin = stdin
        self._framer = InterByteFramer(frame_interval)
        self._transport: Optional[BaseTransport] = None
        self._source = None
        self._read_task: Optional[asyncio.Task] = None
        self._connected = False
        self.device_path: Optional[str] = None

    def _default_transport(self, path: str) -> BaseTransport:
        return SerialTransport(path, baudrate=self.baudrate, read_timeout=self.frame_interval)

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _publish(self, event: LinkEvent) -> None:
        self.events.put_nowait(event)

    # =========================================================================
    # Open / close
    # =========================================================================

    async def open(self, path: str) -> bool:
        """
        Connect to the scanner at ``path`` (ignored in substitute modes).

        Returns:
            True if connected; on failure an ``error`` event has been published
        """
        if self._connected:
            self.logger.warning("Scanner already connected on %s", self.device_path)
            return True

        self.device_path = path
        if self.mode.is_substitute:
            return await self._open_substitute()
        return await self._open_serial(path)

    async def _open_serial(self, path: str) -> bool:
        self.logger.info("Connecting to scanner at %s", path)
        transport = self._transport_factory(path)
        try:
            await transport.connect()
        except TransportError as e:
            self.logger.error("Failed to open scanner at %s: %s", path, e)
            self._publish(LinkEvent.failed(e))
            return False

        self._transport = transport
        self._framer.reset()
        self._connected = True
        self.logger.info("Scanner connected")
        self._publish(LinkEvent.connected())
        self._read_task = create_logged_task(
            self._read_loop(transport),
            logger=self.logger,
            context="scanner-read-loop",
        )
        return True

    async def _open_substitute(self) -> bool:
        if self.mode is ScannerMode.STDIN:
            source = StdinScanSource(self._on_substitute_barcode, stream=self._stdin)
        else:
            source = HttpScanSource(self._on_substitute_barcode, host=self.http_host, port=self.http_port)

        try:
            await source.start()
        except OSError as e:
            self.logger.error("Failed to start %s test source: %s", self.mode.value, e)
            self._publish(LinkEvent.failed(e))
            return False

        self._source = source
        self._connected = True
        self.logger.info("Test mode (%s): scanner simulated", self.mode.value)
        self._publish(LinkEvent.connected())
        return True

    async def close(self) -> None:
        """Close the connection; publishes ``disconnected`` if it was open."""
        was_connected = self._connected
        self._connected = False

        task, self._read_task = self._read_task, None
        await cancel_tasks([task])
        await self._release()

        if was_connected:
            self.logger.info("Scanner disconnected")
            self._publish(LinkEvent.disconnected())

    async def _release(self) -> None:
        self._framer.reset()
        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.disconnect()
        source, self._source = self._source, None
        if source is not None:
            await source.stop()

    async def _connection_lost(self, error: BaseException) -> None:
        if not self._connected:
            return
        self._connected = False
        self.logger.warning("Scanner connection lost: %s", error)
        self._publish(LinkEvent.disconnected())

        task, self._read_task = self._read_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        await self._release()

    # =========================================================================
    # Inbound
    # =========================================================================

    async def _read_loop(self, transport: BaseTransport) -> None:
        self.logger.debug("Read loop started for %s", self.device_path)
        try:
            while True:
                try:
                    chunk = await transport.read_chunk()
                except TransportError as e:
                    await self._connection_lost(e)
                    return

                if chunk:
                    self._framer.feed(chunk)
                    continue

                frame = self._framer.poll()
                if frame is not None:
                    self._dispatch_frame(frame)
        except asyncio.CancelledError:
            self.logger.debug("Read loop cancelled")
            raise

    def _dispatch_frame(self, frame: bytes) -> None:
        text = decode_frame(frame)
        if not text:
            return
        if is_led_echo(text):
            self.logger.debug("Ignoring LED command echo: %r", text)
            return
        self.logger.info("Barcode scanned: %s", text)
        self._publish(LinkEvent.scanned(text))

    def _on_substitute_barcode(self, barcode: str) -> None:
        if not self._connected:
            return
        self.logger.info("Barcode scanned (test mode): %s", barcode)
        self._publish(LinkEvent.scanned(barcode))

    # =========================================================================
    # Outbound
    # =========================================================================

    async def send_feedback(self, pattern: FeedbackPattern) -> bool:
        """
        Flash the scanner LED. All patterns share the same wire command.

        Never raises; a write failure is treated as a lost port.

        Returns:
            True if the command was written
        """
        if self.mode.is_substitute:
            self.logger.debug("Feedback '%s' skipped in %s test mode", pattern.value, self.mode.value)
            return False

        transport = self._transport
        if not self._connected or transport is None:
            self.logger.debug("Feedback '%s' skipped: scanner not connected", pattern.value)
            return False

        try:
            await transport.write(LED_COMMAND)
            await transport.write(LED_DATA)
        except TransportError as e:
            self.logger.error("Failed to send LED feedback: %s", e)
            await self._connection_lost(e)
            return False

        self.logger.debug("LED feedback sent: %s", pattern.value)
        return True


__all__ = ["ScannerLink"]
