"""
Substitute barcode sources used when no scanner is attached.

``StdinScanSource`` reads one barcode per line from a text stream.
``HttpScanSource`` runs a small aiohttp listener accepting
``POST /scan`` with ``{"barcode": "..."}``.

Both hand each barcode to an ``on_barcode`` callback on the event loop.
"""

from __future__ import annotations

import asyncio
import sys
import threading
from typing import Callable, Optional, TextIO

from aiohttp import web

from ..logging_utils import get_module_logger
from .protocol import DEFAULT_HTTP_HOST, DEFAULT_HTTP_PORT, HTTP_SCAN_PATH

BarcodeCallback = Callable[[str], None]


class StdinScanSource:
    """Line-oriented barcode source.

    Reads happen on a daemon thread so a blocked ``readline`` never holds up
    interpreter exit. End of file stops the source.
    """

    def __init__(self, on_barcode: BarcodeCallback, stream: Optional[TextIO] = None):
        self.on_barcode = on_barcode
        self.stream = stream if stream is not None else sys.stdin
        self.logger = get_module_logger("StdinScanSource")
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._finished: Optional[asyncio.Event] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    async def start(self) -> None:
        if self.is_running:
            return
        self._loop = asyncio.get_running_loop()
        self._finished = asyncio.Event()
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._read_lines,
            name="stdin-scan-source",
            daemon=True,
        )
        self._thread.start()
        self.logger.info("Reading barcodes from stdin, one per line")

    async def stop(self) -> None:
        self._stop.set()
        self._thread = None

    async def wait_finished(self) -> None:
        """Wait until the stream hits end of file or the source is stopped."""
        if self._finished is not None:
            await self._finished.wait()

    def _read_lines(self) -> None:
        try:
            while not self._stop.is_set():
                line = self.stream.readline()
                if not line:
                    self.logger.info("stdin closed, no more barcodes")
                    break
                barcode = line.strip()
                if barcode and not self._stop.is_set():
                    self._call_soon(self.on_barcode, barcode)
        except (OSError, ValueError) as e:
            self.logger.error("stdin read failed: %s", e)
        finally:
            self._call_soon(self._mark_finished)

    def _mark_finished(self) -> None:
        if self._finished is not None:
            self._finished.set()

    def _call_soon(self, callback: Callable[..., None], *args) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            # loop closed between the check and the call
            pass


class HttpScanSource:
    """HTTP listener that accepts barcodes posted as JSON."""

    def __init__(
        self,
        on_barcode: BarcodeCallback,
        host: str = DEFAULT_HTTP_HOST,
        port: int = DEFAULT_HTTP_PORT,
    ):
        """
        Initialize the listener.

        Args:
            on_barcode: Called with each accepted barcode
            host: Interface to bind
            port: TCP port to bind
        """
        self.on_barcode = on_barcode
        self.host = host
        self.port = port
        self.logger = get_module_logger("HttpScanSource")

        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post(HTTP_SCAN_PATH, self.handle_scan)
        # Anything else, including other methods on /scan, is a plain 404
        app.router.add_route("*", "/{tail:.*}", self.handle_unmatched)
        return app

    async def handle_unmatched(self, request: web.Request) -> web.Response:
        return web.Response(status=404)

    async def handle_scan(self, request: web.Request) -> web.Response:
        try:
            data = await request.json()
        except ValueError as e:
            return web.json_response({"error": str(e)}, status=400)

        barcode = data.get("barcode") if isinstance(data, dict) else None
        if barcode is None or not str(barcode).strip():
            return web.json_response({"error": "No barcode provided"}, status=400)

        barcode = str(barcode).strip()
        self.logger.info("Barcode received over HTTP: %s", barcode)
        self.on_barcode(barcode)
        return web.json_response({"success": True})

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        """Start listening (non-blocking)."""
        if self.is_running:
            self.logger.warning("HTTP scan listener already running")
            return

        runner = web.AppRunner(self.create_app(), access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise

        self._runner, self._site = runner, site
        self.logger.info(
            "Test mode: send barcodes with POST http://%s:%d%s {\"barcode\": \"...\"}",
            self.host, self.port, HTTP_SCAN_PATH,
        )

    async def stop(self) -> None:
        if self._runner is None:
            return
        if self._site:
            await self._site.stop()
            self._site = None
        await self._runner.cleanup()
        self._runner = None
        self.logger.info("HTTP scan listener stopped")


__all__ = ["StdinScanSource", "HttpScanSource"]
