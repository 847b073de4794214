"""Tests for ScannerLink: framing, echo filtering, feedback and disconnects."""

import asyncio
import io

import aiohttp
import pytest
from aiohttp.test_utils import unused_port

from barcode_agent.core.scanner import FeedbackPattern, LinkEvent, LinkEventType, ScannerLink, ScannerMode
from barcode_agent.core.scanner.protocol import LED_COMMAND, LED_DATA
from barcode_agent.core.scanner.transports import SerialTransport
from tests.infrastructure.mocks.serial_mocks import MockSerialFactory

FRAME_INTERVAL = 0.02


async def next_event(events: asyncio.Queue, timeout: float = 2.0) -> LinkEvent:
    return await asyncio.wait_for(events.get(), timeout)


def make_link(events, factory) -> ScannerLink:
    return ScannerLink(
        events,
        ScannerMode.HARDWARE,
        frame_interval=FRAME_INTERVAL,
        transport_factory=lambda path: SerialTransport(
            path, read_timeout=FRAME_INTERVAL, serial_factory=factory,
        ),
    )


class TestOpenClose:

    @pytest.mark.asyncio
    async def test_open_publishes_connected(self, mock_serial_factory):
        events = asyncio.Queue()
        link = make_link(events, mock_serial_factory)

        assert await link.open("/dev/ttyACM1") is True

        assert (await next_event(events)).type is LinkEventType.CONNECTED
        assert link.is_connected
        assert mock_serial_factory.opened_ports == ["/dev/ttyACM1"]
        await link.close()

    @pytest.mark.asyncio
    async def test_failed_open_publishes_error(self, mock_scanner):
        events = asyncio.Queue()
        link = make_link(events, MockSerialFactory(mock_scanner, open_failures=1))

        assert await link.open("/dev/ttyACM0") is False

        event = await next_event(events)
        assert event.type is LinkEventType.ERROR
        assert "ttyACM0" in str(event.error)
        assert not link.is_connected

    @pytest.mark.asyncio
    async def test_close_publishes_disconnected_once(self, mock_serial_factory):
        events = asyncio.Queue()
        link = make_link(events, mock_serial_factory)
        await link.open("/dev/ttyACM0")
        await next_event(events)

        await link.close()
        await link.close()

        assert (await next_event(events)).type is LinkEventType.DISCONNECTED
        assert events.empty()

    @pytest.mark.asyncio
    async def test_close_without_open_is_silent(self, mock_serial_factory):
        events = asyncio.Queue()
        link = make_link(events, mock_serial_factory)

        await link.close()

        assert events.empty()


class TestFraming:

    @pytest.mark.asyncio
    async def test_split_read_emits_single_barcode(self, mock_scanner, mock_serial_factory):
        events = asyncio.Queue()
        link = make_link(events, mock_serial_factory)
        await link.open("/dev/ttyACM0")
        await next_event(events)

        mock_scanner.queue_chunks(b"49123", b"45678901")

        event = await next_event(events)
        assert event == LinkEvent.scanned("4912345678901")
        await asyncio.sleep(FRAME_INTERVAL * 3)
        assert events.empty()
        await link.close()

    @pytest.mark.asyncio
    async def test_led_echo_is_discarded(self, mock_scanner, mock_serial_factory):
        events = asyncio.Queue()
        link = make_link(events, mock_serial_factory)
        await link.open("/dev/ttyACM0")
        await next_event(events)

        mock_scanner.queue_chunks(LED_COMMAND + LED_DATA)
        await asyncio.sleep(FRAME_INTERVAL * 5)
        mock_scanner.queue_chunks(b"123\r\n")

        assert await next_event(events) == LinkEvent.scanned("123")
        await link.close()

    @pytest.mark.asyncio
    async def test_whitespace_frame_ignored(self, mock_scanner, mock_serial_factory):
        events = asyncio.Queue()
        link = make_link(events, mock_serial_factory)
        await link.open("/dev/ttyACM0")
        await next_event(events)

        mock_scanner.queue_chunks(b"\r\n")
        await asyncio.sleep(FRAME_INTERVAL * 5)

        assert events.empty()
        await link.close()


class TestDisconnect:

    @pytest.mark.asyncio
    async def test_read_error_publishes_disconnected(self, mock_scanner, mock_serial_factory):
        events = asyncio.Queue()
        link = make_link(events, mock_serial_factory)
        await link.open("/dev/ttyACM0")
        await next_event(events)

        mock_scanner.fail_reads = True

        assert (await next_event(events)).type is LinkEventType.DISCONNECTED
        assert not link.is_connected
        assert not mock_scanner.is_open

        await link.close()
        assert events.empty()

    @pytest.mark.asyncio
    async def test_reopen_after_disconnect(self, mock_scanner, mock_serial_factory):
        events = asyncio.Queue()
        link = make_link(events, mock_serial_factory)
        await link.open("/dev/ttyACM0")
        mock_scanner.fail_reads = True
        await next_event(events)
        await next_event(events)
        await asyncio.sleep(FRAME_INTERVAL * 3)

        mock_scanner.fail_reads = False
        assert await link.open("/dev/ttyACM0") is True

        assert (await next_event(events)).type is LinkEventType.CONNECTED
        await link.close()


class TestFeedback:

    @pytest.mark.asyncio
    async def test_feedback_writes_command_then_marker(self, mock_scanner, mock_serial_factory):
        events = asyncio.Queue()
        link = make_link(events, mock_serial_factory)
        await link.open("/dev/ttyACM0")

        for pattern in FeedbackPattern:
            mock_scanner.clear_write_log()
            assert await link.send_feedback(pattern) is True
            assert mock_scanner.get_write_log() == [bytes([0x16, 0x4D, 0x0D]), b"AISGDT10."]
        await link.close()

    @pytest.mark.asyncio
    async def test_feedback_when_not_connected(self, mock_scanner, mock_serial_factory):
        link = make_link(asyncio.Queue(), mock_serial_factory)

        assert await link.send_feedback(FeedbackPattern.SUCCESS) is False
        assert mock_scanner.get_write_log() == []

    @pytest.mark.asyncio
    async def test_write_failure_reports_disconnect(self, mock_scanner, mock_serial_factory):
        events = asyncio.Queue()
        link = make_link(events, mock_serial_factory)
        await link.open("/dev/ttyACM0")
        await next_event(events)
        mock_scanner.fail_writes = True

        assert await link.send_feedback(FeedbackPattern.ERROR) is False

        assert (await next_event(events)).type is LinkEventType.DISCONNECTED
        assert not link.is_connected


class TestSubstituteModes:

    @pytest.mark.asyncio
    async def test_stdin_mode(self):
        events = asyncio.Queue()
        link = ScannerLink(events, ScannerMode.STDIN, stdin=io.StringIO("111\n\n  222 \n"))

        assert await link.open("/dev/ignored") is True

        assert (await next_event(events)).type is LinkEventType.CONNECTED
        assert await next_event(events) == LinkEvent.scanned("111")
        assert await next_event(events) == LinkEvent.scanned("222")
        assert await link.send_feedback(FeedbackPattern.SUCCESS) is False
        await link.close()

    @pytest.mark.asyncio
    async def test_http_mode(self):
        events = asyncio.Queue()
        port = unused_port()
        link = ScannerLink(events, ScannerMode.HTTP, http_host="127.0.0.1", http_port=port)

        assert await link.open("/dev/ignored") is True
        assert (await next_event(events)).type is LinkEventType.CONNECTED

        try:
            async with aiohttp.ClientSession() as client:
                async with client.post(f"http://127.0.0.1:{port}/scan", json={"barcode": "777"}) as resp:
                    assert resp.status == 200
                    assert await resp.json() == {"success": True}

            assert await next_event(events) == LinkEvent.scanned("777")
            assert await link.send_feedback(FeedbackPattern.WARNING) is False
        finally:
            await link.close()

        assert (await next_event(events)).type is LinkEventType.DISCONNECTED
