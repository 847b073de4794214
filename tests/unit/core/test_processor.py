"""Tests for the single-flight barcode processor."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from barcode_agent.core.backend import BackendSession
from barcode_agent.core.backend.models import BarcodeResponse
from barcode_agent.core.errors import BackendUnavailableError
from barcode_agent.core.processor import BarcodeProcessor, classify_error
from barcode_agent.core.scanner import FeedbackPattern
from tests.infrastructure.mocks.backend_mocks import serve_backend


def feedback_patterns(link):
    return [call.args[0] for call in link.send_feedback.await_args_list]


class TestOutcomes:

    @pytest.mark.asyncio
    async def test_success(self, mock_session, mock_link):
        mock_session.submit_barcode.return_value = BarcodeResponse(success=True, tts_message="Milk added")
        processor = BarcodeProcessor(mock_session, mock_link)

        result = await processor.process("4912345678901")

        assert result.success is True
        assert result.feedback_message == "Milk added"
        assert feedback_patterns(mock_link) == [FeedbackPattern.PROCESSING, FeedbackPattern.SUCCESS]
        mock_session.submit_barcode.assert_awaited_once_with("4912345678901")
        assert processor.is_busy is False

    @pytest.mark.asyncio
    async def test_not_found_is_warning(self, mock_session, mock_link):
        mock_session.submit_barcode.return_value = BarcodeResponse(success=False, error="not found")
        processor = BarcodeProcessor(mock_session, mock_link)

        result = await processor.process("000")

        assert result.success is False
        assert result.error == "not found"
        assert feedback_patterns(mock_link) == [FeedbackPattern.PROCESSING, FeedbackPattern.WARNING]

    @pytest.mark.asyncio
    async def test_other_application_error(self, mock_session, mock_link):
        mock_session.submit_barcode.return_value = BarcodeResponse(
            success=False, error="Inventory locked", tts_message="Try again later",
        )
        processor = BarcodeProcessor(mock_session, mock_link)

        result = await processor.process("000")

        assert result.pattern is FeedbackPattern.ERROR
        assert result.feedback_message == "Try again later"
        assert feedback_patterns(mock_link)[-1] is FeedbackPattern.ERROR

    @pytest.mark.asyncio
    async def test_network_failure_logs_event_and_flashes_error(self, mock_session, mock_link):
        mock_session.submit_barcode.side_effect = BackendUnavailableError("connection refused")
        mock_session.log_event = AsyncMock(side_effect=RuntimeError("event endpoint down"))
        processor = BarcodeProcessor(mock_session, mock_link)

        result = await processor.process("123")
        await asyncio.gather(*processor.pending_tasks, return_exceptions=True)

        assert result.success is False
        assert "connection refused" in result.error
        assert feedback_patterns(mock_link) == [FeedbackPattern.PROCESSING, FeedbackPattern.ERROR]
        mock_session.log_event.assert_awaited_once_with(
            "api_error",
            "Backend API unreachable",
            {"error": "connection refused", "barcode": "123"},
        )
        assert processor.is_busy is False

    @pytest.mark.asyncio
    async def test_unexpected_exception(self, mock_session, mock_link):
        mock_session.submit_barcode.side_effect = KeyError("boom")
        processor = BarcodeProcessor(mock_session, mock_link)

        result = await processor.process("123")

        assert result.success is False
        assert result.pattern is FeedbackPattern.ERROR
        assert feedback_patterns(mock_link)[-1] is FeedbackPattern.ERROR
        assert processor.is_busy is False


class TestSingleFlight:

    @pytest.mark.asyncio
    async def test_second_barcode_dropped_while_busy(self, mock_session, mock_link):
        gate = asyncio.Event()

        async def slow_submit(barcode):
            await gate.wait()
            return BarcodeResponse(success=True)

        mock_session.submit_barcode.side_effect = slow_submit
        processor = BarcodeProcessor(mock_session, mock_link)

        first = processor.handle("A")
        second = processor.handle("B")
        await asyncio.sleep(0)

        assert first is not None
        assert second is None
        assert processor.is_busy

        gate.set()
        result = await first

        assert result.success is True
        assert mock_session.submit_barcode.await_count == 1
        assert processor.is_busy is False

        # Idle again: the next barcode is accepted
        third = processor.handle("C")
        assert third is not None
        await third
        assert mock_session.submit_barcode.await_count == 2

    @pytest.mark.asyncio
    async def test_process_inline_dropped_while_busy(self, mock_session, mock_link):
        gate = asyncio.Event()

        async def slow_submit(barcode):
            await gate.wait()
            return BarcodeResponse(success=True)

        mock_session.submit_barcode.side_effect = slow_submit
        processor = BarcodeProcessor(mock_session, mock_link)

        task = processor.handle("A")
        assert await processor.process("B") is None

        gate.set()
        await task


class TestShutdown:

    @pytest.mark.asyncio
    async def test_close_during_submit_reports_nothing(self, fake_backend, device_context, mock_link):
        fake_backend.barcode_gate = asyncio.Event()

        async with serve_backend(fake_backend) as url:
            session = BackendSession(device_context, url)
            processor = BarcodeProcessor(session, mock_link)

            task = processor.handle("123")
            while fake_backend.barcodes != ["123"]:
                await asyncio.sleep(0.01)
            await session.close()

            result = await asyncio.wait_for(task, timeout=2)
            await asyncio.gather(*processor.pending_tasks)
            fake_backend.barcode_gate.set()

        assert result.success is False
        assert result.pattern is FeedbackPattern.ERROR
        assert fake_backend.events == []
        assert session._http is None

    @pytest.mark.asyncio
    async def test_cancel_pending_abandons_in_flight_barcode(self, mock_session, mock_link):
        gate = asyncio.Event()

        async def stuck_submit(barcode):
            await gate.wait()
            return BarcodeResponse(success=True)

        mock_session.submit_barcode.side_effect = stuck_submit
        processor = BarcodeProcessor(mock_session, mock_link)

        task = processor.handle("A")
        await asyncio.sleep(0)
        await processor.cancel_pending()

        assert task.cancelled()
        assert processor.pending_tasks == set()
        assert processor.is_busy is False
        mock_session.log_event.assert_not_awaited()


class TestClassifyError:

    @pytest.mark.parametrize("error", ["not found", "Item Not Found", "barcode not found in catalog"])
    def test_warning(self, error):
        assert classify_error(error) is FeedbackPattern.WARNING

    @pytest.mark.parametrize("error", [None, "", "Internal error"])
    def test_error(self, error):
        assert classify_error(error) is FeedbackPattern.ERROR
