"""
Barcode Processor - single-flight pipeline from scan to LED feedback.

One barcode is processed at a time. A barcode arriving while another is in
flight is dropped with a warning, never queued.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional, Set

from .asyncio_utils import cancel_tasks, create_logged_task
from .backend import BackendSession
from .errors import BackendUnavailableError
from .logging_utils import get_module_logger
from .scanner import FeedbackPattern, ScannerLink

logger = get_module_logger("BarcodeProcessor")

API_ERROR_EVENT = "api_error"
API_ERROR_MESSAGE = "Backend API unreachable"


@dataclass(frozen=True)
class ProcessingResult:
    success: bool
    error: Optional[str] = None
    feedback_message: Optional[str] = None
    pattern: FeedbackPattern = FeedbackPattern.SUCCESS


def classify_error(error: Optional[str]) -> FeedbackPattern:
    """Unknown items get the softer warning pattern; everything else is an error."""
    if error and "not found" in error.lower():
        return FeedbackPattern.WARNING
    return FeedbackPattern.ERROR


class BarcodeProcessor:
    """Submits barcodes to the backend and reports the outcome on the scanner."""

    def __init__(self, session: BackendSession, link: ScannerLink):
        self.session = session
        self.link = link
        self._busy = False
        self.pending_tasks: Set[asyncio.Task] = set()
        self.last_result: Optional[ProcessingResult] = None

    @property
    def is_busy(self) -> bool:
        return self._busy

    def handle(self, barcode: str) -> Optional[asyncio.Task]:
        """
        Start processing ``barcode`` in the background.

        The busy check and claim happen before any await, so two events
        dispatched back to back can never both get through.

        Returns:
            The processing task, or None if the barcode was dropped
        """
        if not self._claim(barcode):
            return None
        return create_logged_task(
            self._run_claimed(barcode),
            logger=logger,
            context=f"process-barcode-{barcode}",
            pending=self.pending_tasks,
        )

    async def process(self, barcode: str) -> Optional[ProcessingResult]:
        """Process ``barcode`` inline. Returns None if it was dropped."""
        if not self._claim(barcode):
            return None
        return await self._run_claimed(barcode)

    async def cancel_pending(self) -> None:
        """Abandon in-flight processing and event reports (shutdown)."""
        if self.pending_tasks:
            logger.warning("Abandoning %d in-flight barcode task(s)", len(self.pending_tasks))
        await cancel_tasks(list(self.pending_tasks))

    def _claim(self, barcode: str) -> bool:
        if self._busy:
            logger.warning("Already processing a barcode, ignoring: %s", barcode)
            return False
        self._busy = True
        return True

    async def _run_claimed(self, barcode: str) -> ProcessingResult:
        try:
            result = await self._process(barcode)
        finally:
            self._busy = False
        self.last_result = result
        return result

    async def _process(self, barcode: str) -> ProcessingResult:
        try:
            await self.link.send_feedback(FeedbackPattern.PROCESSING)
            try:
                response = await self.session.submit_barcode(barcode)
            except BackendUnavailableError as e:
                logger.error("Backend unreachable while sending barcode %s: %s", barcode, e)
                self._report_unreachable(barcode, e)
                result = ProcessingResult(
                    success=False,
                    error=str(e),
                    pattern=FeedbackPattern.ERROR,
                )
            else:
                if response.success:
                    result = ProcessingResult(
                        success=True,
                        feedback_message=response.tts_message,
                        pattern=FeedbackPattern.SUCCESS,
                    )
                else:
                    result = ProcessingResult(
                        success=False,
                        error=response.error,
                        feedback_message=response.tts_message,
                        pattern=classify_error(response.error),
                    )
        except Exception as e:
            logger.error("Unexpected error processing barcode %s: %s", barcode, e, exc_info=True)
            result = ProcessingResult(success=False, error=str(e), pattern=FeedbackPattern.ERROR)

        await self.link.send_feedback(result.pattern)
        return result

    def _report_unreachable(self, barcode: str, error: Exception) -> None:
        # fire and forget; log_event never raises
        create_logged_task(
            self.session.log_event(API_ERROR_EVENT, API_ERROR_MESSAGE, {
                "error": str(error),
                "barcode": barcode,
            }),
            logger=logger,
            context="log-api-error",
            pending=self.pending_tasks,
        )


__all__ = ["BarcodeProcessor", "ProcessingResult", "classify_error"]
