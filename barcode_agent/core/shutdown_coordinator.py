"""
Shutdown Coordinator - single point of control for graceful teardown.

Cleanup callbacks run exactly once, in registration order. A failing
callback is logged and the remaining ones still run.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple

from .logging_utils import get_module_logger

CleanupCallback = Callable[[], Awaitable[None]]


class ShutdownState(Enum):
    """States of the shutdown process."""
    RUNNING = "running"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class ShutdownCoordinator:
    """
    Runs the agent's teardown steps.

    Shutdown sequence:
    1. A signal or fatal error calls ``initiate_shutdown(source)``
    2. State moves to IN_PROGRESS; later requests are ignored
    3. Cleanup callbacks run in order, each one isolated
    4. State moves to COMPLETE and waiters are released
    """

    def __init__(self):
        self.logger = get_module_logger("ShutdownCoordinator")
        self._state = ShutdownState.RUNNING
        self._done = asyncio.Event()
        self._callbacks: List[Tuple[str, CleanupCallback]] = []
        self.failed_steps: List[str] = []

    @property
    def state(self) -> ShutdownState:
        return self._state

    @property
    def is_shutting_down(self) -> bool:
        return self._state is ShutdownState.IN_PROGRESS

    @property
    def is_complete(self) -> bool:
        return self._state is ShutdownState.COMPLETE

    def register_cleanup(self, callback: CleanupCallback, name: Optional[str] = None) -> None:
        """
        Register a cleanup step. Steps run in the order they are registered.

        Args:
            callback: Async function taking no arguments
            name: Label used in log lines (defaults to the function name)
        """
        label = name or getattr(callback, "__name__", repr(callback))
        self._callbacks.append((label, callback))
        self.logger.debug("Registered cleanup step: %s", label)

    async def initiate_shutdown(self, source: str = "unknown") -> bool:
        """
        Run all cleanup steps once.

        Returns:
            True if this call performed the shutdown, False if one had
            already been started
        """
        if self._state is not ShutdownState.RUNNING:
            self.logger.debug(
                "Shutdown already %s, ignoring request from %s", self._state.value, source
            )
            return False

        self._state = ShutdownState.IN_PROGRESS
        started = time.monotonic()
        self.logger.info("Shutdown initiated by: %s", source)

        for index, (label, callback) in enumerate(self._callbacks, 1):
            step_start = time.monotonic()
            self.logger.debug("Cleanup %d/%d: %s", index, len(self._callbacks), label)
            try:
                await callback()
            except Exception as e:
                self.failed_steps.append(label)
                self.logger.error("Error in cleanup step %s: %s", label, e, exc_info=True)
                continue
            self.logger.debug("Completed %s in %.3fs", label, time.monotonic() - step_start)

        self._state = ShutdownState.COMPLETE
        self._done.set()
        self.logger.info("Shutdown complete in %.3fs", time.monotonic() - started)
        return True

    async def wait_for_shutdown(self) -> None:
        """Block until shutdown has completed."""
        await self._done.wait()


__all__ = ["ShutdownCoordinator", "ShutdownState"]
