"""
Device Lifecycle Controller.

Drives one agent session from an unregistered device to active scanning
and back down:

    INIT -> REGISTERING -> AWAITING_APPROVAL -> CONNECTING -> RUNNING
         -> SHUTTING_DOWN -> TERMINATED

REGISTERING is skipped when a token is already stored. Any state before
TERMINATED may jump to SHUTTING_DOWN when a stop is requested.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from .asyncio_utils import cancel_tasks, create_logged_task, wait_or_stop
from .backend import BackendSession
from .config import AgentConfig
from .errors import AgentError, BackendError, BackendUnavailableError, InvalidTransitionError, RegistrationError
from .identity import DeviceContext
from .logging_utils import get_module_logger
from .processor import BarcodeProcessor
from .scanner import LinkEvent, LinkEventType, ScannerLink, probe_serial_devices
from .scheduler import BackgroundScheduler
from .shutdown_coordinator import ShutdownCoordinator

DeviceProbe = Callable[[], Awaitable[Sequence[str]]]


class AgentState(Enum):
    INIT = "init"
    REGISTERING = "registering"
    AWAITING_APPROVAL = "awaiting_approval"
    CONNECTING = "connecting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


ALLOWED_TRANSITIONS: Dict[AgentState, FrozenSet[AgentState]] = {
    AgentState.INIT: frozenset({
        AgentState.REGISTERING,
        AgentState.AWAITING_APPROVAL,
        AgentState.SHUTTING_DOWN,
    }),
    AgentState.REGISTERING: frozenset({AgentState.AWAITING_APPROVAL, AgentState.SHUTTING_DOWN}),
    AgentState.AWAITING_APPROVAL: frozenset({AgentState.CONNECTING, AgentState.SHUTTING_DOWN}),
    AgentState.CONNECTING: frozenset({AgentState.RUNNING, AgentState.SHUTTING_DOWN}),
    AgentState.RUNNING: frozenset({AgentState.SHUTTING_DOWN}),
    AgentState.SHUTTING_DOWN: frozenset({AgentState.TERMINATED}),
    AgentState.TERMINATED: frozenset(),
}

EXIT_OK = 0
EXIT_FATAL = 1


class AgentController:
    """
    Supervises startup, the running session and teardown.

    All collaborators are built by the caller and passed in; the controller
    only sequences them and reacts to link events.
    """

    def __init__(
        self,
        config: AgentConfig,
        context: DeviceContext,
        session: BackendSession,
        link: ScannerLink,
        events: asyncio.Queue,
        processor: BarcodeProcessor,
        scheduler: BackgroundScheduler,
        probe: DeviceProbe = probe_serial_devices,
    ):
        self.config = config
        self.context = context
        self.session = session
        self.link = link
        self.events = events
        self.processor = processor
        self.scheduler = scheduler
        self.probe = probe
        self.logger = get_module_logger("AgentController")

        self._state = AgentState.INIT
        self.state_history: List[Tuple[AgentState, float]] = [(AgentState.INIT, time.time())]
        self._stop_event = asyncio.Event()
        self._shutdown_source: Optional[str] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self.exit_code = EXIT_OK

        self.shutdown = ShutdownCoordinator()
        self.shutdown.register_cleanup(self.scheduler.stop, "stop_scheduler")
        self.shutdown.register_cleanup(self._cancel_reconnect, "cancel_reconnect")
        self.shutdown.register_cleanup(self.processor.cancel_pending, "cancel_barcode_processing")
        self.shutdown.register_cleanup(self.link.close, "close_scanner_link")
        self.shutdown.register_cleanup(self._send_offline_heartbeat, "offline_heartbeat")
        self.shutdown.register_cleanup(self.session.close, "close_backend_session")

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def is_stopping(self) -> bool:
        return self._stop_event.is_set()

    def _transition(self, new_state: AgentState) -> None:
        old_state = self._state
        if new_state not in ALLOWED_TRANSITIONS[old_state]:
            raise InvalidTransitionError(f"{old_state.value} -> {new_state.value}")
        self._state = new_state
        self.state_history.append((new_state, time.time()))
        self.logger.info("State: %s -> %s", old_state.value, new_state.value)

    def request_shutdown(self, source: str = "signal") -> None:
        """Ask the controller to stop. Safe to call from a signal handler."""
        if self._shutdown_source is None:
            self._shutdown_source = source
            self.logger.info("Shutdown requested by %s", source)
        self._stop_event.set()

    # =========================================================================
    # Main entry point
    # =========================================================================

    async def run(self) -> int:
        """
        Run the session until a stop is requested or startup fails fatally.

        Returns:
            Process exit status (0 after graceful shutdown, 1 after a fatal error)
        """
        if self._state is not AgentState.INIT:
            raise RuntimeError("AgentController.run() can only be called once")

        self.logger.info("=== Barcode Scanner Starting ===")
        self.logger.info("Backend URL: %s", self.config.backend_url)
        self.logger.info("Test Mode: %s", self.config.test_mode.value)

        try:
            if await self._run_until_stopped(self._startup()):
                self._transition(AgentState.RUNNING)
                self.scheduler.start()
                self.logger.info("=== Scanner ready ===")
                await self._dispatch_events()
        except RegistrationError as e:
            self.logger.error("Fatal: device registration failed: %s", e)
            self.exit_code = EXIT_FATAL
            self._shutdown_source = self._shutdown_source or "registration failure"
        except Exception as e:
            self.logger.critical("Fatal error: %s", e, exc_info=True)
            self.exit_code = EXIT_FATAL
            self._shutdown_source = self._shutdown_source or "fatal error"
        finally:
            await self._teardown()

        return self.exit_code

    async def _run_until_stopped(self, coro: Awaitable[bool]) -> bool:
        """Run a startup phase, abandoning it if a stop is requested first."""
        phase = asyncio.ensure_future(coro)
        stop_waiter = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({phase, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            await cancel_tasks([stop_waiter])

        if not phase.done():
            self.logger.info("Startup interrupted in state %s", self._state.value)
            await cancel_tasks([phase])
            return False
        return phase.result() and not self.is_stopping

    # =========================================================================
    # Startup phases
    # =========================================================================

    async def _startup(self) -> bool:
        await self.context.ensure_identity()
        devices = list(await self.probe())
        self.logger.info("Detected USB devices: %s", ", ".join(devices) or "none")

        if self.context.auth_token:
            self.logger.info("Using existing auth token")
        else:
            self._transition(AgentState.REGISTERING)
            await self._register(devices)

        self._transition(AgentState.AWAITING_APPROVAL)
        if not await self._await_approval():
            return False

        self._transition(AgentState.CONNECTING)
        await self._connect()
        return True

    async def _register(self, devices: Sequence[str]) -> None:
        self.logger.info("No auth token found, registering device...")
        result = await self.session.register(devices)
        await self.context.set_auth_token(result.auth_token)

    async def _await_approval(self) -> bool:
        """Poll the backend config until approved. False if stopped first."""
        while True:
            try:
                device_config = await self.session.fetch_config()
            except (BackendError, BackendUnavailableError) as e:
                self.logger.error("Error checking approval: %s", e)
            else:
                self.context.update_config(device_config)
                if device_config.is_approved:
                    self.logger.info("Device approved")
                    return True
                self.logger.info("Device not yet approved, waiting for approval...")

            if await wait_or_stop(self._stop_event, self.config.approval_poll_interval):
                return False

    async def _connect(self) -> None:
        path = self.context.usb_device_path
        self.logger.info("Using scanner device path: %s", path)
        if not await self.link.open(path):
            self._schedule_reconnect()

    # =========================================================================
    # Running
    # =========================================================================

    async def _dispatch_events(self) -> None:
        stop_waiter = asyncio.ensure_future(self._stop_event.wait())
        try:
            while True:
                getter = asyncio.ensure_future(self.events.get())
                done, _ = await asyncio.wait({getter, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
                if getter in done:
                    self.handle_link_event(getter.result())
                else:
                    getter.cancel()
                if stop_waiter.done():
                    break
        finally:
            await cancel_tasks([stop_waiter])

    def handle_link_event(self, event: LinkEvent) -> None:
        if event.type is LinkEventType.BARCODE:
            self.processor.handle(event.barcode)
        elif event.type is LinkEventType.CONNECTED:
            self.logger.info("Scanner ready")
        elif event.type is LinkEventType.DISCONNECTED:
            self.logger.warning("Scanner disconnected, attempting to reconnect...")
            if self._state is AgentState.RUNNING and not self.is_stopping:
                self._schedule_reconnect()
        elif event.type is LinkEventType.ERROR:
            self.logger.error("Scanner error: %s", event.error)

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def _schedule_reconnect(self) -> None:
        if self.reconnect_pending:
            self.logger.debug("Reconnect already pending")
            return
        self._reconnect_task = create_logged_task(
            self._reconnect_loop(),
            logger=self.logger,
            context="scanner-reconnect",
        )

    async def _reconnect_loop(self) -> None:
        attempt = 0
        while True:
            self.logger.info("Reconnecting to scanner in %.0fs", self.config.reconnect_delay)
            if await wait_or_stop(self._stop_event, self.config.reconnect_delay):
                return
            attempt += 1
            if await self.link.open(self.context.usb_device_path):
                self.logger.info("Scanner reconnected after %d attempt(s)", attempt)
                return
            self.logger.error("Reconnection attempt %d failed", attempt)

    # =========================================================================
    # Teardown
    # =========================================================================

    async def _teardown(self) -> None:
        self._stop_event.set()
        self._transition(AgentState.SHUTTING_DOWN)
        self.logger.info("Shutting down...")
        await self.shutdown.initiate_shutdown(self._shutdown_source or "run complete")
        self._transition(AgentState.TERMINATED)
        self.logger.info("Shutdown complete")

    async def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        await cancel_tasks([task])

    async def _send_offline_heartbeat(self) -> None:
        if not self.context.auth_token:
            self.logger.debug("No auth token, skipping offline heartbeat")
            return
        try:
            await self.session.send_heartbeat("offline")
        except AgentError as e:
            self.logger.warning("Offline heartbeat failed: %s", e)


__all__ = ["AgentController", "AgentState", "ALLOWED_TRANSITIONS", "EXIT_OK", "EXIT_FATAL"]
