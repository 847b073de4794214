"""
Background Scheduler - fixed-interval heartbeat and config refresh.

Each job runs on its own task so a slow heartbeat never delays a config
refresh. A failed tick is logged and the next tick simply tries again.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from .asyncio_utils import cancel_tasks, create_logged_task, wait_or_stop
from .backend import BackendSession
from .identity import DeviceContext
from .logging_utils import get_module_logger

logger = get_module_logger("BackgroundScheduler")

Job = Callable[[], Awaitable[None]]


class PeriodicTask:
    """Runs ``job`` every ``interval`` seconds until stopped.

    The first run happens one interval after ``start()``.
    """

    def __init__(self, name: str, interval: float, job: Job, failure_level: int = logging.ERROR):
        self.name = name
        self.interval = interval
        self.job = job
        self.failure_level = failure_level
        self.run_count = 0
        self.failure_count = 0
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = create_logged_task(self._loop(), logger=logger, context=f"periodic-{self.name}")

    async def stop(self) -> None:
        self._stop_event.set()
        task, self._task = self._task, None
        await cancel_tasks([task])

    async def _loop(self) -> None:
        while not await wait_or_stop(self._stop_event, self.interval):
            self.run_count += 1
            try:
                await self.job()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failure_count += 1
                logger.log(self.failure_level, "%s failed: %s", self.name, e)


class BackgroundScheduler:
    """Heartbeat and config-refresh timers, active only while RUNNING."""

    def __init__(
        self,
        session: BackendSession,
        context: DeviceContext,
        heartbeat_interval: float = 300.0,
        config_poll_interval: float = 300.0,
    ):
        self.session = session
        self.context = context
        self.heartbeat = PeriodicTask("Heartbeat", heartbeat_interval, self.send_heartbeat)
        self.config_refresh = PeriodicTask(
            "Config refresh",
            config_poll_interval,
            self.refresh_config,
            failure_level=logging.DEBUG,
        )

    @property
    def tasks(self) -> List[PeriodicTask]:
        return [self.heartbeat, self.config_refresh]

    @property
    def is_running(self) -> bool:
        return any(task.is_running for task in self.tasks)

    def start(self) -> None:
        for task in self.tasks:
            task.start()
        logger.info(
            "Background tasks started (heartbeat every %.0fs, config every %.0fs)",
            self.heartbeat.interval, self.config_refresh.interval,
        )

    async def stop(self) -> None:
        if not self.is_running:
            return
        for task in self.tasks:
            await task.stop()
        logger.info("Background tasks stopped")

    async def send_heartbeat(self) -> None:
        await self.session.send_heartbeat("online")

    async def refresh_config(self) -> None:
        config = await self.session.fetch_config()
        self.context.update_config(config)


__all__ = ["BackgroundScheduler", "PeriodicTask"]
