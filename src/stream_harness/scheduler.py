"""Fixed-cadence scheduling of publish ticks."""

import asyncio
import logging
from typing import Any, Callable, Optional, Set

from .fault_handler import BackgroundFaultHandler
from .publisher import PublishTask, RecordPublisher

logger = logging.getLogger(__name__)


class PublishTick:
    """Publishes one synthetic record per call.

    Owns the record counter, which starts at 0 and grows by one per tick.
    """

    def __init__(self, publisher: RecordPublisher, message_prefix: str = "Message"):
        self.publisher = publisher
        self.message_prefix = message_prefix
        self._counter = 0

    @property
    def next_sequence(self) -> int:
        return self._counter

    def next_task(self) -> PublishTask:
        task = PublishTask(sequence=self._counter, message=f"{self.message_prefix} {self._counter}")
        self._counter += 1
        return task

    def __call__(self) -> None:
        self.publisher.submit(self.next_task())


class PeriodicScheduler:
    """Invokes a task every interval, starting one interval after start().

    Ticks are fired on a fixed cadence and run as independent tasks, so a
    slow tick neither delays the next one nor gets cancelled by stop().
    """

    def __init__(self, fault_handler: Optional[BackgroundFaultHandler] = None, name: str = "publish-tick"):
        self.fault_handler = fault_handler or BackgroundFaultHandler()
        self.name = name
        self._driver: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()
        self._ticks_started = 0

    @property
    def running(self) -> bool:
        return self._driver is not None and not self._driver.done()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    @property
    def ticks_started(self) -> int:
        return self._ticks_started

    def start(self, interval: float, task: Callable[[], Any]) -> None:
        if interval <= 0:
            raise ValueError(f"Interval must be positive, got {interval}")
        if self.running:
            raise RuntimeError("Scheduler already started")

        self._driver = asyncio.create_task(self._run(interval, task), name=f"{self.name}-driver")
        logger.info(f"Scheduler started with interval {interval}s")

    async def _run(self, interval: float, task: Callable[[], Any]) -> None:
        loop = asyncio.get_event_loop()
        next_fire = loop.time() + interval

        while True:
            await asyncio.sleep(max(0.0, next_fire - loop.time()))

            self._ticks_started += 1
            tick = asyncio.create_task(
                self.fault_handler.supervise(task, self.name),
                name=f"{self.name}-{self._ticks_started}"
            )
            self._in_flight.add(tick)
            tick.add_done_callback(self._in_flight.discard)

            next_fire += interval

    async def stop(self) -> None:
        """Stop scheduling new ticks. Ticks already running are left alone."""
        if self._driver is None:
            return

        self._driver.cancel()
        try:
            await self._driver
        except asyncio.CancelledError:
            pass
        self._driver = None

        logger.info(f"Scheduler stopped, {len(self._in_flight)} tick(s) still in flight")
