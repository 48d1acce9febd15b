from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, Set
import asyncio
import time

import structlog

logger = structlog.get_logger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class TimerHandle:
    """Cancellable reference to a pending callback"""

    def __init__(self, when: float, delay: float):
        self.when = when
        self.delay = delay
        self.cancelled = False
        self._on_cancel: Optional[Callable[[], None]] = None

    def cancel(self):
        if self.cancelled:
            return
        self.cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()


class Scheduler(ABC):
    """Clock plus delayed async callbacks"""

    @abstractmethod
    def now(self) -> float:
        pass

    @abstractmethod
    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        pass

    async def shutdown(self):
        pass


class AsyncioScheduler(Scheduler):
    """Runs callbacks as tasks on the running event loop"""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        loop = asyncio.get_running_loop()
        handle = TimerHandle(self.now() + delay, delay)

        def fire():
            if handle.cancelled:
                return
            task = loop.create_task(self._run(callback))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        timer = loop.call_later(delay, fire)
        handle._on_cancel = timer.cancel
        return handle

    async def _run(self, callback: TimerCallback):
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Scheduled callback failed", error=str(e), exc_info=True)

    async def shutdown(self):
        """Cancel callbacks that are still running"""

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
