from typing import Optional
import asyncio

import structlog

logger = structlog.get_logger(__name__)


class RequestWorker:
    """Single long-lived task that drains one agent's request queue.

    It handles one request each time the lifecycle enters action, and always
    hands the agent back to idle afterwards. A request whose handler fails is
    logged and not retried.
    """

    def __init__(self, lifecycle, executor):
        self.lifecycle = lifecycle
        self.executor = executor
        self.processed = 0
        self.failed = 0
        self._task: Optional[asyncio.Task] = None

    def start(self):
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name=f"worker:{self.lifecycle.agent_id}")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self):
        lifecycle = self.lifecycle
        structlog.contextvars.bind_contextvars(agent_id=lifecycle.agent_id, team_id=lifecycle.team_id)

        while not lifecycle.closed:
            await lifecycle.wait_for_work()
            if lifecycle.closed:
                break

            request = lifecycle.queue.get_nowait()
            if request is None:
                await lifecycle.transition_to_idle("no queued request")
                continue

            try:
                await lifecycle.start_request(request)
                await self.executor.dispatch_request(lifecycle.agent_id, lifecycle.team_id, request)
                self.processed += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failed += 1
                logger.error(
                    "Request failed",
                    agent_id=lifecycle.agent_id,
                    request_id=request.id,
                    request_type=request.type.value,
                    error=str(e),
                    exc_info=True
                )
            finally:
                await lifecycle.transition_to_idle("request handled")
