"""Per-agent idle / plan / action lifecycle.

Invariants:
- every state mutation happens under the agent's lock, and the lock is never
  held across an oracle call or a handler;
- ``idle_timer`` is set only while the agent is idle with nothing queued;
- an idle timer whose handle is no longer the current one does nothing;
- every path into plan or action ends in ``transition_to_idle``.
"""

from typing import Optional
import asyncio
import random

import structlog

from ideation_agents.domain.models.agent_state import (
    ActionType, AgentRequest, AgentStateInfo, AgentStateSnapshot, CurrentTask,
    LifecycleState, PlanDecision, TaskTrigger, utcnow
)
from ideation_agents.domain.models.memory import USER_RELATION_KEY
from ideation_agents.domain.orchestration.worker.request_queue import RequestQueue
from ideation_agents.domain.orchestration.worker.request_worker import RequestWorker
from ideation_agents.domain.streaming.status_notifier import StatusEventType, StatusNotifier
from ideation_agents.infrastructure.observability.logging import agent_logger
from .scheduler import Scheduler, TimerHandle

logger = structlog.get_logger(__name__)

ACTIVITY = {
    ActionType.GENERATE_IDEA: "generating ideas",
    ActionType.EVALUATE_IDEA: "evaluating ideas",
    ActionType.GIVE_FEEDBACK: "giving feedback",
    ActionType.MAKE_REQUEST: "making a request",
}


class AgentLifecycle:
    """State machine for one agent, plus its request queue and worker"""

    def __init__(
        self,
        agent_id: str,
        team_id: str,
        scheduler: Scheduler,
        planner,
        executor,
        notifier: Optional[StatusNotifier] = None,
        agent_name: Optional[str] = None,
        idle_wait_min: float = 60.0,
        idle_wait_max: float = 90.0,
        stuck_timeout: float = 600.0,
        rng: Optional[random.Random] = None
    ):
        self.agent_id = agent_id
        self.team_id = team_id
        self.agent_name = agent_name or agent_id
        self.scheduler = scheduler
        self.planner = planner
        self.executor = executor
        self.notifier = notifier
        self.idle_wait_min = idle_wait_min
        self.idle_wait_max = idle_wait_max
        self.stuck_timeout = stuck_timeout
        self.rng = rng or random.Random()

        self.state = AgentStateInfo(agent_id, team_id)
        self.queue = RequestQueue(agent_id)
        self.worker = RequestWorker(self, executor)
        self.closed = False

        self._lock = asyncio.Lock()
        self._idle = asyncio.Event()
        self._idle.set()
        self._wake = asyncio.Event()

    # Lifecycle entry points

    async def initialize(self):
        """Start idle and arm the first wait"""

        async with self._lock:
            self.state.update_status(LifecycleState.IDLE, "initialized")
            self._idle.set()
            agent_logger.log_state_transition(self.agent_id, self.team_id, None, LifecycleState.IDLE.value, "initialized")
            self._check_requests_and_wait_locked()

        self.worker.start()

    async def add_request(self, request: AgentRequest) -> bool:
        """Queue a request; an idle agent drops its wait and starts on it at once"""

        if self.closed or not self.queue.put(request):
            logger.warning("Request for a closed agent dropped", agent_id=self.agent_id, request_id=request.id)
            return False

        logger.info(
            "Request queued",
            agent_id=self.agent_id,
            request_id=request.id,
            request_type=request.type.value,
            requester_id=request.requester_id,
            waiting=self.queue.waiting()
        )

        async with self._lock:
            if self.state.current_state == LifecycleState.IDLE and not self.state.is_processing:
                self._cancel_idle_timer_locked()
                self._begin_action_locked("request received")
        return True

    async def transition_to_idle(self, reason: str = "work finished"):
        async with self._lock:
            if self.closed:
                return
            self._cancel_idle_timer_locked()
            previous = self.state.current_state
            self.state.update_status(LifecycleState.IDLE, reason)
            self._idle.set()
            agent_logger.log_state_transition(self.agent_id, self.team_id, previous.value, LifecycleState.IDLE.value, reason)
            self._check_requests_and_wait_locked()

    async def check_requests_and_wait(self):
        """Start on queued work, or arm a randomized idle wait"""

        async with self._lock:
            if self.closed or self.state.current_state != LifecycleState.IDLE:
                return
            self._check_requests_and_wait_locked()

    async def transition_to_plan(self, reason: str = "planning requested"):
        """Plan immediately instead of waiting for the idle timer"""

        async with self._lock:
            if self.closed or self.state.current_state != LifecycleState.IDLE or self.queue.waiting():
                return
            self._cancel_idle_timer_locked()
            self._enter_plan_locked(reason)

        await self._run_plan_cycle()

    async def transition_to_action(self, reason: str = "action requested"):
        """Hand control to the request worker; only an idle agent can be moved"""

        async with self._lock:
            if self.closed or self.state.current_state != LifecycleState.IDLE or self.state.is_processing:
                return
            self._cancel_idle_timer_locked()
            self._begin_action_locked(reason)

    async def wait_until_idle(self):
        await self._idle.wait()

    # Locked helpers

    def _check_requests_and_wait_locked(self):
        if self.queue.waiting():
            self._begin_action_locked("queued request")
            return

        delay = self.rng.uniform(self.idle_wait_min, self.idle_wait_max)

        async def on_timeout():
            await self._on_idle_timeout(handle)

        handle = self.scheduler.call_later(delay, on_timeout)
        self.state.idle_timer = handle
        self.state.idle_timer_started_at = utcnow()
        self.state.idle_timer_duration = delay
        logger.debug("Idle wait armed", agent_id=self.agent_id, seconds=round(delay, 1))

    def _cancel_idle_timer_locked(self):
        if self.state.idle_timer is not None:
            self.state.idle_timer.cancel()
        self.state.idle_timer = None
        self.state.idle_timer_started_at = None
        self.state.idle_timer_duration = 0.0

    def _begin_action_locked(self, reason: str):
        previous = self.state.current_state
        self.state.update_status(LifecycleState.ACTION, reason)
        self._idle.clear()
        agent_logger.log_state_transition(self.agent_id, self.team_id, previous.value, LifecycleState.ACTION.value, reason)
        self._wake.set()

    def _enter_plan_locked(self, reason: str):
        previous = self.state.current_state
        self.state.update_status(LifecycleState.PLAN, reason)
        self._idle.clear()
        agent_logger.log_state_transition(self.agent_id, self.team_id, previous.value, LifecycleState.PLAN.value, reason)

    # Plan cycle

    async def _on_idle_timeout(self, handle: TimerHandle):
        async with self._lock:
            if (
                self.closed
                or handle.cancelled
                or handle is not self.state.idle_timer
                or self.state.current_state != LifecycleState.IDLE
                or self.state.is_processing
            ):
                return
            self._cancel_idle_timer_locked()
            self._enter_plan_locked("idle wait elapsed")

        await self._run_plan_cycle()

    async def _run_plan_cycle(self):
        owned = True
        try:
            await self._notify(f"{self.agent_name} is planning", StatusEventType.STATE)
            decision: PlanDecision = await self.planner.decide(self.agent_id, self.team_id)

            async with self._lock:
                self.state.last_decision = decision
                if self.state.current_state != LifecycleState.PLAN:
                    # Another path moved the agent on; it owns the return to idle
                    owned = False
                    return
                if self.closed or not decision.should_act or decision.action_type is None:
                    return
                previous = self.state.current_state
                self.state.update_status(LifecycleState.ACTION, f"planned {decision.action_type.value}")
                self.state.planned_action = decision
                self.state.current_task = CurrentTask(
                    type=decision.action_type.value,
                    description=decision.reasoning,
                    trigger=TaskTrigger.AUTONOMOUS
                )
                agent_logger.log_state_transition(
                    self.agent_id, self.team_id, previous.value, LifecycleState.ACTION.value, decision.action_type.value
                )

            await self._notify(f"{self.agent_name} started {ACTIVITY[decision.action_type]}", StatusEventType.ACTION)
            await self.executor.execute(self.agent_id, self.team_id, decision)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Plan cycle failed", agent_id=self.agent_id, error=str(e), exc_info=True)
        finally:
            if owned:
                await self.transition_to_idle("plan cycle finished")

    # Worker support

    async def wait_for_work(self):
        await self._wake.wait()
        self._wake.clear()

    async def start_request(self, request: AgentRequest):
        trigger = TaskTrigger.USER_REQUEST if request.requester_id == USER_RELATION_KEY else TaskTrigger.AI_REQUEST
        async with self._lock:
            self.state.current_task = CurrentTask(
                type=request.type.value,
                description=request.message or f"{request.type.value} for {request.requester_name}",
                trigger=trigger,
                request_id=request.id,
                requester_name=request.requester_name
            )
        await self._notify(
            f"{self.agent_name} started {ACTIVITY[ActionType(request.type.value)]} for {request.requester_name}",
            StatusEventType.ACTION
        )

    async def _notify(self, message: str, event_type: StatusEventType):
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(self.team_id, message, agent_id=self.agent_id, event_type=event_type)
        except Exception as e:
            logger.warning("Status notification failed", agent_id=self.agent_id, error=str(e))

    # Inspection and shutdown

    def snapshot(self) -> AgentStateSnapshot:
        if self.state.current_state != LifecycleState.IDLE:
            busy_for = (utcnow() - self.state.last_state_change).total_seconds()
            if busy_for > self.stuck_timeout:
                logger.warning(
                    "Agent has been busy longer than expected",
                    agent_id=self.agent_id,
                    state=self.state.current_state.value,
                    seconds=round(busy_for)
                )
        return self.state.get_state_summary(queue_waiting=self.queue.waiting())

    async def close(self):
        """Stop timers and the worker; queued requests are dropped"""

        async with self._lock:
            if self.closed:
                return
            self.closed = True
            self._cancel_idle_timer_locked()
            dropped = self.queue.close()
            self._wake.set()

        await self.worker.stop()
        self._idle.set()
        logger.info("Agent lifecycle closed", agent_id=self.agent_id, dropped_requests=len(dropped))
