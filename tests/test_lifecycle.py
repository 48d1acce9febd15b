import asyncio

import pytest

from ideation_agents.domain.errors import HandlerError
from ideation_agents.domain.models.agent_state import ActionType, LifecycleState, PlanDecision, RequestType
from ideation_agents.domain.orchestration.lifecycle.state_machine import AgentLifecycle
from ideation_agents.domain.streaming.status_notifier import StatusNotifier

from conftest import RecordingExecutor, StubPlanner, eventually, make_request


def build_lifecycle(scheduler, rng, planner=None, executor=None, notifier=None):
    return AgentLifecycle(
        "a1",
        "t1",
        scheduler,
        planner or StubPlanner(),
        executor or RecordingExecutor(),
        notifier=notifier,
        agent_name="Alice",
        idle_wait_min=60,
        idle_wait_max=90,
        rng=rng
    )


@pytest.fixture
async def lifecycle(scheduler, rng):
    lifecycle = build_lifecycle(scheduler, rng)
    yield lifecycle
    await lifecycle.close()


async def test_initialize_starts_idle_with_randomized_wait(lifecycle, scheduler):
    await lifecycle.initialize()

    snapshot = lifecycle.snapshot()
    assert snapshot.current_state == LifecycleState.IDLE
    assert snapshot.is_processing is False
    assert snapshot.idle_timer is not None
    assert 60 <= snapshot.idle_timer.planned_duration <= 90
    assert len(scheduler.active_timers) == 1
    assert lifecycle.worker.running


async def test_idle_wait_runs_one_plan_cycle_and_rearms(scheduler, rng):
    planner = StubPlanner()
    lifecycle = build_lifecycle(scheduler, rng, planner=planner)
    await lifecycle.initialize()

    await scheduler.advance(90)

    assert planner.calls == [("a1", "t1")]
    assert lifecycle.state.visited(LifecycleState.PLAN)
    assert lifecycle.state.current_state == LifecycleState.IDLE
    assert lifecycle.state.last_decision.should_act is False
    assert len(scheduler.active_timers) == 1
    await lifecycle.close()


async def test_planned_action_is_executed_then_returns_to_idle(scheduler, rng):
    decision = PlanDecision(should_act=True, action_type=ActionType.GENERATE_IDEA, reasoning="board is empty")
    planner = StubPlanner([decision])
    executor = RecordingExecutor()
    lifecycle = build_lifecycle(scheduler, rng, planner=planner, executor=executor)
    await lifecycle.initialize()

    await scheduler.advance(90)

    assert executor.executed == [decision]
    visited = [change.to_state for change in lifecycle.state.history]
    assert visited[-3:] == [LifecycleState.PLAN, LifecycleState.ACTION, LifecycleState.IDLE]
    assert lifecycle.state.current_task is None
    await lifecycle.close()


async def test_request_preempts_idle_without_planning(scheduler, rng):
    planner = StubPlanner()
    executor = RecordingExecutor()
    lifecycle = build_lifecycle(scheduler, rng, planner=planner, executor=executor)
    await lifecycle.initialize()
    first_timer = lifecycle.state.idle_timer

    assert await lifecycle.add_request(make_request())
    assert first_timer.cancelled

    await eventually(lambda: lifecycle.worker.processed == 1)
    await eventually(lambda: lifecycle.state.current_state == LifecycleState.IDLE)

    assert len(executor.dispatched) == 1
    assert not lifecycle.state.visited(LifecycleState.PLAN)
    assert planner.calls == []
    await lifecycle.close()


async def test_cancelled_timer_never_plans(scheduler, rng):
    gate = asyncio.Event()
    planner = StubPlanner()
    executor = RecordingExecutor(gate=gate)
    lifecycle = build_lifecycle(scheduler, rng, planner=planner, executor=executor)
    await lifecycle.initialize()

    await lifecycle.add_request(make_request())
    await eventually(lambda: len(executor.dispatched) == 1)

    # The original wait would have elapsed long ago
    await scheduler.advance(200)
    assert planner.calls == []
    assert lifecycle.state.current_state == LifecycleState.ACTION

    gate.set()
    await eventually(lambda: lifecycle.state.current_state == LifecycleState.IDLE)
    assert planner.calls == []
    await lifecycle.close()


async def test_failing_request_returns_to_idle_and_is_not_retried(scheduler, rng):
    executor = RecordingExecutor(fail_with=HandlerError("boom"))
    lifecycle = build_lifecycle(scheduler, rng, executor=executor)
    await lifecycle.initialize()

    await lifecycle.add_request(make_request())
    await eventually(lambda: lifecycle.worker.failed == 1)
    await eventually(lambda: lifecycle.state.current_state == LifecycleState.IDLE)

    assert len(executor.dispatched) == 1
    assert lifecycle.queue.waiting() == 0
    assert lifecycle.state.idle_timer is not None
    await lifecycle.close()


async def test_failing_planned_action_returns_to_idle(scheduler, rng):
    decision = PlanDecision(should_act=True, action_type=ActionType.GIVE_FEEDBACK, reasoning="help Bob")
    executor = RecordingExecutor(fail_with=RuntimeError("handler crashed"))
    lifecycle = build_lifecycle(scheduler, rng, planner=StubPlanner([decision]), executor=executor)
    await lifecycle.initialize()

    await scheduler.advance(90)

    assert lifecycle.state.current_state == LifecycleState.IDLE
    assert lifecycle.state.is_processing is False
    await lifecycle.close()


async def test_planner_error_returns_to_idle(scheduler, rng):
    lifecycle = build_lifecycle(scheduler, rng, planner=StubPlanner([RuntimeError("oracle down")]))
    await lifecycle.initialize()

    await scheduler.advance(90)

    assert lifecycle.state.current_state == LifecycleState.IDLE
    assert len(scheduler.active_timers) == 1
    await lifecycle.close()


async def test_queued_requests_are_handled_in_order_without_planning(scheduler, rng):
    gate = asyncio.Event()
    planner = StubPlanner()
    executor = RecordingExecutor(gate=gate)
    lifecycle = build_lifecycle(scheduler, rng, planner=planner, executor=executor)
    await lifecycle.initialize()

    requests = [make_request(message=f"req {i}") for i in range(3)]
    for request in requests:
        await lifecycle.add_request(request)

    gate.set()
    await eventually(lambda: lifecycle.worker.processed == 3)
    await eventually(lambda: lifecycle.state.current_state == LifecycleState.IDLE)

    assert [r.id for r in executor.dispatched] == [r.id for r in requests]
    assert planner.calls == []
    await lifecycle.close()


async def test_request_during_planning_waits_for_the_plan(scheduler, rng):
    gate = asyncio.Event()
    planner = StubPlanner(gate=gate)
    executor = RecordingExecutor()
    lifecycle = build_lifecycle(scheduler, rng, planner=planner, executor=executor)
    await lifecycle.initialize()

    advancing = asyncio.create_task(scheduler.advance(90))
    await eventually(lambda: lifecycle.state.current_state == LifecycleState.PLAN)

    await lifecycle.add_request(make_request(RequestType.EVALUATE_IDEA))
    await asyncio.sleep(0.01)
    assert lifecycle.state.current_state == LifecycleState.PLAN
    assert executor.dispatched == []

    gate.set()
    await advancing
    await eventually(lambda: lifecycle.worker.processed == 1)
    await lifecycle.close()


async def test_forced_action_during_planning_is_ignored(scheduler, rng):
    gate = asyncio.Event()
    decision = PlanDecision(should_act=True, action_type=ActionType.GENERATE_IDEA, reasoning="board is empty")
    executor = RecordingExecutor()
    lifecycle = build_lifecycle(scheduler, rng, planner=StubPlanner([decision], gate=gate), executor=executor)
    await lifecycle.initialize()

    advancing = asyncio.create_task(scheduler.advance(90))
    await eventually(lambda: lifecycle.state.current_state == LifecycleState.PLAN)

    await lifecycle.transition_to_action("manual")
    await asyncio.sleep(0.01)
    assert lifecycle.state.current_state == LifecycleState.PLAN
    assert lifecycle.state.idle_timer is None

    gate.set()
    await advancing

    transitions = [(c.from_state, c.to_state, c.reason) for c in lifecycle.state.history[-3:]]
    assert transitions == [
        (LifecycleState.IDLE, LifecycleState.PLAN, "idle wait elapsed"),
        (LifecycleState.PLAN, LifecycleState.ACTION, "planned generate_idea"),
        (LifecycleState.ACTION, LifecycleState.IDLE, "plan cycle finished"),
    ]
    assert executor.executed == [decision]
    assert executor.dispatched == []
    await lifecycle.close()


async def test_idle_timer_fields_are_cleared_when_the_wait_elapses(scheduler, rng):
    gate = asyncio.Event()
    lifecycle = build_lifecycle(scheduler, rng, planner=StubPlanner(gate=gate))
    await lifecycle.initialize()

    advancing = asyncio.create_task(scheduler.advance(90))
    await eventually(lambda: lifecycle.state.current_state == LifecycleState.PLAN)

    assert lifecycle.state.idle_timer is None
    assert lifecycle.state.idle_timer_started_at is None
    assert lifecycle.state.idle_timer_duration == 0.0
    assert lifecycle.snapshot().idle_timer is None

    gate.set()
    await advancing
    await lifecycle.close()


async def test_no_transition_from_action_to_action(scheduler, rng):
    gate = asyncio.Event()
    lifecycle = build_lifecycle(scheduler, rng, executor=RecordingExecutor(gate=gate))
    await lifecycle.initialize()

    await asyncio.gather(
        lifecycle.add_request(make_request()),
        lifecycle.add_request(make_request()),
    )
    await lifecycle.transition_to_action("forced")

    gate.set()
    await eventually(lambda: lifecycle.worker.processed == 2)
    await eventually(lambda: lifecycle.state.current_state == LifecycleState.IDLE)

    for change in lifecycle.state.history:
        assert not (change.from_state == LifecycleState.ACTION and change.to_state == LifecycleState.ACTION)
    await lifecycle.close()


async def test_transition_to_action_without_requests_goes_back_to_idle(lifecycle):
    await lifecycle.initialize()

    await lifecycle.transition_to_action("manual")
    await eventually(lambda: lifecycle.state.current_state == LifecycleState.IDLE)

    assert lifecycle.state.visited(LifecycleState.ACTION)
    assert lifecycle.state.idle_timer is not None


async def test_close_cancels_timer_and_rejects_requests(lifecycle, scheduler):
    await lifecycle.initialize()
    timer = lifecycle.state.idle_timer

    await lifecycle.close()

    assert timer.cancelled
    assert scheduler.active_timers == []
    assert not lifecycle.worker.running
    assert await lifecycle.add_request(make_request()) is False

    await lifecycle.transition_to_idle("late")
    assert lifecycle.state.idle_timer is None


async def test_status_notifications_for_requests(scheduler, rng):
    notifier = StatusNotifier()
    lifecycle = build_lifecycle(scheduler, rng, notifier=notifier)
    await lifecycle.initialize()

    await lifecycle.add_request(make_request(RequestType.EVALUATE_IDEA, requester_name="Bob"))
    await eventually(lambda: lifecycle.worker.processed == 1)

    messages = [event.message for event in notifier.get_recent("t1")]
    assert "Alice started evaluating ideas for Bob" in messages
    await lifecycle.close()
