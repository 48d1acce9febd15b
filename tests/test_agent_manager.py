import random

import pytest

from ideation_agents.domain.models.agent_state import LifecycleState, RequestType
from ideation_agents.domain.models.memory import MemoryEvent, MemoryEventType
from ideation_agents.domain.models.team import Idea, IdeaContent
from ideation_agents.domain.orchestration.core.agent_manager import AgentManager

from conftest import ManualScheduler, ScriptedChatModel, eventually, make_request


@pytest.fixture
async def manager(settings, directory, store, scheduler, chat_model):
    manager = AgentManager.build(
        settings, directory, chat_model=chat_model, store=store, scheduler=scheduler, rng=random.Random(3)
    )
    yield manager
    await manager.cleanup()


async def test_initialize_agent_is_idempotent(manager):
    first = await manager.initialize_agent("a1", "t1")
    lifecycle = manager.agents["a1"]

    second = await manager.initialize_agent("a1", "t1")

    assert first.current_state == LifecycleState.IDLE
    assert second.agent_id == "a1"
    assert manager.agents["a1"] is lifecycle


async def test_initialize_unknown_agent_is_a_no_op(manager):
    assert await manager.initialize_agent("ghost", "t1") is None
    assert not manager.is_active("ghost")


async def test_initialize_team_starts_every_ai_member(manager, store):
    snapshots = await manager.initialize_team("t1")

    assert sorted(s.agent_id for s in snapshots) == ["a1", "a2", "a3"]
    assert await manager.get_memory("a3", "t1") is not None
    assert await manager.initialize_team("missing") == []


async def test_states_are_filtered_by_team(manager):
    await manager.initialize_team("t1")
    await manager.initialize_team("t2")

    assert set(manager.get_all_agent_states("t1")) == {"a1", "a2", "a3"}
    assert set(manager.get_all_agent_states("t2")) == {"a4"}
    assert len(manager.get_all_agent_states()) == 4
    assert manager.get_agent_state("nobody") is None


async def test_request_for_inactive_agent_is_ignored(manager):
    assert await manager.add_request("a1", make_request()) is False


async def test_user_request_runs_end_to_end(manager, directory, chat_model):
    await manager.initialize_agent("a1", "t1")

    assert await manager.add_request("a1", make_request(RequestType.GENERATE_IDEA, message="Go"))
    lifecycle = manager.agents["a1"]
    await eventually(lambda: lifecycle.worker.processed == 1)
    await eventually(lambda: lifecycle.state.current_state == LifecycleState.IDLE)
    await manager.consolidator.drain()

    ideas = await directory.get_ideas("t1")
    assert len(ideas) == 1
    assert "plan" not in chat_model.calls

    memory = await manager.get_memory("a1")
    assert memory.short_term.request_list[-1].content == "Go"
    assert memory.long_term.relation["user"].interaction_history


async def test_ai_request_reaches_the_target_agent(settings, directory, store, scheduler):
    chat_model = ScriptedChatModel({"plan": '{"action": "make_request", "reasoning": "Bob should score"}'})
    manager = AgentManager.build(settings, directory, chat_model=chat_model, store=store, scheduler=scheduler)
    await manager.initialize_agent("a2", "t1")
    await manager.initialize_agent("a3", "t1")
    await directory.add_idea("t1", _idea("a1"))

    bob = manager.agents["a2"]
    # Both idle waits elapse; only Cara holds the make_request role
    await scheduler.advance(90)
    await eventually(lambda: bob.worker.processed == 1)
    await manager.consolidator.drain()

    ideas = await directory.get_ideas("t1")
    assert [e.evaluator for e in ideas[0].evaluations] == ["a2"]
    assert bob.state.last_decision is None or not bob.state.last_decision.should_act
    await manager.cleanup()


async def test_memory_operations_are_delegated(manager):
    await manager.initialize_agent("a1", "t1")

    task = manager.trigger_memory_update("a1", MemoryEventType.FEEDBACK, "Thanks Bob", "a2")
    await task
    memory = await manager.process_memory_consolidation(
        "a1", [MemoryEvent(type=MemoryEventType.REQUEST, content="Asked Cara", related_agent_id="a3")]
    )

    assert memory.long_term.relation["a2"].interaction_history[-1].content == "Thanks Bob"
    assert memory.long_term.relation["a3"].interaction_history[-1].content == "Asked Cara"


async def test_cleanup_cancels_timers_and_stops_workers(settings, directory, store):
    scheduler = ManualScheduler()
    manager = AgentManager.build(settings, directory, chat_model=ScriptedChatModel(), store=store, scheduler=scheduler)
    await manager.initialize_team("t1")
    lifecycles = list(manager.agents.values())

    await manager.cleanup()

    assert scheduler.active_timers == []
    assert manager.agents == {}
    assert all(not lifecycle.worker.running for lifecycle in lifecycles)
    assert manager.consolidator.pending == 0


def _idea(author):
    return Idea(author=author, content=IdeaContent(object="Congestion charge", function="Fewer cars"))


async def test_remove_agent_closes_its_lifecycle(manager, scheduler):
    await manager.initialize_team("t1")
    lifecycle = manager.agents["a2"]

    assert await manager.remove_agent("a2") is True

    assert not manager.is_active("a2")
    assert lifecycle.closed
    assert lifecycle.state.idle_timer is None
    assert len(scheduler.active_timers) == 2
    assert await manager.add_request("a2", make_request(RequestType.EVALUATE_IDEA)) is False
    assert await manager.remove_agent("a2") is False
