import pytest

from ideation_agents.domain.models.agent_state import ActionType, AgentRole, PlanDecision
from ideation_agents.domain.models.oracle import RawPlan
from ideation_agents.domain.tool.decision_validator import DecisionValidator
from ideation_agents.domain.tool.planner import PlanningService
from ideation_agents.infrastructure.llm.decision_oracle import DecisionOracle

from conftest import ScriptedChatModel


@pytest.fixture
def validator():
    return DecisionValidator()


def test_permitted_action_is_kept(validator):
    plan = RawPlan(action="generate_idea", reasoning="The board is empty", target=None)

    decision = validator.validate(plan, [AgentRole.GENERATE_IDEA])

    assert decision.should_act is True
    assert decision.action_type == ActionType.GENERATE_IDEA
    assert decision.reasoning == "The board is empty"


def test_action_outside_roles_is_refused(validator):
    plan = RawPlan(action="evaluate_idea", reasoning="Bob's idea needs scores")

    decision = validator.validate(plan, [AgentRole.GENERATE_IDEA])

    assert decision.should_act is False
    assert decision.action_type is None
    assert "not permitted" in decision.reasoning
    assert "(original plan: Bob's idea needs scores)" in decision.reasoning


@pytest.mark.parametrize("action", ["wait", "dance", ""])
def test_wait_and_unknown_actions_are_no_ops(validator, action):
    decision = validator.validate(RawPlan(action=action, reasoning="because"), list(AgentRole))

    assert decision.should_act is False
    assert decision.action_type is None


def test_action_names_are_case_insensitive(validator):
    decision = validator.validate(RawPlan(action=" Give_Feedback ", target="a2"), [AgentRole.GIVE_FEEDBACK])

    assert decision.action_type == ActionType.GIVE_FEEDBACK
    assert decision.target == "a2"


def test_acting_without_action_type_is_normalized_to_no_op(validator):
    decision = validator.normalize(PlanDecision(should_act=True, reasoning="do something"))

    assert decision.should_act is False


async def test_decide_returns_permitted_plan(context_manager):
    chat_model = ScriptedChatModel({"plan": '{"action": "generate_idea", "reasoning": "Need ideas"}'})
    service = PlanningService(context_manager, DecisionOracle(chat_model))

    decision = await service.decide("a1", "t1")

    assert decision.should_act is True
    assert decision.action_type == ActionType.GENERATE_IDEA
    assert chat_model.calls == ["plan"]


async def test_decide_refuses_action_outside_roles(context_manager):
    chat_model = ScriptedChatModel({"plan": '{"action": "make_request", "reasoning": "Ask Bob"}'})
    service = PlanningService(context_manager, DecisionOracle(chat_model))

    decision = await service.decide("a2", "t1")

    assert decision.should_act is False
    assert "original plan: Ask Bob" in decision.reasoning


@pytest.mark.parametrize("reply", [RuntimeError("connection reset"), "not json at all", '{"reasoning": "no action"}'])
async def test_oracle_failure_falls_back_to_idle(context_manager, reply):
    service = PlanningService(context_manager, DecisionOracle(ScriptedChatModel({"plan": reply})))

    decision = await service.decide("a1", "t1")

    assert decision.should_act is False
    assert decision.reasoning.startswith("planning error:")


async def test_unknown_agent_never_calls_the_oracle(context_manager):
    chat_model = ScriptedChatModel()
    service = PlanningService(context_manager, DecisionOracle(chat_model))

    decision = await service.decide("ghost", "t1")

    assert decision.should_act is False
    assert chat_model.calls == []


async def test_planning_context_includes_memory_and_teammates(context_manager, consolidator, directory):
    await consolidator.ensure_memory("a1", "t1")

    context = await context_manager.build_context("a1", "t1")

    assert context.topic == "Urban Mobility"
    assert context.roles == [AgentRole.GENERATE_IDEA, AgentRole.EVALUATE_IDEA]
    assert {t.id for t in context.teammates} == {"a2", "a3"}
    assert "Urban Mobility" in context.knowledge
    assert context.action_plan["idea_generation"]
