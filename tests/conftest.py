"""Shared fixtures: a manual clock, a scripted chat model and a small team."""

import asyncio
import random
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from langchain_core.messages import AIMessage

from ideation_agents.domain.context.context_manager import ContextManager
from ideation_agents.domain.context.directory import InMemoryTeamDirectory
from ideation_agents.domain.context.memory.cache_memory_store import CacheMemoryStore
from ideation_agents.domain.context.memory.consolidation import MemoryConsolidator
from ideation_agents.domain.context.memory.memory_repository import MemoryRepository
from ideation_agents.domain.models.agent_state import AgentRequest, PlanDecision, RequestType
from ideation_agents.domain.models.memory import RelationshipType
from ideation_agents.domain.models.team import AgentProfile, Relationship, Team, TeamMember
from ideation_agents.domain.models.agent_state import AgentRole
from ideation_agents.domain.orchestration.lifecycle.scheduler import Scheduler, TimerCallback, TimerHandle
from ideation_agents.infrastructure.config import EngineSettings
from ideation_agents.infrastructure.llm.decision_oracle import DecisionOracle


class ManualScheduler(Scheduler):
    """Clock that only moves when a test calls ``advance``"""

    def __init__(self):
        self.clock = 0.0
        self.pending: List[Tuple[TimerHandle, TimerCallback]] = []

    def now(self) -> float:
        return self.clock

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        handle = TimerHandle(self.clock + delay, delay)
        self.pending.append((handle, callback))
        return handle

    @property
    def active_timers(self) -> List[TimerHandle]:
        return [handle for handle, _ in self.pending if not handle.cancelled]

    async def advance(self, seconds: float):
        """Fire every callback due within ``seconds``, awaiting each one"""

        target = self.clock + seconds
        while True:
            due = [(h, cb) for h, cb in self.pending if not h.cancelled and h.when <= target]
            if not due:
                break
            handle, callback = min(due, key=lambda item: item[0].when)
            self.pending.remove((handle, callback))
            self.clock = handle.when
            await callback()
        self.pending = [(h, cb) for h, cb in self.pending if not h.cancelled]
        self.clock = target


class ScriptedChatModel:
    """Answers each oracle prompt from a per-endpoint script.

    A reply that is an exception instance is raised instead of returned.
    """

    MARKERS = [
        ("plan", "Decide your next action"),
        ("knowledge", "Current strategies"),
        ("opinion", "Update your opinion"),
        ("idea", "Propose one new idea"),
        ("evaluation", "Idea to evaluate"),
        ("feedback", "constructive feedback"),
        ("request", "Ask one teammate"),
    ]

    DEFAULTS = {
        "plan": '{"action": "wait", "reasoning": "Nothing to do"}',
        "knowledge": '{"knowledge": "Updated knowledge", "actionPlan": {"feedback": "Be specific"}}',
        "opinion": "Reliable and thoughtful.",
        "idea": '```json\n{"object": "Bike lanes", "function": "Safer cycling", "behavior": "Separated", "structure": "Curbs"}\n```',
        "evaluation": '{"insightful": 4, "actionable": 3, "relevance": 5, "comment": "Solid"}',
        "feedback": '{"message": "Consider the cost of maintenance."}',
        "request": '{"targetAgentId": "a2", "requestType": "evaluate_idea", "message": "Could you evaluate the latest idea?"}',
    }

    def __init__(self, replies: Optional[Dict[str, Any]] = None):
        self.replies = dict(self.DEFAULTS)
        self.replies.update(replies or {})
        self.calls: List[str] = []

    async def ainvoke(self, messages):
        prompt = messages[-1].content
        for key, marker in self.MARKERS:
            if marker in prompt:
                self.calls.append(key)
                reply = self.replies[key]
                if isinstance(reply, BaseException):
                    raise reply
                if callable(reply):
                    reply = reply(prompt)
                return AIMessage(content=reply)
        raise AssertionError(f"Unexpected prompt: {prompt[:60]}")


class StubPlanner:
    """Returns scripted decisions; an exception in the script is raised"""

    def __init__(self, decisions: Optional[List[Any]] = None, gate: Optional[asyncio.Event] = None):
        self.decisions = list(decisions or [])
        self.gate = gate
        self.calls: List[Tuple[str, str]] = []

    async def decide(self, agent_id: str, team_id: str) -> PlanDecision:
        self.calls.append((agent_id, team_id))
        if self.gate is not None:
            await self.gate.wait()
        decision = self.decisions.pop(0) if self.decisions else PlanDecision.no_op("nothing to do")
        if isinstance(decision, BaseException):
            raise decision
        return decision


class RecordingExecutor:
    """Records what it was asked to do; can block or fail on demand"""

    def __init__(self, fail_with: Optional[BaseException] = None, gate: Optional[asyncio.Event] = None):
        self.fail_with = fail_with
        self.gate = gate
        self.executed: List[PlanDecision] = []
        self.dispatched: List[AgentRequest] = []

    async def execute(self, agent_id: str, team_id: str, decision: PlanDecision):
        self.executed.append(decision)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        return {}

    async def dispatch_request(self, agent_id: str, team_id: str, request: AgentRequest):
        self.dispatched.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        return {}


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0):
    """Yield to the loop until ``predicate`` holds"""

    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


def make_request(
    request_type: RequestType = RequestType.GENERATE_IDEA,
    team_id: str = "t1",
    requester_id: str = "user",
    requester_name: str = "User",
    **payload
) -> AgentRequest:
    return AgentRequest(
        type=request_type,
        team_id=team_id,
        requester_id=requester_id,
        requester_name=requester_name,
        payload=payload
    )


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(
        idle_wait_min_seconds=60,
        idle_wait_max_seconds=90,
        oracle_timeout_seconds=1,
        store_backend="memory",
        request_list_limit=3,
        log_format="console",
        _env_file=None
    )


@pytest.fixture
def directory() -> InMemoryTeamDirectory:
    directory = InMemoryTeamDirectory()
    directory.register_agent(AgentProfile(
        id="a1", name="Alice", age=34, professional="Urban planner", skills="Zoning", personality="Curious"
    ))
    directory.register_agent(AgentProfile(id="a2", name="Bob", professional="Engineer", skills="Transit"))
    directory.register_agent(AgentProfile(id="a3", name="Cara", professional="Designer", skills="UX"))
    directory.register_agent(AgentProfile(id="a4", name="Dan", professional="Economist", skills="Pricing"))

    directory.register_team(Team(
        id="t1",
        team_name="Green Team",
        topic="Urban Mobility",
        members=[
            TeamMember(agent_id="a1", roles=[AgentRole.GENERATE_IDEA, AgentRole.EVALUATE_IDEA]),
            TeamMember(agent_id="a2", roles=[AgentRole.EVALUATE_IDEA]),
            TeamMember(agent_id="a3", roles=[AgentRole.GIVE_FEEDBACK, AgentRole.MAKE_REQUEST]),
            TeamMember(agent_id=None, is_user=True, is_leader=True),
        ],
        relationships=[Relationship(from_name="Alice", to_name="Bob", type=RelationshipType.FRIEND)]
    ))
    directory.register_team(Team(
        id="t2",
        team_name="Blue Team",
        members=[TeamMember(agent_id="a4", roles=[AgentRole.GENERATE_IDEA])]
    ))
    return directory


@pytest.fixture
def store() -> CacheMemoryStore:
    return CacheMemoryStore()


@pytest.fixture
def repository(store, directory) -> MemoryRepository:
    return MemoryRepository(store, directory)


@pytest.fixture
def chat_model() -> ScriptedChatModel:
    return ScriptedChatModel()


@pytest.fixture
def oracle(chat_model) -> DecisionOracle:
    return DecisionOracle(chat_model, timeout_seconds=1)


@pytest.fixture
def consolidator(repository, directory, oracle) -> MemoryConsolidator:
    return MemoryConsolidator(repository, directory, oracle, request_list_limit=3)


@pytest.fixture
def context_manager(directory, repository) -> ContextManager:
    return ContextManager(directory, repository)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(7)
