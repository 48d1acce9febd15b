from typing import Dict, List, Optional
import asyncio
import random

import structlog
from langchain_core.language_models import BaseChatModel

from ideation_agents.domain.context.context_manager import ContextManager
from ideation_agents.domain.context.directory import TeamDirectory
from ideation_agents.domain.context.memory.cache_memory_store import CacheMemoryStore, MemoryStore
from ideation_agents.domain.context.memory.consolidation import MemoryConsolidator
from ideation_agents.domain.context.memory.memory_repository import MemoryRepository
from ideation_agents.domain.context.memory.redis_memory_store import RedisMemoryStore
from ideation_agents.domain.models.agent_state import AgentRequest, AgentStateSnapshot
from ideation_agents.domain.models.memory import AgentMemory, MemoryEvent, MemoryEventType
from ideation_agents.domain.orchestration.handlers.base_handler import ActionServices
from ideation_agents.domain.orchestration.lifecycle.scheduler import AsyncioScheduler, Scheduler
from ideation_agents.domain.orchestration.lifecycle.state_machine import AgentLifecycle
from ideation_agents.domain.streaming.status_notifier import StatusNotifier
from ideation_agents.domain.tool.action_executor import ActionExecutor
from ideation_agents.domain.tool.action_registry import build_action_registry
from ideation_agents.domain.tool.planner import PlanningService
from ideation_agents.infrastructure.config import EngineSettings
from ideation_agents.infrastructure.llm.decision_oracle import DecisionOracle, build_chat_model

logger = structlog.get_logger(__name__)


class AgentManager:
    """Registry of active agents and the entry point for everything outside the engine"""

    def __init__(
        self,
        directory: TeamDirectory,
        store: MemoryStore,
        consolidator: MemoryConsolidator,
        planner: PlanningService,
        executor: ActionExecutor,
        scheduler: Scheduler,
        notifier: Optional[StatusNotifier] = None,
        settings: Optional[EngineSettings] = None,
        rng: Optional[random.Random] = None
    ):
        self.directory = directory
        self.store = store
        self.consolidator = consolidator
        self.planner = planner
        self.executor = executor
        self.scheduler = scheduler
        self.notifier = notifier
        self.settings = settings or EngineSettings()
        self.rng = rng or random.Random()
        self.agents: Dict[str, AgentLifecycle] = {}
        self._lock = asyncio.Lock()

    @classmethod
    def build(
        cls,
        settings: EngineSettings,
        directory: TeamDirectory,
        chat_model: Optional[BaseChatModel] = None,
        store: Optional[MemoryStore] = None,
        scheduler: Optional[Scheduler] = None,
        rng: Optional[random.Random] = None
    ) -> "AgentManager":
        """Wire the engine from settings"""

        if store is None:
            store = RedisMemoryStore(settings.redis_url) if settings.store_backend == "redis" else CacheMemoryStore()

        oracle = DecisionOracle(chat_model or build_chat_model(settings), settings.oracle_timeout_seconds)
        repository = MemoryRepository(store, directory, settings.memory_ttl_seconds, settings.default_topic)
        consolidator = MemoryConsolidator(
            repository, directory, oracle, settings.request_list_limit, settings.default_topic
        )
        context_manager = ContextManager(directory, repository, settings.default_topic)
        notifier = StatusNotifier()

        services = ActionServices(
            directory, oracle, consolidator, context_manager, notifier, fallback_topic=settings.default_topic
        )
        manager = cls(
            directory=directory,
            store=store,
            consolidator=consolidator,
            planner=PlanningService(context_manager, oracle),
            executor=ActionExecutor(build_action_registry(services)),
            scheduler=scheduler or AsyncioScheduler(),
            notifier=notifier,
            settings=settings,
            rng=rng
        )
        services.request_sink = manager.add_request
        return manager

    # Agent lifecycle

    async def initialize_agent(self, agent_id: str, team_id: str) -> Optional[AgentStateSnapshot]:
        """Start an agent idle; an agent that is already active is left as it is"""

        async with self._lock:
            existing = self.agents.get(agent_id)
            if existing is not None:
                logger.info("Agent already active", agent_id=agent_id, team_id=existing.team_id)
                return existing.snapshot()

            profile = await self.directory.get_agent_by_id(agent_id)
            if profile is None:
                logger.warning("Cannot initialize unknown agent", agent_id=agent_id, team_id=team_id)
                return None

            try:
                await self.consolidator.ensure_memory(agent_id, team_id)
            except Exception as e:
                logger.error("Memory setup failed", agent_id=agent_id, error=str(e), exc_info=True)

            lifecycle = AgentLifecycle(
                agent_id,
                team_id,
                self.scheduler,
                self.planner,
                self.executor,
                notifier=self.notifier,
                agent_name=profile.name,
                idle_wait_min=self.settings.idle_wait_min_seconds,
                idle_wait_max=self.settings.idle_wait_max_seconds,
                stuck_timeout=self.settings.stuck_timeout_seconds,
                rng=self.rng
            )
            self.agents[agent_id] = lifecycle

        await lifecycle.initialize()
        logger.info("Agent initialized", agent_id=agent_id, team_id=team_id)
        return lifecycle.snapshot()

    async def initialize_team(self, team_id: str) -> List[AgentStateSnapshot]:
        """Initialize every AI member of a team"""

        team = await self.directory.get_team_by_id(team_id)
        if team is None:
            logger.warning("Cannot initialize unknown team", team_id=team_id)
            return []

        snapshots = []
        for agent_id in team.agent_ids():
            snapshot = await self.initialize_agent(agent_id, team_id)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    async def remove_agent(self, agent_id: str) -> bool:
        async with self._lock:
            lifecycle = self.agents.pop(agent_id, None)
        if lifecycle is None:
            return False
        await lifecycle.close()
        return True

    def is_active(self, agent_id: str) -> bool:
        return agent_id in self.agents

    async def add_request(self, agent_id: str, request: AgentRequest) -> bool:
        """Queue a request for an active agent; False when it is not active"""

        lifecycle = self.agents.get(agent_id)
        if lifecycle is None:
            logger.warning(
                "Request for inactive agent ignored",
                agent_id=agent_id,
                request_id=request.id,
                requester_id=request.requester_id
            )
            return False

        accepted = await lifecycle.add_request(request)
        if accepted:
            self.consolidator.note_request(agent_id, request)
        return accepted

    def get_agent_state(self, agent_id: str) -> Optional[AgentStateSnapshot]:
        lifecycle = self.agents.get(agent_id)
        return lifecycle.snapshot() if lifecycle else None

    def get_all_agent_states(self, team_id: Optional[str] = None) -> Dict[str, AgentStateSnapshot]:
        return {
            agent_id: lifecycle.snapshot()
            for agent_id, lifecycle in self.agents.items()
            if team_id is None or lifecycle.team_id == team_id
        }

    # Memory

    def trigger_memory_update(
        self,
        agent_id: str,
        event_type: MemoryEventType,
        content: str,
        related_agent_id: Optional[str] = None,
        team_id: Optional[str] = None
    ) -> asyncio.Task:
        if team_id is None and agent_id in self.agents:
            team_id = self.agents[agent_id].team_id
        return self.consolidator.trigger_memory_update(agent_id, event_type, content, related_agent_id, team_id)

    async def process_memory_consolidation(
        self,
        agent_id: str,
        events: List[MemoryEvent],
        team_id: Optional[str] = None
    ) -> Optional[AgentMemory]:
        return await self.consolidator.process_memory_consolidation(agent_id, events, team_id)

    async def get_memory(self, agent_id: str, team_id: Optional[str] = None) -> Optional[AgentMemory]:
        return await self.consolidator.repository.load(agent_id, team_id)

    async def migrate_team(self, team_id: str) -> Dict[str, bool]:
        """Migrate or create current-shape memory for every AI member of a team"""

        team = await self.directory.get_team_by_id(team_id)
        if team is None:
            logger.warning("Cannot migrate unknown team", team_id=team_id)
            return {}

        results = {}
        for agent_id in team.agent_ids():
            try:
                results[agent_id] = await self.consolidator.ensure_memory(agent_id, team_id) is not None
            except Exception as e:
                logger.error("Memory migration failed", agent_id=agent_id, error=str(e), exc_info=True)
                results[agent_id] = False

        logger.info("Team memory migrated", team_id=team_id, migrated=sum(results.values()), total=len(results))
        return results

    async def cleanup(self):
        """Stop every agent, then wait for outstanding memory updates"""

        async with self._lock:
            lifecycles = list(self.agents.values())
            self.agents.clear()

        for lifecycle in lifecycles:
            await lifecycle.close()

        await self.scheduler.shutdown()
        await self.consolidator.drain()
        await self.store.close()
        logger.info("Agent manager cleaned up", agents=len(lifecycles))
