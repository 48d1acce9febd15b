"""Folding interaction events into long-term memory.

Every read-modify-write of one agent's memory happens under that agent's
repository lock. Oracle failures never lose data: interaction history is
appended before any opinion is refreshed, and a failed summary keeps the
previous value.
"""

from typing import Any, Callable, Dict, List, Optional, Sequence, Set
import asyncio
from collections import OrderedDict

import structlog

from ideation_agents.domain.context.directory import TeamDirectory
from ideation_agents.domain.models.agent_state import AgentRequest, utcnow
from ideation_agents.domain.models.memory import (
    ActionPlan, ActionRecord, AgentInfo, AgentMemory, ChatMessageRecord,
    ChatSession, InteractionRecord, MemoryEvent, MemoryEventType, RelationEntry,
    RelationshipType, RequestSummary, USER_RELATION_KEY, truncate_opinion
)
from ideation_agents.domain.models.result import Err
from ideation_agents.domain.models.team import AgentProfile, Team
from ideation_agents.infrastructure.observability.logging import agent_logger
from . import migration
from .memory_repository import MemoryRepository

logger = structlog.get_logger(__name__)


class MemoryConsolidator:
    """Owns every write to agent memory"""

    def __init__(
        self,
        repository: MemoryRepository,
        directory: TeamDirectory,
        oracle,
        request_list_limit: int = 20,
        fallback_topic: str = migration.DEFAULT_TOPIC
    ):
        self.repository = repository
        self.directory = directory
        self.oracle = oracle
        self.request_list_limit = request_list_limit
        self.fallback_topic = fallback_topic
        self._tasks: Set[asyncio.Task] = set()

    # Loading and seeding

    async def _create_memory(self, agent_id: str, team: Team) -> AgentMemory:
        profiles: Dict[str, AgentProfile] = {}
        for member_id in team.agent_ids():
            profile = await self.directory.get_agent_by_id(member_id)
            if profile:
                profiles[member_id] = profile
        return migration.create_agent_memory(agent_id, team, profiles, self.fallback_topic)

    async def _load_or_create(self, agent_id: str, team_id: Optional[str]) -> Optional[AgentMemory]:
        # Caller holds the agent's lock
        memory = await self.repository.load(agent_id, team_id)
        if memory is not None or not team_id:
            return memory

        team = await self.directory.get_team_by_id(team_id)
        if team is None:
            return None

        memory = await self._create_memory(agent_id, team)
        await self.repository.save(agent_id, memory)
        logger.info("Created agent memory", agent_id=agent_id, team_id=team_id, relations=len(memory.long_term.relation))
        return memory

    async def ensure_memory(self, agent_id: str, team_id: str) -> Optional[AgentMemory]:
        """Load memory, migrating or creating it as needed"""

        async with self.repository.lock(agent_id):
            return await self._load_or_create(agent_id, team_id)

    async def _mutate(
        self,
        agent_id: str,
        team_id: Optional[str],
        change: Callable[[AgentMemory], Any]
    ) -> Optional[AgentMemory]:
        async with self.repository.lock(agent_id):
            memory = await self._load_or_create(agent_id, team_id)
            if memory is None:
                logger.warning("No memory to update", agent_id=agent_id, team_id=team_id)
                return None
            change(memory)
            await self.repository.save(agent_id, memory)
            return memory

    # Short-term memory

    async def record_action(
        self,
        agent_id: str,
        action_type: str,
        payload: Optional[Dict[str, Any]] = None,
        team_id: Optional[str] = None
    ) -> Optional[AgentMemory]:
        """Remember the agent's most recent action"""

        def change(memory: AgentMemory):
            memory.short_term.action_history = ActionRecord(type=action_type, payload=payload or {})

        return await self._mutate(agent_id, team_id, change)

    async def add_request_summary(self, agent_id: str, request: AgentRequest) -> Optional[AgentMemory]:
        """Remember an incoming request; only the newest ones are kept"""

        summary = RequestSummary(
            id=request.id,
            requester_id=request.requester_id,
            requester_name=request.requester_name,
            request_type=request.type.value,
            content=request.message,
            timestamp=request.enqueued_at
        )

        def change(memory: AgentMemory):
            memory.short_term.request_list.append(summary)
            if len(memory.short_term.request_list) > self.request_list_limit:
                memory.short_term.request_list = memory.short_term.request_list[-self.request_list_limit:]

        return await self._mutate(agent_id, request.team_id, change)

    async def start_chat_session(
        self,
        agent_id: str,
        session_id: str,
        target_agent_id: str,
        target_agent_name: str,
        team_id: Optional[str] = None
    ) -> Optional[AgentMemory]:
        def change(memory: AgentMemory):
            memory.short_term.current_chat = ChatSession(
                session_id=session_id,
                target_agent_id=target_agent_id,
                target_agent_name=target_agent_name
            )

        return await self._mutate(agent_id, team_id, change)

    async def append_chat_message(self, agent_id: str, sender: str, content: str) -> Optional[AgentMemory]:
        def change(memory: AgentMemory):
            if memory.short_term.current_chat is None:
                logger.warning("No active chat session", agent_id=agent_id)
                return
            memory.short_term.current_chat.messages.append(ChatMessageRecord(sender=sender, content=content))

        return await self._mutate(agent_id, None, change)

    async def end_chat_session(self, agent_id: str) -> Optional[AgentMemory]:
        """Close the active session and record it on the counterpart's relation"""

        def change(memory: AgentMemory):
            session = memory.short_term.current_chat
            if session is None:
                return
            memory.short_term.current_chat = None

            relation = memory.long_term.relation.get(session.target_agent_id)
            if relation is None:
                relation = RelationEntry(
                    agent_info=AgentInfo(id=session.target_agent_id, name=session.target_agent_name)
                )
                memory.long_term.relation[session.target_agent_id] = relation
            relation.interaction_history.append(InteractionRecord(
                action_item=MemoryEventType.FEEDBACK_SESSION.value,
                content=f"feedback_session: {len(session.messages)} messages"
            ))

        return await self._mutate(agent_id, None, change)

    # Long-term consolidation

    async def process_memory_consolidation(
        self,
        agent_id: str,
        events: Sequence[MemoryEvent],
        team_id: Optional[str] = None
    ) -> Optional[AgentMemory]:
        """Fold ``events`` into the agent's knowledge, strategies and relations"""

        if not events:
            return None

        async with self.repository.lock(agent_id):
            memory = await self._load_or_create(agent_id, team_id)
            if memory is None:
                agent_logger.log_memory_update(agent_id, "load", False, {"reason": "no memory"})
                return None

            profile = await self.directory.get_agent_by_id(agent_id)
            team = await self.directory.get_team_by_id(team_id) if team_id else None

            if profile is not None:
                await self._update_knowledge(profile, memory, events)

            await self._update_relations(agent_id, profile, team, memory, events)

            memory.last_memory_update = utcnow()
            await self.repository.save(agent_id, memory)

        agent_logger.log_memory_update(agent_id, "consolidated", True, {"events": len(events)})
        return memory

    async def _update_knowledge(self, profile: AgentProfile, memory: AgentMemory, events: Sequence[MemoryEvent]):
        result = await self.oracle.summarize_knowledge(profile, memory, events)
        if isinstance(result, Err):
            agent_logger.log_memory_update(profile.id, "knowledge", False, {"reason": result.reason})
            return

        update = result.value
        if update.knowledge and update.knowledge.strip():
            memory.long_term.knowledge = update.knowledge.strip()
        if update.action_plan:
            known = {k: v for k, v in update.action_plan.items() if k in ActionPlan.model_fields and v}
            memory.long_term.action_plan = memory.long_term.action_plan.model_copy(update=known)
        agent_logger.log_memory_update(profile.id, "knowledge", True)

    async def _update_relations(
        self,
        agent_id: str,
        profile: Optional[AgentProfile],
        team: Optional[Team],
        memory: AgentMemory,
        events: Sequence[MemoryEvent]
    ):
        grouped: Dict[str, List[MemoryEvent]] = OrderedDict()
        for event in events:
            key = event.related_agent_id
            if not key or key == agent_id:
                continue
            grouped.setdefault(key, []).append(event)

        # History first: it must survive any oracle failure below
        for key, group in grouped.items():
            relation = memory.long_term.relation.get(key)
            if relation is None:
                relation = await self._new_relation(key, profile, team)
                memory.long_term.relation[key] = relation
            for event in group:
                relation.interaction_history.append(InteractionRecord(
                    timestamp=event.timestamp,
                    action_item=event.type.value,
                    content=event.content
                ))

        for key, group in grouped.items():
            relation = memory.long_term.relation[key]
            result = await self.oracle.summarize_opinion(relation, group)
            if isinstance(result, Err):
                agent_logger.log_memory_update(agent_id, "opinion", False, {"relation": key, "reason": result.reason})
                continue
            relation.my_opinion = truncate_opinion(result.value)

    async def _new_relation(self, key: str, profile: Optional[AgentProfile], team: Optional[Team]) -> RelationEntry:
        if key == USER_RELATION_KEY:
            info = migration.user_agent_info()
        else:
            other = await self.directory.get_agent_by_id(key)
            info = migration.agent_info_from_profile(other) if other else AgentInfo(id=key, name=key)

        relationship = None
        if team is not None and profile is not None:
            relationship = team.relationship_between(profile.name, info.name)

        return RelationEntry(agent_info=info, relationship_type=relationship or RelationshipType.AWKWARD)

    # Background scheduling

    def trigger_memory_update(
        self,
        agent_id: str,
        event_type: MemoryEventType,
        content: str,
        related_agent_id: Optional[str] = None,
        team_id: Optional[str] = None
    ) -> asyncio.Task:
        """Consolidate one event in the background; failures are only logged"""

        event = MemoryEvent(type=event_type, content=content, related_agent_id=related_agent_id)
        return self.spawn(self._safe_consolidate(agent_id, [event], team_id), name=f"memory:{agent_id}")

    def note_request(self, agent_id: str, request: AgentRequest) -> asyncio.Task:
        return self.spawn(self._safe(self.add_request_summary(agent_id, request), agent_id, "request_list"),
                          name=f"request-summary:{agent_id}")

    def spawn(self, coro, name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _safe_consolidate(self, agent_id: str, events: List[MemoryEvent], team_id: Optional[str]):
        await self._safe(self.process_memory_consolidation(agent_id, events, team_id), agent_id, "consolidation")

    async def _safe(self, coro, agent_id: str, step: str):
        try:
            return await coro
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Memory update failed", agent_id=agent_id, step=step, error=str(e), exc_info=True)
            return None

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self):
        """Wait for every outstanding background update"""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
