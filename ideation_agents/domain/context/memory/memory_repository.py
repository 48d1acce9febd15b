from typing import Dict, Optional
import asyncio
from contextlib import asynccontextmanager

import structlog

from ideation_agents.domain.context.directory import TeamDirectory
from ideation_agents.domain.models.memory import AgentMemory, CurrentMemory, LegacyMemory
from .cache_memory_store import MemoryStore
from . import migration

logger = structlog.get_logger(__name__)


def current_key(agent_id: str) -> str:
    return f"new_agent_memory:{agent_id}"


def legacy_key(agent_id: str) -> str:
    return f"agent_memory:{agent_id}"


class MemoryRepository:
    """Loads and persists agent memory, migrating legacy blobs on first read.

    Callers that read, modify and write memory hold ``lock(agent_id)`` so
    updates to one agent never interleave.
    """

    def __init__(
        self,
        store: MemoryStore,
        directory: TeamDirectory,
        ttl_seconds: int = 3600 * 24 * 7,
        fallback_topic: str = migration.DEFAULT_TOPIC
    ):
        self.store = store
        self.directory = directory
        self.ttl_seconds = ttl_seconds
        self.fallback_topic = fallback_topic
        self._locks: Dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def lock(self, agent_id: str):
        lock = self._locks.setdefault(agent_id, asyncio.Lock())
        async with lock:
            yield

    async def load(self, agent_id: str, team_id: Optional[str] = None) -> Optional[AgentMemory]:
        """Current-shape memory for ``agent_id``, or None if the agent has none"""

        blob = await self.store.get(current_key(agent_id))
        stored = migration.classify_memory_blob(blob) if blob is not None else None

        if isinstance(stored, CurrentMemory):
            return stored.memory

        if stored is None:
            blob = await self.store.get(legacy_key(agent_id))
            if blob is None:
                return None
            stored = migration.classify_memory_blob(blob)

        if isinstance(stored, LegacyMemory):
            return await self._migrate(agent_id, stored, team_id)

        logger.warning("Stored memory has an unknown shape", agent_id=agent_id)
        return None

    async def save(self, agent_id: str, memory: AgentMemory) -> None:
        await self.store.set(current_key(agent_id), memory.to_blob(), ttl=self.ttl_seconds)

    async def _migrate(self, agent_id: str, stored: LegacyMemory, team_id: Optional[str]) -> AgentMemory:
        profile = await self.directory.get_agent_by_id(agent_id)
        team = await self.directory.get_team_by_id(team_id) if team_id else None

        memory = migration.migrate_legacy_memory(
            agent_id,
            stored.memory,
            profile=profile,
            team=team,
            fallback_topic=self.fallback_topic
        )
        await self.save(agent_id, memory)

        logger.info(
            "Migrated legacy memory",
            agent_id=agent_id,
            relations=len(memory.long_term.relation)
        )
        return memory
