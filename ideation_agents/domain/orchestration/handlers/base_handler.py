from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple
from datetime import datetime

import structlog
from pydantic import BaseModel, ConfigDict

from ideation_agents.domain.context.context_manager import ContextManager
from ideation_agents.domain.context.directory import TeamDirectory
from ideation_agents.domain.context.memory.consolidation import MemoryConsolidator
from ideation_agents.domain.errors import HandlerError
from ideation_agents.domain.models.agent_state import ActionType, AgentRequest, utcnow
from ideation_agents.domain.models.memory import AgentMemory
from ideation_agents.domain.models.team import AgentProfile, ChatMessage, Team
from ideation_agents.domain.streaming.status_notifier import StatusEventType, StatusNotifier

logger = structlog.get_logger(__name__)

RequestSink = Callable[[str, AgentRequest], Awaitable[bool]]


class ActionInvocation(BaseModel):
    """One action to carry out, planned or request-triggered"""
    model_config = ConfigDict(frozen=True)

    agent_id: str
    team_id: str
    action_type: ActionType
    target: Optional[str] = None
    reasoning: str = ""
    request: Optional[AgentRequest] = None


class ActionServices:
    """Collaborators shared by every handler"""

    def __init__(
        self,
        directory: TeamDirectory,
        oracle,
        consolidator: MemoryConsolidator,
        context_manager: ContextManager,
        notifier: Optional[StatusNotifier] = None,
        request_sink: Optional[RequestSink] = None,
        fallback_topic: str = "Carbon Emission Reduction"
    ):
        self.directory = directory
        self.oracle = oracle
        self.consolidator = consolidator
        self.context_manager = context_manager
        self.notifier = notifier
        self.request_sink = request_sink
        self.fallback_topic = fallback_topic


class RequestHandler(ABC):
    """Base class for action handlers"""

    def __init__(self, name: str, description: str, services: ActionServices):
        self.name = name
        self.description = description
        self.services = services
        self.last_active: Optional[datetime] = None

    @abstractmethod
    async def handle(self, invocation: ActionInvocation) -> Dict[str, Any]:
        """Carry out the action; raises HandlerError when it cannot"""
        pass

    def update_activity(self):
        self.last_active = utcnow()

    def get_info(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "last_active": self.last_active.isoformat() if self.last_active else None
        }

    async def load_actor(self, invocation: ActionInvocation) -> Tuple[AgentProfile, Team]:
        profile = await self.services.directory.get_agent_by_id(invocation.agent_id)
        if profile is None:
            raise HandlerError(f"Agent {invocation.agent_id} not found")
        team = await self.services.directory.get_team_by_id(invocation.team_id)
        if team is None:
            raise HandlerError(f"Team {invocation.team_id} not found")
        return profile, team

    async def load_memory(self, invocation: ActionInvocation) -> Optional[AgentMemory]:
        # Memory enriches prompts; actions go ahead without it
        try:
            return await self.services.consolidator.ensure_memory(invocation.agent_id, invocation.team_id)
        except Exception as e:
            logger.warning("Memory unavailable for action", agent_id=invocation.agent_id, error=str(e))
            return None

    async def post_message(self, team_id: str, message: ChatMessage):
        await self.services.directory.add_chat_message(team_id, message)

    async def notify(self, invocation: ActionInvocation, message: str):
        if self.services.notifier is None:
            return
        await self.services.notifier.notify(
            invocation.team_id, message, agent_id=invocation.agent_id, event_type=StatusEventType.ACTION
        )
