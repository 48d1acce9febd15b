from typing import Dict, List, Any, Optional
import structlog
from pydantic import BaseModel, Field

from ideation_agents.domain.models.agent_state import AgentRole
from ideation_agents.domain.models.memory import AgentMemory
from ideation_agents.domain.models.oracle import TeammateBrief
from ideation_agents.domain.models.team import AgentProfile, Team
from .directory import TeamDirectory
from .memory.memory_repository import MemoryRepository

logger = structlog.get_logger(__name__)


class IdeaBrief(BaseModel):
    idea_number: int
    author_name: str
    object: str
    function: str


class PlanningContext(BaseModel):
    """Everything the planning call sees about an agent and its team"""
    agent_id: str
    team_id: str
    profile: AgentProfile
    roles: List[AgentRole] = Field(default_factory=list)
    team_name: str
    topic: str
    teammates: List[TeammateBrief] = Field(default_factory=list)
    existing_ideas: List[IdeaBrief] = Field(default_factory=list)
    recent_messages: List[str] = Field(default_factory=list)
    shared_mental_model: Optional[str] = None
    knowledge: Optional[str] = None
    action_plan: Dict[str, str] = Field(default_factory=dict)

    @property
    def current_ideas_count(self) -> int:
        return len(self.existing_ideas)


class ContextManager:
    """Assembles planning context from the directory and the agent's memory"""

    def __init__(
        self,
        directory: TeamDirectory,
        repository: MemoryRepository,
        fallback_topic: str = "Carbon Emission Reduction",
        recent_message_limit: int = 5
    ):
        self.directory = directory
        self.repository = repository
        self.fallback_topic = fallback_topic
        self.recent_message_limit = recent_message_limit

    async def build_context(self, agent_id: str, team_id: str) -> Optional[PlanningContext]:
        """Build planning context; None when the agent or team is unknown"""

        profile = await self.directory.get_agent_by_id(agent_id)
        team = await self.directory.get_team_by_id(team_id)

        if profile is None or team is None:
            logger.warning(
                "Cannot build planning context",
                agent_id=agent_id,
                team_id=team_id,
                profile_found=profile is not None,
                team_found=team is not None
            )
            return None

        teammates = await self.get_teammates(team, exclude=agent_id)
        names = {t.id: t.name for t in teammates}
        names[agent_id] = profile.name

        ideas = await self.directory.get_ideas(team_id)
        existing_ideas = [
            IdeaBrief(
                idea_number=index + 1,
                author_name=names.get(idea.author, idea.author),
                object=idea.content.object,
                function=idea.content.function
            )
            for index, idea in enumerate(ideas)
        ]

        messages = await self.directory.get_chat_history(team_id, limit=self.recent_message_limit)
        recent_messages = [f"{names.get(m.sender, m.sender)}: {m.content}" for m in messages]

        memory = await self._load_memory(agent_id, team_id)

        return PlanningContext(
            agent_id=agent_id,
            team_id=team_id,
            profile=profile,
            roles=team.roles_of(agent_id),
            team_name=team.team_name,
            topic=team.topic or self.fallback_topic,
            teammates=teammates,
            existing_ideas=existing_ideas,
            recent_messages=recent_messages,
            shared_mental_model=team.shared_mental_model,
            knowledge=memory.long_term.knowledge if memory else None,
            action_plan=memory.long_term.action_plan.model_dump() if memory else {}
        )

    async def get_teammates(self, team: Team, exclude: Optional[str] = None) -> List[TeammateBrief]:
        """AI teammates with their roles"""

        teammates = []
        for member in team.members:
            if member.is_user or not member.agent_id or member.agent_id == exclude:
                continue
            other = await self.directory.get_agent_by_id(member.agent_id)
            teammates.append(TeammateBrief(
                id=member.agent_id,
                name=other.name if other else member.agent_id,
                roles=[role.value for role in member.roles],
                professional=other.professional if other else None
            ))
        return teammates

    async def _load_memory(self, agent_id: str, team_id: str) -> Optional[AgentMemory]:
        # Memory only enriches the prompt; planning goes ahead without it
        try:
            return await self.repository.load(agent_id, team_id)
        except Exception as e:
            logger.warning("Memory unavailable for planning", agent_id=agent_id, error=str(e))
            return None

    def summarize(self, context: PlanningContext) -> Dict[str, Any]:
        """Compact description for logs"""

        return {
            "agent_id": context.agent_id,
            "team_id": context.team_id,
            "roles": [r.value for r in context.roles],
            "ideas": context.current_ideas_count,
            "teammates": len(context.teammates),
            "has_memory": context.knowledge is not None
        }
