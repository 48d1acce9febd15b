from abc import ABC, abstractmethod
from typing import Dict, List, Optional
import asyncio
from collections import defaultdict

from ideation_agents.domain.models.team import (
    AgentProfile, ChatMessage, Evaluation, Idea, Team
)


class TeamDirectory(ABC):
    """Read access to profiles and teams, plus the team's idea board and chat log.

    Lookups return None when nothing is found; that is not an error.
    """

    @abstractmethod
    async def get_agent_by_id(self, agent_id: str) -> Optional[AgentProfile]:
        pass

    @abstractmethod
    async def get_team_by_id(self, team_id: str) -> Optional[Team]:
        pass

    @abstractmethod
    async def get_ideas(self, team_id: str) -> List[Idea]:
        pass

    @abstractmethod
    async def add_idea(self, team_id: str, idea: Idea) -> Idea:
        pass

    @abstractmethod
    async def add_evaluation(self, team_id: str, idea_id: str, evaluation: Evaluation) -> Optional[Idea]:
        pass

    @abstractmethod
    async def add_chat_message(self, team_id: str, message: ChatMessage) -> None:
        pass

    @abstractmethod
    async def get_chat_history(self, team_id: str, limit: int = 20) -> List[ChatMessage]:
        pass

    async def get_team_agents(self, team_id: str) -> List[AgentProfile]:
        """Profiles of every AI member of a team"""
        team = await self.get_team_by_id(team_id)
        if not team:
            return []
        profiles = []
        for agent_id in team.agent_ids():
            profile = await self.get_agent_by_id(agent_id)
            if profile:
                profiles.append(profile)
        return profiles


class InMemoryTeamDirectory(TeamDirectory):
    """Process-local directory, used for development and tests"""

    def __init__(self):
        self.agents: Dict[str, AgentProfile] = {}
        self.teams: Dict[str, Team] = {}
        self.ideas: Dict[str, List[Idea]] = defaultdict(list)
        self.chat: Dict[str, List[ChatMessage]] = defaultdict(list)
        self._lock = asyncio.Lock()

    def register_agent(self, profile: AgentProfile) -> AgentProfile:
        self.agents[profile.id] = profile
        return profile

    def register_team(self, team: Team) -> Team:
        self.teams[team.id] = team
        return team

    async def get_agent_by_id(self, agent_id: str) -> Optional[AgentProfile]:
        return self.agents.get(agent_id)

    async def get_team_by_id(self, team_id: str) -> Optional[Team]:
        return self.teams.get(team_id)

    async def get_ideas(self, team_id: str) -> List[Idea]:
        async with self._lock:
            return [idea.model_copy(deep=True) for idea in self.ideas.get(team_id, [])]

    async def add_idea(self, team_id: str, idea: Idea) -> Idea:
        async with self._lock:
            self.ideas[team_id].append(idea)
            return idea

    async def add_evaluation(self, team_id: str, idea_id: str, evaluation: Evaluation) -> Optional[Idea]:
        async with self._lock:
            for idea in self.ideas.get(team_id, []):
                if idea.id == idea_id:
                    idea.evaluations.append(evaluation)
                    return idea
            return None

    async def add_chat_message(self, team_id: str, message: ChatMessage) -> None:
        async with self._lock:
            self.chat[team_id].append(message)

            # Limit chat history to 200 messages
            if len(self.chat[team_id]) > 200:
                self.chat[team_id] = self.chat[team_id][-200:]

    async def get_chat_history(self, team_id: str, limit: int = 20) -> List[ChatMessage]:
        async with self._lock:
            return list(self.chat.get(team_id, [])[-limit:])
