from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime
import uuid

from .agent_state import AgentRole, utcnow
from .memory import RelationshipType


class AgentProfile(BaseModel):
    """AI teammate profile"""
    id: str
    name: str
    age: Optional[int] = None
    professional: str = ""
    skills: str = ""
    personality: Optional[str] = None
    value: Optional[str] = None
    design_style: Optional[str] = None
    autonomy: int = Field(default=3, ge=1, le=5)


class TeamMember(BaseModel):
    agent_id: Optional[str] = Field(None, description="None for the human teammate")
    roles: List[AgentRole] = Field(default_factory=list)
    is_leader: bool = False
    is_user: bool = False


class Relationship(BaseModel):
    """Declared relationship between two members, by member name"""
    from_name: str
    to_name: str
    type: RelationshipType


class Team(BaseModel):
    id: str
    team_name: str
    topic: Optional[str] = None
    members: List[TeamMember] = Field(default_factory=list)
    relationships: List[Relationship] = Field(default_factory=list)
    shared_mental_model: Optional[str] = None

    def get_member(self, agent_id: str) -> Optional[TeamMember]:
        for member in self.members:
            if member.agent_id == agent_id:
                return member
        return None

    def roles_of(self, agent_id: str) -> List[AgentRole]:
        member = self.get_member(agent_id)
        return list(member.roles) if member else []

    def agent_ids(self) -> List[str]:
        return [m.agent_id for m in self.members if not m.is_user and m.agent_id]

    def relationship_between(self, name_a: str, name_b: str) -> Optional[RelationshipType]:
        for rel in self.relationships:
            if {rel.from_name, rel.to_name} == {name_a, name_b}:
                return rel.type
        return None


class IdeaContent(BaseModel):
    object: str = "Untitled idea"
    function: str = ""
    behavior: str = ""
    structure: str = ""


class IdeaScores(BaseModel):
    insightful: int = Field(ge=1, le=5)
    actionable: int = Field(ge=1, le=5)
    relevance: int = Field(ge=1, le=5)


class Evaluation(BaseModel):
    evaluator: str
    scores: IdeaScores
    comment: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


class Idea(BaseModel):
    id: str = Field(default_factory=lambda: f"idea_{uuid.uuid4().hex[:10]}")
    author: str = Field(description="Agent id, or 'user'")
    content: IdeaContent
    evaluations: List[Evaluation] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)

    def evaluated_by(self, agent_id: str) -> bool:
        return any(e.evaluator == agent_id for e in self.evaluations)


class ChatMessage(BaseModel):
    sender: str
    type: str = "system"
    content: str
    target: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)
