"""Agent memory records.

Current-shape memory is stored as camelCase JSON; ``ActionPlan`` keys stay
snake_case because stored plans have always used them.
"""

from typing import Dict, Any, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime
from enum import Enum

from .agent_state import utcnow

OPINION_MAX_LENGTH = 100
USER_RELATION_KEY = "user"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_blob(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class RelationshipType(str, Enum):
    FRIEND = "FRIEND"
    AWKWARD = "AWKWARD"
    SUPERVISOR = "SUPERVISOR"


class MemoryEventType(str, Enum):
    """Kinds of interaction events folded into long-term memory"""
    FEEDBACK = "feedback"
    REQUEST = "request"
    IDEA_GENERATION = "idea_generation"
    IDEA_EVALUATION = "idea_evaluation"
    FEEDBACK_SESSION = "feedback_session"


class MemoryEvent(CamelModel):
    """One raw interaction event awaiting consolidation"""
    timestamp: datetime = Field(default_factory=utcnow)
    type: MemoryEventType
    content: str
    related_agent_id: Optional[str] = None

    def render(self, with_timestamp: bool = True) -> str:
        if with_timestamp:
            return f"- {self.type.value}: {self.content} ({self.timestamp.isoformat()})"
        return f"- {self.type.value}: {self.content}"


class ActionRecord(CamelModel):
    type: str
    timestamp: datetime = Field(default_factory=utcnow)
    payload: Dict[str, Any] = Field(default_factory=dict)


class RequestSummary(CamelModel):
    id: str
    requester_id: str
    requester_name: str
    request_type: str
    content: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


class ChatMessageRecord(CamelModel):
    sender: str
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class ChatSession(CamelModel):
    """Reference to the live chat session an agent is part of"""
    session_id: str
    target_agent_id: str
    target_agent_name: str
    chat_type: str = "feedback_session"
    messages: List[ChatMessageRecord] = Field(default_factory=list)


class ShortTermMemory(CamelModel):
    action_history: Optional[ActionRecord] = None
    request_list: List[RequestSummary] = Field(default_factory=list)
    current_chat: Optional[ChatSession] = None


class ActionPlan(BaseModel):
    """Strategy per behavior category"""
    idea_generation: str = ""
    idea_evaluation: str = ""
    feedback: str = ""
    request: str = ""
    response: str = ""
    planning: str = ""


class AgentInfo(CamelModel):
    id: str
    name: str
    professional: Optional[str] = None
    personality: Optional[str] = None
    skills: Optional[str] = None


class InteractionRecord(CamelModel):
    timestamp: datetime = Field(default_factory=utcnow)
    action_item: str
    content: str


class RelationEntry(CamelModel):
    """Durable ledger of one counterpart relationship"""
    agent_info: AgentInfo
    relationship_type: RelationshipType = Field(default=RelationshipType.AWKWARD, alias="relationship")
    interaction_history: List[InteractionRecord] = Field(default_factory=list)
    my_opinion: str = "No opinion yet; we have not interacted."

    @field_validator("my_opinion")
    @classmethod
    def bound_opinion(cls, value: str) -> str:
        return truncate_opinion(value)


class LongTermMemory(CamelModel):
    knowledge: str
    action_plan: ActionPlan = Field(default_factory=ActionPlan)
    relation: Dict[str, RelationEntry] = Field(default_factory=dict)


class AgentMemory(CamelModel):
    """Current-shape memory of one agent"""
    agent_id: str
    short_term: ShortTermMemory = Field(default_factory=ShortTermMemory)
    long_term: LongTermMemory
    last_memory_update: datetime = Field(default_factory=utcnow)


class LegacyAgentMemory(BaseModel):
    """Memory as written before knowledge/actionPlan existed.

    Every field is loose: migration has to cope with whatever was stored.
    """
    model_config = ConfigDict(extra="allow")

    agent_id: Optional[str] = Field(None, alias="agentId")
    short_term: Dict[str, Any] = Field(default_factory=dict, alias="shortTerm")
    long_term: Dict[str, Any] = Field(default_factory=dict, alias="longTerm")

    @field_validator("agent_id", mode="before")
    @classmethod
    def coerce_agent_id(cls, value: Any) -> Optional[str]:
        return str(value) if value is not None else None

    @field_validator("short_term", "long_term", mode="before")
    @classmethod
    def coerce_section(cls, value: Any) -> Dict[str, Any]:
        return value if isinstance(value, dict) else {}


class CurrentMemory(BaseModel):
    kind: str = "current"
    memory: AgentMemory


class LegacyMemory(BaseModel):
    kind: str = "legacy"
    memory: LegacyAgentMemory


StoredMemory = Union[CurrentMemory, LegacyMemory]


def truncate_opinion(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    text = value.strip()
    return text[:OPINION_MAX_LENGTH]
