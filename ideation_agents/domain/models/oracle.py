"""Shapes the decision oracle is asked to answer in.

These are drafts: consumers validate them further before acting.
"""

from typing import Any, Dict, List, Optional
import json
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .agent_state import RequestType
from .team import IdeaContent, IdeaScores


class RawPlan(BaseModel):
    """Unvalidated planning answer; ``action`` may be anything the model said"""
    model_config = ConfigDict(extra="ignore")

    action: str
    reasoning: str = "No reasoning provided"
    target: Optional[str] = None


class KnowledgeUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    knowledge: Optional[str] = None
    action_plan: Optional[Dict[str, str]] = Field(
        None, validation_alias=AliasChoices("actionPlan", "action_plan")
    )


class IdeaDraft(IdeaContent):
    model_config = ConfigDict(extra="ignore")

    @field_validator("object", "function", "behavior", "structure", mode="before")
    @classmethod
    def stringify(cls, value: Any) -> Any:
        if isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False)
        return value


class EvaluationDraft(IdeaScores):
    model_config = ConfigDict(extra="ignore")

    comment: str = ""


class FeedbackDraft(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str = Field(min_length=1)


class RequestDraft(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    target_agent_id: str = Field(validation_alias=AliasChoices("targetAgentId", "target_agent_id", "target"))
    request_type: RequestType = Field(validation_alias=AliasChoices("requestType", "request_type"))
    message: str = ""


class TeammateBrief(BaseModel):
    """What the oracle is told about a teammate"""
    id: str
    name: str
    roles: List[str] = Field(default_factory=list)
    professional: Optional[str] = None
