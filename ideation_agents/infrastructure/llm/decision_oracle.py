from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar
import asyncio
import json
import re
import time

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, ValidationError

from ideation_agents.domain.context.context_manager import PlanningContext
from ideation_agents.domain.errors import OracleError, OracleResponseError, OracleTimeoutError
from ideation_agents.domain.models.memory import AgentMemory, MemoryEvent, RelationEntry, truncate_opinion
from ideation_agents.domain.models.oracle import (
    EvaluationDraft, FeedbackDraft, IdeaDraft, KnowledgeUpdate, RawPlan, RequestDraft, TeammateBrief
)
from ideation_agents.domain.models.result import Err, Ok, Result
from ideation_agents.domain.models.team import AgentProfile, Idea
from ideation_agents.infrastructure.config import EngineSettings
from ideation_agents.infrastructure.observability.logging import agent_logger
from . import prompts

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_json_response(text: str) -> Dict[str, Any]:
    """Parse a JSON object out of a model reply, tolerating Markdown fences"""

    cleaned = _FENCE.sub("", text.strip()).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        # Some replies wrap the object in prose; take the outermost braces
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise OracleResponseError(f"Reply is not JSON: {cleaned[:80]!r}")
        try:
            data = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError as e:
            raise OracleResponseError(f"Reply is not JSON: {e}") from e

    if not isinstance(data, dict):
        raise OracleResponseError(f"Expected a JSON object, got {type(data).__name__}")
    return data


class DecisionOracle:
    """Language-model client for every judgement the engine delegates.

    Endpoints never raise for timeouts, transport failures or malformed
    output; they return ``Err`` and the caller applies its own fallback.
    """

    def __init__(self, chat_model: BaseChatModel, timeout_seconds: float = 30.0):
        self.chat_model = chat_model
        self.timeout_seconds = timeout_seconds

    async def _complete(
        self,
        endpoint: str,
        prompt: str,
        system_prompt: Optional[str] = None,
        agent_id: Optional[str] = None
    ) -> Result[str]:
        messages = []
        if system_prompt:
            messages.append(SystemMessage(content=system_prompt))
        messages.append(HumanMessage(content=prompt))

        started = time.perf_counter()
        try:
            try:
                reply = await asyncio.wait_for(self.chat_model.ainvoke(messages), timeout=self.timeout_seconds)
            except asyncio.TimeoutError as e:
                raise OracleTimeoutError(f"{endpoint} timed out after {self.timeout_seconds}s") from e

            text = reply.content if isinstance(reply.content, str) else str(reply.content)
            if not text.strip():
                raise OracleResponseError(f"{endpoint} returned an empty reply")

        except OracleError as e:
            agent_logger.log_oracle_call(endpoint, (time.perf_counter() - started) * 1000, False, str(e), agent_id)
            return Err(str(e))
        except Exception as e:
            # Transport and provider errors
            agent_logger.log_oracle_call(endpoint, (time.perf_counter() - started) * 1000, False, str(e), agent_id)
            return Err(f"{endpoint} failed: {e}")

        agent_logger.log_oracle_call(endpoint, (time.perf_counter() - started) * 1000, True, agent_id=agent_id)
        return Ok(text)

    async def _complete_json(
        self,
        endpoint: str,
        model_cls: Type[M],
        prompt: str,
        system_prompt: Optional[str] = None,
        agent_id: Optional[str] = None
    ) -> Result[M]:
        result = await self._complete(endpoint, prompt, system_prompt, agent_id)
        if isinstance(result, Err):
            return result

        try:
            return Ok(model_cls.model_validate(parse_json_response(result.value)))
        except OracleResponseError as e:
            logger.warning("Unparseable oracle reply", endpoint=endpoint, agent_id=agent_id, error=str(e))
            return Err(str(e))
        except ValidationError as e:
            logger.warning("Oracle reply failed validation", endpoint=endpoint, agent_id=agent_id, error=str(e))
            return Err(f"{endpoint} reply failed validation: {e.error_count()} errors")

    async def plan(self, context: PlanningContext) -> Result[RawPlan]:
        return await self._complete_json(
            "plan",
            RawPlan,
            prompts.planning_prompt(context),
            prompts.persona_system_prompt(context.profile),
            agent_id=context.agent_id
        )

    async def summarize_knowledge(
        self,
        profile: AgentProfile,
        memory: AgentMemory,
        events: Sequence[MemoryEvent]
    ) -> Result[KnowledgeUpdate]:
        return await self._complete_json(
            "summarize_knowledge",
            KnowledgeUpdate,
            prompts.knowledge_prompt(profile, memory, events),
            agent_id=profile.id
        )

    async def summarize_opinion(self, relation: RelationEntry, events: Sequence[MemoryEvent]) -> Result[str]:
        """Plain-text opinion, already bounded in length"""

        result = await self._complete("summarize_opinion", prompts.opinion_prompt(relation, events))
        if isinstance(result, Err):
            return result

        opinion = truncate_opinion(_FENCE.sub("", result.value.strip()).strip().strip('"'))
        if not opinion:
            return Err("summarize_opinion returned an empty opinion")
        return Ok(opinion)

    async def generate_idea(
        self,
        profile: AgentProfile,
        topic: str,
        existing_ideas: Sequence[Idea],
        memory: Optional[AgentMemory] = None,
        request_message: Optional[str] = None
    ) -> Result[IdeaDraft]:
        return await self._complete_json(
            "generate_idea",
            IdeaDraft,
            prompts.idea_generation_prompt(
                topic,
                existing_ideas,
                memory.long_term.knowledge if memory else None,
                memory.long_term.action_plan.idea_generation if memory else None,
                request_message
            ),
            prompts.persona_system_prompt(profile),
            agent_id=profile.id
        )

    async def evaluate_idea(
        self,
        profile: AgentProfile,
        idea: Idea,
        memory: Optional[AgentMemory] = None
    ) -> Result[EvaluationDraft]:
        return await self._complete_json(
            "evaluate_idea",
            EvaluationDraft,
            prompts.evaluation_prompt(
                idea,
                memory.long_term.knowledge if memory else None,
                memory.long_term.action_plan.idea_evaluation if memory else None
            ),
            prompts.persona_system_prompt(profile),
            agent_id=profile.id
        )

    async def compose_feedback(
        self,
        profile: AgentProfile,
        target_name: str,
        target_ideas: Sequence[Idea],
        memory: Optional[AgentMemory] = None
    ) -> Result[FeedbackDraft]:
        return await self._complete_json(
            "compose_feedback",
            FeedbackDraft,
            prompts.feedback_prompt(
                target_name,
                target_ideas,
                memory.long_term.action_plan.feedback if memory else None
            ),
            prompts.persona_system_prompt(profile),
            agent_id=profile.id
        )

    async def compose_request(
        self,
        profile: AgentProfile,
        teammates: List[TeammateBrief],
        ideas_count: int = 0,
        memory: Optional[AgentMemory] = None
    ) -> Result[RequestDraft]:
        return await self._complete_json(
            "compose_request",
            RequestDraft,
            prompts.request_prompt(
                teammates,
                memory.long_term.action_plan.request if memory else None,
                ideas_count
            ),
            prompts.persona_system_prompt(profile),
            agent_id=profile.id
        )


def build_chat_model(settings: EngineSettings) -> BaseChatModel:
    """Production chat model; reads OPENAI_API_KEY from the environment"""

    return ChatOpenAI(
        model=settings.llm_model,
        temperature=settings.llm_temperature,
        timeout=settings.oracle_timeout_seconds
    )
