from typing import Any, Dict, List, Optional

import structlog

from ideation_agents.domain.errors import HandlerError
from ideation_agents.domain.models.memory import MemoryEventType
from ideation_agents.domain.models.result import Err
from ideation_agents.domain.models.team import (
    ChatMessage, Evaluation, Idea, IdeaContent, IdeaScores
)
from .base_handler import ActionInvocation, ActionServices, RequestHandler

logger = structlog.get_logger(__name__)


class GenerateIdeaHandler(RequestHandler):
    """Adds a new idea to the team's board"""

    def __init__(self, services: ActionServices):
        super().__init__("generate_idea", "Generate a new idea for the team topic", services)

    async def handle(self, invocation: ActionInvocation) -> Dict[str, Any]:
        self.update_activity()
        services = self.services
        profile, team = await self.load_actor(invocation)
        memory = await self.load_memory(invocation)
        ideas = await services.directory.get_ideas(invocation.team_id)
        request = invocation.request

        result = await services.oracle.generate_idea(
            profile,
            team.topic or services.fallback_topic,
            ideas,
            memory,
            request.message if request else None
        )
        if isinstance(result, Err):
            raise HandlerError(f"Idea generation failed: {result.reason}")

        draft = result.value
        idea = await services.directory.add_idea(invocation.team_id, Idea(
            author=invocation.agent_id,
            content=IdeaContent(
                object=draft.object,
                function=draft.function,
                behavior=draft.behavior,
                structure=draft.structure
            )
        ))

        await self.post_message(invocation.team_id, ChatMessage(
            sender=invocation.agent_id,
            type="system",
            content=f"{profile.name} generated a new idea: {idea.content.object}",
            metadata={"idea_id": idea.id}
        ))
        await self.notify(invocation, f"{profile.name} generated an idea")

        await services.consolidator.record_action(
            invocation.agent_id, self.name, {"idea_id": idea.id}, invocation.team_id
        )

        content = f"Generated idea '{idea.content.object}'"
        if request:
            content += f" as requested by {request.requester_name}"
        services.consolidator.trigger_memory_update(
            invocation.agent_id,
            MemoryEventType.IDEA_GENERATION,
            content,
            related_agent_id=request.requester_id if request else None,
            team_id=invocation.team_id
        )

        logger.info("Idea generated", agent_id=invocation.agent_id, idea_id=idea.id)
        return {"idea_id": idea.id}


class EvaluateIdeaHandler(RequestHandler):
    """Scores an idea someone else proposed"""

    def __init__(self, services: ActionServices):
        super().__init__("evaluate_idea", "Evaluate a teammate's idea", services)

    def pick_idea(self, ideas: List[Idea], agent_id: str, idea_id: Optional[str] = None) -> Optional[Idea]:
        """The requested idea, else the oldest one by someone else not yet evaluated by this agent"""

        if idea_id:
            for idea in ideas:
                if idea.id == idea_id:
                    return idea
            return None

        for idea in ideas:
            if idea.author != agent_id and not idea.evaluated_by(agent_id):
                return idea
        return None

    async def handle(self, invocation: ActionInvocation) -> Dict[str, Any]:
        self.update_activity()
        services = self.services
        profile, _ = await self.load_actor(invocation)
        request = invocation.request

        ideas = await services.directory.get_ideas(invocation.team_id)
        idea_id = request.payload.get("idea_id") if request else None
        idea = self.pick_idea(ideas, invocation.agent_id, idea_id)

        if idea is None:
            logger.info("No idea to evaluate", agent_id=invocation.agent_id, idea_id=idea_id)
            return {"evaluated": None}

        memory = await self.load_memory(invocation)
        result = await services.oracle.evaluate_idea(profile, idea, memory)
        if isinstance(result, Err):
            raise HandlerError(f"Idea evaluation failed: {result.reason}")

        draft = result.value
        evaluation = Evaluation(
            evaluator=invocation.agent_id,
            scores=IdeaScores(insightful=draft.insightful, actionable=draft.actionable, relevance=draft.relevance),
            comment=draft.comment
        )
        if await services.directory.add_evaluation(invocation.team_id, idea.id, evaluation) is None:
            raise HandlerError(f"Idea {idea.id} disappeared before it could be evaluated")

        await self.post_message(invocation.team_id, ChatMessage(
            sender=invocation.agent_id,
            type="system",
            content=f"{profile.name} evaluated '{idea.content.object}'",
            metadata={"idea_id": idea.id}
        ))
        await self.notify(invocation, f"{profile.name} evaluated an idea")

        await services.consolidator.record_action(
            invocation.agent_id, self.name, {"idea_id": idea.id}, invocation.team_id
        )

        scores = evaluation.scores
        services.consolidator.trigger_memory_update(
            invocation.agent_id,
            MemoryEventType.IDEA_EVALUATION,
            f"Evaluated '{idea.content.object}' (insightful {scores.insightful}, "
            f"actionable {scores.actionable}, relevance {scores.relevance}): {evaluation.comment}",
            related_agent_id=idea.author,
            team_id=invocation.team_id
        )

        logger.info("Idea evaluated", agent_id=invocation.agent_id, idea_id=idea.id)
        return {"evaluated": idea.id}
