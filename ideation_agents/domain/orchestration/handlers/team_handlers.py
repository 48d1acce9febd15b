from typing import Any, Dict, Optional
import random

import structlog

from ideation_agents.domain.errors import HandlerError
from ideation_agents.domain.models.agent_state import AgentRequest, AgentRole
from ideation_agents.domain.models.memory import MemoryEventType
from ideation_agents.domain.models.result import Err
from ideation_agents.domain.models.team import ChatMessage
from .base_handler import ActionInvocation, ActionServices, RequestHandler

logger = structlog.get_logger(__name__)


class GiveFeedbackHandler(RequestHandler):
    """Sends feedback to a teammate through the team chat"""

    def __init__(self, services: ActionServices, rng: Optional[random.Random] = None):
        super().__init__("give_feedback", "Give a teammate feedback on their ideas", services)
        self.rng = rng or random.Random()

    async def handle(self, invocation: ActionInvocation) -> Dict[str, Any]:
        self.update_activity()
        services = self.services
        profile, team = await self.load_actor(invocation)

        candidates = [a for a in team.agent_ids() if a != invocation.agent_id]
        if invocation.target in candidates:
            target_id = invocation.target
        elif candidates:
            target_id = self.rng.choice(candidates)
        else:
            logger.info("No teammate to give feedback to", agent_id=invocation.agent_id)
            return {"target": None}

        target = await services.directory.get_agent_by_id(target_id)
        target_name = target.name if target else target_id
        ideas = [i for i in await services.directory.get_ideas(invocation.team_id) if i.author == target_id]
        memory = await self.load_memory(invocation)

        result = await services.oracle.compose_feedback(profile, target_name, ideas, memory)
        if isinstance(result, Err):
            raise HandlerError(f"Feedback composition failed: {result.reason}")
        message = result.value.message

        await self.post_message(invocation.team_id, ChatMessage(
            sender=invocation.agent_id,
            type="feedback",
            content=message,
            target=target_id
        ))
        await self.notify(invocation, f"{profile.name} gave feedback to {target_name}")

        await services.consolidator.record_action(
            invocation.agent_id, self.name, {"target": target_id}, invocation.team_id
        )
        services.consolidator.trigger_memory_update(
            invocation.agent_id,
            MemoryEventType.FEEDBACK,
            f"Gave feedback to {target_name}: {message}",
            related_agent_id=target_id,
            team_id=invocation.team_id
        )
        services.consolidator.trigger_memory_update(
            target_id,
            MemoryEventType.FEEDBACK,
            f"Received feedback from {profile.name}: {message}",
            related_agent_id=invocation.agent_id,
            team_id=invocation.team_id
        )

        return {"target": target_id}


class MakeRequestHandler(RequestHandler):
    """Asks a teammate to generate or evaluate ideas"""

    def __init__(self, services: ActionServices):
        super().__init__("make_request", "Ask a teammate to generate or evaluate ideas", services)

    async def handle(self, invocation: ActionInvocation) -> Dict[str, Any]:
        self.update_activity()
        services = self.services
        if services.request_sink is None:
            raise HandlerError("No request sink configured")

        profile, team = await self.load_actor(invocation)
        teammates = await services.context_manager.get_teammates(team, exclude=invocation.agent_id)
        if not teammates:
            logger.info("No teammate to send a request to", agent_id=invocation.agent_id)
            return {"target": None}

        ideas = await services.directory.get_ideas(invocation.team_id)
        memory = await self.load_memory(invocation)

        result = await services.oracle.compose_request(profile, teammates, len(ideas), memory)
        if isinstance(result, Err):
            raise HandlerError(f"Request composition failed: {result.reason}")
        draft = result.value

        target = next((t for t in teammates if t.id == draft.target_agent_id), None)
        if target is None:
            raise HandlerError(f"Request target {draft.target_agent_id} is not a teammate")

        # The receiving agent must hold the role the request asks for
        if AgentRole(draft.request_type.value) not in team.roles_of(target.id):
            raise HandlerError(f"{target.name} cannot {draft.request_type.value}")

        request = AgentRequest(
            type=draft.request_type,
            team_id=invocation.team_id,
            requester_id=invocation.agent_id,
            requester_name=profile.name,
            payload={"message": draft.message}
        )
        accepted = await services.request_sink(target.id, request)

        await self.post_message(invocation.team_id, ChatMessage(
            sender=invocation.agent_id,
            type="request",
            content=draft.message or f"{profile.name} asked {target.name} to {draft.request_type.value}",
            target=target.id,
            metadata={"request_type": draft.request_type.value}
        ))
        await self.notify(invocation, f"{profile.name} asked {target.name} for help")

        await services.consolidator.record_action(
            invocation.agent_id,
            self.name,
            {"target": target.id, "request_type": draft.request_type.value},
            invocation.team_id
        )
        services.consolidator.trigger_memory_update(
            invocation.agent_id,
            MemoryEventType.REQUEST,
            f"Asked {target.name} to {draft.request_type.value}: {draft.message}",
            related_agent_id=target.id,
            team_id=invocation.team_id
        )

        return {"target": target.id, "request_type": draft.request_type.value, "accepted": accepted}
