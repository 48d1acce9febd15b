from typing import Any, Dict

import structlog

from ideation_agents.domain.errors import UnknownActionError
from ideation_agents.domain.models.agent_state import ActionType, AgentRequest, PlanDecision
from ideation_agents.domain.orchestration.handlers.base_handler import ActionInvocation
from .action_registry import ActionRegistry

logger = structlog.get_logger(__name__)


class ActionExecutor:
    """Routes planned actions and queued requests to their handlers.

    Handler errors propagate; the lifecycle catches them at its boundary.
    """

    def __init__(self, registry: ActionRegistry):
        self.registry = registry

    async def execute(self, agent_id: str, team_id: str, decision: PlanDecision) -> Dict[str, Any]:
        """Carry out a planned action"""

        if decision.action_type is None:
            raise UnknownActionError("Decision has no action type")

        invocation = ActionInvocation(
            agent_id=agent_id,
            team_id=team_id,
            action_type=decision.action_type,
            target=decision.target,
            reasoning=decision.reasoning
        )
        return await self._run(invocation)

    async def dispatch_request(self, agent_id: str, team_id: str, request: AgentRequest) -> Dict[str, Any]:
        """Handle a queued request by its type"""

        invocation = ActionInvocation(
            agent_id=agent_id,
            team_id=request.team_id or team_id,
            action_type=ActionType(request.type.value),
            target=request.requester_id,
            reasoning=request.message,
            request=request
        )
        return await self._run(invocation)

    async def _run(self, invocation: ActionInvocation) -> Dict[str, Any]:
        handler = self.registry.get_handler(invocation.action_type)
        if handler is None:
            raise UnknownActionError(f"No handler for {invocation.action_type.value}")

        logger.info(
            "Executing action",
            agent_id=invocation.agent_id,
            action=invocation.action_type.value,
            request_id=invocation.request.id if invocation.request else None
        )
        result = await handler.handle(invocation)
        logger.info("Action completed", agent_id=invocation.agent_id, action=invocation.action_type.value, result=result)
        return result
