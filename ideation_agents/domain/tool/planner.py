from typing import Optional

import structlog

from ideation_agents.domain.context.context_manager import ContextManager
from ideation_agents.domain.models.agent_state import PlanDecision
from ideation_agents.domain.models.result import Err
from .decision_validator import DecisionValidator

logger = structlog.get_logger(__name__)


class PlanningService:
    """Asks the oracle what an agent should do next and gates the answer by role"""

    def __init__(self, context_manager: ContextManager, oracle, validator: Optional[DecisionValidator] = None):
        self.context_manager = context_manager
        self.oracle = oracle
        self.validator = validator or DecisionValidator()

    async def decide(self, agent_id: str, team_id: str) -> PlanDecision:
        """Always returns a decision; any failure becomes a no-op"""

        context = await self.context_manager.build_context(agent_id, team_id)
        if context is None:
            return PlanDecision.no_op("Agent or team not found")

        logger.debug("Planning", **self.context_manager.summarize(context))

        result = await self.oracle.plan(context)
        if isinstance(result, Err):
            logger.warning("Planning failed, staying idle", agent_id=agent_id, reason=result.reason)
            return PlanDecision.no_op(f"planning error: {result.reason}")

        decision = self.validator.normalize(self.validator.validate(result.value, context.roles))

        logger.info(
            "Plan decided",
            agent_id=agent_id,
            team_id=team_id,
            should_act=decision.should_act,
            action_type=decision.action_type.value if decision.action_type else None,
            reasoning=decision.reasoning
        )
        return decision
