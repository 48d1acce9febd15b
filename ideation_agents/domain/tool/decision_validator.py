from typing import Iterable, Optional

import structlog

from ideation_agents.domain.models.agent_state import ActionType, AgentRole, PlanDecision
from ideation_agents.domain.models.oracle import RawPlan

logger = structlog.get_logger(__name__)

# Each action is unlocked by the role of the same name
REQUIRED_ROLES = {
    ActionType.GENERATE_IDEA: AgentRole.GENERATE_IDEA,
    ActionType.EVALUATE_IDEA: AgentRole.EVALUATE_IDEA,
    ActionType.GIVE_FEEDBACK: AgentRole.GIVE_FEEDBACK,
    ActionType.MAKE_REQUEST: AgentRole.MAKE_REQUEST,
}


def parse_action(action: Optional[str]) -> Optional[ActionType]:
    if not action:
        return None
    try:
        return ActionType(action.strip().lower())
    except ValueError:
        return None


class DecisionValidator:
    """Turns a raw planning answer into a decision the agent may carry out"""

    def validate(self, plan: RawPlan, roles: Iterable[AgentRole]) -> PlanDecision:
        action_type = parse_action(plan.action)

        if action_type is None:
            if plan.action.strip().lower() != "wait":
                logger.info("Planned action is not recognized", action=plan.action)
            return PlanDecision.no_op(plan.reasoning)

        required = REQUIRED_ROLES[action_type]
        if required not in set(roles):
            return PlanDecision.no_op(
                f"Action {action_type.value} is not permitted for this agent's roles "
                f"(original plan: {plan.reasoning})"
            )

        return PlanDecision(
            should_act=True,
            action_type=action_type,
            reasoning=plan.reasoning,
            target=plan.target
        )

    def normalize(self, decision: PlanDecision) -> PlanDecision:
        """A decision to act without an action type is a no-op"""

        if decision.should_act and decision.action_type is None:
            return PlanDecision.no_op(decision.reasoning or "No action type given")
        return decision
