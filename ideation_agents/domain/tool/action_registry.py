from typing import Any, Dict, List, Optional

from ideation_agents.domain.models.agent_state import ActionType, AgentRole
from ideation_agents.domain.orchestration.handlers.base_handler import ActionServices, RequestHandler
from ideation_agents.domain.orchestration.handlers.idea_handlers import EvaluateIdeaHandler, GenerateIdeaHandler
from ideation_agents.domain.orchestration.handlers.team_handlers import GiveFeedbackHandler, MakeRequestHandler
from .decision_validator import REQUIRED_ROLES


class ActionRegistry:
    """Registry of action handlers and the role each one requires"""

    def __init__(self):
        self.handlers: Dict[ActionType, RequestHandler] = {}
        self.required_roles: Dict[ActionType, AgentRole] = {}

    def register(self, action_type: ActionType, handler: RequestHandler, required_role: Optional[AgentRole] = None):
        self.handlers[action_type] = handler
        self.required_roles[action_type] = required_role or REQUIRED_ROLES[action_type]

    def get_handler(self, action_type: ActionType) -> Optional[RequestHandler]:
        return self.handlers.get(action_type)

    def required_role(self, action_type: ActionType) -> Optional[AgentRole]:
        return self.required_roles.get(action_type)

    def list_actions(self) -> List[Dict[str, Any]]:
        return [
            {
                "action": action_type.value,
                "required_role": self.required_roles[action_type].value,
                **handler.get_info()
            }
            for action_type, handler in self.handlers.items()
        ]


def build_action_registry(services: ActionServices) -> ActionRegistry:
    """Registry with every built-in action"""

    registry = ActionRegistry()
    registry.register(ActionType.GENERATE_IDEA, GenerateIdeaHandler(services))
    registry.register(ActionType.EVALUATE_IDEA, EvaluateIdeaHandler(services))
    registry.register(ActionType.GIVE_FEEDBACK, GiveFeedbackHandler(services))
    registry.register(ActionType.MAKE_REQUEST, MakeRequestHandler(services))
    return registry
