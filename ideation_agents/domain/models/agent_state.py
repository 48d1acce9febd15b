from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, timezone
from enum import Enum
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleState(str, Enum):
    """Agent lifecycle states"""
    IDLE = "idle"
    PLAN = "plan"
    ACTION = "action"


class RequestType(str, Enum):
    """Externally triggered work item types"""
    GENERATE_IDEA = "generate_idea"
    EVALUATE_IDEA = "evaluate_idea"


class ActionType(str, Enum):
    """Actions an agent may take on its own initiative"""
    GENERATE_IDEA = "generate_idea"
    EVALUATE_IDEA = "evaluate_idea"
    GIVE_FEEDBACK = "give_feedback"
    MAKE_REQUEST = "make_request"


class AgentRole(str, Enum):
    """Roles a team can assign to an agent; each unlocks the action of the same name"""
    GENERATE_IDEA = "generate_idea"
    EVALUATE_IDEA = "evaluate_idea"
    GIVE_FEEDBACK = "give_feedback"
    MAKE_REQUEST = "make_request"


class TaskTrigger(str, Enum):
    """What started the current unit of work"""
    AUTONOMOUS = "autonomous"
    USER_REQUEST = "user_request"
    AI_REQUEST = "ai_request"


class AgentRequest(BaseModel):
    """A unit of externally triggered work, immutable once enqueued"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"req_{uuid.uuid4().hex[:12]}")
    type: RequestType
    team_id: str
    requester_id: str = Field(description="Agent id, or 'user' for the human teammate")
    requester_name: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    enqueued_at: datetime = Field(default_factory=utcnow)

    @property
    def message(self) -> str:
        return str(self.payload.get("message", ""))


class PlanDecision(BaseModel):
    """Outcome of one plan cycle"""
    should_act: bool
    action_type: Optional[ActionType] = None
    reasoning: str = ""
    target: Optional[str] = Field(None, description="Counterpart id the action is aimed at")

    @classmethod
    def no_op(cls, reasoning: str) -> "PlanDecision":
        return cls(should_act=False, reasoning=reasoning)


class CurrentTask(BaseModel):
    """Description of the work an agent is busy with"""
    type: str
    description: str
    started_at: datetime = Field(default_factory=utcnow)
    trigger: TaskTrigger = TaskTrigger.AUTONOMOUS
    request_id: Optional[str] = None
    requester_name: Optional[str] = None


class IdleTimerInfo(BaseModel):
    """Serializable view of a pending idle wait"""
    started_at: datetime
    planned_duration: float
    remaining_seconds: float


class StateChange(BaseModel):
    from_state: Optional[LifecycleState]
    to_state: LifecycleState
    at: datetime
    reason: str = ""


class AgentStateSnapshot(BaseModel):
    """Read-only view of an agent's lifecycle state"""
    agent_id: str
    team_id: str
    current_state: LifecycleState
    last_state_change: datetime
    is_processing: bool
    idle_timer: Optional[IdleTimerInfo] = None
    current_task: Optional[CurrentTask] = None
    planned_action: Optional[PlanDecision] = None
    last_decision: Optional[PlanDecision] = None
    queue_waiting: int = 0


class AgentStateInfo:
    """Mutable per-agent state, owned by the lifecycle state machine.

    ``idle_timer`` holds the scheduler handle and is only set while the agent
    is idle with nothing queued.
    """

    def __init__(self, agent_id: str, team_id: str):
        self.agent_id = agent_id
        self.team_id = team_id
        self.current_state = LifecycleState.IDLE
        self.last_state_change = utcnow()
        self.is_processing = False
        self.idle_timer = None
        self.idle_timer_started_at: Optional[datetime] = None
        self.idle_timer_duration: float = 0.0
        self.current_task: Optional[CurrentTask] = None
        self.planned_action: Optional[PlanDecision] = None
        self.last_decision: Optional[PlanDecision] = None
        self.history: List[StateChange] = []

    def update_status(self, state: LifecycleState, reason: str = ""):
        """Record a transition"""
        self.history.append(StateChange(
            from_state=self.current_state,
            to_state=state,
            at=utcnow(),
            reason=reason
        ))
        # Keep only the last 50 transitions
        if len(self.history) > 50:
            self.history = self.history[-50:]

        self.current_state = state
        self.last_state_change = utcnow()
        self.is_processing = state != LifecycleState.IDLE
        if state == LifecycleState.IDLE:
            self.current_task = None
            self.planned_action = None

    def visited(self, state: LifecycleState) -> bool:
        return any(change.to_state == state for change in self.history)

    def get_state_summary(self, queue_waiting: int = 0) -> AgentStateSnapshot:
        """Get a snapshot of the current state"""

        idle_timer = None
        if self.idle_timer is not None and self.idle_timer_started_at is not None:
            elapsed = (utcnow() - self.idle_timer_started_at).total_seconds()
            idle_timer = IdleTimerInfo(
                started_at=self.idle_timer_started_at,
                planned_duration=self.idle_timer_duration,
                remaining_seconds=max(0.0, self.idle_timer_duration - elapsed)
            )

        return AgentStateSnapshot(
            agent_id=self.agent_id,
            team_id=self.team_id,
            current_state=self.current_state,
            last_state_change=self.last_state_change,
            is_processing=self.is_processing,
            idle_timer=idle_timer,
            current_task=self.current_task,
            planned_action=self.planned_action,
            last_decision=self.last_decision,
            queue_waiting=queue_waiting
        )
