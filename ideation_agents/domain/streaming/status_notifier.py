from typing import Dict, List, Optional
import asyncio
from collections import deque
from datetime import datetime
from enum import Enum

import structlog
from pydantic import BaseModel, Field

from ideation_agents.domain.models.agent_state import utcnow

logger = structlog.get_logger(__name__)


class StatusEventType(str, Enum):
    STATE = "state"
    ACTION = "action"
    SYSTEM = "system"


class StatusEvent(BaseModel):
    """A human-readable status line for the team's observers"""
    team_id: str
    message: str
    agent_id: Optional[str] = None
    event_type: StatusEventType = StatusEventType.SYSTEM
    timestamp: datetime = Field(default_factory=utcnow)


class StatusNotifier:
    """Fans status events out to per-team subscriber queues.

    Delivery is best-effort: a full subscriber queue drops the event for that
    subscriber only.
    """

    def __init__(self, history_size: int = 100, queue_size: int = 100):
        self.history_size = history_size
        self.queue_size = queue_size
        self.subscribers: Dict[str, List[asyncio.Queue]] = {}
        self.recent: Dict[str, deque] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, team_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        async with self._lock:
            self.subscribers.setdefault(team_id, []).append(queue)
        logger.debug("Status subscriber added", team_id=team_id)
        return queue

    async def unsubscribe(self, team_id: str, queue: asyncio.Queue):
        async with self._lock:
            queues = self.subscribers.get(team_id, [])
            if queue in queues:
                queues.remove(queue)
            if not queues:
                self.subscribers.pop(team_id, None)

    async def notify(
        self,
        team_id: str,
        message: str,
        agent_id: Optional[str] = None,
        event_type: StatusEventType = StatusEventType.SYSTEM
    ) -> StatusEvent:
        """Publish a status line to everyone watching ``team_id``"""

        event = StatusEvent(team_id=team_id, message=message, agent_id=agent_id, event_type=event_type)

        async with self._lock:
            history = self.recent.setdefault(team_id, deque(maxlen=self.history_size))
            history.append(event)
            queues = list(self.subscribers.get(team_id, []))

        for queue in queues:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Status subscriber is full, dropping event", team_id=team_id)

        logger.debug("Status", team_id=team_id, agent_id=agent_id, message=message)
        return event

    def get_recent(self, team_id: str, limit: int = 20) -> List[StatusEvent]:
        history = self.recent.get(team_id)
        if not history:
            return []
        return list(history)[-limit:]
