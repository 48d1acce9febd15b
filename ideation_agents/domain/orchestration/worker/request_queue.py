from typing import List, Optional
import asyncio

from ideation_agents.domain.models.agent_state import AgentRequest


class RequestQueue:
    """FIFO of pending requests for one agent"""

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def put(self, request: AgentRequest) -> bool:
        if self.closed:
            return False
        self._queue.put_nowait(request)
        return True

    def get_nowait(self) -> Optional[AgentRequest]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def waiting(self) -> int:
        return self._queue.qsize()

    def close(self) -> List[AgentRequest]:
        """Stop accepting requests and return whatever was still queued"""

        self.closed = True
        dropped = []
        while True:
            request = self.get_nowait()
            if request is None:
                return dropped
            dropped.append(request)
