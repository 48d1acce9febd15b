from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from ideation_agents.domain.models.agent_state import AgentRequest, AgentStateSnapshot, RequestType
from ideation_agents.domain.models.memory import USER_RELATION_KEY
from ideation_agents.domain.orchestration.core.agent_manager import AgentManager

router = APIRouter()


def get_manager(request: Request) -> AgentManager:
    return request.app.state.manager


class RequestBody(BaseModel):
    type: RequestType
    message: str = ""
    requester_id: str = Field(default=USER_RELATION_KEY, description="Agent id, or 'user'")
    requester_name: str = "User"
    idea_id: Optional[str] = None


class RequestAccepted(BaseModel):
    request_id: str
    agent_id: str
    queue_waiting: int


@router.post("/teams/{team_id}/initialize")
async def initialize_team(team_id: str, manager: AgentManager = Depends(get_manager)) -> List[AgentStateSnapshot]:
    return await manager.initialize_team(team_id)


@router.get("/teams/{team_id}/agent-states")
async def get_team_states(team_id: str, manager: AgentManager = Depends(get_manager)) -> Dict[str, AgentStateSnapshot]:
    return manager.get_all_agent_states(team_id)


@router.get("/agents/{agent_id}/state")
async def get_agent_state(agent_id: str, manager: AgentManager = Depends(get_manager)) -> AgentStateSnapshot:
    snapshot = manager.get_agent_state(agent_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"Agent {agent_id} is not active")
    return snapshot


@router.delete("/agents/{agent_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_agent(agent_id: str, manager: AgentManager = Depends(get_manager)) -> None:
    if not await manager.remove_agent(agent_id):
        raise HTTPException(status_code=404, detail=f"Agent {agent_id} is not active")


@router.post("/agents/{agent_id}/requests", status_code=status.HTTP_202_ACCEPTED)
async def add_request(
    agent_id: str,
    body: RequestBody,
    manager: AgentManager = Depends(get_manager)
) -> RequestAccepted:
    snapshot = manager.get_agent_state(agent_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"Agent {agent_id} is not active")

    payload: Dict[str, Any] = {"message": body.message}
    if body.idea_id:
        payload["idea_id"] = body.idea_id

    request = AgentRequest(
        type=body.type,
        team_id=snapshot.team_id,
        requester_id=body.requester_id,
        requester_name=body.requester_name,
        payload=payload
    )
    if not await manager.add_request(agent_id, request):
        raise HTTPException(status_code=404, detail=f"Agent {agent_id} is not active")

    state = manager.get_agent_state(agent_id)
    return RequestAccepted(
        request_id=request.id,
        agent_id=agent_id,
        queue_waiting=state.queue_waiting if state else 0
    )


@router.get("/agents/{agent_id}/memory")
async def get_agent_memory(agent_id: str, manager: AgentManager = Depends(get_manager)) -> Dict[str, Any]:
    snapshot = manager.get_agent_state(agent_id)
    memory = await manager.get_memory(agent_id, snapshot.team_id if snapshot else None)
    if memory is None:
        raise HTTPException(status_code=404, detail=f"No memory for agent {agent_id}")
    return memory.to_blob()


@router.post("/teams/{team_id}/memory/migrate")
async def migrate_team_memory(team_id: str, manager: AgentManager = Depends(get_manager)) -> Dict[str, bool]:
    return await manager.migrate_team(team_id)


@router.get("/teams/{team_id}/status")
async def get_team_status(team_id: str, limit: int = 20, manager: AgentManager = Depends(get_manager)):
    if manager.notifier is None:
        return []
    return manager.notifier.get_recent(team_id, limit)
