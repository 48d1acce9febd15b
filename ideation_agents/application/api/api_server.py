from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI

from ideation_agents.domain.context.directory import InMemoryTeamDirectory, TeamDirectory
from ideation_agents.domain.orchestration.core.agent_manager import AgentManager
from ideation_agents.infrastructure.config import EngineSettings, get_settings
from ideation_agents.infrastructure.observability.logging import setup_logging
from .route.agent import router as agent_router

logger = structlog.get_logger(__name__)


def create_app(
    manager: Optional[AgentManager] = None,
    settings: Optional[EngineSettings] = None,
    directory: Optional[TeamDirectory] = None
) -> FastAPI:
    """HTTP surface over the engine; builds a manager from settings when none is given"""

    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level, settings.log_format, settings.service_name)
        if manager is None:
            app.state.manager = AgentManager.build(settings, directory or InMemoryTeamDirectory())
        else:
            app.state.manager = manager
        logger.info("Engine started", store_backend=settings.store_backend)
        try:
            yield
        finally:
            await app.state.manager.cleanup()
            logger.info("Engine stopped")

    app = FastAPI(title="Ideation Agents", lifespan=lifespan)
    app.include_router(agent_router, prefix="/api/v1")

    @app.get("/health")
    async def health():
        return {"status": "ok", "agents": len(app.state.manager.agents)}

    return app
