import structlog
import logging
import sys
from typing import Dict, Any, Optional
import os

from ideation_agents import __version__


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "ideation-agents"
) -> None:
    """Route structlog through stdlib logging with a JSON or console renderer"""

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO)
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_service_context,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("IDEATION_ENVIRONMENT", "development"),
        version=__version__
    )


def add_service_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Copy agent and team bound by the worker onto entries that lack them"""

    context = structlog.contextvars.get_contextvars()
    for key in ("agent_id", "team_id"):
        if key in context and key not in event_dict:
            event_dict[key] = context[key]

    return event_dict


class AgentLogger:
    """Specialized logger for agent lifecycle, oracle and memory events"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_state_transition(
        self,
        agent_id: str,
        team_id: str,
        from_state: Optional[str],
        to_state: str,
        reason: Optional[str] = None
    ):
        """Log lifecycle state transitions"""

        self.logger.info(
            "state_transition",
            agent_id=agent_id,
            team_id=team_id,
            from_state=from_state,
            to_state=to_state,
            reason=reason
        )

    def log_oracle_call(
        self,
        endpoint: str,
        duration_ms: float,
        success: bool = True,
        error: Optional[str] = None,
        agent_id: Optional[str] = None
    ):
        """Log decision oracle calls"""

        log = self.logger.info if success else self.logger.warning
        log(
            "oracle_call",
            endpoint=endpoint,
            agent_id=agent_id,
            duration_ms=round(duration_ms, 1),
            success=success,
            error=error
        )

    def log_memory_update(
        self,
        agent_id: str,
        step: str,
        success: bool = True,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log consolidation steps"""

        log = self.logger.info if success else self.logger.warning
        log(
            "memory_update",
            agent_id=agent_id,
            step=step,
            success=success,
            details=details or {}
        )


# Global logger instance
agent_logger = AgentLogger("ideation_agents")
