"""Engine configuration.

Values come from ``IDEATION_*`` environment variables or a local ``.env`` file.
"""

from typing import Literal, Optional
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="IDEATION_",
        env_file=".env",
        extra="ignore",
    )

    # Lifecycle
    idle_wait_min_seconds: float = Field(default=60.0, ge=0, description="Lower bound of the randomized idle wait")
    idle_wait_max_seconds: float = Field(default=90.0, ge=0, description="Upper bound of the randomized idle wait")
    stuck_timeout_seconds: float = Field(default=600.0, gt=0, description="Plan/action longer than this is reported")

    # Decision oracle
    llm_model: str = Field(default="gpt-4o")
    llm_temperature: float = Field(default=0.5, ge=0.0, le=2.0)
    oracle_timeout_seconds: float = Field(default=30.0, gt=0)

    # Persistence
    store_backend: Literal["memory", "redis"] = Field(default="memory")
    redis_url: Optional[str] = Field(default=None, description="redis:// URL, required for the redis backend")
    memory_ttl_seconds: int = Field(default=3600 * 24 * 7, ge=60, description="Expiry of stored agent memory")
    request_list_limit: int = Field(default=20, ge=1, description="Short-term request summaries kept per agent")

    # Team defaults
    default_topic: str = Field(default="Carbon Emission Reduction")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")
    service_name: str = Field(default="ideation-agents")

    @model_validator(mode="after")
    def check_bounds(self) -> "EngineSettings":
        if self.idle_wait_max_seconds < self.idle_wait_min_seconds:
            raise ValueError("idle_wait_max_seconds must be >= idle_wait_min_seconds")
        if self.store_backend == "redis" and not self.redis_url:
            raise ValueError("redis_url is required when store_backend is 'redis'")
        return self


@lru_cache
def get_settings() -> EngineSettings:
    return EngineSettings()
