"""Application configuration managed via environment variables."""
from functools import lru_cache
from typing import Dict, Literal, Optional
from uuid import UUID

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_AGENT_MODELS: Dict[str, str] = {
    "fast": "gpt-4.1-nano",
    "balanced": "gpt-4.1-mini",
    "thorough": "gpt-4.1",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Challenge Planner Backend"
    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "postgresql+psycopg2://postgres@localhost:5432/challenge_planner"

    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    openai_model: str = "gpt-4.1-mini"
    openai_temperature: float = 0.6
    openai_max_retries: int = Field(default=2, ge=0)
    openai_timeout_seconds: float = 120.0

    generation_backend: Literal["openai", "http"] = "openai"
    generation_http_url: Optional[str] = None
    generation_http_api_key: Optional[str] = None
    agent_models: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_AGENT_MODELS))

    poll_interval_ms: int = Field(default=3000, ge=0)
    stale_job_retry_seconds: int = Field(default=300, ge=1)
    stale_job_sweep_interval_ms: int = Field(default=60000, ge=0)
    fallback_user_id: Optional[UUID] = None

    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "challenge-planner"


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
