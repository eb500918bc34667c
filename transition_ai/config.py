from dataclasses import dataclass, fields
from functools import lru_cache
from typing import Optional
import os

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class PipelineConfig:
    """Tuning values handed to every pipeline component at construction time."""
    forum_search_max_tokens: int = 1000
    analysis_max_tokens: int = 1500
    plan_max_tokens: int = 2000
    resource_max_tokens: int = 1500
    overview_max_tokens: int = 1500
    insight_max_tokens: int = 1500

    min_story_length: int = 50
    default_milestone_weeks: int = 2
    default_confidence_score: int = 70
    path_count_floor: int = 5
    max_plan_skills: int = 5
    date_order_hint: Optional[str] = None


_PIPELINE_DEFAULTS = PipelineConfig()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", validate_default=True)

    # Perplexity (OpenAI-compatible API)
    perplexity_api_key: str = ""
    perplexity_base_url: str = "https://api.perplexity.ai"
    search_model: str = "sonar"

    # Database - Railway provides DATABASE_URL, fallback to SQLite for local
    database_url: Optional[str] = None

    # App Settings
    app_name: str = "TransitionAI"
    app_version: str = "1.0.0"
    debug: bool = False
    allowed_origins: str = "http://localhost:5173,http://localhost:3000"
    log_level: str = "INFO"
    rate_limit_enabled: bool = True

    # API Settings
    backend_host: str = "0.0.0.0"
    backend_port: int = int(os.getenv("PORT", "8000"))

    # Gateway (timeout / retry / circuit breaker) for the search service
    search_timeout_seconds: float = 45.0
    search_max_retries: int = 2
    search_backoff_seconds: float = 1.0
    search_max_concurrent: int = 5
    circuit_failure_threshold: int = 5
    circuit_recovery_seconds: float = 30.0

    # Pipeline tuning, see PipelineConfig
    forum_search_max_tokens: int = _PIPELINE_DEFAULTS.forum_search_max_tokens
    analysis_max_tokens: int = _PIPELINE_DEFAULTS.analysis_max_tokens
    plan_max_tokens: int = _PIPELINE_DEFAULTS.plan_max_tokens
    resource_max_tokens: int = _PIPELINE_DEFAULTS.resource_max_tokens
    overview_max_tokens: int = _PIPELINE_DEFAULTS.overview_max_tokens
    insight_max_tokens: int = _PIPELINE_DEFAULTS.insight_max_tokens
    min_story_length: int = _PIPELINE_DEFAULTS.min_story_length
    default_milestone_weeks: int = _PIPELINE_DEFAULTS.default_milestone_weeks
    default_confidence_score: int = _PIPELINE_DEFAULTS.default_confidence_score
    path_count_floor: int = _PIPELINE_DEFAULTS.path_count_floor
    max_plan_skills: int = _PIPELINE_DEFAULTS.max_plan_skills
    date_order_hint: Optional[str] = _PIPELINE_DEFAULTS.date_order_hint

    @field_validator("database_url", mode="after")
    @classmethod
    def _async_driver(cls, value: Optional[str]) -> str:
        if not value:
            return "sqlite+aiosqlite:///./database/transition_ai.db"
        # Railway uses postgres:// or postgresql://, but SQLAlchemy async needs postgresql+asyncpg://
        if value.startswith("postgres://"):
            return value.replace("postgres://", "postgresql+asyncpg://", 1)
        if value.startswith("postgresql://"):
            return value.replace("postgresql://", "postgresql+asyncpg://", 1)
        return value

    @field_validator("date_order_hint", mode="after")
    @classmethod
    def _order_hint(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        value = value.strip().upper()
        if value not in ("MDY", "DMY"):
            raise ValueError("DATE_ORDER_HINT must be MDY or DMY")
        return value

    def pipeline_config(self) -> PipelineConfig:
        return PipelineConfig(**{f.name: getattr(self, f.name) for f in fields(PipelineConfig)})


@lru_cache()
def get_settings() -> Settings:
    return Settings()
