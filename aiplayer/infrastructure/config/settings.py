"""
Runtime configuration loaded from environment variables and an optional .env file.

Nested sections use a double underscore, e.g. AIPLAYER_LLM__PROVIDER=ollama or
AIPLAYER_PLANNING__MAX_ACTIVE_GOALS=3.
"""

from typing import Optional, Literal
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from aiplayer.domain.llm.errors import ConfigurationError


LOCAL_PROVIDERS = {"ollama", "local"}


class LLMSettings(BaseModel):
    provider: str = Field(default="openai", description="openai, claude/anthropic or ollama/local")
    model: Optional[str] = Field(default=None, description="Provider default when unset")
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1500, gt=0)
    timeout_seconds: float = Field(default=30.0, gt=0, description="Connect timeout")
    read_timeout_seconds: Optional[float] = Field(
        default=None, gt=0, description="Provider default when unset: 60 remote, 120 local"
    )
    enable_cache: bool = True
    cache_max_size: int = Field(default=1000, gt=0)
    cache_ttl_minutes: float = Field(default=60.0, gt=0)

    @field_validator("provider", mode="before")
    @classmethod
    def normalize_provider(cls, value: str) -> str:
        return str(value).strip().lower()

    @property
    def is_local(self) -> bool:
        return self.provider in LOCAL_PROVIDERS


class PlanningSettings(BaseModel):
    interval_ticks: int = Field(default=100, gt=0, description="About 5 seconds at 20 ticks per second")
    max_active_goals: int = Field(default=5, gt=0)
    autonomous_goal_generation: bool = True


class MemorySettings(BaseModel):
    max_episodic_memories: int = Field(default=1000, gt=0)
    consolidation_interval_ticks: int = Field(default=1200, gt=0)


class CoordinationSettings(BaseModel):
    max_team_size: int = Field(default=5, gt=0)
    goal_timeout_minutes: float = Field(default=10.0, gt=0)
    collaboration_distance: float = Field(default=100.0, gt=0)
    collaborator_load_limit: int = Field(default=3, gt=0)
    helper_load_limit: int = Field(default=2, gt=0)
    max_helpers: int = Field(default=3, gt=0)


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: Literal["json", "console"] = "json"


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_prefix="AIPLAYER_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    service_name: str = "aiplayer"
    llm: LLMSettings = Field(default_factory=LLMSettings)
    planning: PlanningSettings = Field(default_factory=PlanningSettings)
    memory: MemorySettings = Field(default_factory=MemorySettings)
    coordination: CoordinationSettings = Field(default_factory=CoordinationSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def validate_for_runtime(self) -> None:
        """Raise ConfigurationError when the selected provider cannot work"""

        if not self.llm.provider:
            raise ConfigurationError("LLM provider must be set")
        if not self.llm.is_local and not self.llm.api_key:
            raise ConfigurationError(
                f"API key is required for provider '{self.llm.provider}' "
                "(set AIPLAYER_LLM__API_KEY or use a local provider)"
            )
