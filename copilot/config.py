"""Service settings loaded from the environment."""

import os
from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the copilot service.

    Values can be provided via environment variables with the COPILOT_ prefix
    or a local .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="COPILOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Inference engine
    engine: Literal["ollama", "anthropic"] = "ollama"
    ollama_base_url: str = "http://localhost:11434"
    anthropic_api_key: str | None = None

    # Conversation defaults
    default_model: str | None = None
    planning_mode: bool = False
    max_tool_rounds: int = Field(default=10, ge=1)
    session_timeout_minutes: int = Field(default=60, ge=1)

    # Browser bridge that runs tool calls (history, bookmarks, page capture)
    tool_bridge_url: str | None = None
    tool_timeout_seconds: float = 30.0

    token_estimator: Literal["heuristic", "tiktoken"] = "heuristic"

    log_level: str = "INFO"

    @model_validator(mode="after")
    def _fallback_api_key(self) -> "Settings":
        if self.anthropic_api_key is None:
            self.anthropic_api_key = os.getenv("ANTHROPIC_API_KEY")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get the cached settings instance."""
    return Settings()
