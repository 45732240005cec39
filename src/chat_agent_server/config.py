from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the chat agent server."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Chat model
    llm_provider: Literal["anthropic", "google"] = Field(default="anthropic", alias="MODEL_PROVIDER")
    llm_model: str = Field(default="claude-3-5-sonnet-20241022", alias="MODEL_NAME")
    anthropic_api_key: str | None = Field(default=None, alias="ANTHROPIC_API_KEY")
    google_api_key: str | None = Field(default=None, alias="GOOGLE_API_KEY")
    # Higher temperature for more creative responses
    llm_temperature: float = Field(default=0.7, alias="MODEL_TEMPERATURE")
    llm_max_tokens: int = Field(default=4096, alias="MODEL_MAX_TOKENS")
    llm_streaming: bool = Field(default=True, alias="MODEL_STREAMING")
    llm_timeout: float = Field(default=60.0, alias="MODEL_TIMEOUT")
    llm_max_retries: int = Field(default=2, alias="MODEL_MAX_RETRIES")

    # Conversation window
    trim_max_messages: int = Field(default=10, alias="TRIM_MAX_MESSAGES")
    trim_include_system: bool = Field(default=True, alias="TRIM_INCLUDE_SYSTEM")
    cache_annotations: bool = Field(default=True, alias="CACHE_ANNOTATIONS")

    system_prompt: str | None = Field(default=None, alias="SYSTEM_PROMPT")

    # Tools
    tool_backend_url: str | None = Field(default=None, alias="TOOL_BACKEND_URL")
    tool_backend_api_key: str | None = Field(default=None, alias="TOOL_BACKEND_API_KEY")
    tool_backend_timeout: float = Field(default=30.0, alias="TOOL_BACKEND_TIMEOUT")
    enable_builtin_tools: bool = Field(default=True, alias="ENABLE_BUILTIN_TOOLS")
    tool_failure_policy: Literal["fold", "raise"] = Field(default="fold", alias="TOOL_FAILURE_POLICY")

    # Unset means the agent <-> tools loop is unbounded
    max_agent_steps: int | None = Field(default=None, ge=1, alias="MAX_AGENT_STEPS")

    # Persistence and identity
    chat_store_backend: Literal["memory", "firestore"] = Field(default="memory", alias="CHAT_STORE_BACKEND")
    firebase_service_account_key: str | None = Field(
        default=None, alias="FIREBASE_SERVICE_ACCOUNT_KEY"
    )
    identity_shared_secret: str = Field(default="", alias="IDENTITY_SHARED_SECRET")
    identity_max_skew_seconds: int = Field(default=300, alias="IDENTITY_MAX_SKEW_SECONDS")

    # FastAPI configuration
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8080, alias="APP_PORT")
    debug: bool = Field(default=False, alias="DEBUG")


@lru_cache
def get_settings() -> Settings:
    """Return memoized settings so multiple imports share a single instance."""

    return Settings()  # type: ignore[arg-type]
