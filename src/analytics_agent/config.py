"""Configuration models for the analytics agent."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from analytics_agent.types import QueryPolicy


class AgentConfig(BaseModel):
    """Configures the tool-calling loop."""

    max_tool_calls: int = Field(default=10, ge=1)


class QueryConfig(BaseModel):
    """Configures statement validation and execution limits."""

    policy: QueryPolicy = QueryPolicy.SELECT_ONLY
    timeout_seconds: float = Field(default=30.0, gt=0.0, le=300.0)


class ShaperConfig(BaseModel):
    """Configures the token budget applied to every tool result."""

    max_tokens: int = Field(default=50_000, ge=16)
    envelope_reserve_chars: int = Field(default=64, ge=0)
    max_error_chars: int = Field(default=2_000, ge=80)


class RetrievalConfig(BaseModel):
    """Configures instruction augmentation from the reference corpus."""

    top_k: int = Field(default=4, ge=1, le=50)
    max_context_tokens: int = Field(default=4_000, ge=50)


class InstructionsConfig(BaseModel):
    """Operating rules rendered into the agent's system instructions."""

    engine_name: str = "ClickHouse"
    engine_version: str | None = None
    databases: list[str] = Field(default_factory=list)
    default_database: str | None = None
    schema_notes: str = ""
    max_history_days: int | None = Field(default=None, ge=1)
    output_format: Literal["html", "markdown", "text"] = "html"
    sensitive_fragments: list[str] = Field(default_factory=list)


class Settings(BaseSettings):
    """Deployment settings read from the environment or a `.env` file."""

    model_config = SettingsConfigDict(
        env_prefix="ANALYTICS_AGENT_", env_file=".env", extra="ignore"
    )

    clickhouse_url: str = "http://localhost:8123"
    clickhouse_user: str = "default"
    clickhouse_password: str = ""
    clickhouse_database: str | None = None

    llm_api_key: str | None = None
    llm_model: str = "gpt-4o-mini"
    llm_base_url: str | None = None
    provider_timeout_seconds: float = Field(default=120.0, gt=0.0)

    log_level: str = "INFO"
    reference_paths: list[str] = Field(default_factory=list)
