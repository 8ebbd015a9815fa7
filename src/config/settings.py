"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/hospital.db",
        description="SQLAlchemy connection string.",
    )

    # Migrations / schema
    auto_create_db_schema: bool = Field(
        default=True,
        description="If true, creates tables automatically on startup (useful for local/dev).",
    )

    # Model gateway connectivity
    llm_provider: Literal["gateway", "openai"] = Field(
        default="gateway",
        description="'gateway' talks raw HTTP via httpx, 'openai' uses the OpenAI SDK.",
    )
    llm_endpoint: str = Field(
        default="https://ai.gateway.lovable.dev/v1",
        description="Base URL of the OpenAI-compatible chat-completion gateway.",
    )
    llm_api_key: str | None = Field(default=None)
    llm_model: str = Field(
        default="google/gemini-2.5-flash",
        description="Model identifier sent with every chat-completion request.",
    )
    llm_timeout_seconds: float = Field(default=90.0, gt=0)

    # Chatbot behaviour
    chatbot_tools_enabled: bool = Field(
        default=True,
        description="Expose book_appointment / get_available_slots to the model.",
    )
    chatbot_native_tool_streaming: bool = Field(
        default=True,
        description=(
            "Use a single streamed call that carries tool-call deltas. "
            "Set to false for gateways that only report tool calls on non-streamed replies."
        ),
    )

    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    data_dir: Path = Field(default=Path("./data"))

    @field_validator("data_dir")
    @classmethod
    def ensure_data_dir(cls, value: Path) -> Path:
        value.mkdir(parents=True, exist_ok=True)
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
