"""Shared configuration for the analysis backends."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMConfig(BaseSettings):
    """Configuration for LLM providers."""

    provider: Literal["openai"] = Field(
        default="openai",
        description="LLM provider to use",
    )

    # OpenAI settings (any OpenAI-compatible endpoint)
    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key",
    )
    openai_base_url: str | None = Field(
        default=None,
        description="Override for OpenAI-compatible endpoints (e.g. OpenRouter)",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="Model used for text analysis",
    )
    openai_vision_model: str | None = Field(
        default=None,
        description="Model used for image analysis (defaults to openai_model)",
    )
    openai_temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=2.0,
        description="Temperature for OpenAI model",
    )
    max_tokens: int = Field(
        default=1000,
        gt=0,
        description="Completion token cap per analysis call",
    )

    model_config = SettingsConfigDict(
        env_prefix="ORCHESTRATOR_LLM_",
        env_file=".env",
        extra="ignore",
    )
