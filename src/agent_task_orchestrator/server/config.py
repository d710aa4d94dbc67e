"""Configuration for the REST server.

The server starts without any delivery backend configured; tasks whose channel has
no sender fail that channel when they run.
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    """Settings for the REST API and the in-process scheduler timer."""

    scheduler_enabled: bool = Field(
        default=False,
        validation_alias="ORCHESTRATOR_SCHEDULER_ENABLED",
        description="If true, the server runs the due-task scheduler on a timer thread.",
    )
    scheduler_interval_seconds: float = Field(
        default=60.0,
        validation_alias="ORCHESTRATOR_SCHEDULER_INTERVAL_SECONDS",
        description="Seconds between scheduler runs when the timer is enabled.",
    )

    # Dev-friendly CORS. Override via ORCHESTRATOR_CORS_ORIGINS=...
    cors_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        validation_alias="ORCHESTRATOR_CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins.",
    )

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    @field_validator("scheduler_interval_seconds")
    @classmethod
    def _min_interval(cls, value: float) -> float:
        return max(1.0, float(value))

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
