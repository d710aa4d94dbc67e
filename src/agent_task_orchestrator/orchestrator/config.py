"""Configuration for the task orchestration engine.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Delivery backends are optional at startup: a reminder whose channel has no
configured sender fails that channel at send time rather than failing the process.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OrchestratorSettings(BaseSettings):
    """Settings for the scheduler, dispatch executor and delivery backends.

    Environment variables:
    - LOG_LEVEL                      (optional)
    - ORCHESTRATOR_DB_PATH           (optional)
    - ORCHESTRATOR_MAX_CONCURRENCY   (optional)
    - SMTP_* / WHATSAPP_* / GOOGLE_* (optional, per delivery backend)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `OrchestratorSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    db_path: Path = Field(
        default=Path("agent_state/records.sqlite3"),
        validation_alias="ORCHESTRATOR_DB_PATH",
        description="SQLite file holding tasks, notification targets and result records",
    )
    token_store_path: Path = Field(
        default=Path("agent_state/tokens.json"),
        validation_alias="ORCHESTRATOR_TOKEN_STORE_PATH",
        description="JSON file holding per-owner OAuth tokens for external gateways",
    )

    batch_limit: int = Field(
        default=32,
        validation_alias="ORCHESTRATOR_BATCH_LIMIT",
        description="Maximum number of due tasks considered per scheduler run",
    )
    max_concurrency: int = Field(
        default=4,
        validation_alias="ORCHESTRATOR_MAX_CONCURRENCY",
        description="Maximum number of claimed tasks executed in parallel",
    )
    send_timeout_seconds: float = Field(
        default=30.0,
        validation_alias="ORCHESTRATOR_SEND_TIMEOUT_SECONDS",
        description="Per-send timeout for notification channels",
    )
    call_timeout_seconds: float = Field(
        default=120.0,
        validation_alias="ORCHESTRATOR_CALL_TIMEOUT_SECONDS",
        description="Per-call timeout for analysis routines and gateway calls",
    )
    stale_running_seconds: float = Field(
        default=3600.0,
        validation_alias="ORCHESTRATOR_STALE_RUNNING_SECONDS",
        description="Age after which a running task is reported as stale",
    )

    email_backend: Literal["smtp", "gmail"] = Field(
        default="smtp",
        validation_alias="ORCHESTRATOR_EMAIL_BACKEND",
        description="Transport used for the email channel",
    )

    smtp_host: str = Field(default="smtp.gmail.com", validation_alias="SMTP_HOST")
    smtp_port: int = Field(default=587, validation_alias="SMTP_PORT")
    smtp_user: str = Field(default="", validation_alias="SMTP_USER")
    smtp_password: str = Field(default="", validation_alias="SMTP_PASSWORD")
    smtp_from: str = Field(
        default="Birthday Reminder AI <reminders@localhost>",
        validation_alias="SMTP_FROM",
    )

    whatsapp_token: str = Field(default="", validation_alias="WHATSAPP_TOKEN")
    whatsapp_phone_number_id: str = Field(default="", validation_alias="WHATSAPP_PHONE_NUMBER_ID")
    whatsapp_api_base_url: str = Field(
        default="https://graph.facebook.com/v19.0",
        validation_alias="WHATSAPP_API_BASE_URL",
    )

    google_client_id: str = Field(default="", validation_alias="GOOGLE_CLIENT_ID")
    google_client_secret: str = Field(default="", validation_alias="GOOGLE_CLIENT_SECRET")
    google_redirect_uri: str = Field(
        default="http://localhost:8000/api/v1/auth/google/callback",
        validation_alias="GOOGLE_REDIRECT_URI",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("batch_limit", "max_concurrency")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        return max(1, int(value))

    @field_validator("send_timeout_seconds", "call_timeout_seconds", "stale_running_seconds")
    @classmethod
    def _positive_seconds(cls, value: float) -> float:
        return max(0.1, float(value))

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host.strip() and self.smtp_user.strip())

    @property
    def whatsapp_configured(self) -> bool:
        return bool(self.whatsapp_token.strip() and self.whatsapp_phone_number_id.strip())
