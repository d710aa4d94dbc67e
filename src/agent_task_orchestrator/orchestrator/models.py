"""Domain records for task orchestration.

Persisted shapes are pydantic models so the store, the HTTP layer and the CLI share
one JSON representation (field names as stored, status as a string enum).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class TaskKind(str, Enum):
    PERIODIC_REMINDER = "periodic_reminder"
    CONTENT_ANALYSIS = "content_analysis"
    MEDIA_PROCESSING = "media_processing"


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}


class Channel(str, Enum):
    EMAIL = "email"
    MESSAGING = "messaging"


class ChannelPreference(str, Enum):
    EMAIL = "email"
    MESSAGING = "messaging"
    BOTH = "both"

    def channels(self) -> tuple[Channel, ...]:
        if self is ChannelPreference.BOTH:
            return (Channel.EMAIL, Channel.MESSAGING)
        return (Channel(self.value),)


class Task(BaseModel):
    """The unit of orchestration."""

    id: str
    owner: str
    kind: TaskKind
    status: TaskStatus = TaskStatus.PENDING
    payload: dict[str, Any] = Field(default_factory=dict)
    result: dict[str, Any] | None = None
    scheduled_for: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("payload", mode="before")
    @classmethod
    def _null_payload(cls, value: object) -> object:
        # Rows written by other clients may leave the payload column NULL.
        return {} if value is None else value

    @model_validator(mode="after")
    def _check_invariants(self) -> Task:
        if (self.result is not None) != (self.status is TaskStatus.COMPLETED):
            raise ValueError("result is present iff status is completed")
        if (self.error_message is not None) != (self.status is TaskStatus.FAILED):
            raise ValueError("error_message is present iff status is failed")
        if (
            self.started_at is not None
            and self.completed_at is not None
            and self.completed_at < self.started_at
        ):
            raise ValueError("completed_at must not precede started_at")
        return self


class NotificationTarget(BaseModel):
    """Who to notify about a source record, and over which channels."""

    id: str = ""
    owner: str
    source_id: str = ""
    recipient_name: str = ""
    email: str | None = None
    phone: str | None = None
    channel: ChannelPreference = ChannelPreference.EMAIL

    @field_validator("channel", mode="before")
    @classmethod
    def _accept_whatsapp_alias(cls, value: object) -> object:
        # Older records store the messaging preference under its provider name.
        if isinstance(value, str) and value.strip().lower() == "whatsapp":
            return ChannelPreference.MESSAGING.value
        return value

    def address_for(self, channel: Channel) -> str | None:
        raw = self.email if channel is Channel.EMAIL else self.phone
        return raw.strip() if raw and raw.strip() else None


class DeliveryReceipt(BaseModel):
    """Outcome of a single send attempt. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    channel: Channel
    success: bool
    recipient: str | None = None
    message_id: str | None = None
    failure_reason: str | None = None
    sent_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _check_shape(self) -> DeliveryReceipt:
        if self.success and not self.message_id:
            raise ValueError("successful receipts carry a provider message id")
        if not self.success and not self.failure_reason:
            raise ValueError("failed receipts carry a failure reason")
        if self.success and self.failure_reason is not None:
            raise ValueError("successful receipts carry no failure reason")
        if not self.success and self.message_id is not None:
            raise ValueError("failed receipts carry no message id")
        return self

    @classmethod
    def delivered(cls, channel: Channel, *, message_id: str, recipient: str | None) -> DeliveryReceipt:
        return cls(channel=channel, success=True, message_id=message_id, recipient=recipient)

    @classmethod
    def failed(cls, channel: Channel, *, reason: str, recipient: str | None = None) -> DeliveryReceipt:
        return cls(
            channel=channel,
            success=False,
            failure_reason=reason or "unknown error",
            recipient=recipient,
        )


class SentimentRecord(BaseModel):
    id: str = ""
    owner: str
    email_subject: str | None = None
    sender_email: str | None = None
    email_content: str = ""
    sentiment_category: str | None = None
    confidence_score: float | None = None
    analyzed_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)


class ImageRecord(BaseModel):
    id: str = ""
    owner: str
    image_name: str | None = None
    file_id: str | None = None
    generated_caption: str = ""
    generated_hashtags: list[str] = Field(default_factory=list)
    processing_status: str | None = "pending"
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class RunSummary(BaseModel):
    """Counts reported by one scheduler run."""

    claimed: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0


@dataclass(frozen=True, slots=True)
class StrategyResult:
    """What a kind-specific strategy produced.

    Exactly one of `result` or `error` is set.
    """

    result: dict[str, Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @staticmethod
    def success(result: dict[str, Any]) -> StrategyResult:
        return StrategyResult(result=result)

    @staticmethod
    def failure(error: str) -> StrategyResult:
        return StrategyResult(error=error or "unknown error")


@dataclass(frozen=True, slots=True)
class ExecutionOutcome:
    """The terminal state the executor attempted to write for one task.

    `recorded` is False when the conditional terminal write found the task no longer
    running (another writer got there first).
    """

    task_id: str
    status: TaskStatus
    recorded: bool
    result: dict[str, Any] | None = None
    error_message: str | None = None
