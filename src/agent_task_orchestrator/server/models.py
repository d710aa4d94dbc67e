"""Pydantic models for the REST server."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from agent_task_orchestrator.orchestrator.models import ChannelPreference, TaskKind


class RunDueTasksRequest(BaseModel):
    now: datetime | None = None


class CreateTaskRequest(BaseModel):
    owner: str = Field(min_length=1)
    kind: TaskKind
    payload: dict[str, Any] = Field(default_factory=dict)
    scheduled_for: datetime | None = None

    # Alternative to `scheduled_for`: compute it from a recurring schedule.
    schedule_type: str | None = None
    schedule_config: dict[str, Any] = Field(default_factory=dict)


class CancelTaskRequest(BaseModel):
    owner: str = Field(min_length=1)


class CancelTaskResponse(BaseModel):
    task_id: str
    cancelled: bool


class NotificationTargetRequest(BaseModel):
    owner: str = Field(min_length=1)
    source_id: str = Field(min_length=1)
    recipient_name: str = ""
    email: str | None = None
    phone: str | None = None
    channel: ChannelPreference = ChannelPreference.EMAIL


class IngestMailRequest(BaseModel):
    owner: str = Field(min_length=1)
    max_messages: int = Field(default=10, ge=1, le=100)
    mark_as_read: bool = True


class IngestFolderRequest(BaseModel):
    owner: str = Field(min_length=1)
    folder_id: str = Field(min_length=1)
    max_files: int = Field(default=5, ge=1, le=100)
