"""Task creation, lookup and cancellation, plus notification target registration."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from agent_task_orchestrator.orchestrator.models import (
    Channel,
    ChannelPreference,
    NotificationTarget,
    Task,
    TaskKind,
    TaskStatus,
    utc_now,
)
from agent_task_orchestrator.orchestrator.scheduling import calculate_next_run
from agent_task_orchestrator.orchestrator.store import Collection, RecordStore

logger = logging.getLogger(__name__)


class TaskNotFoundError(LookupError):
    pass


class TaskService:
    def __init__(self, store: RecordStore, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    def create_task(
        self,
        owner: str,
        kind: TaskKind | str,
        payload: Mapping[str, Any] | None = None,
        *,
        scheduled_for: datetime | None = None,
    ) -> Task:
        """Insert a new pending task and return it."""

        if not owner or not owner.strip():
            raise ValueError("owner is required")
        task = Task(
            id=uuid.uuid4().hex,
            owner=owner,
            kind=TaskKind(kind),
            payload=dict(payload or {}),
            scheduled_for=scheduled_for,
            created_at=self._clock(),
        )
        task_id = self._store.insert(Collection.TASKS, task.model_dump())
        logger.info(
            "Task created",
            extra={"task_id": task_id, "kind": task.kind.value, "owner": owner},
        )
        return task

    def schedule_task(
        self,
        owner: str,
        kind: TaskKind | str,
        payload: Mapping[str, Any] | None,
        *,
        schedule_type: str | None,
        schedule_config: Mapping[str, Any] | None = None,
        now: datetime | None = None,
    ) -> Task:
        """Create a task whose `scheduled_for` is the schedule's next run after `now`."""

        next_run = calculate_next_run(schedule_type, schedule_config, now or self._clock())
        return self.create_task(owner, kind, payload, scheduled_for=next_run)

    def get_task(self, owner: str, task_id: str) -> Task:
        row = self._store.get(Collection.TASKS, task_id, owner=owner)
        if row is None:
            raise TaskNotFoundError(task_id)
        return Task.model_validate(row)

    def cancel_task(self, owner: str, task_id: str) -> bool:
        """Move a pending task to cancelled.

        Returns:
            False if the task exists but is no longer pending.

        Raises:
            TaskNotFoundError: No such task for this owner.
        """

        task = self.get_task(owner, task_id)
        if task.status is not TaskStatus.PENDING:
            return False
        cancelled = self._store.conditional_update(
            Collection.TASKS,
            task.id,
            expected_status=TaskStatus.PENDING.value,
            patch={"status": TaskStatus.CANCELLED, "completed_at": self._clock()},
        )
        if cancelled:
            logger.info("Task cancelled", extra={"task_id": task.id, "owner": owner})
        return cancelled

    def add_notification_target(
        self,
        owner: str,
        *,
        source_id: str,
        recipient_name: str,
        email: str | None = None,
        phone: str | None = None,
        channel: ChannelPreference | str = ChannelPreference.EMAIL,
    ) -> NotificationTarget:
        target = NotificationTarget(
            owner=owner,
            source_id=source_id,
            recipient_name=recipient_name,
            email=email,
            phone=phone,
            channel=channel,
        )
        if not owner or not owner.strip():
            raise ValueError("owner is required")
        if not source_id.strip():
            raise ValueError("source_id is required")
        for ch in target.channel.channels():
            if target.address_for(ch) is None:
                field = "email" if ch is Channel.EMAIL else "phone"
                raise ValueError(f"{field} is required for channel preference {target.channel.value}")

        target_id = self._store.insert(
            Collection.NOTIFICATION_TARGETS, target.model_dump(exclude={"id"})
        )
        return target.model_copy(update={"id": target_id})
