"""Ingestion: turn unread Gmail messages and Drive folder images into tasks.

Ingestion only creates pending `content_analysis` / `media_processing` tasks; the
scheduler executes them like any other task. A message or file that already has
a task (or, for images, a caption record) is not ingested twice.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from pydantic import BaseModel, Field

from agent_task_orchestrator.orchestrator.context import ContextFactory
from agent_task_orchestrator.orchestrator.gateways.base import (
    GatewayError,
    GatewayUnauthenticatedError,
    OAuthGateway,
)
from agent_task_orchestrator.orchestrator.gateways.drive import DriveFile, ListImagesRequest
from agent_task_orchestrator.orchestrator.gateways.gmail import (
    ListUnreadRequest,
    MailMessage,
    MarkReadRequest,
)
from agent_task_orchestrator.orchestrator.models import TaskKind, utc_now
from agent_task_orchestrator.orchestrator.store import Collection, Condition, RecordStore
from agent_task_orchestrator.orchestrator.tasks import TaskService

logger = logging.getLogger(__name__)

# Messages shorter than this carry nothing worth classifying.
MIN_CONTENT_LENGTH = 10


class IngestionUnavailableError(RuntimeError):
    """No gateway is configured for the requested source."""


class ConsentRequiredError(GatewayUnauthenticatedError):
    """The owner has no usable token; `auth_url` is where consent is granted."""

    def __init__(self, message: str, *, auth_url: str) -> None:
        super().__init__(message)
        self.auth_url = auth_url


class IngestionSummary(BaseModel):
    found: int = 0
    created: int = 0
    skipped: int = 0
    task_ids: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class IngestionService:
    def __init__(
        self,
        store: RecordStore,
        tasks: TaskService,
        context_factory: ContextFactory,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._tasks = tasks
        self._context_factory = context_factory
        self._clock = clock

    def _known_payload_values(self, owner: str, kind: TaskKind, key: str) -> set[str]:
        rows = self._store.find(
            Collection.TASKS, where=[Condition.eq("kind", kind.value)], owner=owner
        )
        known: set[str] = set()
        for row in rows:
            payload = row.get("payload")
            if isinstance(payload, dict) and payload.get(key):
                known.add(str(payload[key]))
        return known

    @staticmethod
    def _call(gateway: OAuthGateway, owner: str, request: object) -> object:
        try:
            return gateway.call(owner, request)
        except GatewayUnauthenticatedError as e:
            raise ConsentRequiredError(str(e), auth_url=gateway.authenticate(owner)) from e

    def ingest_mailbox(
        self, owner: str, *, max_messages: int = 10, mark_as_read: bool = True
    ) -> IngestionSummary:
        """Create a content-analysis task for each unread message in the owner's inbox.

        Args:
            owner: Whose mailbox to read.
            max_messages: Upper bound on unread messages fetched.
            mark_as_read: Remove the UNREAD label once the task exists. A failure to
                do so is reported in `errors` and does not undo the task.

        Raises:
            IngestionUnavailableError: No Gmail gateway is configured.
            ConsentRequiredError: The owner has not granted (or has revoked) access.
            GatewayError: Gmail failed while listing messages.
            StoreUnavailableError: The store failed.
        """

        if not owner or not owner.strip():
            raise ValueError("owner is required")
        if max_messages < 1:
            raise ValueError("max_messages must be positive")

        context = self._context_factory(self._clock())
        try:
            mail = context.mail
            if mail is None:
                raise IngestionUnavailableError("no Gmail gateway configured")

            messages: list[MailMessage] = self._call(  # type: ignore[assignment]
                mail, owner, ListUnreadRequest(max_results=max_messages)
            )
            known = self._known_payload_values(
                owner, TaskKind.CONTENT_ANALYSIS, "gmail_message_id"
            )
            summary = IngestionSummary(found=len(messages))

            for message in messages:
                if message.id in known:
                    summary.skipped += 1
                    continue
                content = message.content.strip()
                if len(content) < MIN_CONTENT_LENGTH:
                    logger.info(
                        "Skipping message with too little content",
                        extra={"owner": owner, "gmail_message_id": message.id},
                    )
                    summary.skipped += 1
                    continue

                task = self._tasks.create_task(
                    owner,
                    TaskKind.CONTENT_ANALYSIS,
                    {
                        "email_content": content,
                        "email_subject": message.subject,
                        "sender_email": message.sender,
                        "gmail_message_id": message.id,
                        "gmail_thread_id": message.thread_id,
                    },
                )
                known.add(message.id)
                summary.created += 1
                summary.task_ids.append(task.id)

                if mark_as_read:
                    try:
                        mail.call(owner, MarkReadRequest(message_id=message.id))
                    except GatewayError as e:
                        logger.warning(
                            "Could not mark message as read",
                            extra={
                                "owner": owner,
                                "gmail_message_id": message.id,
                                "error": str(e),
                            },
                        )
                        summary.errors.append(f"{message.id}: could not mark as read: {e}")
        finally:
            context.close()

        logger.info(
            "Mailbox ingested",
            extra={"owner": owner, "found": summary.found, "created": summary.created},
        )
        return summary

    def ingest_folder(self, owner: str, folder_id: str, *, max_files: int = 5) -> IngestionSummary:
        """Create a media-processing task for each new image in a Drive folder.

        Images already captioned or already queued are skipped. At most `max_files`
        tasks are created; the rest are picked up by a later pass.

        Raises:
            IngestionUnavailableError: No Drive gateway is configured.
            ConsentRequiredError: The owner has not granted (or has revoked) access.
            GatewayError: Drive failed while listing the folder.
            StoreUnavailableError: The store failed.
        """

        if not owner or not owner.strip():
            raise ValueError("owner is required")
        if not folder_id or not folder_id.strip():
            raise ValueError("folder_id is required")
        if max_files < 1:
            raise ValueError("max_files must be positive")

        context = self._context_factory(self._clock())
        try:
            files = context.files
            if files is None:
                raise IngestionUnavailableError("no Drive gateway configured")

            images: list[DriveFile] = self._call(  # type: ignore[assignment]
                files, owner, ListImagesRequest(folder_id=folder_id)
            )
        finally:
            context.close()

        known = self._known_payload_values(owner, TaskKind.MEDIA_PROCESSING, "file_id")
        known.update(
            str(r["file_id"])
            for r in self._store.find(Collection.IMAGES, owner=owner)
            if r.get("file_id")
        )
        summary = IngestionSummary(found=len(images))

        for image in images:
            if image.file_id in known or summary.created >= max_files:
                summary.skipped += 1
                continue
            task = self._tasks.create_task(
                owner,
                TaskKind.MEDIA_PROCESSING,
                {"file_id": image.file_id, "image_name": image.name, "folder_id": folder_id},
            )
            known.add(image.file_id)
            summary.created += 1
            summary.task_ids.append(task.id)

        logger.info(
            "Folder ingested",
            extra={
                "owner": owner,
                "folder_id": folder_id,
                "found": summary.found,
                "created": summary.created,
            },
        )
        return summary
