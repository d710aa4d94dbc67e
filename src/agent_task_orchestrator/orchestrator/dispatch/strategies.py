"""Kind-specific task strategies.

Each strategy turns a claimed task's payload into a `StrategyResult`. Expected
failures (bad payload, channel errors, analysis errors, timeouts) come back as
`StrategyResult.failure`; `StoreUnavailableError` propagates so the run aborts
without writing a terminal status.
"""

from __future__ import annotations

import base64
import binascii
import concurrent.futures
import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol, TypeVar

from pydantic import ValidationError

from agent_task_orchestrator.orchestrator.analysis.parsing import AnalysisError
from agent_task_orchestrator.orchestrator.context import RunContext
from agent_task_orchestrator.orchestrator.dispatch.rendering import render_reminder
from agent_task_orchestrator.orchestrator.gateways.base import (
    GatewayError,
    GatewayUnauthenticatedError,
)
from agent_task_orchestrator.orchestrator.gateways.drive import FileContentRequest
from agent_task_orchestrator.orchestrator.models import (
    Channel,
    DeliveryReceipt,
    ImageRecord,
    NotificationTarget,
    SentimentRecord,
    StrategyResult,
    TaskKind,
)
from agent_task_orchestrator.orchestrator.store import Collection, Condition, OrderBy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TaskStrategy(Protocol):
    def run(self, payload: Mapping[str, Any], owner: str, context: RunContext) -> StrategyResult: ...


class CallTimeoutError(RuntimeError):
    pass


def call_with_timeout(fn: Callable[[], T], timeout_seconds: float) -> T:
    """Run `fn` on a helper thread and wait at most `timeout_seconds`.

    The helper thread is abandoned on timeout; Python threads cannot be killed.
    """

    pool = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="call")
    try:
        future = pool.submit(fn)
        try:
            return future.result(timeout=timeout_seconds)
        except concurrent.futures.TimeoutError:
            raise CallTimeoutError(f"timed out after {timeout_seconds:g}s") from None
    finally:
        pool.shutdown(wait=False, cancel_futures=True)


class ReminderStrategy:
    """Send a reminder to every notification target of `payload.source_id`."""

    def load_targets(
        self, payload: Mapping[str, Any], owner: str, context: RunContext
    ) -> list[NotificationTarget]:
        source_id = payload.get("source_id")
        if source_id:
            rows = context.store.find(
                Collection.NOTIFICATION_TARGETS,
                where=[Condition.eq("source_id", str(source_id))],
                order=[OrderBy("created_at")],
                owner=owner,
            )
            if rows:
                return [NotificationTarget.model_validate(r) for r in rows]

        inline = payload.get("target")
        if isinstance(inline, Mapping):
            return [NotificationTarget.model_validate({**inline, "owner": owner})]
        return []

    def send_to_target(
        self, target: NotificationTarget, subject: str, body: str, context: RunContext
    ) -> list[DeliveryReceipt]:
        channels = target.channel.channels()
        receipts: dict[Channel, DeliveryReceipt] = {}
        pending: dict[concurrent.futures.Future[DeliveryReceipt], Channel] = {}

        pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=len(channels), thread_name_prefix="send"
        )
        try:
            for channel in channels:
                sender = context.senders.get(channel)
                if sender is None:
                    receipts[channel] = DeliveryReceipt.failed(
                        channel,
                        reason=f"no sender configured for {channel.value}",
                        recipient=target.address_for(channel),
                    )
                    continue
                pending[pool.submit(sender.send, target, subject, body)] = channel

            done, not_done = concurrent.futures.wait(
                pending, timeout=context.send_timeout_seconds
            )
            for future in done:
                channel = pending[future]
                try:
                    receipts[channel] = future.result()
                except Exception as e:
                    logger.exception("Sender raised", extra={"channel": channel.value})
                    receipts[channel] = DeliveryReceipt.failed(
                        channel, reason=f"sender error: {e}", recipient=target.address_for(channel)
                    )
            for future in not_done:
                channel = pending[future]
                receipts[channel] = DeliveryReceipt.failed(
                    channel,
                    reason=f"timed out after {context.send_timeout_seconds:g}s",
                    recipient=target.address_for(channel),
                )
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        return [receipts[c] for c in channels]

    def run(self, payload: Mapping[str, Any], owner: str, context: RunContext) -> StrategyResult:
        try:
            targets = self.load_targets(payload, owner, context)
        except ValidationError as e:
            return StrategyResult.failure(f"invalid notification target: {e.errors()[0]['msg']}")
        if not targets:
            return StrategyResult.failure(
                f"no notification target for source {payload.get('source_id') or '?'}"
            )

        receipts: list[DeliveryReceipt] = []
        for target in targets:
            subject, body = render_reminder(payload, target)
            receipts.extend(self.send_to_target(target, subject, body, context))

        delivered = [r for r in receipts if r.success]
        failed = [r for r in receipts if not r.success]
        if not delivered:
            reasons = "; ".join(f"{r.channel.value}: {r.failure_reason}" for r in failed)
            return StrategyResult.failure(f"all channels failed: {reasons}")

        return StrategyResult.success(
            {
                "receipts": [r.model_dump(mode="json") for r in delivered],
                "notes": [r.model_dump(mode="json") for r in failed],
                "channels_sent": sorted({r.channel.value for r in delivered}),
                "sent_at": context.now.isoformat(),
            }
        )


class ContentAnalysisStrategy:
    """Classify an email's sentiment and store a `SentimentRecord`."""

    def run(self, payload: Mapping[str, Any], owner: str, context: RunContext) -> StrategyResult:
        content = payload.get("email_content")
        if not isinstance(content, str) or not content.strip():
            return StrategyResult.failure("email_content is required")
        if context.sentiment is None:
            return StrategyResult.failure("no sentiment analysis backend configured")

        subject = payload.get("email_subject")
        sender = payload.get("sender_email")
        analyzer = context.sentiment
        try:
            analysis = call_with_timeout(
                lambda: analyzer.analyze(content, subject=subject, sender=sender),
                context.call_timeout_seconds,
            )
        except (AnalysisError, CallTimeoutError) as e:
            return StrategyResult.failure(f"sentiment analysis failed: {e}")

        record = SentimentRecord(
            owner=owner,
            email_subject=subject,
            sender_email=sender,
            email_content=content,
            sentiment_category=analysis.sentiment_category,
            confidence_score=analysis.confidence_score,
            analyzed_at=context.now,
        )
        sentiment_id = context.store.insert(
            Collection.SENTIMENTS, record.model_dump(exclude={"id"})
        )

        return StrategyResult.success(
            {
                "sentiment_id": sentiment_id,
                "sentiment_category": analysis.sentiment_category,
                "confidence_score": analysis.confidence_score,
                "analysis_details": analysis.model_dump(mode="json"),
                "processed_at": context.now.isoformat(),
            }
        )


class MediaProcessingStrategy:
    """Caption an image (Drive file or inline base64) and store an `ImageRecord`."""

    def _load_image(
        self, payload: Mapping[str, Any], owner: str, context: RunContext
    ) -> tuple[bytes, str, str | None] | StrategyResult:
        inline = payload.get("content_base64")
        if isinstance(inline, str) and inline.strip():
            try:
                data = base64.b64decode(inline, validate=True)
            except (binascii.Error, ValueError):
                return StrategyResult.failure("content_base64 is not valid base64")
            return data, str(payload.get("mime_type") or "image/jpeg"), None

        file_id = payload.get("file_id")
        if not isinstance(file_id, str) or not file_id.strip():
            return StrategyResult.failure("either file_id or content_base64 is required")
        if context.files is None:
            return StrategyResult.failure("no file gateway configured")

        files = context.files
        try:
            content = call_with_timeout(
                lambda: files.call(owner, FileContentRequest(file_id=file_id)),
                context.call_timeout_seconds,
            )
        except GatewayUnauthenticatedError as e:
            return StrategyResult.failure(f"unauthenticated: {e}")
        except (GatewayError, CallTimeoutError) as e:
            return StrategyResult.failure(f"file retrieval failed: {e}")
        return content.content, content.mime_type, content.name

    def run(self, payload: Mapping[str, Any], owner: str, context: RunContext) -> StrategyResult:
        if context.captioner is None:
            return StrategyResult.failure("no image analysis backend configured")

        loaded = self._load_image(payload, owner, context)
        if isinstance(loaded, StrategyResult):
            return loaded
        image, mime_type, file_name = loaded

        file_id = payload.get("file_id") if isinstance(payload.get("file_id"), str) else None
        image_name = payload.get("image_name") or file_name or file_id or "image"
        record = ImageRecord(
            owner=owner,
            image_name=str(image_name),
            file_id=file_id,
            processing_status="processing",
            created_at=context.now,
            updated_at=context.now,
        )
        image_id = context.store.insert(Collection.IMAGES, record.model_dump(exclude={"id"}))

        captioner = context.captioner
        try:
            analysis = call_with_timeout(
                lambda: captioner.caption(image, mime_type), context.call_timeout_seconds
            )
        except Exception as e:
            # The record must not stay `processing` whatever the captioner raised.
            context.store.conditional_update(
                Collection.IMAGES,
                image_id,
                expected_status="processing",
                patch={"processing_status": "failed", "updated_at": context.now},
            )
            if isinstance(e, AnalysisError | CallTimeoutError):
                return StrategyResult.failure(f"image analysis failed: {e}")
            raise

        context.store.conditional_update(
            Collection.IMAGES,
            image_id,
            expected_status="processing",
            patch={
                "generated_caption": analysis.caption,
                "generated_hashtags": analysis.hashtags,
                "processing_status": "completed",
                "updated_at": context.now,
            },
        )
        return StrategyResult.success(
            {
                "image_caption_id": image_id,
                "caption": analysis.caption,
                "hashtags": analysis.hashtags,
                "analysis_details": analysis.model_dump(mode="json"),
                "processed_at": context.now.isoformat(),
            }
        )


def build_registry(strategies: Mapping[TaskKind, TaskStrategy]) -> dict[TaskKind, TaskStrategy]:
    """Freeze the kind -> strategy table; every `TaskKind` must be covered."""

    missing = [k.value for k in TaskKind if k not in strategies]
    if missing:
        raise ValueError(f"no strategy registered for task kind(s): {', '.join(missing)}")
    return dict(strategies)


def default_registry() -> dict[TaskKind, TaskStrategy]:
    return build_registry(
        {
            TaskKind.PERIODIC_REMINDER: ReminderStrategy(),
            TaskKind.CONTENT_ANALYSIS: ContentAnalysisStrategy(),
            TaskKind.MEDIA_PROCESSING: MediaProcessingStrategy(),
        }
    )
