"""Read-side statistics over one owner's records."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from agent_task_orchestrator.orchestrator.models import TaskStatus, utc_now
from agent_task_orchestrator.orchestrator.store import Collection, OrderBy, RecordStore

logger = logging.getLogger(__name__)


class RecordType(str, Enum):
    TASKS = "tasks"
    SENTIMENT = "sentiment"
    IMAGE = "image"


class UnknownRecordTypeError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class _Source:
    collection: Collection
    key: str


_SOURCES: dict[RecordType, _Source] = {
    RecordType.TASKS: _Source(Collection.TASKS, "status"),
    RecordType.SENTIMENT: _Source(Collection.SENTIMENTS, "sentiment_category"),
    RecordType.IMAGE: _Source(Collection.IMAGES, "processing_status"),
}


class AggregateView(BaseModel):
    items: list[dict[str, Any]] = Field(default_factory=list)
    counts_by_status: dict[str, int] = Field(default_factory=dict)
    total: int = 0
    # Only reported for tasks.
    stale_running: list[str] | None = None


def parse_record_type(value: str | RecordType) -> RecordType:
    try:
        return RecordType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in RecordType)
        raise UnknownRecordTypeError(f"unknown record type {value!r} (expected one of: {allowed})") from None


class StatusAggregator:
    """Counts records by their status-like key. Never writes."""

    def __init__(
        self,
        store: RecordStore,
        *,
        stale_after: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self.stale_after = stale_after
        self._clock = clock

    def aggregate(
        self, owner: str, record_type: str | RecordType, *, now: datetime | None = None
    ) -> AggregateView:
        """Return the owner's records (newest first) with a frequency table.

        Records whose key is null or absent are counted in `total` only.

        Raises:
            UnknownRecordTypeError: `record_type` is not one of `RecordType`.
            ValueError: `owner` is empty.
        """

        kind = parse_record_type(record_type)
        if not owner or not owner.strip():
            raise ValueError("owner is required")

        source = _SOURCES[kind]
        items = self._store.find(
            source.collection,
            owner=owner,
            order=[OrderBy("created_at", descending=True)],
        )

        counts = Counter(
            str(value) for item in items if (value := item.get(source.key)) is not None
        )
        view = AggregateView(items=items, counts_by_status=dict(counts), total=len(items))

        if kind is RecordType.TASKS:
            cutoff = (now or self._clock()) - self.stale_after
            view.stale_running = [
                item["id"]
                for item in items
                if item.get("status") == TaskStatus.RUNNING.value
                and item.get("started_at") is not None
                and item["started_at"] < cutoff
            ]
            if view.stale_running:
                logger.warning(
                    "Stale running tasks",
                    extra={"owner": owner, "count": len(view.stale_running)},
                )
        return view
