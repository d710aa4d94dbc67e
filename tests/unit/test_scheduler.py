"""Unit tests for the task scheduler (due gating, claiming, run summaries)."""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest

from agent_task_orchestrator.orchestrator.context import RunContext
from agent_task_orchestrator.orchestrator.dispatch.executor import DispatchExecutor
from agent_task_orchestrator.orchestrator.dispatch.strategies import default_registry
from agent_task_orchestrator.orchestrator.models import (
    ChannelPreference,
    StrategyResult,
    TaskKind,
    TaskStatus,
)
from agent_task_orchestrator.orchestrator.scheduler import TaskScheduler
from agent_task_orchestrator.orchestrator.store import (
    Collection,
    SqliteRecordStore,
    StoreUnavailableError,
)
from agent_task_orchestrator.orchestrator.tasks import TaskService


class _RecordingStrategy:
    def __init__(self, outcome: StrategyResult | None = None) -> None:
        self.outcome = outcome or StrategyResult.success({"ok": True})
        self.seen: list[str] = []
        self._lock = threading.Lock()

    def run(self, payload, owner, context) -> StrategyResult:
        with self._lock:
            self.seen.append(payload["marker"])
        return self.outcome


def _registry(strategy) -> dict:
    return {kind: strategy for kind in TaskKind}


def _scheduler(
    store: SqliteRecordStore,
    context_factory: Callable[[datetime], RunContext],
    strategies,
    now: datetime,
    **kwargs,
) -> TaskScheduler:
    executor = DispatchExecutor(store, strategies, clock=lambda: now)
    return TaskScheduler(store, executor, context_factory, **kwargs)


def test_due_gating_and_order(store, context_factory, now) -> None:
    service = TaskService(store, clock=lambda: now - timedelta(hours=1))
    service.create_task("alice", TaskKind.CONTENT_ANALYSIS, {"marker": "future"}, scheduled_for=now + timedelta(seconds=1))
    service.create_task("alice", TaskKind.CONTENT_ANALYSIS, {"marker": "exact"}, scheduled_for=now)
    service.create_task(
        "alice", TaskKind.CONTENT_ANALYSIS, {"marker": "oldest"}, scheduled_for=now - timedelta(days=1)
    )

    strategy = _RecordingStrategy()
    summary = _scheduler(store, context_factory, _registry(strategy), now, max_concurrency=1).run_due_tasks(now)

    assert summary.claimed == 2
    assert summary.completed == 2
    assert strategy.seen == ["oldest", "exact"]

    pending = [r for r in store.find(Collection.TASKS) if r["status"] == "pending"]
    assert [r["payload"]["marker"] for r in pending] == ["future"]


def test_batch_limit_bounds_a_run(store, context_factory, now) -> None:
    service = TaskService(store, clock=lambda: now)
    for i in range(5):
        service.create_task("alice", TaskKind.CONTENT_ANALYSIS, {"marker": str(i)})

    scheduler = _scheduler(store, context_factory, _registry(_RecordingStrategy()), now, batch_limit=2)

    assert scheduler.run_due_tasks(now).claimed == 2
    assert scheduler.run_due_tasks(now).claimed == 2
    assert scheduler.run_due_tasks(now).claimed == 1


def test_empty_run_is_idempotent_and_writes_nothing(context_factory, now) -> None:
    store = Mock()
    store.find.return_value = []
    factory = Mock(side_effect=context_factory)
    executor = Mock(spec=DispatchExecutor)

    summary = TaskScheduler(store, executor, factory).run_due_tasks(now)

    assert summary.model_dump() == {"claimed": 0, "completed": 0, "failed": 0, "skipped": 0}
    store.conditional_update.assert_not_called()
    store.insert.assert_not_called()
    executor.execute.assert_not_called()
    factory.assert_not_called()


def test_lost_claim_is_counted_skipped(store, context_factory, now) -> None:
    task = TaskService(store, clock=lambda: now).create_task(
        "alice", TaskKind.CONTENT_ANALYSIS, {"marker": "x"}
    )
    scheduler = _scheduler(store, context_factory, _registry(_RecordingStrategy()), now)
    candidates = scheduler.due_tasks(now)

    # Another runner claims the task between the query and our claim.
    assert scheduler.claim(candidates[0], now) is not None
    assert scheduler.claim(candidates[0], now) is None
    assert store.get(Collection.TASKS, task.id)["status"] == "running"


def test_concurrent_runs_claim_each_task_once(store, context_factory, now) -> None:
    service = TaskService(store, clock=lambda: now)
    for i in range(20):
        service.create_task("alice", TaskKind.CONTENT_ANALYSIS, {"marker": str(i)})

    strategy = _RecordingStrategy()
    schedulers = [
        _scheduler(store, context_factory, _registry(strategy), now, batch_limit=50, max_concurrency=3)
        for _ in range(4)
    ]
    summaries = []
    lock = threading.Lock()
    barrier = threading.Barrier(len(schedulers))

    def run(s: TaskScheduler) -> None:
        barrier.wait()
        summary = s.run_due_tasks(now)
        with lock:
            summaries.append(summary)

    threads = [threading.Thread(target=run, args=(s,)) for s in schedulers]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(strategy.seen, key=int) == [str(i) for i in range(20)]
    assert sum(s.claimed for s in summaries) == 20
    assert sum(s.completed for s in summaries) == 20
    statuses = {r["status"] for r in store.find(Collection.TASKS)}
    assert statuses == {"completed"}


def test_failed_task_does_not_abort_batch(store, context_factory, now) -> None:
    service = TaskService(store, clock=lambda: now)
    service.create_task("alice", TaskKind.CONTENT_ANALYSIS, {"marker": "a"})
    service.create_task("alice", TaskKind.MEDIA_PROCESSING, {"marker": "b"})

    class Exploding:
        def run(self, payload, owner, context):
            raise RuntimeError("strategy bug")

    strategies = {
        TaskKind.PERIODIC_REMINDER: _RecordingStrategy(),
        TaskKind.CONTENT_ANALYSIS: Exploding(),
        TaskKind.MEDIA_PROCESSING: _RecordingStrategy(),
    }
    summary = _scheduler(store, context_factory, strategies, now).run_due_tasks(now)

    assert summary.claimed == 2
    assert summary.completed == 1
    assert summary.failed == 1
    failed = [r for r in store.find(Collection.TASKS) if r["status"] == "failed"]
    assert "strategy bug" in failed[0]["error_message"]


def test_store_unavailable_aborts_run(context_factory, now) -> None:
    store = Mock()
    store.find.side_effect = StoreUnavailableError("connection refused")
    executor = Mock(spec=DispatchExecutor)

    with pytest.raises(StoreUnavailableError):
        TaskScheduler(store, executor, context_factory).run_due_tasks(now)

    store.conditional_update.assert_not_called()
    executor.execute.assert_not_called()


def test_context_is_released_after_run(store, now, email_sender, messaging_sender) -> None:
    TaskService(store, clock=lambda: now).create_task(
        "alice", TaskKind.CONTENT_ANALYSIS, {"marker": "x"}
    )
    contexts: list[RunContext] = []

    def factory(at: datetime) -> RunContext:
        ctx = RunContext(store=store, now=at, senders={email_sender.channel: email_sender})
        contexts.append(ctx)
        return ctx

    _scheduler(store, factory, _registry(_RecordingStrategy()), now).run_due_tasks(now)

    assert len(contexts) == 1
    assert email_sender.closed is True


def test_end_to_end_reminder_both_channels(store, context_factory, now, email_sender, messaging_sender) -> None:
    service = TaskService(store, clock=lambda: now - timedelta(minutes=5))
    service.add_notification_target(
        "alice",
        source_id="birthday-42",
        recipient_name="Bob",
        email="bob@example.com",
        phone="+1 555 0100",
        channel=ChannelPreference.BOTH,
    )
    task = service.create_task(
        "alice",
        TaskKind.PERIODIC_REMINDER,
        {"source_id": "birthday-42", "person_name": "Bob", "sender_name": "Alice"},
    )

    finished_at = now + timedelta(seconds=2)
    executor = DispatchExecutor(store, default_registry(), clock=lambda: finished_at)
    summary = TaskScheduler(store, executor, context_factory).run_due_tasks(now)

    assert summary.model_dump() == {"claimed": 1, "completed": 1, "failed": 0, "skipped": 0}

    record = store.get(Collection.TASKS, task.id, owner="alice")
    assert record is not None
    assert record["status"] == TaskStatus.COMPLETED.value
    assert record["started_at"] == now
    assert record["completed_at"] == finished_at
    assert record["completed_at"] >= record["started_at"]
    assert record["error_message"] is None

    receipts = record["result"]["receipts"]
    assert len(receipts) == 2
    assert {r["channel"] for r in receipts} == {"email", "messaging"}
    assert all(r["success"] and r["message_id"] for r in receipts)
    assert record["result"]["notes"] == []

    _, subject, body = email_sender.calls[0]
    assert subject == "Birthday Reminder - Bob"
    assert "Happy Birthday Bob!" in body
    assert body.endswith("Alice")
    assert len(messaging_sender.calls) == 1


def test_malformed_row_is_failed_instead_of_blocking_the_batch(store, context_factory, now) -> None:
    store.insert(
        Collection.TASKS,
        {
            "id": "broken",
            "owner": "alice",
            "kind": "not_a_kind",
            "status": "pending",
            "created_at": now - timedelta(days=1),
        },
    )
    task = TaskService(store, clock=lambda: now).create_task(
        "alice", TaskKind.CONTENT_ANALYSIS, {"marker": "valid"}
    )
    strategy = _RecordingStrategy()
    scheduler = _scheduler(store, context_factory, _registry(strategy), now, batch_limit=1)

    first = scheduler.run_due_tasks(now)
    second = scheduler.run_due_tasks(now)

    assert first.model_dump() == {"claimed": 1, "completed": 0, "failed": 1, "skipped": 0}
    assert second.model_dump() == {"claimed": 1, "completed": 1, "failed": 0, "skipped": 0}

    broken = store.get(Collection.TASKS, "broken")
    assert broken["status"] == "failed"
    assert broken["error_message"].startswith("malformed task record: kind")
    assert broken["started_at"] == now
    assert broken["completed_at"] == now
    assert store.get(Collection.TASKS, task.id)["status"] == "completed"
    assert strategy.seen == ["valid"]


def test_row_without_payload_is_executed(store, context_factory, now) -> None:
    store.insert(
        Collection.TASKS,
        {
            "id": "no-payload",
            "owner": "alice",
            "kind": TaskKind.CONTENT_ANALYSIS.value,
            "status": "pending",
            "created_at": now - timedelta(days=1),
        },
    )

    class PayloadEcho:
        def __init__(self) -> None:
            self.payloads: list[object] = []

        def run(self, payload, owner, context) -> StrategyResult:
            self.payloads.append(payload)
            return StrategyResult.success({"ok": True})

    strategy = PayloadEcho()
    summary = _scheduler(store, context_factory, _registry(strategy), now).run_due_tasks(now)

    assert summary.completed == 1
    assert strategy.payloads == [{}]
    assert store.get(Collection.TASKS, "no-payload")["status"] == "completed"


def test_executor_crash_is_not_counted_as_failed(store, context_factory, now) -> None:
    task = TaskService(store, clock=lambda: now).create_task(
        "alice", TaskKind.CONTENT_ANALYSIS, {"marker": "x"}
    )
    executor = Mock(spec=DispatchExecutor)
    executor.execute.side_effect = RuntimeError("executor bug")

    summary = TaskScheduler(store, executor, context_factory).run_due_tasks(now)

    assert summary.model_dump() == {"claimed": 1, "completed": 0, "failed": 0, "skipped": 0}
    assert store.get(Collection.TASKS, task.id)["status"] == "running"
