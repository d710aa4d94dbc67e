"""Unit tests for the dispatch executor and the reminder strategy."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import Mock

import pytest

from agent_task_orchestrator.orchestrator.context import RunContext
from agent_task_orchestrator.orchestrator.dispatch.executor import DispatchExecutor
from agent_task_orchestrator.orchestrator.dispatch.strategies import (
    ReminderStrategy,
    build_registry,
    default_registry,
)
from agent_task_orchestrator.orchestrator.models import (
    Channel,
    ChannelPreference,
    StrategyResult,
    Task,
    TaskKind,
    TaskStatus,
)
from agent_task_orchestrator.orchestrator.store import Collection, StoreUnavailableError
from agent_task_orchestrator.orchestrator.tasks import TaskService


def _claimed(store, now, kind: TaskKind, payload: dict) -> Task:
    task = TaskService(store, clock=lambda: now).create_task("alice", kind, payload)
    assert store.conditional_update(
        Collection.TASKS,
        task.id,
        expected_status="pending",
        patch={"status": TaskStatus.RUNNING, "started_at": now},
    )
    return task.model_copy(update={"status": TaskStatus.RUNNING, "started_at": now})


def _context(store, now, senders, send_timeout: float = 5.0) -> RunContext:
    return RunContext(
        store=store,
        now=now,
        senders={s.channel: s for s in senders},
        send_timeout_seconds=send_timeout,
    )


def test_registry_must_cover_every_kind() -> None:
    with pytest.raises(ValueError, match="media_processing"):
        build_registry(
            {
                TaskKind.PERIODIC_REMINDER: ReminderStrategy(),
                TaskKind.CONTENT_ANALYSIS: ReminderStrategy(),
            }
        )
    assert set(default_registry()) == set(TaskKind)


def test_partial_channel_failure_is_success_with_note(store, now, make_sender) -> None:
    email = make_sender(Channel.EMAIL)
    messaging = make_sender(Channel.MESSAGING, fail_with="whatsapp: HTTP 400: invalid number")
    task = _claimed(
        store,
        now,
        TaskKind.PERIODIC_REMINDER,
        {
            "target": {
                "recipient_name": "Bob",
                "email": "bob@example.com",
                "phone": "123",
                "channel": "both",
            }
        },
    )

    outcome = DispatchExecutor(store, default_registry(), clock=lambda: now).execute(
        task, _context(store, now, [email, messaging])
    )

    assert outcome.status is TaskStatus.COMPLETED
    assert outcome.recorded is True
    record = store.get(Collection.TASKS, task.id)
    assert record["status"] == "completed"
    assert [r["channel"] for r in record["result"]["receipts"]] == ["email"]
    notes = record["result"]["notes"]
    assert len(notes) == 1
    assert notes[0]["channel"] == "messaging"
    assert "invalid number" in notes[0]["failure_reason"]


def test_all_channels_failing_fails_the_task(store, now, make_sender) -> None:
    email = make_sender(Channel.EMAIL, fail_with="smtp: connection refused")
    task = _claimed(
        store,
        now,
        TaskKind.PERIODIC_REMINDER,
        {"target": {"recipient_name": "Bob", "email": "bob@example.com"}},
    )

    outcome = DispatchExecutor(store, default_registry(), clock=lambda: now).execute(
        task, _context(store, now, [email])
    )

    assert outcome.status is TaskStatus.FAILED
    record = store.get(Collection.TASKS, task.id)
    assert record["status"] == "failed"
    assert record["result"] is None
    assert "smtp: connection refused" in record["error_message"]


def test_missing_sender_is_a_channel_failure(store, now, make_sender) -> None:
    email = make_sender(Channel.EMAIL)
    task = _claimed(
        store,
        now,
        TaskKind.PERIODIC_REMINDER,
        {"target": {"email": "bob@example.com", "phone": "1", "channel": "both"}},
    )

    DispatchExecutor(store, default_registry(), clock=lambda: now).execute(
        task, _context(store, now, [email])
    )

    notes = store.get(Collection.TASKS, task.id)["result"]["notes"]
    assert notes[0]["failure_reason"] == "no sender configured for messaging"


def test_no_target_fails_the_task(store, now, make_sender) -> None:
    task = _claimed(store, now, TaskKind.PERIODIC_REMINDER, {"source_id": "unknown"})

    outcome = DispatchExecutor(store, default_registry(), clock=lambda: now).execute(
        task, _context(store, now, [make_sender(Channel.EMAIL)])
    )

    assert outcome.status is TaskStatus.FAILED
    assert "no notification target" in (outcome.error_message or "")


def test_slow_channel_times_out_without_blocking_the_other(store, now, make_sender) -> None:
    email = make_sender(Channel.EMAIL)
    messaging = make_sender(Channel.MESSAGING, delay_seconds=1.0)
    task = _claimed(
        store,
        now,
        TaskKind.PERIODIC_REMINDER,
        {"target": {"email": "bob@example.com", "phone": "1", "channel": "both"}},
    )

    outcome = DispatchExecutor(store, default_registry(), clock=lambda: now).execute(
        task, _context(store, now, [email, messaging], send_timeout=0.2)
    )

    assert outcome.status is TaskStatus.COMPLETED
    notes = store.get(Collection.TASKS, task.id)["result"]["notes"]
    assert notes[0]["channel"] == "messaging"
    assert notes[0]["failure_reason"].startswith("timed out")


def test_both_channels_are_sent_concurrently(store, now, make_sender) -> None:
    email = make_sender(Channel.EMAIL, delay_seconds=0.3)
    messaging = make_sender(Channel.MESSAGING, delay_seconds=0.3)
    task = _claimed(
        store,
        now,
        TaskKind.PERIODIC_REMINDER,
        {"target": {"email": "bob@example.com", "phone": "1", "channel": "both"}},
    )

    # Sequential sends would need 0.6s and miss the timeout.
    outcome = DispatchExecutor(store, default_registry(), clock=lambda: now).execute(
        task, _context(store, now, [email, messaging], send_timeout=0.5)
    )

    assert outcome.status is TaskStatus.COMPLETED
    assert len(store.get(Collection.TASKS, task.id)["result"]["receipts"]) == 2


def test_lost_terminal_write_is_reported(store, now, make_sender) -> None:
    task = _claimed(store, now, TaskKind.PERIODIC_REMINDER, {"marker": "x"})
    # Another writer finished the task first.
    store.conditional_update(
        Collection.TASKS,
        task.id,
        expected_status="running",
        patch={"status": TaskStatus.FAILED, "error_message": "reaped", "completed_at": now},
    )
    strategy = Mock()
    strategy.run.return_value = StrategyResult.success({"done": True})

    outcome = DispatchExecutor(store, {k: strategy for k in TaskKind}, clock=lambda: now).execute(
        task, _context(store, now, [])
    )

    assert outcome.recorded is False
    assert store.get(Collection.TASKS, task.id)["error_message"] == "reaped"


def test_completed_at_never_precedes_started_at(store, now, make_sender) -> None:
    task = _claimed(store, now, TaskKind.PERIODIC_REMINDER, {"marker": "x"})
    strategy = Mock()
    strategy.run.return_value = StrategyResult.success({})
    skewed_clock = lambda: now - timedelta(seconds=30)  # noqa: E731

    DispatchExecutor(store, {k: strategy for k in TaskKind}, clock=skewed_clock).execute(
        task, _context(store, now, [])
    )

    record = store.get(Collection.TASKS, task.id)
    assert record["completed_at"] == record["started_at"] == now


def test_store_failure_propagates_without_terminal_write(now) -> None:
    store = Mock()
    strategy = Mock()
    strategy.run.side_effect = StoreUnavailableError("locked")
    task = Task(
        id="t1",
        owner="alice",
        kind=TaskKind.CONTENT_ANALYSIS,
        status=TaskStatus.RUNNING,
        started_at=now,
    )

    with pytest.raises(StoreUnavailableError):
        DispatchExecutor(store, {k: strategy for k in TaskKind}).execute(
            task, RunContext(store=store, now=now)
        )

    store.conditional_update.assert_not_called()


def test_execute_acquires_and_releases_its_own_context(store, now, make_sender) -> None:
    email = make_sender(Channel.EMAIL)
    task = _claimed(
        store,
        now,
        TaskKind.PERIODIC_REMINDER,
        {"target": {"email": "bob@example.com", "channel": ChannelPreference.EMAIL.value}},
    )
    factory = Mock(side_effect=lambda at: _context(store, at, [email]))

    outcome = DispatchExecutor(
        store, default_registry(), context_factory=factory, clock=lambda: now
    ).execute(task)

    assert outcome.status is TaskStatus.COMPLETED
    factory.assert_called_once_with(now)
    assert email.closed is True
