"""Test configuration and fixtures."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

import pytest

from agent_task_orchestrator.core.config import LLMConfig
from agent_task_orchestrator.orchestrator.context import RunContext
from agent_task_orchestrator.orchestrator.models import Channel, DeliveryReceipt, NotificationTarget
from agent_task_orchestrator.orchestrator.notify.base import NotificationSender
from agent_task_orchestrator.orchestrator.store import SqliteRecordStore

FIXED_NOW = datetime(2025, 3, 14, 9, 0, tzinfo=UTC)


class FakeSender(NotificationSender):
    """Records every send; succeeds unless `fail_with` is set."""

    def __init__(
        self, channel: Channel, *, fail_with: str | None = None, delay_seconds: float = 0.0
    ) -> None:
        self.channel = channel
        self.fail_with = fail_with
        self.delay_seconds = delay_seconds
        self.calls: list[tuple[NotificationTarget, str, str]] = []
        self.threads: list[str] = []
        self._lock = threading.Lock()
        self.closed = False

    def send(self, target: NotificationTarget, subject: str, body: str) -> DeliveryReceipt:
        with self._lock:
            self.calls.append((target, subject, body))
            self.threads.append(threading.current_thread().name)
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        recipient = target.address_for(self.channel)
        if self.fail_with:
            return DeliveryReceipt.failed(self.channel, reason=self.fail_with, recipient=recipient)
        return DeliveryReceipt.delivered(
            self.channel, message_id=f"{self.channel.value}-{len(self.calls)}", recipient=recipient
        )

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def store(tmp_path: Path) -> SqliteRecordStore:
    """Provide a fresh SQLite record store."""
    return SqliteRecordStore(tmp_path / "agent_state" / "records.sqlite3")


@pytest.fixture
def email_sender() -> FakeSender:
    return FakeSender(Channel.EMAIL)


@pytest.fixture
def messaging_sender() -> FakeSender:
    return FakeSender(Channel.MESSAGING)


@pytest.fixture
def context_factory(
    store: SqliteRecordStore, email_sender: FakeSender, messaging_sender: FakeSender
) -> Callable[[datetime], RunContext]:
    """Context factory wired with the fake senders and no analysis backends."""

    def acquire(at: datetime) -> RunContext:
        return RunContext(
            store=store,
            now=at,
            senders={Channel.EMAIL: email_sender, Channel.MESSAGING: messaging_sender},
            send_timeout_seconds=5.0,
            call_timeout_seconds=5.0,
        )

    return acquire


@pytest.fixture
def llm_config() -> LLMConfig:
    """Provide a test LLM configuration."""
    return LLMConfig(
        provider="openai",
        openai_api_key="test-key",
        openai_model="gpt-4o-mini",
    )


@pytest.fixture
def make_sender() -> type[FakeSender]:
    """Build extra fake senders: `make_sender(Channel.EMAIL, fail_with="...")`."""
    return FakeSender
