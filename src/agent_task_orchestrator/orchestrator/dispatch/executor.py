"""Dispatch executor: run one claimed task and record its terminal status."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from agent_task_orchestrator.orchestrator.context import ContextFactory, RunContext
from agent_task_orchestrator.orchestrator.dispatch.strategies import TaskStrategy, build_registry
from agent_task_orchestrator.orchestrator.models import (
    ExecutionOutcome,
    StrategyResult,
    Task,
    TaskKind,
    TaskStatus,
    utc_now,
)
from agent_task_orchestrator.orchestrator.store import Collection, RecordStore, StoreUnavailableError

logger = logging.getLogger(__name__)


class DispatchExecutor:
    """Execute claimed (`running`) tasks.

    Every call ends in exactly one conditional terminal write
    (`running -> completed` or `running -> failed`). Sends and analysis calls are
    never retried here; a retry is a new task.
    """

    def __init__(
        self,
        store: RecordStore,
        strategies: Mapping[TaskKind, TaskStrategy],
        *,
        context_factory: ContextFactory | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._strategies = build_registry(strategies)
        self._context_factory = context_factory
        self._clock = clock

    def execute(self, task: Task, context: RunContext | None = None) -> ExecutionOutcome:
        """Run `task` and record the outcome.

        Args:
            task: A task this process has claimed (status `running`).
            context: Run resources; when omitted one is acquired for this call only.

        Returns:
            The terminal status written (or attempted) for the task.

        Raises:
            StoreUnavailableError: The store failed; no terminal status was written.
        """

        if context is not None:
            return self._execute(task, context)
        if self._context_factory is None:
            raise ValueError("a RunContext or a context_factory is required")
        own = self._context_factory(self._clock())
        try:
            return self._execute(task, own)
        finally:
            own.close()

    def _execute(self, task: Task, context: RunContext) -> ExecutionOutcome:
        strategy = self._strategies[task.kind]
        log_extra: dict[str, Any] = {"task_id": task.id, "kind": task.kind.value, "owner": task.owner}

        try:
            outcome = strategy.run(task.payload, task.owner, context)
        except StoreUnavailableError:
            raise
        except Exception as e:
            logger.exception("Strategy raised unexpectedly", extra=log_extra)
            outcome = StrategyResult.failure(f"unexpected error: {e}")

        completed_at = self._clock()
        if task.started_at is not None and completed_at < task.started_at:
            completed_at = task.started_at

        if outcome.ok:
            status = TaskStatus.COMPLETED
            patch: dict[str, Any] = {
                "status": status,
                "completed_at": completed_at,
                "result": outcome.result or {},
            }
        else:
            status = TaskStatus.FAILED
            patch = {
                "status": status,
                "completed_at": completed_at,
                "error_message": outcome.error,
            }

        recorded = self._store.conditional_update(
            Collection.TASKS, task.id, expected_status=TaskStatus.RUNNING.value, patch=patch
        )
        if recorded:
            logger.info("Task finished", extra={**log_extra, "status": status.value})
        else:
            logger.warning(
                "Terminal write lost; task was no longer running",
                extra={**log_extra, "status": status.value},
            )

        return ExecutionOutcome(
            task_id=task.id,
            status=status,
            recorded=recorded,
            result=patch.get("result"),
            error_message=patch.get("error_message"),
        )
