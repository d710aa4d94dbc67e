"""Task scheduler: find due tasks, claim them exclusively, hand them to the executor.

Several scheduler runs (timer thread, HTTP trigger, CLI) may overlap. The only
coordination between them is the store's conditional `pending -> running` update:
whoever's update affects the row owns the task; everyone else counts it as skipped.
"""

from __future__ import annotations

import concurrent.futures
import logging
from datetime import UTC, datetime

from pydantic import ValidationError

from agent_task_orchestrator.orchestrator.context import ContextFactory
from agent_task_orchestrator.orchestrator.dispatch.executor import DispatchExecutor
from agent_task_orchestrator.orchestrator.models import RunSummary, Task, TaskStatus, utc_now
from agent_task_orchestrator.orchestrator.store import (
    Collection,
    Condition,
    OrderBy,
    RecordStore,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)


class TaskScheduler:
    def __init__(
        self,
        store: RecordStore,
        executor: DispatchExecutor,
        context_factory: ContextFactory,
        *,
        batch_limit: int = 32,
        max_concurrency: int = 4,
    ) -> None:
        self._store = store
        self._executor = executor
        self._context_factory = context_factory
        self.batch_limit = max(1, batch_limit)
        self.max_concurrency = max(1, max_concurrency)

    def _fetch_due(self, now: datetime) -> tuple[list[Task], list[tuple[str, str]]]:
        rows = self._store.find(
            Collection.TASKS,
            where=[
                Condition.eq("status", TaskStatus.PENDING.value),
                Condition.lte_or_null("scheduled_for", now),
            ],
            order=[OrderBy("scheduled_for", fallback="created_at"), OrderBy("created_at")],
            limit=self.batch_limit,
        )
        tasks: list[Task] = []
        malformed: list[tuple[str, str]] = []
        for row in rows:
            try:
                tasks.append(Task.model_validate(row))
            except ValidationError as e:
                task_id = row.get("id")
                logger.warning(
                    "Malformed task record", extra={"task_id": task_id, "error": str(e)}
                )
                if task_id:
                    err = e.errors()[0]
                    where = ".".join(str(p) for p in err["loc"]) or "record"
                    malformed.append((str(task_id), f"{where}: {err['msg']}"))
        return tasks, malformed

    def due_tasks(self, now: datetime) -> list[Task]:
        return self._fetch_due(now)[0]

    def fail_malformed(self, task_id: str, reason: str, now: datetime) -> bool | None:
        """Claim a pending row that does not parse as a task and mark it failed.

        Left pending, such a row would hold its place at the head of every batch.
        Returns None if another run claimed it first, else whether the failure was recorded.
        """

        claimed = self._store.conditional_update(
            Collection.TASKS,
            task_id,
            expected_status=TaskStatus.PENDING.value,
            patch={"status": TaskStatus.RUNNING, "started_at": now},
        )
        if not claimed:
            return None
        return self._store.conditional_update(
            Collection.TASKS,
            task_id,
            expected_status=TaskStatus.RUNNING.value,
            patch={
                "status": TaskStatus.FAILED,
                "completed_at": now,
                "error_message": f"malformed task record: {reason}",
            },
        )

    def claim(self, task: Task, now: datetime) -> Task | None:
        """Conditionally move `task` to running. Returns None if another run got it."""

        claimed = self._store.conditional_update(
            Collection.TASKS,
            task.id,
            expected_status=TaskStatus.PENDING.value,
            patch={"status": TaskStatus.RUNNING, "started_at": now},
        )
        if not claimed:
            logger.info("Claim lost", extra={"task_id": task.id})
            return None
        return task.model_copy(update={"status": TaskStatus.RUNNING, "started_at": now})

    def run_due_tasks(self, now: datetime | None = None) -> RunSummary:
        """Execute every due pending task once.

        Args:
            now: Reference time for due gating and `started_at`; defaults to the clock.

        Returns:
            Counts of claimed, completed, failed and skipped tasks. A claimed task
            whose terminal write never happened is counted in neither completed
            nor failed.

        Raises:
            StoreUnavailableError: The store failed; the run was aborted. Tasks already
                executing are allowed to finish before the error is raised.
        """

        now = now or utc_now()
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        candidates, malformed = self._fetch_due(now)
        summary = RunSummary()
        for task_id, reason in malformed:
            recorded = self.fail_malformed(task_id, reason, now)
            if recorded is None:
                summary.skipped += 1
                continue
            summary.claimed += 1
            if recorded:
                summary.failed += 1
        if not candidates:
            logger.debug("No due tasks", extra={"now": now.isoformat()})
            return summary

        context = self._context_factory(now)
        try:
            claimed: list[Task] = []
            for task in candidates:
                running = self.claim(task, now)
                if running is None:
                    summary.skipped += 1
                else:
                    claimed.append(running)
            summary.claimed += len(claimed)

            store_error: StoreUnavailableError | None = None
            if claimed:
                workers = min(self.max_concurrency, len(claimed))
                with concurrent.futures.ThreadPoolExecutor(
                    max_workers=workers, thread_name_prefix="dispatch"
                ) as pool:
                    futures = {
                        pool.submit(self._executor.execute, task, context): task for task in claimed
                    }
                    for future in concurrent.futures.as_completed(futures):
                        task = futures[future]
                        try:
                            outcome = future.result()
                        except StoreUnavailableError as e:
                            logger.error(
                                "Store unavailable while finishing task",
                                extra={"task_id": task.id, "error": str(e)},
                            )
                            store_error = store_error or e
                            continue
                        except Exception:
                            # No terminal write happened; the task stays running and
                            # shows up as stale in the aggregate views.
                            logger.exception(
                                "Executor raised; task left running", extra={"task_id": task.id}
                            )
                            continue

                        if not outcome.recorded:
                            continue
                        if outcome.status is TaskStatus.COMPLETED:
                            summary.completed += 1
                        else:
                            summary.failed += 1
        finally:
            context.close()

        if store_error is not None:
            raise store_error

        logger.info("Scheduler run finished", extra=summary.model_dump())
        return summary
