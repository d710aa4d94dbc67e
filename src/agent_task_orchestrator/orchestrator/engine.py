"""Wiring of the store, scheduler, executor, aggregator, task and ingestion services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from agent_task_orchestrator.core.config import LLMConfig
from agent_task_orchestrator.llm.provider import LLMProvider
from agent_task_orchestrator.orchestrator.aggregator import StatusAggregator
from agent_task_orchestrator.orchestrator.config import OrchestratorSettings
from agent_task_orchestrator.orchestrator.context import ContextFactory, build_context_factory
from agent_task_orchestrator.orchestrator.dispatch.executor import DispatchExecutor
from agent_task_orchestrator.orchestrator.dispatch.strategies import default_registry
from agent_task_orchestrator.orchestrator.ingest import IngestionService
from agent_task_orchestrator.orchestrator.scheduler import TaskScheduler
from agent_task_orchestrator.orchestrator.store import RecordStore, SqliteRecordStore
from agent_task_orchestrator.orchestrator.tasks import TaskService


@dataclass(frozen=True, slots=True)
class Engine:
    store: RecordStore
    scheduler: TaskScheduler
    executor: DispatchExecutor
    aggregator: StatusAggregator
    tasks: TaskService
    ingestion: IngestionService


def build_engine(
    settings: OrchestratorSettings,
    *,
    store: RecordStore | None = None,
    context_factory: ContextFactory | None = None,
    llm_config: LLMConfig | None = None,
    provider: LLMProvider | None = None,
) -> Engine:
    store = store or SqliteRecordStore(settings.db_path)
    if context_factory is None:
        context_factory = build_context_factory(
            settings, store, llm_config=llm_config, provider=provider
        )

    executor = DispatchExecutor(store, default_registry(), context_factory=context_factory)
    tasks = TaskService(store)
    return Engine(
        store=store,
        scheduler=TaskScheduler(
            store,
            executor,
            context_factory,
            batch_limit=settings.batch_limit,
            max_concurrency=settings.max_concurrency,
        ),
        executor=executor,
        aggregator=StatusAggregator(
            store, stale_after=timedelta(seconds=settings.stale_running_seconds)
        ),
        tasks=tasks,
        ingestion=IngestionService(store, tasks, context_factory),
    )
