"""FastAPI app factory.

Endpoints are thin wrappers over the orchestration engine. Error mapping:
- StoreUnavailableError -> 503
- TaskNotFoundError -> 404
- task no longer pending -> 409
- unknown record type / invalid input -> 422
- ingestion: consent required -> 401 (with `auth_url`), Gmail/Drive failure -> 502,
  source not configured -> 503
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agent_task_orchestrator import __version__
from agent_task_orchestrator.orchestrator.aggregator import (
    AggregateView,
    RecordType,
    UnknownRecordTypeError,
    parse_record_type,
)
from agent_task_orchestrator.orchestrator.config import OrchestratorSettings
from agent_task_orchestrator.orchestrator.engine import Engine, build_engine
from agent_task_orchestrator.orchestrator.gateways.base import GatewayError
from agent_task_orchestrator.orchestrator.ingest import (
    ConsentRequiredError,
    IngestionSummary,
    IngestionUnavailableError,
)
from agent_task_orchestrator.orchestrator.models import NotificationTarget, RunSummary, Task
from agent_task_orchestrator.orchestrator.store import StoreUnavailableError
from agent_task_orchestrator.orchestrator.tasks import TaskNotFoundError
from agent_task_orchestrator.server.config import ServerSettings
from agent_task_orchestrator.server.models import (
    CancelTaskRequest,
    CancelTaskResponse,
    CreateTaskRequest,
    IngestFolderRequest,
    IngestMailRequest,
    NotificationTargetRequest,
    RunDueTasksRequest,
)
from agent_task_orchestrator.server.trigger_runner import SchedulerTimer

logger = logging.getLogger(__name__)


def create_app(
    *,
    settings: ServerSettings | None = None,
    engine: Engine | None = None,
) -> FastAPI:
    settings = settings or ServerSettings()
    engine = engine or build_engine(OrchestratorSettings())
    timer = SchedulerTimer(engine.scheduler, interval_seconds=settings.scheduler_interval_seconds)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if settings.scheduler_enabled:
            timer.start()
        try:
            yield
        finally:
            if timer.running:
                timer.stop()

    app = FastAPI(
        title="Agent Task Orchestrator",
        version=__version__,
        description="REST API over the agent task orchestration engine.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    # Expose settings and the engine for request handlers that want to read them.
    app.state.settings = settings
    app.state.engine = engine
    app.state.timer = timer

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable(_: Request, exc: StoreUnavailableError) -> JSONResponse:
        logger.error("Record store unavailable", extra={"error": str(exc)})
        return JSONResponse(status_code=503, content={"detail": "Record store unavailable"})

    @app.get("/api/v1/health")
    def health() -> dict[str, object]:
        return {"status": "ok", "scheduler_timer": timer.running}

    @app.post("/api/v1/run-due-tasks", response_model=RunSummary)
    def run_due_tasks(req: RunDueTasksRequest | None = None) -> RunSummary:
        now = req.now if req is not None else None
        return engine.scheduler.run_due_tasks(now)

    @app.get("/api/v1/task-stats", response_model=AggregateView, response_model_exclude_none=True)
    def task_stats(owner: str = Query(min_length=1)) -> AggregateView:
        return engine.aggregator.aggregate(owner, RecordType.TASKS)

    @app.get(
        "/api/v1/record-stats", response_model=AggregateView, response_model_exclude_none=True
    )
    def record_stats(
        owner: str = Query(min_length=1),
        record_type: str = Query(description="'sentiment' or 'image'"),
    ) -> AggregateView:
        try:
            kind = parse_record_type(record_type)
            if kind is RecordType.TASKS:
                raise UnknownRecordTypeError("use /api/v1/task-stats for tasks")
        except UnknownRecordTypeError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        return engine.aggregator.aggregate(owner, kind)

    @app.post("/api/v1/tasks", response_model=Task, status_code=201)
    def create_task(req: CreateTaskRequest) -> Task:
        if req.schedule_type and req.scheduled_for is not None:
            raise HTTPException(
                status_code=422, detail="Give either scheduled_for or schedule_type, not both"
            )
        try:
            if req.schedule_type:
                return engine.tasks.schedule_task(
                    req.owner,
                    req.kind,
                    req.payload,
                    schedule_type=req.schedule_type,
                    schedule_config=req.schedule_config,
                )
            return engine.tasks.create_task(
                req.owner, req.kind, req.payload, scheduled_for=req.scheduled_for
            )
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e

    @app.get("/api/v1/tasks/{task_id}", response_model=Task)
    def get_task(task_id: str, owner: str = Query(min_length=1)) -> Task:
        try:
            return engine.tasks.get_task(owner, task_id)
        except TaskNotFoundError as e:
            raise HTTPException(status_code=404, detail="Task not found") from e

    @app.post("/api/v1/tasks/{task_id}/cancel", response_model=CancelTaskResponse)
    def cancel_task(task_id: str, req: CancelTaskRequest) -> CancelTaskResponse:
        try:
            cancelled = engine.tasks.cancel_task(req.owner, task_id)
        except TaskNotFoundError as e:
            raise HTTPException(status_code=404, detail="Task not found") from e
        if not cancelled:
            raise HTTPException(status_code=409, detail="Task is no longer pending")
        return CancelTaskResponse(task_id=task_id, cancelled=True)

    @app.post("/api/v1/notification-targets", response_model=NotificationTarget, status_code=201)
    def add_notification_target(req: NotificationTargetRequest) -> NotificationTarget:
        try:
            return engine.tasks.add_notification_target(
                req.owner,
                source_id=req.source_id,
                recipient_name=req.recipient_name,
                email=req.email,
                phone=req.phone,
                channel=req.channel,
            )
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e

    @app.post("/api/v1/ingest/mail", response_model=IngestionSummary)
    def ingest_mail(req: IngestMailRequest) -> IngestionSummary:
        return _ingest(
            lambda: engine.ingestion.ingest_mailbox(
                req.owner, max_messages=req.max_messages, mark_as_read=req.mark_as_read
            )
        )

    @app.post("/api/v1/ingest/folder", response_model=IngestionSummary)
    def ingest_folder(req: IngestFolderRequest) -> IngestionSummary:
        return _ingest(
            lambda: engine.ingestion.ingest_folder(
                req.owner, req.folder_id, max_files=req.max_files
            )
        )

    return app


def _ingest(run: Callable[[], IngestionSummary]) -> IngestionSummary:
    try:
        return run()
    except ConsentRequiredError as e:
        raise HTTPException(
            status_code=401, detail={"error": str(e), "auth_url": e.auth_url}
        ) from e
    except GatewayError as e:
        logger.error("Ingestion source failed", extra={"error": str(e)})
        raise HTTPException(status_code=502, detail=f"External service failed: {e}") from e
    except IngestionUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
