"""CLI entrypoint for the task orchestrator.

Exit codes:
- 0: success
- 1: unexpected error
- 2: configuration or usage error
- 3: record store unavailable
- 4: task not found, or not in a state that allows the operation
- 5: external service refused or failed (consent required, Gmail/Drive error)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from agent_task_orchestrator import __version__
from agent_task_orchestrator.orchestrator.aggregator import UnknownRecordTypeError
from agent_task_orchestrator.orchestrator.config import OrchestratorSettings
from agent_task_orchestrator.orchestrator.engine import build_engine
from agent_task_orchestrator.orchestrator.gateways.base import GatewayError
from agent_task_orchestrator.orchestrator.ingest import (
    ConsentRequiredError,
    IngestionUnavailableError,
)
from agent_task_orchestrator.orchestrator.logging import configure_logging
from agent_task_orchestrator.orchestrator.models import TaskKind
from agent_task_orchestrator.orchestrator.store import StoreUnavailableError
from agent_task_orchestrator.orchestrator.tasks import TaskNotFoundError

logger = logging.getLogger(__name__)


def _parse_datetime(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO-8601 timestamp: {value!r}") from None
    # Naive timestamps are UTC.
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _parse_json_object(value: str) -> dict[str, Any]:
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"invalid JSON: {e}") from None
    if not isinstance(parsed, dict):
        raise argparse.ArgumentTypeError("expected a JSON object")
    return parsed


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="orchestrator",
        description="Agent task orchestration and notification dispatch",
    )
    parser.add_argument(
        "--version", action="version", version=f"agent-task-orchestrator {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_due = subparsers.add_parser("run-due-tasks", help="Execute every due pending task once")
    run_due.add_argument(
        "--now",
        type=_parse_datetime,
        default=None,
        help="Reference time (ISO-8601); defaults to the current time",
    )

    task_stats = subparsers.add_parser("task-stats", help="Show task counts by status for an owner")
    task_stats.add_argument("--owner", required=True, help="Owner whose tasks are counted")
    task_stats.add_argument(
        "--counts-only", action="store_true", help="Omit the item list from the output"
    )

    record_stats = subparsers.add_parser(
        "record-stats", help="Show sentiment or image record counts for an owner"
    )
    record_stats.add_argument("--owner", required=True, help="Owner whose records are counted")
    record_stats.add_argument(
        "--record-type", required=True, help="Record type: 'sentiment' or 'image'"
    )
    record_stats.add_argument(
        "--counts-only", action="store_true", help="Omit the item list from the output"
    )

    create_task = subparsers.add_parser("create-task", help="Create a pending task")
    create_task.add_argument("--owner", required=True, help="Owner of the new task")
    create_task.add_argument(
        "--kind", required=True, choices=[k.value for k in TaskKind], help="Task kind"
    )
    create_task.add_argument(
        "--payload", type=_parse_json_object, default={}, help="Task payload as a JSON object"
    )
    when = create_task.add_mutually_exclusive_group()
    when.add_argument(
        "--scheduled-for",
        type=_parse_datetime,
        default=None,
        help="Earliest execution time (ISO-8601)",
    )
    when.add_argument(
        "--schedule-type",
        default=None,
        help="Compute the execution time: daily, weekly, monthly or interval",
    )
    create_task.add_argument(
        "--schedule-config",
        type=_parse_json_object,
        default={},
        help='Schedule options, e.g. \'{"time": "09:00", "day_of_week": 1}\'',
    )

    cancel_task = subparsers.add_parser("cancel-task", help="Cancel a pending task")
    cancel_task.add_argument("--owner", required=True, help="Owner of the task")
    cancel_task.add_argument("--task-id", required=True, help="Task id")

    ingest_mail = subparsers.add_parser(
        "ingest-mail", help="Queue sentiment analysis for unread Gmail messages"
    )
    ingest_mail.add_argument("--owner", required=True, help="Owner whose mailbox is read")
    ingest_mail.add_argument(
        "--max-messages", type=int, default=10, help="Maximum unread messages to fetch"
    )
    ingest_mail.add_argument(
        "--keep-unread", action="store_true", help="Do not mark ingested messages as read"
    )

    ingest_folder = subparsers.add_parser(
        "ingest-folder", help="Queue captioning for new images in a Drive folder"
    )
    ingest_folder.add_argument("--owner", required=True, help="Owner of the Drive folder")
    ingest_folder.add_argument("--folder-id", required=True, help="Drive folder id")
    ingest_folder.add_argument(
        "--max-files", type=int, default=5, help="Maximum tasks to create in this pass"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = OrchestratorSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    try:
        engine = build_engine(settings)

        if args.command == "run-due-tasks":
            summary = engine.scheduler.run_due_tasks(args.now)
            _print_json(summary.model_dump())
            return 0

        if args.command in {"task-stats", "record-stats"}:
            record_type = "tasks" if args.command == "task-stats" else args.record_type
            view = engine.aggregator.aggregate(args.owner, record_type)
            exclude = {"items"} if args.counts_only else set()
            _print_json(view.model_dump(mode="json", exclude=exclude, exclude_none=True))
            return 0

        if args.command == "create-task":
            if args.schedule_type:
                task = engine.tasks.schedule_task(
                    args.owner,
                    args.kind,
                    args.payload,
                    schedule_type=args.schedule_type,
                    schedule_config=args.schedule_config,
                )
            else:
                task = engine.tasks.create_task(
                    args.owner, args.kind, args.payload, scheduled_for=args.scheduled_for
                )
            _print_json(task.model_dump(mode="json"))
            return 0

        if args.command == "cancel-task":
            if not engine.tasks.cancel_task(args.owner, args.task_id):
                print(f"Task {args.task_id} is no longer pending", file=sys.stderr)
                return 4
            print(f"Cancelled task {args.task_id}")
            return 0

        if args.command == "ingest-mail":
            ingested = engine.ingestion.ingest_mailbox(
                args.owner, max_messages=args.max_messages, mark_as_read=not args.keep_unread
            )
            _print_json(ingested.model_dump())
            return 0

        if args.command == "ingest-folder":
            ingested = engine.ingestion.ingest_folder(
                args.owner, args.folder_id, max_files=args.max_files
            )
            _print_json(ingested.model_dump())
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except StoreUnavailableError as e:
        logger.error("Record store unavailable", extra={"error": str(e)})
        print(f"Record store unavailable: {e}", file=sys.stderr)
        return 3

    except TaskNotFoundError as e:
        print(f"Task not found: {e}", file=sys.stderr)
        return 4

    except ConsentRequiredError as e:
        print(f"Access not granted: {e}", file=sys.stderr)
        print(f"Grant access at: {e.auth_url}", file=sys.stderr)
        return 5

    except GatewayError as e:
        logger.error("External service failed", extra={"error": str(e)})
        print(f"External service failed: {e}", file=sys.stderr)
        return 5

    except IngestionUnavailableError as e:
        print(str(e), file=sys.stderr)
        return 2

    except (UnknownRecordTypeError, ValueError) as e:
        print(str(e), file=sys.stderr)
        return 2

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
