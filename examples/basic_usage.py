#!/usr/bin/env python3
"""Programmatic reminder example.

This demonstrates using the orchestrator components directly:

* load settings from `.env`
* register a notification target for a birthday
* create a reminder task due now
* run the scheduler once and print the summary and task stats

Delivery uses whichever senders `.env` configures (SMTP_* / WHATSAPP_*).
"""

from __future__ import annotations

import argparse
import json
from typing import Sequence

from agent_task_orchestrator.orchestrator.config import OrchestratorSettings
from agent_task_orchestrator.orchestrator.engine import build_engine
from agent_task_orchestrator.orchestrator.logging import configure_logging
from agent_task_orchestrator.orchestrator.models import TaskKind


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send one birthday reminder (programmatic example).")
    parser.add_argument("--owner", default="demo-user", help="Owner of the task and target")
    parser.add_argument("--name", required=True, help="Person whose birthday it is")
    parser.add_argument("--email", default=None, help="Recipient email address")
    parser.add_argument("--phone", default=None, help="Recipient phone number (WhatsApp)")
    parser.add_argument(
        "--channel",
        default="email",
        choices=["email", "messaging", "both"],
        help="Channel preference",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = OrchestratorSettings()
    configure_logging(settings.log_level)
    engine = build_engine(settings)

    source_id = f"birthday-{args.name.lower().replace(' ', '-')}"
    engine.tasks.add_notification_target(
        args.owner,
        source_id=source_id,
        recipient_name=args.name,
        email=args.email,
        phone=args.phone,
        channel=args.channel,
    )
    task = engine.tasks.create_task(
        args.owner,
        TaskKind.PERIODIC_REMINDER,
        {"source_id": source_id, "person_name": args.name},
    )
    print(f"Created task {task.id}")

    summary = engine.scheduler.run_due_tasks()
    print(json.dumps(summary.model_dump(), indent=2))

    stats = engine.aggregator.aggregate(args.owner, "tasks")
    print(json.dumps(stats.counts_by_status, indent=2))
    return 0 if summary.failed == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
