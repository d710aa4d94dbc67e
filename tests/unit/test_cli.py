"""Unit tests for the command-line entrypoint."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

import pytest

from agent_task_orchestrator.orchestrator import main as cli


@pytest.fixture(autouse=True)
def cli_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ORCHESTRATOR_DB_PATH", str(tmp_path / "records.sqlite3"))
    monkeypatch.setenv("LOG_LEVEL", "CRITICAL")
    for name in ("SMTP_USER", "WHATSAPP_TOKEN", "GOOGLE_CLIENT_ID", "ORCHESTRATOR_MAX_CONCURRENCY"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


def _json_out(capsys: pytest.CaptureFixture[str]) -> dict:
    return json.loads(capsys.readouterr().out)


def test_create_then_stats(capsys) -> None:
    code = cli.main(
        [
            "create-task",
            "--owner",
            "alice",
            "--kind",
            "content_analysis",
            "--payload",
            '{"email_content": "hi"}',
            "--scheduled-for",
            "2030-01-01T09:00:00",
        ]
    )
    assert code == 0
    task = _json_out(capsys)
    assert task["status"] == "pending"
    assert task["scheduled_for"].startswith("2030-01-01T09:00:00")

    assert cli.main(["task-stats", "--owner", "alice", "--counts-only"]) == 0
    stats = _json_out(capsys)
    assert stats == {"counts_by_status": {"pending": 1}, "total": 1, "stale_running": []}


def test_run_due_tasks_with_nothing_due(capsys) -> None:
    assert cli.main(["run-due-tasks", "--now", "2025-03-14T09:00:00Z"]) == 0
    assert _json_out(capsys) == {"claimed": 0, "completed": 0, "failed": 0, "skipped": 0}


def test_cancel_task_exit_codes(capsys) -> None:
    assert cli.main(["cancel-task", "--owner", "alice", "--task-id", "missing"]) == 4

    cli.main(["create-task", "--owner", "alice", "--kind", "media_processing"])
    task_id = _json_out(capsys)["id"]
    assert cli.main(["cancel-task", "--owner", "alice", "--task-id", task_id]) == 0
    assert cli.main(["cancel-task", "--owner", "alice", "--task-id", task_id]) == 4


def test_unknown_record_type_is_usage_error() -> None:
    assert cli.main(["record-stats", "--owner", "alice", "--record-type", "videos"]) == 2


def test_invalid_schedule_is_usage_error() -> None:
    code = cli.main(
        [
            "create-task",
            "--owner",
            "alice",
            "--kind",
            "periodic_reminder",
            "--schedule-type",
            "daily",
            "--schedule-config",
            '{"time": "25:99"}',
        ]
    )
    assert code == 2


def test_invalid_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ORCHESTRATOR_MAX_CONCURRENCY", "many")
    assert cli.main(["task-stats", "--owner", "alice"]) == 2


def test_store_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    def refuse(*_args, **_kwargs):
        raise sqlite3.OperationalError("unable to open database file")

    monkeypatch.setattr(sqlite3, "connect", refuse)
    assert cli.main(["run-due-tasks"]) == 3


def test_bad_payload_is_rejected_by_parser() -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["create-task", "--owner", "alice", "--kind", "content_analysis", "--payload", "[1]"])
    assert exc.value.code == 2


def test_ingest_without_google_client_is_config_error(capsys) -> None:
    assert cli.main(["ingest-mail", "--owner", "alice"]) == 2
    assert "no Gmail gateway configured" in capsys.readouterr().err

    assert cli.main(["ingest-folder", "--owner", "alice", "--folder-id", "f"]) == 2
    assert "no Drive gateway configured" in capsys.readouterr().err
