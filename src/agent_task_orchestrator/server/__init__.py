"""FastAPI server adapter for agent-task-orchestrator.

This module exposes a REST API over the orchestration engine.

Design intent:
- Keep business logic in `agent_task_orchestrator.orchestrator.*`
- Keep server-specific concerns (routing, CORS, the scheduler timer) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from agent_task_orchestrator.server.app import create_app
