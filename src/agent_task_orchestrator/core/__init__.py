"""Core package initialization."""

from agent_task_orchestrator.core.config import LLMConfig

__all__ = [
    "LLMConfig",
]
