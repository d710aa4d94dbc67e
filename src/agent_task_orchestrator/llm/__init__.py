"""LLM package initialization."""

from agent_task_orchestrator.llm.factory import LLMFactory
from agent_task_orchestrator.llm.provider import LLMProvider

__all__ = [
    "LLMFactory",
    "LLMProvider",
]
