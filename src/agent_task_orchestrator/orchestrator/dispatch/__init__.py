"""Task dispatch: strategies per task kind and the executor that runs them."""

from agent_task_orchestrator.orchestrator.dispatch.executor import DispatchExecutor
from agent_task_orchestrator.orchestrator.dispatch.strategies import (
    ContentAnalysisStrategy,
    MediaProcessingStrategy,
    ReminderStrategy,
    TaskStrategy,
    build_registry,
    default_registry,
)

__all__ = [
    "ContentAnalysisStrategy",
    "DispatchExecutor",
    "MediaProcessingStrategy",
    "ReminderStrategy",
    "TaskStrategy",
    "build_registry",
    "default_registry",
]
