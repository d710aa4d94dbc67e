"""Agent Task Orchestrator.

Turns declarative task records (birthday reminders, sentiment analysis, image
processing) into scheduled, exclusively claimed, multi-channel side effects:
- configuration loaded from `.env`
- structured logging
- a SQLite-backed record store with compare-and-set status updates
"""

__version__ = "0.1.0"

from agent_task_orchestrator.orchestrator.config import OrchestratorSettings

__all__ = ["__version__", "OrchestratorSettings"]
