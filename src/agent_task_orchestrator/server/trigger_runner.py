"""Background timer that runs the scheduler periodically."""

from __future__ import annotations

import logging
import threading

from agent_task_orchestrator.orchestrator.scheduler import TaskScheduler
from agent_task_orchestrator.orchestrator.store import StoreUnavailableError

logger = logging.getLogger(__name__)


class SchedulerTimer:
    """Call `scheduler.run_due_tasks()` every `interval_seconds` on a daemon thread.

    A failed run is logged and the timer keeps going; the next tick is a fresh run.
    """

    def __init__(self, scheduler: TaskScheduler, *, interval_seconds: float) -> None:
        self._scheduler = scheduler
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="scheduler-timer", daemon=True)
        self._thread.start()
        logger.info("Scheduler timer started", extra={"interval_seconds": self.interval_seconds})

    def stop(self, timeout: float | None = 10.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Scheduler timer stopped")

    def tick(self) -> None:
        try:
            summary = self._scheduler.run_due_tasks()
        except StoreUnavailableError as e:
            logger.error("Scheduler run aborted: store unavailable", extra={"error": str(e)})
            return
        except Exception:
            logger.exception("Scheduler run failed")
            return
        if summary.claimed or summary.skipped:
            logger.info("Scheduler tick", extra=summary.model_dump())

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.tick()
            self._stop.wait(self.interval_seconds)
