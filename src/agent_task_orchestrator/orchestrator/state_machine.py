"""Task status state machine.

pending -> running -> {completed, failed}
pending -> cancelled

Terminal states are immutable historical records. A task stuck in `running` is
reported as stale by the aggregator; nothing here moves it back.
"""

from __future__ import annotations

from agent_task_orchestrator.orchestrator.models import TaskStatus

ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.RUNNING, TaskStatus.CANCELLED}),
    TaskStatus.RUNNING: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}


class IllegalTransitionError(ValueError):
    pass


def is_allowed(current: TaskStatus, to: TaskStatus) -> bool:
    return to in ALLOWED_TRANSITIONS.get(current, frozenset())


def check_transition(*, current: TaskStatus, to: TaskStatus) -> TaskStatus:
    """Return `to` if `current -> to` is legal, otherwise raise."""

    if not is_allowed(current, to):
        raise IllegalTransitionError(f"Illegal transition: {current.value} -> {to.value}")
    return to
