"""Subject and body text for reminder notifications."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from agent_task_orchestrator.orchestrator.models import NotificationTarget

DEFAULT_SENDER = "Your Friend"

DEFAULT_MESSAGE = (
    "Happy Birthday {name}!\n\n"
    "Wishing you a fantastic day filled with joy, laughter, and all your favorite things. "
    "May this year bring you success, happiness, and lots of wonderful memories!\n\n"
    "Best wishes,\n"
    "{sender}"
)


def _text(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    return value.strip() if isinstance(value, str) else ""


def render_reminder(payload: Mapping[str, Any], target: NotificationTarget) -> tuple[str, str]:
    """Return `(subject, body)` for one target.

    Payload keys (all optional): `person_name`, `subject`, `message`, `sender_name`.
    A custom `message` may use the `{name}` and `{sender}` placeholders.
    """

    name = _text(payload, "person_name") or target.recipient_name or "friend"
    sender = _text(payload, "sender_name") or DEFAULT_SENDER
    subject = _text(payload, "subject") or f"Birthday Reminder - {name}"

    template = _text(payload, "message") or DEFAULT_MESSAGE
    try:
        body = template.format(name=name, sender=sender)
    except (KeyError, IndexError, ValueError):
        # Free-form messages with stray braces are sent as written.
        body = template
    return subject, body
