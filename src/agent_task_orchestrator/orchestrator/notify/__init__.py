"""Notification senders (one per channel)."""

from agent_task_orchestrator.orchestrator.notify.base import NotificationSender
from agent_task_orchestrator.orchestrator.notify.mail import GmailEmailSender, SmtpEmailSender
from agent_task_orchestrator.orchestrator.notify.whatsapp import WhatsAppSender

__all__ = [
    "GmailEmailSender",
    "NotificationSender",
    "SmtpEmailSender",
    "WhatsAppSender",
]
