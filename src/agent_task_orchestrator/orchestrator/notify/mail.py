"""Email channel senders.

Two transports share one message layout:
- `SmtpEmailSender`: application-level SMTP credentials (STARTTLS)
- `GmailEmailSender`: the target owner's Gmail account via the token-guarded gateway
"""

from __future__ import annotations

import html
import logging
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid

from agent_task_orchestrator.orchestrator.gateways.base import (
    GatewayError,
    GatewayUnauthenticatedError,
)
from agent_task_orchestrator.orchestrator.gateways.gmail import GmailGateway, SendMailRequest
from agent_task_orchestrator.orchestrator.models import Channel, DeliveryReceipt, NotificationTarget
from agent_task_orchestrator.orchestrator.notify.base import NotificationSender

logger = logging.getLogger(__name__)


def render_html(subject: str, body: str) -> str:
    paragraphs = "".join(
        f'<p style="font-size: 16px; color: #333; line-height: 1.6; margin: 0 0 12px;">'
        f"{html.escape(line)}</p>"
        for line in body.splitlines()
        if line.strip()
    )
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
        '<div style="background: #667eea; padding: 24px; border-radius: 10px; text-align: center;">'
        f'<h1 style="color: white; margin: 0; font-size: 24px;">{html.escape(subject)}</h1>'
        "</div>"
        '<div style="background: #f8f9fa; padding: 24px; border-radius: 8px; margin-top: 16px;">'
        f"{paragraphs}"
        "</div>"
        '<p style="margin-top: 24px; text-align: center; color: #666; font-size: 12px;">'
        "This is an automated reminder from your AI assistant</p>"
        "</div>"
    )


class SmtpEmailSender(NotificationSender):
    """Send email through an SMTP relay."""

    channel = Channel.EMAIL

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str,
        password: str,
        from_address: str,
        timeout_seconds: float = 30.0,
    ) -> None:
        if not host.strip():
            raise ValueError("SMTP host is required")
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address
        self.timeout_seconds = timeout_seconds

    def _build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.from_address
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid(domain=self.host)
        msg.set_content(body)
        msg.add_alternative(render_html(subject, body), subtype="html")
        return msg

    def send(self, target: NotificationTarget, subject: str, body: str) -> DeliveryReceipt:
        to = target.address_for(Channel.EMAIL)
        if to is None:
            return self._missing_address(target)

        msg = self._build_message(to, subject, body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds) as smtp:
                smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(
                "SMTP send failed", extra={"recipient": to, "smtp_host": self.host, "error": str(e)}
            )
            return DeliveryReceipt.failed(self.channel, reason=f"smtp: {e}", recipient=to)

        message_id = str(msg["Message-ID"])
        logger.info("Email sent", extra={"recipient": to, "message_id": message_id})
        return DeliveryReceipt.delivered(self.channel, message_id=message_id, recipient=to)


class GmailEmailSender(NotificationSender):
    """Send email from the target owner's Gmail account."""

    channel = Channel.EMAIL

    def __init__(self, gateway: GmailGateway) -> None:
        self.gateway = gateway

    def send(self, target: NotificationTarget, subject: str, body: str) -> DeliveryReceipt:
        to = target.address_for(Channel.EMAIL)
        if to is None:
            return self._missing_address(target)

        request = SendMailRequest(to=to, subject=subject, text=body, html=render_html(subject, body))
        try:
            message_id = self.gateway.call(target.owner, request)
        except GatewayUnauthenticatedError as e:
            return DeliveryReceipt.failed(self.channel, reason=f"unauthenticated: {e}", recipient=to)
        except GatewayError as e:
            return DeliveryReceipt.failed(self.channel, reason=f"gmail: {e}", recipient=to)

        logger.info("Email sent via Gmail", extra={"recipient": to, "message_id": message_id})
        return DeliveryReceipt.delivered(self.channel, message_id=message_id, recipient=to)
