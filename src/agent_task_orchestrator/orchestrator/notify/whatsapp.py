"""Messaging channel sender backed by the WhatsApp Cloud API."""

from __future__ import annotations

import logging
import re

import requests

from agent_task_orchestrator.orchestrator.models import Channel, DeliveryReceipt, NotificationTarget
from agent_task_orchestrator.orchestrator.notify.base import NotificationSender

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"[^\d]")


def normalize_phone(raw: str) -> str:
    """Cloud API recipients are digits only, country code first (no '+')."""

    return _NON_DIGITS.sub("", raw or "")


class WhatsAppSender(NotificationSender):
    """Send text messages through a WhatsApp Business phone number."""

    channel = Channel.MESSAGING

    def __init__(
        self,
        *,
        token: str,
        phone_number_id: str,
        base_url: str = "https://graph.facebook.com/v19.0",
        session: requests.Session | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        if not token.strip():
            raise ValueError("WhatsApp token is required")
        if not phone_number_id.strip():
            raise ValueError("WhatsApp phone number id is required")
        self.token = token
        self.phone_number_id = phone_number_id
        self.base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._owns_session = session is None
        self.timeout_seconds = timeout_seconds

    def send(self, target: NotificationTarget, subject: str, body: str) -> DeliveryReceipt:
        raw_phone = target.address_for(Channel.MESSAGING)
        if raw_phone is None:
            return self._missing_address(target)
        to = normalize_phone(raw_phone)
        if not to:
            return DeliveryReceipt.failed(
                self.channel, reason=f"invalid phone number: {raw_phone!r}", recipient=raw_phone
            )

        text = f"*{subject}*\n\n{body}" if subject else body
        try:
            resp = self._session.post(
                f"{self.base_url}/{self.phone_number_id}/messages",
                headers={"Authorization": f"Bearer {self.token}"},
                json={
                    "messaging_product": "whatsapp",
                    "to": to,
                    "type": "text",
                    "text": {"body": text},
                },
                timeout=self.timeout_seconds,
            )
        except requests.Timeout:
            return DeliveryReceipt.failed(self.channel, reason="whatsapp: request timed out", recipient=to)
        except requests.RequestException as e:
            return DeliveryReceipt.failed(self.channel, reason=f"whatsapp: {e}", recipient=to)

        try:
            data = resp.json()
        except ValueError:
            data = {}

        if resp.status_code >= 400:
            error = data.get("error") if isinstance(data, dict) else None
            detail = error.get("message") if isinstance(error, dict) else resp.text[:200]
            logger.warning(
                "WhatsApp send rejected",
                extra={"recipient": to, "status_code": resp.status_code, "error": detail},
            )
            return DeliveryReceipt.failed(
                self.channel, reason=f"whatsapp: HTTP {resp.status_code}: {detail}", recipient=to
            )

        messages = data.get("messages") if isinstance(data, dict) else None
        message_id = None
        if isinstance(messages, list) and messages and isinstance(messages[0], dict):
            message_id = messages[0].get("id")
        if not message_id:
            return DeliveryReceipt.failed(
                self.channel, reason="whatsapp: response carried no message id", recipient=to
            )

        logger.info("WhatsApp message sent", extra={"recipient": to, "message_id": message_id})
        return DeliveryReceipt.delivered(self.channel, message_id=str(message_id), recipient=to)

    def close(self) -> None:
        if self._owns_session:
            self._session.close()
