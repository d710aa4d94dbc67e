"""Gmail API: send as the owner, read and mark unread inbox messages."""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import Any
from urllib.parse import quote

from agent_task_orchestrator.orchestrator.gateways.base import GatewayError, OAuthGateway

logger = logging.getLogger(__name__)

GMAIL_API_URL = "https://gmail.googleapis.com/gmail/v1/users/me"
GMAIL_SEND_URL = f"{GMAIL_API_URL}/messages/send"


@dataclass(frozen=True, slots=True)
class SendMailRequest:
    to: str
    subject: str
    text: str
    html: str | None = None


@dataclass(frozen=True, slots=True)
class ListUnreadRequest:
    max_results: int = 10


@dataclass(frozen=True, slots=True)
class MarkReadRequest:
    message_id: str


@dataclass(frozen=True, slots=True)
class MailMessage:
    id: str
    thread_id: str | None
    subject: str
    sender: str
    date: str | None = None
    snippet: str = ""
    body: str = ""
    labels: tuple[str, ...] = field(default_factory=tuple)

    @property
    def content(self) -> str:
        return self.body or self.snippet


GmailRequest = SendMailRequest | ListUnreadRequest | MarkReadRequest


def _decode_part(data: str) -> str:
    try:
        raw = base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
    except (binascii.Error, ValueError) as e:
        raise GatewayError(f"message body is not valid base64: {e}") from e
    return raw.decode("utf-8", errors="replace")


def _plain_text(part: dict[str, Any]) -> str:
    data = (part.get("body") or {}).get("data")
    if data and part.get("mimeType", "text/plain").startswith("text/plain"):
        return _decode_part(data)
    for child in part.get("parts") or []:
        text = _plain_text(child)
        if text:
            return text
    return ""


def parse_message(data: dict[str, Any]) -> MailMessage:
    """Build a `MailMessage` from a `format=full` Gmail message resource."""

    payload = data.get("payload") or {}
    headers = {
        str(h.get("name", "")).lower(): str(h.get("value", ""))
        for h in payload.get("headers") or []
    }
    message_id = data.get("id")
    if not isinstance(message_id, str) or not message_id:
        raise GatewayError("Gmail message carried no id")
    return MailMessage(
        id=message_id,
        thread_id=data.get("threadId"),
        subject=headers.get("subject") or "No Subject",
        sender=headers.get("from") or "Unknown",
        date=headers.get("date"),
        snippet=str(data.get("snippet") or ""),
        body=_plain_text(payload),
        labels=tuple(data.get("labelIds") or ()),
    )


class GmailGateway(OAuthGateway[GmailRequest, Any]):
    """Gmail on behalf of the owner.

    `call` returns, by request type:
    - `SendMailRequest`: the Gmail message id
    - `ListUnreadRequest`: a list of `MailMessage`, newest first
    - `MarkReadRequest`: None
    """

    scopes = (
        "https://www.googleapis.com/auth/gmail.send",
        "https://www.googleapis.com/auth/gmail.modify",
    )

    @staticmethod
    def build_raw(request: SendMailRequest) -> str:
        msg = EmailMessage()
        msg["To"] = request.to
        msg["Subject"] = request.subject
        msg.set_content(request.text)
        if request.html:
            msg.add_alternative(request.html, subtype="html")
        return base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii")

    def _perform(self, access_token: str, request: GmailRequest) -> Any:
        if isinstance(request, SendMailRequest):
            return self._send_mail(access_token, request)
        if isinstance(request, ListUnreadRequest):
            return self._list_unread(access_token, request)
        if isinstance(request, MarkReadRequest):
            return self._mark_read(access_token, request)
        raise TypeError(f"unsupported Gmail request: {type(request).__name__}")

    def _send_mail(self, access_token: str, request: SendMailRequest) -> str:
        resp = self._send(
            "POST", GMAIL_SEND_URL, access_token, json={"raw": self.build_raw(request)}
        )
        message_id = self._json(resp).get("id")
        if not isinstance(message_id, str) or not message_id:
            raise GatewayError("Gmail response carried no message id")
        logger.debug("Gmail accepted message", extra={"message_id": message_id})
        return message_id

    def _list_unread(self, access_token: str, request: ListUnreadRequest) -> list[MailMessage]:
        if request.max_results < 1:
            raise GatewayError("max_results must be positive")
        listing = self._json(
            self._send(
                "GET",
                f"{GMAIL_API_URL}/messages",
                access_token,
                params={"q": "is:unread", "maxResults": request.max_results},
            )
        )
        messages: list[MailMessage] = []
        for ref in listing.get("messages") or []:
            url = f"{GMAIL_API_URL}/messages/{quote(str(ref.get('id', '')), safe='')}"
            detail = self._json(self._send("GET", url, access_token, params={"format": "full"}))
            messages.append(parse_message(detail))
        logger.debug("Listed unread Gmail messages", extra={"count": len(messages)})
        return messages

    def _mark_read(self, access_token: str, request: MarkReadRequest) -> None:
        if not request.message_id.strip():
            raise GatewayError("message_id is required")
        url = f"{GMAIL_API_URL}/messages/{quote(request.message_id, safe='')}/modify"
        self._send("POST", url, access_token, json={"removeLabelIds": ["UNREAD"]})
