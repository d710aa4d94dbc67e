"""Per-run resources handed to dispatch strategies.

A `RunContext` is acquired at the start of a scheduler run and released at its end.
It owns the HTTP session and every sender/gateway built on that session, so no
client state outlives a run or is shared between unrelated runs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime

import requests

from agent_task_orchestrator.core.config import LLMConfig
from agent_task_orchestrator.llm.factory import LLMFactory
from agent_task_orchestrator.llm.provider import LLMProvider
from agent_task_orchestrator.orchestrator.analysis.media import ImageCaptioner
from agent_task_orchestrator.orchestrator.analysis.sentiment import SentimentAnalyzer
from agent_task_orchestrator.orchestrator.config import OrchestratorSettings
from agent_task_orchestrator.orchestrator.gateways.base import FileTokenStore
from agent_task_orchestrator.orchestrator.gateways.drive import DriveFileGateway
from agent_task_orchestrator.orchestrator.gateways.gmail import GmailGateway
from agent_task_orchestrator.orchestrator.models import Channel
from agent_task_orchestrator.orchestrator.notify.base import NotificationSender
from agent_task_orchestrator.orchestrator.notify.mail import GmailEmailSender, SmtpEmailSender
from agent_task_orchestrator.orchestrator.notify.whatsapp import WhatsAppSender
from agent_task_orchestrator.orchestrator.store import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    store: RecordStore
    now: datetime
    senders: Mapping[Channel, NotificationSender] = field(default_factory=dict)
    mail: GmailGateway | None = None
    files: DriveFileGateway | None = None
    sentiment: SentimentAnalyzer | None = None
    captioner: ImageCaptioner | None = None
    send_timeout_seconds: float = 30.0
    call_timeout_seconds: float = 120.0
    session: requests.Session | None = None

    def close(self) -> None:
        for sender in self.senders.values():
            try:
                sender.close()
            except Exception:
                logger.exception("Failed to close sender", extra={"channel": sender.channel.value})
        if self.session is not None:
            self.session.close()


ContextFactory = Callable[[datetime], RunContext]


def _llm_provider(llm_config: LLMConfig) -> LLMProvider | None:
    if not llm_config.openai_api_key:
        logger.warning("No LLM API key configured; analysis tasks will fail")
        return None
    return LLMFactory.create(llm_config)


def build_context_factory(
    settings: OrchestratorSettings,
    store: RecordStore,
    *,
    llm_config: LLMConfig | None = None,
    provider: LLMProvider | None = None,
) -> ContextFactory:
    """Wire senders, gateways and analyzers from settings.

    The LLM provider is created once (it holds no per-run state); everything that
    talks HTTP is created per run on a fresh session.
    """

    llm_config = llm_config or LLMConfig()
    if provider is None:
        provider = _llm_provider(llm_config)
    token_store = FileTokenStore(settings.token_store_path)
    google_configured = bool(settings.google_client_id.strip())

    def acquire(now: datetime) -> RunContext:
        session = requests.Session()
        gateway_kwargs = {
            "token_store": token_store,
            "client_id": settings.google_client_id,
            "client_secret": settings.google_client_secret,
            "redirect_uri": settings.google_redirect_uri,
            "session": session,
            "timeout_seconds": settings.call_timeout_seconds,
        }

        mail = GmailGateway(**gateway_kwargs) if google_configured else None
        senders: dict[Channel, NotificationSender] = {}
        if settings.email_backend == "gmail":
            if mail is not None:
                senders[Channel.EMAIL] = GmailEmailSender(mail)
        elif settings.smtp_configured:
            senders[Channel.EMAIL] = SmtpEmailSender(
                host=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_user,
                password=settings.smtp_password,
                from_address=settings.smtp_from,
                timeout_seconds=settings.send_timeout_seconds,
            )
        if settings.whatsapp_configured:
            senders[Channel.MESSAGING] = WhatsAppSender(
                token=settings.whatsapp_token,
                phone_number_id=settings.whatsapp_phone_number_id,
                base_url=settings.whatsapp_api_base_url,
                session=session,
                timeout_seconds=settings.send_timeout_seconds,
            )

        return RunContext(
            store=store,
            now=now,
            senders=senders,
            mail=mail,
            files=DriveFileGateway(**gateway_kwargs) if google_configured else None,
            sentiment=(
                SentimentAnalyzer(provider, max_tokens=llm_config.max_tokens) if provider else None
            ),
            captioner=(
                ImageCaptioner(provider, max_tokens=llm_config.max_tokens) if provider else None
            ),
            send_timeout_seconds=settings.send_timeout_seconds,
            call_timeout_seconds=settings.call_timeout_seconds,
            session=session,
        )

    return acquire
