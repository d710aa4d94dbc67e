"""External service gateways (Gmail, Drive)."""

from agent_task_orchestrator.orchestrator.gateways.base import (
    FileTokenStore,
    GatewayError,
    GatewayUnauthenticatedError,
    OAuthGateway,
    OAuthToken,
)
from agent_task_orchestrator.orchestrator.gateways.drive import (
    DriveFile,
    DriveFileGateway,
    FileContent,
    FileContentRequest,
    ListImagesRequest,
)
from agent_task_orchestrator.orchestrator.gateways.gmail import (
    GmailGateway,
    ListUnreadRequest,
    MailMessage,
    MarkReadRequest,
    SendMailRequest,
)

__all__ = [
    "DriveFile",
    "DriveFileGateway",
    "FileContent",
    "FileContentRequest",
    "FileTokenStore",
    "GatewayError",
    "GatewayUnauthenticatedError",
    "GmailGateway",
    "ListImagesRequest",
    "ListUnreadRequest",
    "MailMessage",
    "MarkReadRequest",
    "OAuthGateway",
    "OAuthToken",
    "SendMailRequest",
]
