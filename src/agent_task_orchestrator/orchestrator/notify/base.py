"""Abstract base class for notification senders."""

from __future__ import annotations

from abc import ABC, abstractmethod

from agent_task_orchestrator.orchestrator.models import Channel, DeliveryReceipt, NotificationTarget


class NotificationSender(ABC):
    """A delivery backend for one channel.

    This interface allows pluggable transports (SMTP, Gmail API, WhatsApp, etc.).
    Implementations report failures through the returned receipt; raising is
    reserved for programming errors.
    """

    channel: Channel

    @abstractmethod
    def send(self, target: NotificationTarget, subject: str, body: str) -> DeliveryReceipt:
        """Deliver one message to the target over this sender's channel.

        Args:
            target: Recipient identity and addresses.
            subject: Short subject line (ignored by channels without subjects).
            body: Plain-text message body.

        Returns:
            A receipt: provider message id on success, failure reason otherwise.
        """
        pass

    def close(self) -> None:
        """Release transport resources. Senders without any may ignore this."""
        return

    def _missing_address(self, target: NotificationTarget) -> DeliveryReceipt:
        return DeliveryReceipt.failed(
            self.channel,
            reason=f"target {target.recipient_name or target.id or '?'} has no {self.channel.value} address",
        )
