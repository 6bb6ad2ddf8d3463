import logging
from typing import Dict, Optional
from uuid import uuid4

from core.services.notification_provider import DeliveryReceipt, EmailSender, OutgoingEmail, PushSender

logger = logging.getLogger(__name__)


class LoggingPushSender(PushSender):
    """Stand-in for the push gateway: records the message in the log and accepts it."""
    def send(self, device_token: str, title: str, body: str,
             data: Optional[Dict[str, str]] = None) -> DeliveryReceipt:
        logger.info("push -> %s...: %s | %s | %s", device_token[:8], title, body, data or {})
        return DeliveryReceipt(success=True, provider="log", message_id=f"push-{uuid4()}")


class LoggingEmailSender(EmailSender):
    def __init__(self, name: str = "log", sender: str = "no-reply@example.com"):
        self.name = name
        self.sender = sender

    def send(self, email: OutgoingEmail) -> DeliveryReceipt:
        logger.info("email %s -> %s: %s", self.sender, email.to, email.subject)
        return DeliveryReceipt(success=True, provider=self.name, message_id=f"{self.name}-{uuid4()}")


class FallbackEmailSender(EmailSender):
    """Try the primary provider, hand over to the fallback on error or rejection."""
    name = "fallback"

    def __init__(self, primary: EmailSender, fallback: EmailSender):
        self.primary = primary
        self.fallback = fallback

    def send(self, email: OutgoingEmail) -> DeliveryReceipt:
        try:
            receipt = self.primary.send(email)
            if receipt.success:
                return receipt
            logger.warning("Primary email provider %s rejected message: %s", self.primary.name, receipt.message)
        except Exception as exc:
            logger.warning("Primary email provider %s failed: %s", self.primary.name, exc)
        return self.fallback.send(email)
