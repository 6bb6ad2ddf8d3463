import logging
from typing import Optional

from core.entities.creation import Creation
from core.repositories.ledger_store import LedgerStore
from core.services.notification_provider import DeliveryReceipt, EmailSender, OutgoingEmail, PushSender

logger = logging.getLogger(__name__)

GENERATION_COMPLETE = "generationComplete"


def push_allowed(doc: dict, category: str) -> bool:
    prefs = doc.get("notificationPrefs") or {}
    return prefs.get(category, True) is not False


def notify_generation_finished(store: LedgerStore, push: PushSender, user_id: str,
                               creation: Creation) -> Optional[DeliveryReceipt]:
    doc = store.get(user_id) or {}
    token = doc.get("pushToken")
    if not token or not push_allowed(doc, GENERATION_COMPLETE):
        return None
    if creation.status == "done":
        title, body = "Your video is ready", "Tap to watch your new creation."
    else:
        title, body = "Generation failed", "Something went wrong while finishing your video."
    try:
        receipt = push.send(token, title, body, data={"creationId": creation.id, "status": creation.status})
    except Exception:
        logger.exception("Push delivery failed for %s", user_id)
        return None
    if not receipt.success:
        logger.warning("Push to %s rejected by %s: %s", user_id, receipt.provider, receipt.message)
    return receipt


def send_purchase_receipt(store: LedgerStore, email_sender: EmailSender, user_id: str,
                          subject: str, text: str) -> Optional[DeliveryReceipt]:
    """Post-commit courtesy email. Skipped when the record has no address."""
    doc = store.get(user_id) or {}
    address = doc.get("email")
    if not address:
        return None
    try:
        receipt = email_sender.send(OutgoingEmail(to=address, subject=subject, text=text, tags={"kind": "receipt"}))
    except Exception:
        logger.exception("Receipt email failed for %s", user_id)
        return None
    if not receipt.success:
        logger.warning("Receipt email to %s not accepted: %s", user_id, receipt.message)
    return receipt
