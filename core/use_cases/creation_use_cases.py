import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from core.entities.creation import Creation
from core.repositories.creation_repository import CreationRepository
from core.repositories.ledger_store import LedgerStore
from core.services.media_provider import MediaFinalizer
from core.services.notification_provider import PushSender
from core.use_cases.billing_use_cases import resolve_now
from core.use_cases.notification_use_cases import notify_generation_finished

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationKey:
    """What a client retry is recognised by. ``None`` fields match anything."""
    model: Optional[str] = None
    duration: Optional[float] = None
    resolution: Optional[str] = None
    frame_rate: Optional[int] = None
    file_name: Optional[str] = None

    def as_metadata(self) -> Dict[str, Any]:
        pairs = {
            "model": self.model,
            "duration": self.duration,
            "resolution": self.resolution,
            "fps": self.frame_rate,
            "fileName": self.file_name,
        }
        return {k: v for k, v in pairs.items() if v is not None}


def _same(left: Any, right: Any) -> bool:
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return float(left) == float(right)
    return str(left).strip().lower() == str(right).strip().lower()


def metadata_agrees(wanted: Dict[str, Any], stored: Dict[str, Any]) -> bool:
    for field_name, value in wanted.items():
        other = stored.get(field_name)
        if other is None:
            continue
        if not _same(value, other):
            return False
    return True


def find_pending_creation(
    repo: CreationRepository,
    user_id: str,
    key: OperationKey,
    window_seconds: int,
    scan_limit: int,
    now: Optional[int] = None,
) -> Optional[str]:
    """Best-effort retry matching against recent pending creations, newest first.

    Soft match only: two unrelated requests with identical metadata inside the
    window resolve to the same record.
    """
    cutoff = resolve_now(now) - int(window_seconds) * 1000
    wanted = key.as_metadata()
    for creation in repo.list_recent(user_id, limit=scan_limit):
        if creation.created_at < cutoff:
            break
        if not creation.is_pending:
            continue
        if metadata_agrees(wanted, creation.metadata or {}):
            return creation.id
    return None


def register_creation(repo: CreationRepository, user_id: str, key: OperationKey,
                      creation_id: Optional[str] = None) -> Creation:
    creation = repo.create(user_id, key.as_metadata(), status="pending", creation_id=creation_id)
    logger.info("Registered pending creation %s for %s", creation.id, user_id)
    return creation


def resolve_creation(
    repo: CreationRepository,
    user_id: str,
    key: OperationKey,
    requested_id: Optional[str],
    window_seconds: int,
    scan_limit: int,
) -> Tuple[str, bool]:
    """Pick the creation a generation attaches to. Returns ``(id, reused)``."""
    if requested_id:
        existing = repo.get(user_id, requested_id)
        if existing is not None:
            if existing.is_pending:
                return existing.id, True
            # finished records are never re-attached, the new debit gets its own record
            logger.info("Creation %s already %s, registering a new one", requested_id, existing.status)
            return register_creation(repo, user_id, key).id, False
    match = find_pending_creation(repo, user_id, key, window_seconds, scan_limit)
    if match is not None:
        logger.info("Reusing pending creation %s for %s", match, user_id)
        return match, True
    return register_creation(repo, user_id, key, creation_id=requested_id).id, False


def set_last_result(store: LedgerStore, user_id: str, result: Dict[str, Any]) -> None:
    payload = dict(result)
    payload["seen"] = False
    payload["updatedAt"] = resolve_now(None)
    store.merge(user_id, {"lastResult": payload})


def get_last_result(store: LedgerStore, user_id: str) -> Optional[Dict[str, Any]]:
    doc = store.get(user_id) or {}
    return doc.get("lastResult")


def mark_last_result_seen(store: LedgerStore, user_id: str) -> Optional[Dict[str, Any]]:
    current = get_last_result(store, user_id)
    if not current:
        return None
    updated = dict(current)
    updated["seen"] = True
    store.merge(user_id, {"lastResult": updated})
    return updated


def finalize_generation(
    store: LedgerStore,
    repo: CreationRepository,
    media: MediaFinalizer,
    push: PushSender,
    user_id: str,
    creation_id: str,
    watermark: bool,
) -> Optional[Creation]:
    """Runs after the debit committed, outside any ledger transaction.

    A failed finalization marks the creation failed; the credits stay spent.
    """
    creation = repo.get(user_id, creation_id)
    if creation is None:
        logger.warning("Creation %s for %s vanished before finalization", creation_id, user_id)
        return None
    if creation.finalized_at is not None:
        logger.info("Creation %s already finalized (%s)", creation_id, creation.status)
        return creation

    try:
        url = media.finalize(creation, watermark=watermark)
    except Exception as exc:
        logger.exception("Finalization failed for creation %s", creation_id)
        finished = repo.finalize(user_id, creation_id, "failed", error=str(exc))
        set_last_result(store, user_id, {"status": "failed", "creationId": creation_id, "error": str(exc)})
    else:
        finished = repo.finalize(user_id, creation_id, "done", result_url=url)
        set_last_result(store, user_id, {"status": "done", "creationId": creation_id, "url": url})

    if finished is not None:
        notify_generation_finished(store, push, user_id, finished)
    return finished
