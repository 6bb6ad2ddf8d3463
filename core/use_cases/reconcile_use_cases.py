import logging
from typing import Any, Dict, List, Optional

from core.entities.catalog import INDEPENDENT_ENTITLEMENTS, PLAN_FREE, PLAN_STUDIO, PROMPT_BUILDER_UNTIL
from core.entities.user import UserRecord
from core.repositories.ledger_store import LedgerStore, TxResult
from core.services import entitlement_clock as clock
from core.use_cases.billing_use_cases import resolve_now

logger = logging.getLogger(__name__)


def expiry_patch(user_id: str, doc: Dict[str, Any], now: int) -> Dict[str, Any]:
    """Fields to rewrite so the stored record matches what readers already see."""
    record = UserRecord.from_doc(user_id, doc)
    patch: Dict[str, Any] = {}

    plan = record.plan
    plan_until = record.plan_until
    if plan != PLAN_FREE and not clock.is_active(plan_until, now):
        plan, plan_until = PLAN_FREE, None
        patch["plan"] = PLAN_FREE
        patch["planUntil"] = None
    elif plan == PLAN_FREE and doc.get("planUntil") is not None and not clock.is_active(plan_until, now):
        patch["planUntil"] = None

    for name in INDEPENDENT_ENTITLEMENTS:
        if doc.get(name) is not None and not clock.is_active(record.entitlements.get(name), now):
            patch[name] = None

    # prompt builder mirrors the studio plan
    stored = doc.get(PROMPT_BUILDER_UNTIL)
    if plan == PLAN_STUDIO:
        if clock.to_millis(stored) != plan_until:
            patch[PROMPT_BUILDER_UNTIL] = plan_until
    elif stored is not None:
        patch[PROMPT_BUILDER_UNTIL] = None
    return patch


def reconcile_user(store: LedgerStore, user_id: str, now: Optional[int] = None) -> List[str]:
    """Clear expired plan and entitlement fields. Returns the names of the fields rewritten.

    The decision is made on the snapshot read inside the transaction, so a
    purchase that committed first is never wiped. No write when nothing changed.
    """

    def body(doc):
        if doc is None:
            return TxResult(write=None, value=[])
        patch = expiry_patch(user_id, doc, resolve_now(now))
        if not patch:
            return TxResult(write=None, value=[])
        updated = dict(doc)
        updated.update(patch)
        return TxResult(write=updated, value=sorted(patch))

    changed = store.transaction(user_id, body)
    if changed:
        logger.info("Reconciled %s: %s", user_id, ", ".join(changed))
    return changed


def reconcile_best_effort(store: LedgerStore, user_id: str) -> List[str]:
    """Failures are logged and never reach the caller; an empty list is returned instead."""
    try:
        return reconcile_user(store, user_id)
    except Exception:
        logger.exception("Expiry reconciliation failed for %s", user_id)
        return []
