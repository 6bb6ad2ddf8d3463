import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from core.entities.catalog import Catalog, PLAN_FREE
from core.entities.errors import InsufficientCredits, UnknownPack
from core.entities.user import UserRecord
from core.repositories.ledger_store import LedgerStore, TxResult
from core.services import entitlement_clock as clock
from core.services.plan_policy import GenerationParams, PlanPolicy

logger = logging.getLogger(__name__)


@dataclass
class DebitReceipt:
    plan: str
    entitlements: Dict[str, int]
    watermark_required: bool
    cost: int
    cost_breakdown: Dict[str, Any]
    new_balance: int
    trial_granted: bool


@dataclass
class WalletView:
    credits: int
    plan: str
    plan_until: Optional[int]
    plan_period: Optional[str]
    entitlements: Dict[str, int]
    packs_owned: list
    watermark_required: bool
    trial_credits_granted: bool


def resolve_now(now: Optional[int]) -> int:
    return clock.now_ms() if now is None else now


def ensure_record(doc: Optional[Dict[str, Any]], user_id: str, grant_trial: bool,
                  trial_amount: int) -> Tuple[UserRecord, bool]:
    """Materialize the user record inside a transaction body.

    With ``grant_trial`` the one-shot trial latch is checked and, when still
    open, the trial amount is added and the latch closed in the same write.
    Returns the record and whether the trial was applied now.
    """
    record = UserRecord(user_id=user_id) if doc is None else UserRecord.from_doc(user_id, doc)
    if grant_trial and not record.trial_credits_granted:
        record.credits += int(trial_amount)
        record.trial_credits_granted = True
        return record, True
    return record, False


def debit_for_generation(
    store: LedgerStore,
    policy: PlanPolicy,
    user_id: str,
    params: GenerationParams,
    now: Optional[int] = None,
) -> DebitReceipt:
    """Validate, price and pay for one generation in a single ledger transaction."""

    def body(doc):
        current = resolve_now(now)
        record, trial_applied = ensure_record(doc, user_id, True, policy.catalog.trial_credits)
        plan = record.effective_plan(current)
        policy.enforce(plan, params)
        quote = policy.cost_of(params)
        if record.credits < quote.cost:
            raise InsufficientCredits(balance=record.credits, cost=quote.cost)
        record.credits -= quote.cost
        receipt = DebitReceipt(
            plan=plan,
            entitlements=record.active_entitlements(current),
            watermark_required=record.watermark_required(current),
            cost=quote.cost,
            cost_breakdown=quote.breakdown,
            new_balance=record.credits,
            trial_granted=trial_applied,
        )
        return TxResult(write=record.to_doc(), value=receipt)

    receipt = store.transaction(user_id, body)
    logger.info(
        "Debited %s credits from %s (plan=%s, balance=%s, trial_granted=%s)",
        receipt.cost, user_id, receipt.plan, receipt.new_balance, receipt.trial_granted,
    )
    return receipt


def buy_credit_pack(store: LedgerStore, catalog: Catalog, user_id: str, pack_id: str) -> int:
    """Top up from a catalog credit pack. Provisions a missing record without the trial."""
    amount = catalog.credit_packs.get(pack_id)
    if amount is None:
        raise UnknownPack(pack_id)

    def body(doc):
        record, _ = ensure_record(doc, user_id, False, catalog.trial_credits)
        record.credits += int(amount)
        return TxResult(write=record.to_doc(), value=record.credits)

    balance = store.transaction(user_id, body)
    logger.info("Credit pack %s added %s credits for %s (balance=%s)", pack_id, amount, user_id, balance)
    return balance


def get_wallet(store: LedgerStore, user_id: str, now: Optional[int] = None) -> WalletView:
    """Read-only view; expired instants are reported inactive whether or not the sweep ran."""
    current = resolve_now(now)
    doc = store.get(user_id)
    record = UserRecord(user_id=user_id) if doc is None else UserRecord.from_doc(user_id, doc)
    plan = record.effective_plan(current)
    return WalletView(
        credits=record.credits,
        plan=plan,
        plan_until=record.plan_until if plan != PLAN_FREE else None,
        plan_period=record.plan_period,
        entitlements=record.active_entitlements(current),
        packs_owned=list(record.packs_owned),
        watermark_required=record.watermark_required(current),
        trial_credits_granted=record.trial_credits_granted,
    )
