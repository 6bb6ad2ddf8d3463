import logging
from dataclasses import dataclass
from typing import Dict, Optional

from core.entities.catalog import (
    BUNDLED_ENTITLEMENTS,
    Catalog,
    ENTITLEMENT_BUNDLE_PLANS,
    PLAN_STUDIO,
    PROMPT_BUILDER_UNTIL,
    PURCHASABLE_PLANS,
    plan_rank,
)
from core.entities.errors import BadPeriod, InsufficientCredits, UnknownAddon, UnknownPack, UnknownPlan, UserNotFound
from core.entities.user import UserRecord
from core.repositories.ledger_store import LedgerStore, TxResult
from core.services import entitlement_clock as clock
from core.use_cases.billing_use_cases import ensure_record, resolve_now

logger = logging.getLogger(__name__)


@dataclass
class AddonReceipt:
    addon: str
    entitlement: str
    new_expiry: int
    new_balance: int


@dataclass
class PackReceipt:
    pack: str
    already_owned: bool
    new_balance: int


@dataclass
class PlanReceipt:
    plan: str
    plan_until: int
    plan_period: str
    new_balance: int
    entitlements: Dict[str, int]


def _debit(record: UserRecord, cost: int) -> None:
    if record.credits < cost:
        raise InsufficientCredits(balance=record.credits, cost=cost)
    record.credits -= cost


def buy_discrete_addon(store: LedgerStore, catalog: Catalog, user_id: str, addon_key: str,
                       now: Optional[int] = None) -> AddonReceipt:
    """Time-boxed add-on. Repeat purchases stack on the existing expiry."""
    offer = catalog.addons.get(addon_key)
    if offer is None:
        raise UnknownAddon(addon_key)

    def body(doc):
        if doc is None:
            raise UserNotFound(user_id)
        current = resolve_now(now)
        record = UserRecord.from_doc(user_id, doc)
        _debit(record, offer.cost)
        expiry = clock.extend(record.entitlements.get(offer.entitlement_field), offer.days, current)
        record.entitlements[offer.entitlement_field] = expiry
        return TxResult(
            write=record.to_doc(),
            value=AddonReceipt(addon_key, offer.entitlement_field, expiry, record.credits),
        )

    receipt = store.transaction(user_id, body)
    logger.info("Add-on %s bought by %s, %s until %s", addon_key, user_id, receipt.entitlement, receipt.new_expiry)
    return receipt


def buy_permanent_pack(store: LedgerStore, catalog: Catalog, user_id: str, pack_id: str,
                       now: Optional[int] = None) -> PackReceipt:
    """Non-expiring pack. Owned or included in the current plan means no charge."""
    offer = catalog.packs.get(pack_id)
    if offer is None:
        raise UnknownPack(pack_id)

    def body(doc):
        current = resolve_now(now)
        record, _ = ensure_record(doc, user_id, False, catalog.trial_credits)
        included = plan_rank(record.effective_plan(current)) >= plan_rank(offer.included_from_plan)
        if included or pack_id in record.packs_owned:
            return TxResult(write=None, value=PackReceipt(pack_id, True, record.credits))
        _debit(record, offer.cost)
        record.packs_owned.append(pack_id)
        return TxResult(write=record.to_doc(), value=PackReceipt(pack_id, False, record.credits))

    receipt = store.transaction(user_id, body)
    if receipt.already_owned:
        logger.info("Pack %s already owned by %s, nothing charged", pack_id, user_id)
    else:
        logger.info("Pack %s bought by %s (balance=%s)", pack_id, user_id, receipt.new_balance)
    return receipt


def buy_plan(store: LedgerStore, catalog: Catalog, user_id: str, plan_id: str, period_days: int,
             now: Optional[int] = None) -> PlanReceipt:
    """Switch to a paid plan.

    ``planUntil`` is reset to now + period on every purchase. Pro and studio
    also stack the bundled entitlements by a fixed number of days. The prompt
    builder follows the plan: equal to ``planUntil`` on studio, cleared
    otherwise.
    """
    if plan_id not in PURCHASABLE_PLANS:
        raise UnknownPlan(plan_id)
    price = catalog.plan_prices.get(plan_id, {}).get(period_days)
    if price is None:
        raise BadPeriod(plan_id, period_days)

    def body(doc):
        if doc is None:
            raise UserNotFound(user_id)
        current = resolve_now(now)
        record = UserRecord.from_doc(user_id, doc)
        _debit(record, price)
        record.plan = plan_id
        record.plan_until = current + int(period_days) * clock.DAY_MS
        record.plan_period = f"{period_days}d"
        if plan_id in ENTITLEMENT_BUNDLE_PLANS:
            for name in BUNDLED_ENTITLEMENTS:
                record.entitlements[name] = clock.extend(
                    record.entitlements.get(name), catalog.bundled_entitlement_days, current
                )
        if plan_id == PLAN_STUDIO:
            record.entitlements[PROMPT_BUILDER_UNTIL] = record.plan_until
        else:
            record.entitlements[PROMPT_BUILDER_UNTIL] = None
        receipt = PlanReceipt(
            plan=plan_id,
            plan_until=record.plan_until,
            plan_period=record.plan_period,
            new_balance=record.credits,
            entitlements=record.active_entitlements(current),
        )
        return TxResult(write=record.to_doc(), value=receipt)

    receipt = store.transaction(user_id, body)
    logger.info("Plan %s (%sd) bought by %s until %s", plan_id, period_days, user_id, receipt.plan_until)
    return receipt
