from typing import Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, Field

from core.entities.catalog import Catalog
from core.entities.errors import BillingError, TransientStoreError
from core.repositories.ledger_store import LedgerStore
from core.services.notification_provider import EmailSender
from core.use_cases.billing_use_cases import buy_credit_pack, get_wallet
from core.use_cases.notification_use_cases import send_purchase_receipt
from core.use_cases.purchase_use_cases import buy_discrete_addon, buy_permanent_pack, buy_plan
from core.use_cases.reconcile_use_cases import reconcile_best_effort
from infrastructure.web.dependencies import (
    authenticate,
    get_catalog,
    get_current_user_id,
    get_email_sender,
    get_ledger_store,
)
from infrastructure.web.errors import to_http_error

router = APIRouter(prefix="", tags=["billing"])


class WalletResponse(BaseModel):
    user_id: str
    credits: int
    plan: str
    plan_until: Optional[int] = None
    plan_period: Optional[str] = None
    entitlements: Dict[str, int]
    packs_owned: List[str]
    watermark_required: bool
    trial_credits_granted: bool


class AddonResponse(BaseModel):
    addon: str
    entitlement: str
    new_expiry: int
    new_balance: int


class PackResponse(BaseModel):
    pack: str
    already_owned: bool
    new_balance: int


class PlanRequest(BaseModel):
    plan: str  # basic | pro | studio
    period_days: int = Field(30, description="Длительность периода в днях")


class PlanResponse(BaseModel):
    plan: str
    plan_until: int
    plan_period: str
    new_balance: int
    entitlements: Dict[str, int]


class CreditPackResponse(BaseModel):
    pack: str
    new_balance: int


class ReconcileResponse(BaseModel):
    changed: List[str]


@router.get("/me/wallet", response_model=WalletResponse)
def wallet(
    user_id: str = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_ledger_store),
):
    view = get_wallet(store, user_id)
    return WalletResponse(user_id=user_id, **view.__dict__)


@router.post("/store/addons/{addon_key}", response_model=AddonResponse)
def purchase_addon(
    addon_key: str,
    user_id: str = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_ledger_store),
    catalog: Catalog = Depends(get_catalog),
):
    try:
        receipt = buy_discrete_addon(store, catalog, user_id, addon_key)
    except (BillingError, TransientStoreError) as e:
        raise to_http_error(e)
    return AddonResponse(**receipt.__dict__)


@router.post("/store/packs/{pack_id}", response_model=PackResponse)
def purchase_pack(
    pack_id: str,
    user_id: str = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_ledger_store),
    catalog: Catalog = Depends(get_catalog),
):
    try:
        receipt = buy_permanent_pack(store, catalog, user_id, pack_id)
    except (BillingError, TransientStoreError) as e:
        raise to_http_error(e)
    return PackResponse(**receipt.__dict__)


@router.post("/store/plans", response_model=PlanResponse)
def purchase_plan(
    payload: PlanRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_ledger_store),
    catalog: Catalog = Depends(get_catalog),
    email_sender: EmailSender = Depends(get_email_sender),
):
    plan = payload.plan.lower().strip()
    try:
        receipt = buy_plan(store, catalog, user_id, plan, payload.period_days)
    except (BillingError, TransientStoreError) as e:
        raise to_http_error(e)

    # письмо отправляем после коммита, вне транзакции
    background_tasks.add_task(
        send_purchase_receipt,
        store,
        email_sender,
        user_id,
        f"Your {receipt.plan} plan is active",
        f"Plan {receipt.plan} ({receipt.plan_period}) is active. Remaining credits: {receipt.new_balance}.",
    )
    return PlanResponse(**receipt.__dict__)


@router.post("/store/credit-packs/{pack_id}", response_model=CreditPackResponse)
def purchase_credit_pack(
    pack_id: str,
    user_id: str = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_ledger_store),
    catalog: Catalog = Depends(get_catalog),
):
    try:
        balance = buy_credit_pack(store, catalog, user_id, pack_id)
    except (BillingError, TransientStoreError) as e:
        raise to_http_error(e)
    return CreditPackResponse(pack=pack_id, new_balance=balance)


@router.post("/me/reconcile", response_model=ReconcileResponse)
def reconcile(
    # plain auth: the sweep runs here, not again as a background task
    user_id: str = Depends(authenticate),
    store: LedgerStore = Depends(get_ledger_store),
):
    return ReconcileResponse(changed=reconcile_best_effort(store, user_id))
