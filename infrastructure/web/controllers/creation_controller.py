from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, Field

from config.settings import settings
from core.entities.errors import BillingError, TransientStoreError
from core.repositories.creation_repository import CreationRepository
from core.repositories.ledger_store import LedgerStore
from core.services.media_provider import MediaFinalizer
from core.services.notification_provider import PushSender
from core.services.plan_policy import GenerationParams, PlanPolicy
from core.use_cases.billing_use_cases import debit_for_generation
from core.use_cases.creation_use_cases import (
    OperationKey,
    finalize_generation,
    get_last_result,
    mark_last_result_seen,
    register_creation,
    resolve_creation,
)
from infrastructure.web.dependencies import (
    get_creation_repo,
    get_current_user_id,
    get_ledger_store,
    get_media_finalizer,
    get_policy,
    get_push_sender,
)
from infrastructure.web.errors import to_http_error

router = APIRouter(prefix="", tags=["creations"])

# поля профиля вне биллинговых инвариантов, их можно писать обычным merge
PROFILE_FIELDS = {"email": "email", "push_token": "pushToken", "notification_prefs": "notificationPrefs"}


class GenerateRequest(BaseModel):
    duration: float = Field(..., description="Длительность ролика в секундах")
    frame_rate: int = 30
    resolution: str = "720p"
    model: str = "kling"
    file_name: Optional[str] = None
    creation_id: Optional[str] = None


class GenerateResponse(BaseModel):
    creation_id: str
    reused_creation: bool
    plan: str
    cost: int
    cost_breakdown: Dict[str, Any]
    watermark_required: bool
    new_balance: int
    trial_granted: bool


class CreationRequest(BaseModel):
    duration: Optional[float] = None
    frame_rate: Optional[int] = None
    resolution: Optional[str] = None
    model: Optional[str] = None
    file_name: Optional[str] = None


class CreationResponse(BaseModel):
    id: str
    status: str
    metadata: Dict[str, Any]
    created_at: int


class ProfileUpdate(BaseModel):
    email: Optional[str] = None
    push_token: Optional[str] = None
    notification_prefs: Optional[Dict[str, bool]] = None


@router.post("/generate", response_model=GenerateResponse, status_code=202)
def generate(
    payload: GenerateRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_ledger_store),
    policy: PlanPolicy = Depends(get_policy),
    repo: CreationRepository = Depends(get_creation_repo),
    media: MediaFinalizer = Depends(get_media_finalizer),
    push: PushSender = Depends(get_push_sender),
):
    params = GenerationParams(
        duration=payload.duration,
        frame_rate=payload.frame_rate,
        resolution=payload.resolution,
        model=payload.model,
    )
    try:
        receipt = debit_for_generation(store, policy, user_id, params)
    except (BillingError, TransientStoreError) as e:
        raise to_http_error(e)

    key = OperationKey(
        model=payload.model,
        duration=payload.duration,
        resolution=payload.resolution,
        frame_rate=payload.frame_rate,
        file_name=payload.file_name,
    )
    creation_id, reused = resolve_creation(
        repo, user_id, key, payload.creation_id, settings.DEDUP_WINDOW_SECONDS, settings.DEDUP_SCAN_LIMIT
    )
    # долгая работа идёт после ответа, кредиты уже списаны
    background_tasks.add_task(
        finalize_generation, store, repo, media, push, user_id, creation_id, receipt.watermark_required
    )
    return GenerateResponse(
        creation_id=creation_id,
        reused_creation=reused,
        plan=receipt.plan,
        cost=receipt.cost,
        cost_breakdown=receipt.cost_breakdown,
        watermark_required=receipt.watermark_required,
        new_balance=receipt.new_balance,
        trial_granted=receipt.trial_granted,
    )


@router.post("/creations", response_model=CreationResponse, status_code=201)
def create_pending(
    payload: CreationRequest,
    user_id: str = Depends(get_current_user_id),
    repo: CreationRepository = Depends(get_creation_repo),
):
    key = OperationKey(
        model=payload.model,
        duration=payload.duration,
        resolution=payload.resolution,
        frame_rate=payload.frame_rate,
        file_name=payload.file_name,
    )
    creation = register_creation(repo, user_id, key)
    return CreationResponse(
        id=creation.id, status=creation.status, metadata=creation.metadata, created_at=creation.created_at
    )


@router.get("/me/last-result")
def last_result(
    user_id: str = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_ledger_store),
):
    return {"last_result": get_last_result(store, user_id)}


@router.post("/me/last-result/seen")
def last_result_seen(
    user_id: str = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_ledger_store),
):
    return {"last_result": mark_last_result_seen(store, user_id)}


@router.patch("/me/profile")
def update_profile(
    payload: ProfileUpdate,
    user_id: str = Depends(get_current_user_id),
    store: LedgerStore = Depends(get_ledger_store),
):
    fields = {
        PROFILE_FIELDS[name]: value
        for name, value in payload.model_dump(exclude_unset=True).items()
        if name in PROFILE_FIELDS
    }
    if fields:
        store.merge(user_id, fields)
    return {"updated": sorted(fields)}
