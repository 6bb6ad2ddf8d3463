from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from fastapi import BackgroundTasks, Depends, Header, HTTPException, status
from jose import JWTError, jwt

from config.settings import settings
from core.entities.catalog import Catalog, default_catalog
from core.repositories.creation_repository import CreationRepository
from core.repositories.ledger_store import LedgerStore
from core.services.media_provider import MediaFinalizer
from core.services.notification_provider import EmailSender, PushSender
from core.services.plan_policy import PlanPolicy
from core.use_cases.reconcile_use_cases import reconcile_best_effort
from infrastructure.db.sqlite import SQLiteCreationRepository, SQLiteLedgerStore
from infrastructure.media.placeholder_provider import PlaceholderMediaFinalizer
from infrastructure.notifications.stub_provider import FallbackEmailSender, LoggingEmailSender, LoggingPushSender


def get_ledger_store() -> LedgerStore:
    if settings.LEDGER_BACKEND == "firestore":
        return _firestore_store()
    return SQLiteLedgerStore(
        settings.DB_PATH,
        max_attempts=settings.LEDGER_TX_MAX_ATTEMPTS,
        timeout=settings.LEDGER_TX_TIMEOUT_SECONDS,
    )


@lru_cache
def _firestore_store() -> LedgerStore:  # pragma: no cover - external dependency
    from infrastructure.db.firestore import FirestoreLedgerStore

    return FirestoreLedgerStore(settings.FIRESTORE_USERS_COLLECTION, max_attempts=settings.LEDGER_TX_MAX_ATTEMPTS)


def get_creation_repo() -> CreationRepository:
    return SQLiteCreationRepository(settings.DB_PATH, timeout=settings.LEDGER_TX_TIMEOUT_SECONDS)


@lru_cache
def get_catalog() -> Catalog:
    return default_catalog(trial_credits=settings.TRIAL_CREDITS)


def get_policy(catalog: Catalog = Depends(get_catalog)) -> PlanPolicy:
    return PlanPolicy(catalog)


def get_push_sender() -> PushSender:
    return LoggingPushSender()


def get_email_sender() -> EmailSender:
    # both ends are log-only until a real provider is wired in
    return FallbackEmailSender(
        LoggingEmailSender(settings.EMAIL_PRIMARY_PROVIDER, settings.EMAIL_FROM),
        LoggingEmailSender(settings.EMAIL_FALLBACK_PROVIDER, settings.EMAIL_FROM),
    )


def get_media_finalizer() -> MediaFinalizer:
    return PlaceholderMediaFinalizer(settings.MEDIA_PLACEHOLDER_PATH, settings.MEDIA_OUTPUT_DIR)


# jwt авторизация
def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=1))
    return jwt.encode({"sub": user_id, "exp": expire}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def get_bearer_token(authorization: Optional[str] = Header(None)) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return authorization.split(" ", 1)[1]


def authenticate(token: str = Depends(get_bearer_token)) -> str:
    """Resolve the caller from the bearer token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise credentials_exception
    sub = payload.get("sub")
    if not sub or not isinstance(sub, str):
        raise credentials_exception
    return sub


def get_current_user_id(
    background_tasks: BackgroundTasks,
    user_id: str = Depends(authenticate),
    store: LedgerStore = Depends(get_ledger_store),
) -> str:
    """Resolve the caller and queue the expiry sweep to run after the response."""
    background_tasks.add_task(reconcile_best_effort, store, user_id)
    return user_id
