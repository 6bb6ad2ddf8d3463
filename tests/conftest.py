import pytest
from fastapi.testclient import TestClient

from core.entities.catalog import default_catalog
from core.services.plan_policy import PlanPolicy
from infrastructure.db.sqlite import SQLiteCreationRepository, SQLiteLedgerStore, init_db

# fixed wall clock for deterministic expiry arithmetic (epoch millis)
NOW = 1_700_000_000_000


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "ledger.db")
    init_db(path)
    return path


@pytest.fixture
def store(db_path):
    return SQLiteLedgerStore(db_path, max_attempts=10, timeout=30)


@pytest.fixture
def repo(db_path):
    return SQLiteCreationRepository(db_path)


@pytest.fixture
def catalog():
    return default_catalog(trial_credits=5)


@pytest.fixture
def policy(catalog):
    return PlanPolicy(catalog)


@pytest.fixture
def seed(store):
    """Write a raw user document, bypassing the billing rules."""
    def _seed(user_id, **doc):
        store.merge(user_id, doc)
        return store.get(user_id)
    return _seed


@pytest.fixture
def client(store, repo, tmp_path):
    from main import app
    from infrastructure.media.placeholder_provider import PlaceholderMediaFinalizer
    from infrastructure.web import dependencies

    app.dependency_overrides[dependencies.get_ledger_store] = lambda: store
    app.dependency_overrides[dependencies.get_creation_repo] = lambda: repo
    app.dependency_overrides[dependencies.get_media_finalizer] = lambda: PlaceholderMediaFinalizer(
        str(tmp_path / "placeholder.mp4"), str(tmp_path / "media")
    )
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    from infrastructure.web.dependencies import create_access_token

    def _headers(user_id="user-1"):
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}
    return _headers
