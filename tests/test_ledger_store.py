import sqlite3
from contextlib import closing

import pytest

from core.entities.errors import InsufficientCredits, TransientStoreError
from core.repositories.ledger_store import TxResult
from infrastructure.db.sqlite import SQLiteLedgerStore
from infrastructure.web.dependencies import get_ledger_store


@pytest.fixture
def write_lock(db_path):
    """Hold the database write lock from another connection until the test ends."""
    with closing(sqlite3.connect(db_path, isolation_level=None)) as conn:
        conn.execute("BEGIN IMMEDIATE")
        yield
        conn.execute("ROLLBACK")


def add_credits(amount):
    def body(doc):
        updated = dict(doc or {})
        updated["credits"] = updated.get("credits", 0) + amount
        return TxResult(write=updated, value=updated["credits"])
    return body


def test_transaction_commits_body_result(store):
    assert store.transaction("u", add_credits(5)) == 5
    assert store.transaction("u", add_credits(2)) == 7
    assert store.get("u")["credits"] == 7


def test_error_in_body_leaves_record_untouched(store, seed):
    before = seed("u", credits=3)

    def body(doc):
        raise InsufficientCredits(doc["credits"], 10)

    with pytest.raises(InsufficientCredits):
        store.transaction("u", body)
    assert store.get("u") == before


def test_read_only_body_writes_nothing(store):
    assert store.transaction("ghost", lambda doc: TxResult(write=None, value=doc)) is None
    assert store.get("ghost") is None


def test_busy_store_gives_up_with_transient_error(db_path, store, seed):
    before = seed("u", credits=3)
    impatient = SQLiteLedgerStore(db_path, max_attempts=2, timeout=0.01, backoff=0)

    with closing(sqlite3.connect(db_path, isolation_level=None)) as holder:
        holder.execute("BEGIN IMMEDIATE")
        try:
            with pytest.raises(TransientStoreError):
                impatient.transaction("u", add_credits(1))
        finally:
            holder.execute("ROLLBACK")

    assert store.get("u") == before


def test_busy_store_maps_to_503(client, auth_headers, db_path, write_lock):
    impatient = SQLiteLedgerStore(db_path, max_attempts=2, timeout=0.01, backoff=0)
    client.app.dependency_overrides[get_ledger_store] = lambda: impatient

    resp = client.post("/store/credit-packs/credits_10", headers=auth_headers("busy"))

    assert resp.status_code == 503
    assert resp.json()["detail"]["code"] == "store_unavailable"
