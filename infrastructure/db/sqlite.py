import json
import logging
import sqlite3
import time
from contextlib import closing
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from core.entities.creation import Creation
from core.entities.errors import TransientStoreError
from core.repositories.creation_repository import CreationRepository
from core.repositories.ledger_store import LedgerStore, TxBody, TxResult
from core.services import entitlement_clock as clock

logger = logging.getLogger(__name__)


def init_db(db_path: str) -> None:
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, check_same_thread=False)
    try:
        cur = conn.cursor()
        # WAL lets snapshot reads proceed while a writer holds the lock
        cur.execute("PRAGMA journal_mode=WAL;")

        cur.execute("""
        CREATE TABLE IF NOT EXISTS users (
            user_id TEXT PRIMARY KEY,
            doc TEXT NOT NULL,
            updated_at INTEGER NOT NULL
        );
        """)

        cur.execute("""
        CREATE TABLE IF NOT EXISTS creations (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            status TEXT NOT NULL,
            metadata TEXT,
            created_at INTEGER NOT NULL,
            finalized_at INTEGER,
            result_url TEXT,
            error TEXT
        );
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_creations_user_created ON creations (user_id, created_at DESC);")
        conn.commit()
    finally:
        conn.close()


def _is_busy(exc: sqlite3.OperationalError) -> bool:
    text = str(exc).lower()
    return "locked" in text or "busy" in text


class SQLiteLedgerStore(LedgerStore):
    """One JSON document per user. ``BEGIN IMMEDIATE`` takes the write lock
    before the read, so concurrent transactions on the file serialize."""

    def __init__(self, db_path: str, max_attempts: int = 5, timeout: float = 10.0, backoff: float = 0.05):
        self.db_path = db_path
        self.max_attempts = max(1, int(max_attempts))
        self.timeout = timeout
        self.backoff = backoff

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @staticmethod
    def _load(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
        if row is None:
            return None
        return json.loads(row["doc"])

    def transaction(self, user_id: str, body: TxBody) -> Any:
        attempt = 0
        while True:
            attempt += 1
            with closing(self._connect()) as conn:
                try:
                    conn.execute("BEGIN IMMEDIATE")
                    row = conn.execute("SELECT doc FROM users WHERE user_id = ?", (user_id,)).fetchone()
                    result: TxResult = body(self._load(row))
                    if result.write is not None:
                        conn.execute(
                            "INSERT INTO users (user_id, doc, updated_at) VALUES (?, ?, ?) "
                            "ON CONFLICT(user_id) DO UPDATE SET doc = excluded.doc, updated_at = excluded.updated_at",
                            (user_id, json.dumps(result.write, ensure_ascii=False), clock.now_ms()),
                        )
                    conn.execute("COMMIT")
                    return result.value
                except sqlite3.OperationalError as exc:
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                    if not _is_busy(exc):
                        raise
                    if attempt >= self.max_attempts:
                        raise TransientStoreError(f"ledger busy after {attempt} attempts") from exc
                    logger.warning("Ledger transaction for %s hit a lock (attempt %s): %s", user_id, attempt, exc)
                except Exception:
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                    raise
            time.sleep(self.backoff * attempt)

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        with closing(self._connect()) as conn:
            row = conn.execute("SELECT doc FROM users WHERE user_id = ?", (user_id,)).fetchone()
            return self._load(row)

    def merge(self, user_id: str, fields: Dict[str, Any]) -> None:
        def body(doc):
            updated = dict(doc or {})
            updated.update(fields)
            return TxResult(write=updated, value=None)

        self.transaction(user_id, body)


class SQLiteCreationRepository(CreationRepository):
    def __init__(self, db_path: str, timeout: float = 10.0):
        self.db_path = db_path
        self.timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _row_to_creation(self, row: sqlite3.Row) -> Creation:
        meta: Dict[str, Any] = {}
        if row["metadata"]:
            try:
                meta = json.loads(row["metadata"])
            except ValueError:
                meta = {"raw": row["metadata"]}
        return Creation(
            id=row["id"],
            user_id=row["user_id"],
            status=row["status"],
            metadata=meta,
            created_at=int(row["created_at"]),
            finalized_at=row["finalized_at"],
            result_url=row["result_url"],
            error=row["error"],
        )

    def create(self, user_id: str, metadata: Dict[str, Any], status: str = "pending",
               creation_id: Optional[str] = None, created_at: Optional[int] = None) -> Creation:
        creation = Creation(
            id=creation_id or uuid4().hex,
            user_id=user_id,
            status=status,
            metadata=dict(metadata),
            created_at=clock.now_ms() if created_at is None else int(created_at),
        )
        insert = "INSERT INTO creations (id, user_id, status, metadata, created_at) VALUES (?, ?, ?, ?, ?)"
        meta_str = json.dumps(creation.metadata, ensure_ascii=False)
        with closing(self._connect()) as conn:
            try:
                conn.execute(insert, (creation.id, user_id, status, meta_str, creation.created_at))
            except sqlite3.IntegrityError:
                # client-chosen id already taken (possibly by another user)
                logger.warning("Creation id %s already exists, assigning a new one", creation.id)
                creation.id = uuid4().hex
                conn.execute(insert, (creation.id, user_id, status, meta_str, creation.created_at))
            conn.commit()
        return creation

    def get(self, user_id: str, creation_id: str) -> Optional[Creation]:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT * FROM creations WHERE id = ? AND user_id = ?", (creation_id, user_id)
            ).fetchone()
        return self._row_to_creation(row) if row else None

    def list_recent(self, user_id: str, limit: int = 20) -> List[Creation]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT * FROM creations WHERE user_id = ? ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (user_id, int(limit)),
            ).fetchall()
        return [self._row_to_creation(r) for r in rows]

    def finalize(self, user_id: str, creation_id: str, status: str,
                 result_url: Optional[str] = None, error: Optional[str] = None) -> Optional[Creation]:
        with closing(self._connect()) as conn:
            conn.execute(
                "UPDATE creations SET status = ?, result_url = ?, error = ?, finalized_at = ? "
                "WHERE id = ? AND user_id = ? AND finalized_at IS NULL",
                (status, result_url, error, clock.now_ms(), creation_id, user_id),
            )
            conn.commit()
        return self.get(user_id, creation_id)
