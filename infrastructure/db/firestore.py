import logging
from typing import Any, Dict, Optional

from core.entities.errors import BillingError, TransientStoreError
from core.repositories.ledger_store import LedgerStore, TxBody, TxResult

logger = logging.getLogger(__name__)


class FirestoreLedgerStore(LedgerStore):  # pragma: no cover - external dependency
    """Ledger on Firestore. ``firestore.transactional`` re-runs the body on
    contention up to ``max_attempts`` times."""

    def __init__(self, collection: str, max_attempts: int = 5, client: Optional[Any] = None):
        from google.cloud import firestore  # type: ignore

        self._firestore = firestore
        self.client = client or firestore.Client()
        self.collection = collection
        self.max_attempts = max(1, int(max_attempts))

    def _ref(self, user_id: str):
        return self.client.collection(self.collection).document(user_id)

    def transaction(self, user_id: str, body: TxBody) -> Any:
        ref = self._ref(user_id)

        @self._firestore.transactional
        def _run(tx):
            snap = ref.get(transaction=tx)
            result: TxResult = body(snap.to_dict() if snap.exists else None)
            if result.write is not None:
                tx.set(ref, result.write)
            return result.value

        from google.api_core import exceptions as api_exceptions  # type: ignore

        try:
            return _run(self.client.transaction(max_attempts=self.max_attempts))
        except BillingError:
            raise
        except (ValueError, api_exceptions.Aborted, api_exceptions.ServiceUnavailable) as exc:
            # the client raises ValueError once its retries are exhausted
            logger.warning("Firestore transaction for %s gave up: %s", user_id, exc)
            raise TransientStoreError(str(exc)) from exc

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        snap = self._ref(user_id).get()
        return snap.to_dict() if snap.exists else None

    def merge(self, user_id: str, fields: Dict[str, Any]) -> None:
        self._ref(user_id).set(fields, merge=True)
