from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class TxResult(Generic[T]):
    """What a transaction body hands back: the full document to write (or None
    to leave the record untouched) and the value returned to the caller."""
    write: Optional[Dict[str, Any]]
    value: T


TxBody = Callable[[Optional[Dict[str, Any]]], TxResult[T]]


class LedgerStore(ABC):
    """Per-user document store with an atomic read-modify-write primitive.

    ``transaction`` reads the document inside the transaction, calls ``body``
    with it (``None`` when absent) and commits ``body``'s write. Conflicting
    commits are retried by the store; the body must therefore be free of side
    effects other than its return value. An exception from the body aborts
    the transaction and propagates.
    """

    @abstractmethod
    def transaction(self, user_id: str, body: TxBody[T]) -> T:...

    @abstractmethod
    def get(self, user_id: str) -> Optional[Dict[str, Any]]:...

    @abstractmethod
    def merge(self, user_id: str, fields: Dict[str, Any]) -> None:
        """Blind merge-write. Only for fields outside the balance/entitlement set."""
