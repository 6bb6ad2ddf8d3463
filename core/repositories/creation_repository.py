from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from core.entities.creation import Creation


class CreationRepository(ABC):
    @abstractmethod
    def create(self, user_id: str, metadata: Dict[str, Any], status: str = "pending",
               creation_id: Optional[str] = None, created_at: Optional[int] = None) -> Creation:...

    @abstractmethod
    def get(self, user_id: str, creation_id: str) -> Optional[Creation]:...

    @abstractmethod
    def list_recent(self, user_id: str, limit: int = 20) -> List[Creation]:
        """Newest first."""

    @abstractmethod
    def finalize(self, user_id: str, creation_id: str, status: str,
                 result_url: Optional[str] = None, error: Optional[str] = None) -> Optional[Creation]:...
