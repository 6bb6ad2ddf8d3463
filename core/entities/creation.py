from dataclasses import dataclass
from typing import Optional, Dict, Any

PENDING_STATUSES = frozenset({"pending", "queued", "processing", "uploading"})


@dataclass
class Creation:
    id: str
    user_id: str
    status: str                 # "pending" | "processing" | "done" | "failed"
    metadata: Dict[str, Any]    # model, duration, resolution, fps, fileName
    created_at: int             # epoch millis
    finalized_at: Optional[int] = None
    result_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.finalized_at is None and self.status in PENDING_STATUSES
