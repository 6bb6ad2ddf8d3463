from abc import ABC, abstractmethod
from core.entities.creation import Creation


class MediaFinalizer(ABC):
    """Produces the artifact for a creation and returns where it can be fetched."""

    @abstractmethod
    def finalize(self, creation: Creation, watermark: bool) -> str:...
