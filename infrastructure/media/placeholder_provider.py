import logging
import os
import shutil
from pathlib import Path

from core.entities.creation import Creation
from core.services.media_provider import MediaFinalizer

logger = logging.getLogger(__name__)


class PlaceholderMediaFinalizer(MediaFinalizer):
    """Copies a placeholder clip into the output directory instead of rendering.

    With no placeholder file on disk an empty file is written so downstream
    links still resolve.
    """
    def __init__(self, placeholder_path: str, output_dir: str, public_prefix: str = "/media"):
        self.placeholder_path = placeholder_path
        self.output_dir = Path(output_dir)
        self.public_prefix = public_prefix.rstrip("/")

    def finalize(self, creation: Creation, watermark: bool) -> str:
        suffix = "_wm" if watermark else ""
        target = self.output_dir / creation.user_id / f"{creation.id}{suffix}.mp4"
        target.parent.mkdir(parents=True, exist_ok=True)
        if self.placeholder_path and os.path.exists(self.placeholder_path):
            shutil.copyfile(self.placeholder_path, target)
        else:
            logger.warning("Placeholder %s missing, writing empty clip", self.placeholder_path)
            target.write_bytes(b"")
        return f"{self.public_prefix}/{creation.user_id}/{target.name}"
