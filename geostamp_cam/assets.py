from __future__ import annotations
import asyncio, logging, os, shutil, tempfile, time, uuid
from typing import Any, Dict

from .errors import PermissionDenied

logger = logging.getLogger(__name__)


class AssetStore:
    """Flattened pictures saved as files in one directory.

    ``persist`` writes to a temp file next to the target and moves it into
    place, so a failed save never leaves a partial asset behind.
    """

    def __init__(self, directory: str, extension: str = "jpg"):
        self.directory = os.path.expanduser(directory)
        self.extension = extension.lstrip(".")

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "AssetStore":
        out = cfg.get("output", {})
        ext = "png" if str(out.get("format", "JPEG")).upper() == "PNG" else "jpg"
        return cls(out.get("directory", "~/Pictures/geostamp"), ext)

    def path(self, asset_id: str) -> str:
        return os.path.join(self.directory, asset_id)

    def ensure_writable(self) -> None:
        try:
            os.makedirs(self.directory, exist_ok=True)
        except OSError as e:
            raise PermissionDenied(f"cannot create {self.directory}: {e}") from e
        if not os.access(self.directory, os.W_OK):
            raise PermissionDenied(f"no write access to {self.directory}")

    def _write(self, raster: bytes) -> str:
        self.ensure_writable()
        asset_id = f"{time.strftime('%Y%m%d-%H%M%S')}_{uuid.uuid4().hex[:8]}.{self.extension}"
        fd, tmp = tempfile.mkstemp(prefix=".partial-", dir=self.directory)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(raster)
            shutil.move(tmp, self.path(asset_id))
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
        return asset_id

    async def persist(self, raster: bytes) -> str:
        loop = asyncio.get_running_loop()
        asset_id = await loop.run_in_executor(None, self._write, raster)
        logger.info("Saved asset %s (%d bytes)", asset_id, len(raster))
        return asset_id
