from __future__ import annotations
import asyncio, io, logging, threading, time
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, Optional

from PIL import Image, UnidentifiedImageError

from .content import Coordinate

logger = logging.getLogger(__name__)

FACINGS = {"back": 0, "front": 1}
FLASH_MODES = ("off", "on")


@dataclass
class CaptureResult:
    image: Optional[Image.Image]
    error: Optional[str] = None
    coords: Optional[Coordinate] = None
    facing: Optional[str] = None
    flash_mode: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.image is not None and self.error is None


class PiCamera:
    """Still capture from a Pi camera; the device is opened per shot and released."""

    def __init__(self, cfg: Dict[str, Any]):
        cam = cfg.get("camera", {})
        self._lock = threading.Lock()
        self.size = (int(cam.get("width", 1280)), int(cam.get("height", 960)))
        self.rot = 180 if int(cam.get("rotation", 0)) == 180 else 0

    async def capture_frame(self, facing: str = "back", flash_mode: str = "off") -> CaptureResult:
        if facing not in FACINGS:
            return CaptureResult(None, f"unknown camera facing {facing!r}")
        if flash_mode not in FLASH_MODES:
            return CaptureResult(None, f"unknown flash mode {flash_mode!r}")
        loop = asyncio.get_running_loop()
        try:
            img = await loop.run_in_executor(None, self._capture, FACINGS[facing])
        except Exception as e:
            logger.warning("Take picture failed: %s", e)
            return CaptureResult(None, str(e), facing=facing, flash_mode=flash_mode)
        # no flash hardware on the Pi camera; the mode is recorded only
        logger.info("Captured %dx%d frame (%s camera, flash %s)", img.width, img.height, facing, flash_mode)
        return CaptureResult(img, facing=facing, flash_mode=flash_mode)

    def _capture(self, camera_num: int) -> Image.Image:
        with self._lock:
            pc = self._open_and_configure(camera_num)
            try:
                arr = pc.capture_array("main")  # RGB888
            finally:
                self._shutdown_camera(pc)
        return Image.fromarray(arr[:, :, :3])

    def _open_and_configure(self, camera_num: int):
        try:
            from picamera2 import Picamera2
            from libcamera import Transform
        except ImportError as e:
            raise RuntimeError(f"camera unavailable: {e}") from e
        last_exc = None
        for attempt in range(1, 4):  # 3 attempts with backoff
            pc = None
            try:
                pc = Picamera2(camera_num)
                transform = Transform(hflip=(self.rot == 180), vflip=(self.rot == 180))
                conf = pc.create_still_configuration(
                    main={"size": self.size, "format": "RGB888"},
                    transform=transform
                )
                pc.configure(conf)
                pc.start()
                return pc
            except Exception as e:
                last_exc = e
                logger.warning("Camera open retry %d/3: %s", attempt, e)
                if pc is not None:
                    self._shutdown_camera(pc)
                time.sleep(0.4 * attempt)  # backoff
        raise RuntimeError(f"Camera init failed after retries: {last_exc}")

    def _shutdown_camera(self, pc) -> None:
        for step in (pc.stop, pc.close):
            try:
                step()
            except Exception as e:
                logger.debug("Camera %s failed: %s", step.__name__, e)


class GalleryImporter:
    """Turns an uploaded file into a base image; no upload means cancelled."""

    async def pick_from_gallery(self, stream: Optional[BinaryIO]) -> Optional[CaptureResult]:
        if stream is None:
            return None
        data = stream.read()
        if not data:
            return None
        loop = asyncio.get_running_loop()
        try:
            img = await loop.run_in_executor(None, self._decode, data)
        except (UnidentifiedImageError, OSError, ValueError) as e:
            logger.warning("Gallery pick failed: %s", e)
            return CaptureResult(None, f"not a readable image: {e}")
        return CaptureResult(img)

    @staticmethod
    def _decode(data: bytes) -> Image.Image:
        im = Image.open(io.BytesIO(data))
        im.load()
        return im.convert("RGB")
