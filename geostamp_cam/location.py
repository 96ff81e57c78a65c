from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from .content import Coordinate

logger = logging.getLogger(__name__)


class ConfiguredLocation:
    """Device position from the ``location`` config section.

    A disabled or incomplete section behaves like a denied location
    permission: the capture goes ahead without coordinates.
    """

    def __init__(self, cfg: Dict[str, Any]):
        self.update(cfg)

    def update(self, cfg: Dict[str, Any]) -> None:
        loc = cfg.get("location", {})
        self.enabled = bool(loc.get("enabled", False))
        self.latitude = loc.get("latitude")
        self.longitude = loc.get("longitude")

    async def current_device_location(self) -> Optional[Coordinate]:
        if not self.enabled:
            logger.info("Location disabled, continuing without coordinates")
            return None
        try:
            return Coordinate(float(self.latitude), float(self.longitude))
        except (TypeError, ValueError) as e:
            logger.warning("Configured location unusable: %s", e)
            return None
