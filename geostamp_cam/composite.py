"""Flatten the committed overlay onto the base image and persist it."""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from .assets import AssetStore
from .errors import PermissionDenied, SaveFailure, SaveInProgress
from .overlay import CompositeView, capture_composite

logger = logging.getLogger(__name__)

SnapshotFn = Callable[[CompositeView, Dict[str, Any]], Awaitable[bytes]]


class CompositeRenderer:
    """Single-flight save: one snapshot+persist at a time, others are rejected.

    The ``saving`` flag is the only guard; it is checked and set on the event
    loop thread before the first suspension point.
    """

    def __init__(self, store: AssetStore, snapshot: SnapshotFn = capture_composite,
                 options: Optional[Dict[str, Any]] = None):
        self.store = store
        self.snapshot = snapshot
        self.options = {"format": "JPEG", "quality": 90, "scale": 1.0}
        self.options.update(options or {})
        self._saving = False

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], store: AssetStore,
                    snapshot: SnapshotFn = capture_composite) -> "CompositeRenderer":
        out = cfg.get("output", {})
        return cls(store, snapshot, {
            "format": str(out.get("format", "JPEG")).upper(),
            "quality": int(out.get("quality", 90)),
            "scale": float(out.get("scale", 1.0)),
        })

    @property
    def saving(self) -> bool:
        return self._saving

    async def save(self, view: CompositeView) -> str:
        if self._saving:
            raise SaveInProgress("a save is already running")
        self._saving = True
        try:
            try:
                raster = await self.snapshot(view, self.options)
            except Exception as e:
                logger.exception("Snapshot failed")
                raise SaveFailure(f"snapshot failed: {e}") from e
            try:
                return await self.store.persist(raster)
            except PermissionDenied:
                logger.warning("Storage permission denied, picture not saved")
                raise
            except Exception as e:
                logger.exception("Persisting snapshot failed")
                raise SaveFailure(f"could not store picture: {e}") from e
        finally:
            self._saving = False
