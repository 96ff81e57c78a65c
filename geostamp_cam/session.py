"""One editing session: a base image, its marker, and the place search.

The session is not thread-safe. It is owned by the event loop thread and
every method must be called there (see :mod:`geostamp_cam.loop_thread`).
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from PIL import Image

from .camera import CaptureResult
from .composite import CompositeRenderer
from .content import DEFAULT_MAP_URL, Coordinate, SelectedLocation, active_coordinate, encode
from .errors import NoImageError
from .geometry import GestureEvent, OverlayGeometryEngine, OverlayState, Point
from .overlay import CompositeView, normalize_color
from .search import PlaceSearchService

logger = logging.getLogger(__name__)


class EditingSession:
    def __init__(
        self,
        engine: OverlayGeometryEngine,
        search: PlaceSearchService,
        renderer: CompositeRenderer,
        map_base_url: str = DEFAULT_MAP_URL,
    ):
        self.engine = engine
        self.search = search
        self.renderer = renderer
        self.map_base_url = map_base_url
        self.image: Optional[Image.Image] = None
        self.captured: Optional[Coordinate] = None
        self.search.close()

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], search: PlaceSearchService,
                    renderer: CompositeRenderer) -> "EditingSession":
        return cls(
            OverlayGeometryEngine.from_config(cfg),
            search,
            renderer,
            cfg.get("payload", {}).get("map_base_url", DEFAULT_MAP_URL),
        )

    # ---------- lifecycle ----------
    @property
    def active(self) -> bool:
        return self.image is not None

    def begin(self, capture: CaptureResult) -> None:
        """Start editing a new base image; marker, search and override start fresh."""
        if not capture.ok:
            raise ValueError(capture.error or "capture has no image")
        self.image = capture.image
        self.captured = capture.coords
        self.engine.reset()
        self.search.reset()
        logger.info("Editing %dx%d image, location %s", self.image.width, self.image.height,
                    "attached" if self.captured else "unavailable")

    def end(self) -> None:
        self.image = None
        self.captured = None
        self.engine.reset()
        self.search.reset()
        self.search.close()

    def _require_image(self) -> None:
        if self.image is None:
            raise NoImageError("no image loaded; capture or import one first")

    # ---------- marker ----------
    def gesture(self, event: str, dx: float, dy: float) -> Point:
        self._require_image()
        return self.engine.on_gesture(GestureEvent(event), Point(float(dx), float(dy)))

    def resize(self, size: float) -> OverlayState:
        self._require_image()
        return self.engine.resize(float(size))

    def set_color(self, color: str) -> OverlayState:
        self._require_image()
        return self.engine.set_color(normalize_color(color))

    def reset_marker(self) -> OverlayState:
        self._require_image()
        return self.engine.reset()

    # ---------- content ----------
    @property
    def active_location(self) -> Optional[Coordinate]:
        return active_coordinate(self.captured, self.search.selected)

    @property
    def payload(self) -> str:
        return encode(self.captured, self.search.selected, self.map_base_url)

    def query_changed(self, text: str) -> None:
        self._require_image()
        self.search.on_query_changed(text)

    def submit_search(self) -> None:
        self._require_image()
        self.search.search_now()

    def select_place(self, suggestion_id: str) -> Optional[SelectedLocation]:
        self._require_image()
        item = self.search.suggestion(suggestion_id)
        if item is None:
            raise KeyError(suggestion_id)
        return self.search.select_place(item)

    # ---------- output ----------
    def view(self, live: bool = False) -> CompositeView:
        """Snapshot input; the committed geometry unless ``live`` is asked for."""
        self._require_image()
        overlay = self.engine.state if live else self.engine.committed
        return CompositeView(self.image, self.engine.canvas, overlay, self.payload)

    async def save(self) -> str:
        view = self.view()
        asset_id = await self.renderer.save(view)
        if self.image is view.image:
            self.end()
        return asset_id

    def to_dict(self) -> Dict[str, Any]:
        st = self.engine.state
        loc = self.active_location
        return {
            "active": self.active,
            "canvas": {"width": self.engine.canvas.width, "height": self.engine.canvas.height},
            "marker": {
                "x": st.position.x,
                "y": st.position.y,
                "size": st.size,
                "color": st.color,
                "phase": self.engine.phase.value,
            },
            "location": None if loc is None else {"latitude": loc.latitude, "longitude": loc.longitude},
            "payload": self.payload,
            "search": {
                "query": self.search.query,
                "phase": self.search.phase.value,
                "suggestions": [s.to_dict() for s in self.search.suggestions],
                "message": self.search.message,
                "selected": None if self.search.selected is None else self.search.selected.label,
            },
            "saving": self.renderer.saving,
        }
