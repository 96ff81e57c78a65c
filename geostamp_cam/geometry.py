"""Marker placement inside a fixed canvas.

All positions are top-left corners in canvas pixels. Every mutation clamps
before it publishes, so ``0 <= x <= width - size`` and
``0 <= y <= height - size`` hold after each call, not only eventually.

Dragging follows the gesture model of a pan recognizer: the translation
reported on each tick is cumulative from the start of the gesture, so the
live position is always ``baseline + translation`` and the baseline only
moves when the gesture ends.
"""
from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Tuple

MIN_SIZE = 40.0
MAX_SIZE = 180.0
DEFAULT_SIZE = 90.0
DEFAULT_COLOR = "#000"


@dataclass(frozen=True)
class Canvas:
    width: float
    height: float

    def __post_init__(self):
        if not (self.width > 0 and self.height > 0):
            raise ValueError(f"canvas must be non-empty, got {self.width}x{self.height}")


@dataclass(frozen=True)
class Point:
    x: float
    y: float

    def __add__(self, other: "Point") -> "Point":
        return Point(self.x + other.x, self.y + other.y)


@dataclass(frozen=True)
class OverlayState:
    position: Point
    size: float
    color: str = DEFAULT_COLOR


class DragPhase(enum.Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    COMMITTED = "committed"


class GestureEvent(enum.Enum):
    ACTIVE = "active"
    END = "end"
    CANCELLED = "cancelled"


class DragAction(enum.Enum):
    MOVE = "move"
    COMMIT = "commit"
    IGNORE = "ignore"


# An END (or CANCELLED) only commits out of DRAGGING; a repeated END for the
# same gesture finds COMMITTED and is ignored, so translation is applied once.
_TRANSITIONS = {
    (DragPhase.IDLE, GestureEvent.ACTIVE): (DragPhase.DRAGGING, DragAction.MOVE),
    (DragPhase.IDLE, GestureEvent.END): (DragPhase.IDLE, DragAction.IGNORE),
    (DragPhase.IDLE, GestureEvent.CANCELLED): (DragPhase.IDLE, DragAction.IGNORE),
    (DragPhase.DRAGGING, GestureEvent.ACTIVE): (DragPhase.DRAGGING, DragAction.MOVE),
    (DragPhase.DRAGGING, GestureEvent.END): (DragPhase.COMMITTED, DragAction.COMMIT),
    (DragPhase.DRAGGING, GestureEvent.CANCELLED): (DragPhase.COMMITTED, DragAction.COMMIT),
    (DragPhase.COMMITTED, GestureEvent.ACTIVE): (DragPhase.DRAGGING, DragAction.MOVE),
    (DragPhase.COMMITTED, GestureEvent.END): (DragPhase.COMMITTED, DragAction.IGNORE),
    (DragPhase.COMMITTED, GestureEvent.CANCELLED): (DragPhase.COMMITTED, DragAction.IGNORE),
}


def transition(phase: DragPhase, event: GestureEvent) -> Tuple[DragPhase, DragAction]:
    return _TRANSITIONS[(phase, event)]


def _finite(*values: float) -> None:
    for v in values:
        if not math.isfinite(v):
            raise ValueError(f"expected a finite number, got {v!r}")


def clamp_size(size: float, canvas: Canvas, min_size: float = MIN_SIZE, max_size: float = MAX_SIZE) -> float:
    """Clamp into ``[min_size, max_size]`` and never past the shorter canvas side."""
    _finite(size)
    upper = min(max_size, canvas.width, canvas.height)
    return float(max(min(min_size, upper), min(size, upper)))


def clamp_position(point: Point, canvas: Canvas, size: float) -> Point:
    _finite(point.x, point.y)
    x = max(0.0, min(point.x, canvas.width - size))
    y = max(0.0, min(point.y, canvas.height - size))
    return Point(float(x), float(y))


def default_position(canvas: Canvas, size: float, margin_right: float = 20, margin_bottom: float = 40) -> Point:
    """Bottom-right placement; (210, 370) for a 90px marker on 320x500."""
    return clamp_position(
        Point(canvas.width - size - margin_right, canvas.height - size - margin_bottom), canvas, size
    )


class OverlayGeometryEngine:
    """Owns the marker geometry for one editing session.

    ``baseline`` is the last committed position and is only written by
    :meth:`commit_drag`, :meth:`resize` and :meth:`reset`.
    """

    def __init__(
        self,
        canvas: Canvas,
        min_size: float = MIN_SIZE,
        max_size: float = MAX_SIZE,
        default_size: float = DEFAULT_SIZE,
        default_color: str = DEFAULT_COLOR,
        margin_right: float = 20,
        margin_bottom: float = 40,
    ):
        if min_size > max_size:
            raise ValueError(f"min_size {min_size} exceeds max_size {max_size}")
        self.canvas = canvas
        self.min_size = float(min_size)
        self.max_size = float(max_size)
        self.default_size = float(default_size)
        self.default_color = default_color
        self.margins = (float(margin_right), float(margin_bottom))
        self.phase = DragPhase.IDLE
        self.reset()

    @classmethod
    def from_config(cls, cfg: dict) -> "OverlayGeometryEngine":
        cv = cfg.get("canvas", {})
        mk = cfg.get("marker", {})
        return cls(
            Canvas(float(cv.get("width", 320)), float(cv.get("height", 500))),
            min_size=float(mk.get("min_size", MIN_SIZE)),
            max_size=float(mk.get("max_size", MAX_SIZE)),
            default_size=float(mk.get("default_size", DEFAULT_SIZE)),
            default_color=mk.get("default_color", DEFAULT_COLOR),
            margin_right=float(mk.get("margin_right", 20)),
            margin_bottom=float(mk.get("margin_bottom", 40)),
        )

    # ---------- read ----------
    @property
    def state(self) -> OverlayState:
        """Live state, including an uncommitted drag position."""
        return OverlayState(self.position, self.size, self.color)

    @property
    def committed(self) -> OverlayState:
        return OverlayState(self.baseline, self.size, self.color)

    @property
    def dragging(self) -> bool:
        return self.phase is DragPhase.DRAGGING

    # ---------- drag ----------
    def _propose(self, translation: Point) -> Point:
        _finite(translation.x, translation.y)
        return clamp_position(self.baseline + translation, self.canvas, self.size)

    def begin_or_continue_drag(self, translation: Point) -> Point:
        self.position = self._propose(translation)
        return self.position

    def commit_drag(self, translation: Point) -> Point:
        self.position = self._propose(translation)
        self.baseline = self.position
        return self.position

    def on_gesture(self, event: GestureEvent, translation: Point) -> Point:
        """Route one pan-gesture callback through the phase table.

        A rejected translation raises before anything changes, phase included.
        """
        phase, action = transition(self.phase, event)
        if action is DragAction.MOVE:
            pos = self.begin_or_continue_drag(translation)
        elif action is DragAction.COMMIT:
            pos = self.commit_drag(translation)
        else:
            pos = self.position
        self.phase = phase
        return pos

    # ---------- size / color ----------
    def resize(self, new_size: float) -> OverlayState:
        size = clamp_size(new_size, self.canvas, self.min_size, self.max_size)
        pos = clamp_position(self.baseline, self.canvas, size)
        self.size, self.baseline, self.position = size, pos, pos
        return self.state

    def set_color(self, color: str) -> OverlayState:
        self.color = color
        return self.state

    def reset(self) -> OverlayState:
        size = clamp_size(self.default_size, self.canvas, self.min_size, self.max_size)
        pos = default_position(self.canvas, size, *self.margins)
        self.size, self.baseline, self.position = size, pos, pos
        self.color = self.default_color
        self.phase = DragPhase.IDLE
        return self.state

