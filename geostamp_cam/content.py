"""Marker payload: which coordinate is active, and how it becomes a map link."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

DEFAULT_MAP_URL = "https://www.google.com/maps/search/?api=1"
MIN_FRACTION_DIGITS = 6


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self):
        if not (math.isfinite(self.latitude) and math.isfinite(self.longitude)):
            raise ValueError(f"non-finite coordinate ({self.latitude!r}, {self.longitude!r})")
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")


@dataclass(frozen=True)
class SelectedLocation(Coordinate):
    """A user-picked place; only valid while ``label`` is still the query text."""

    label: str = ""


def active_coordinate(captured: Optional[Coordinate], selected: Optional[SelectedLocation]) -> Optional[Coordinate]:
    return selected if selected is not None else captured


def format_degrees(value: float) -> str:
    # shortest round-trip digits, padded to at least 6 fractional digits;
    # adding 0.0 folds -0.0 into 0.0
    return np.format_float_positional(
        float(value) + 0.0, unique=True, trim="k", min_digits=MIN_FRACTION_DIGITS
    )


def encode(
    captured: Optional[Coordinate],
    selected: Optional[SelectedLocation] = None,
    base_url: str = DEFAULT_MAP_URL,
) -> str:
    """Return the map link for the active coordinate, or ``""`` when there is none."""
    c = active_coordinate(captured, selected)
    if c is None:
        return ""
    sep = "&" if "?" in base_url else "?"
    return f"{base_url}{sep}query={format_degrees(c.latitude)},{format_degrees(c.longitude)}"
