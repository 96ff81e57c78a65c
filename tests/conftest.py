"""Shared fakes for the collaborators the editing core talks to."""

from __future__ import annotations

import asyncio
import copy
from typing import Dict, List, Optional

import pytest
from PIL import Image

from geostamp_cam import config as cfgmod
from geostamp_cam.camera import CaptureResult
from geostamp_cam.providers import ProviderPlace


def place(name: str, lat, lon, osm_id: Optional[int] = None, **extra) -> ProviderPlace:
    return ProviderPlace(
        provider_id=f"N_{osm_id}" if osm_id else None,
        name=name,
        latitude=lat,
        longitude=lon,
        **extra,
    )


PARIS = place("Paris", "48.8566", "2.3522", osm_id=7444, state="Ile-de-France", country="France")
LONDON = place("London", "51.5074", "-0.1278", osm_id=65606, country="United Kingdom")


class FakeProvider:
    """Records queries; a query with a gate blocks until the gate is set."""

    def __init__(self, name: str = "fake", results: Optional[Dict[str, List[ProviderPlace]]] = None,
                 error: Optional[Exception] = None, gates: Optional[Dict[str, asyncio.Event]] = None):
        self.name = name
        self.results = results or {}
        self.error = error
        self.gates = gates or {}
        self.calls: List[str] = []

    async def search(self, query: str) -> List[ProviderPlace]:
        self.calls.append(query)
        gate = self.gates.get(query)
        if gate is not None:
            await gate.wait()
        if self.error is not None:
            raise self.error
        return list(self.results.get(query, []))


class FakeCamera:
    def __init__(self, image: Optional[Image.Image] = None, error: Optional[str] = None):
        self.image = image
        self.error = error
        self.calls = []

    async def capture_frame(self, facing: str = "back", flash_mode: str = "off") -> CaptureResult:
        self.calls.append((facing, flash_mode))
        if self.error:
            return CaptureResult(None, self.error, facing=facing, flash_mode=flash_mode)
        return CaptureResult(self.image, facing=facing, flash_mode=flash_mode)


@pytest.fixture
def cfg(tmp_path):
    c = copy.deepcopy(cfgmod.DEFAULT)
    c["output"]["directory"] = str(tmp_path / "assets")
    c["location"] = {"enabled": True, "latitude": 40.0, "longitude": -73.0}
    return c


@pytest.fixture
def photo():
    return Image.new("RGB", (640, 1000), (255, 255, 255))
