"""Capture, gallery import and the configured device location."""

import io
import logging

import numpy as np
import pytest
from PIL import Image

from geostamp_cam.camera import GalleryImporter, PiCamera
from geostamp_cam.location import ConfiguredLocation
from geostamp_cam.logging_utils import configure_logging


class FakePicamera2:
    def __init__(self):
        self.closed = False

    def capture_array(self, name):
        arr = np.zeros((48, 64, 4), dtype=np.uint8)
        arr[:, :, 0] = 200
        return arr

    def stop(self):
        pass

    def close(self):
        self.closed = True


class TestPiCamera:
    @pytest.mark.asyncio
    async def test_frame_is_converted_and_device_released(self, cfg, monkeypatch):
        device = FakePicamera2()
        opened = []

        def fake_open(self, num):
            opened.append(num)
            return device

        monkeypatch.setattr(PiCamera, "_open_and_configure", fake_open)
        result = await PiCamera(cfg).capture_frame("front", "on")
        assert result.ok
        assert result.image.size == (64, 48)
        assert result.image.mode == "RGB"
        assert result.image.getpixel((0, 0)) == (200, 0, 0)
        assert (result.facing, result.flash_mode) == ("front", "on")
        assert opened == [1]
        assert device.closed

    @pytest.mark.asyncio
    async def test_open_failure_is_reported(self, cfg, monkeypatch):
        def broken(self, num):
            raise RuntimeError("Camera init failed after retries: busy")

        monkeypatch.setattr(PiCamera, "_open_and_configure", broken)
        result = await PiCamera(cfg).capture_frame()
        assert not result.ok
        assert "busy" in result.error

    @pytest.mark.asyncio
    @pytest.mark.parametrize("facing,flash", [("side", "off"), ("back", "auto")])
    async def test_bad_arguments(self, cfg, facing, flash):
        result = await PiCamera(cfg).capture_frame(facing, flash)
        assert not result.ok


class TestGallery:
    @pytest.mark.asyncio
    async def test_cancelled(self):
        assert await GalleryImporter().pick_from_gallery(None) is None
        assert await GalleryImporter().pick_from_gallery(io.BytesIO(b"")) is None

    @pytest.mark.asyncio
    async def test_decodes_to_rgb(self):
        buf = io.BytesIO()
        Image.new("RGBA", (30, 20), (1, 2, 3, 128)).save(buf, "PNG")
        buf.seek(0)
        result = await GalleryImporter().pick_from_gallery(buf)
        assert result.ok and result.image.mode == "RGB"

    @pytest.mark.asyncio
    async def test_garbage(self):
        result = await GalleryImporter().pick_from_gallery(io.BytesIO(b"\x00garbage"))
        assert not result.ok
        assert result.error.startswith("not a readable image")


class TestLocation:
    @pytest.mark.asyncio
    async def test_enabled(self, cfg):
        loc = await ConfiguredLocation(cfg).current_device_location()
        assert (loc.latitude, loc.longitude) == (40.0, -73.0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("section", [
        {"enabled": False, "latitude": 1, "longitude": 1},
        {"enabled": True, "latitude": None, "longitude": 1},
        {"enabled": True, "latitude": 120, "longitude": 1},
    ])
    async def test_unavailable(self, section):
        assert await ConfiguredLocation({"location": section}).current_device_location() is None


def test_configure_logging_level(monkeypatch):
    monkeypatch.setenv("GEOSTAMP_LOG_LEVEL", "debug")
    configure_logging()
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("urllib3").level == logging.INFO
    configure_logging("WARNING")
    assert logging.getLogger().level == logging.WARNING
