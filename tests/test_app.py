import io
import json
import os

import pytest
from PIL import Image

from conftest import PARIS, FakeCamera, FakeProvider
from geostamp_cam.app import create_app


def png_bytes(size=(400, 300)):
    buf = io.BytesIO()
    Image.new("RGB", size, (10, 120, 200)).save(buf, "PNG")
    return buf.getvalue()


@pytest.fixture
def camera(photo):
    return FakeCamera(photo)


@pytest.fixture
def app(cfg, camera, tmp_path):
    app = create_app(
        cfg,
        camera=camera,
        providers=[FakeProvider(results={"Paris": [PARIS]})],
        config_path=str(tmp_path / "config.json"),
    )
    app.config["TESTING"] = True
    yield app
    app.extensions["geostamp"].bridge.stop()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def editing(client):
    r = client.post("/api/capture", json={})
    assert r.status_code == 200
    return client


class TestCapture:
    def test_health(self, client):
        assert client.get("/healthz").data == b"ok"

    def test_marker_needs_an_image(self, client):
        r = client.post("/api/marker/gesture", json={"state": "active", "dx": 5, "dy": 5})
        assert r.status_code == 409
        assert client.get("/preview.jpg").status_code == 409

    def test_capture_attaches_location(self, client, camera):
        body = client.post("/api/capture", json={"facing": "front", "flash": "on"}).get_json()
        assert body["active"]
        assert body["location"] == {"latitude": 40.0, "longitude": -73.0}
        assert body["payload"].endswith("query=40.000000,-73.000000")
        assert body["marker"]["x"] == 210 and body["marker"]["y"] == 370
        assert camera.calls == [("front", "on")]

    def test_camera_failure(self, client, camera):
        camera.error = "camera busy"
        r = client.post("/api/capture", json={})
        assert r.status_code == 503
        assert "camera busy" in r.get_json()["error"]
        assert not client.get("/api/session").get_json()["active"]


class TestImport:
    def test_no_file_is_cancelled(self, client):
        assert client.post("/api/import").get_json() == {"cancelled": True}

    def test_unreadable_file(self, client):
        r = client.post("/api/import", data={"image": (io.BytesIO(b"not an image"), "x.png")},
                        content_type="multipart/form-data")
        assert r.status_code == 400

    def test_picked_image(self, client):
        r = client.post("/api/import", data={"image": (io.BytesIO(png_bytes()), "x.png")},
                        content_type="multipart/form-data")
        assert r.status_code == 200
        assert r.get_json()["active"]


class TestMarker:
    def test_drag_commits_on_end(self, editing):
        editing.post("/api/marker/gesture", json={"state": "active", "dx": -30, "dy": -40})
        body = editing.post("/api/marker/gesture", json={"state": "end", "dx": -30, "dy": -40}).get_json()
        assert (body["marker"]["x"], body["marker"]["y"]) == (180, 330)
        assert body["marker"]["phase"] == "committed"

    def test_resize_and_color(self, editing):
        assert editing.post("/api/marker/size", json={"size": 500}).get_json()["marker"]["size"] == 180
        assert editing.post("/api/marker/color", json={"color": "#e85d04"}).get_json()["marker"]["color"] == "#e85d04"

    def test_bad_color(self, editing):
        assert editing.post("/api/marker/color", json={"color": "purple"}).status_code == 400

    def test_bad_gesture(self, editing):
        assert editing.post("/api/marker/gesture", json={"state": "wobble"}).status_code == 400

    @pytest.mark.parametrize("route,body", [
        ("/api/marker/gesture", {"state": "active", "dx": None, "dy": 0}),
        ("/api/marker/gesture", {"state": "active", "dx": "left", "dy": 0}),
        ("/api/marker/size", {"size": None}),
        ("/api/marker/size", {"size": [90]}),
    ])
    def test_non_numeric_input(self, editing, route, body):
        r = editing.post(route, json=body)
        assert r.status_code == 400
        assert "must be a finite number" in r.get_json()["error"]
        marker = editing.get("/api/session").get_json()["marker"]
        assert (marker["x"], marker["y"], marker["size"]) == (210, 370, 90)

    def test_reset(self, editing):
        editing.post("/api/marker/size", json={"size": 60})
        body = editing.post("/api/marker/reset").get_json()
        assert body["marker"]["size"] == 90


class TestSearch:
    def test_submit_and_select(self, editing):
        editing.post("/api/search/query", json={"text": "Paris"})
        body = editing.post("/api/search/submit").get_json()
        suggestions = body["search"]["suggestions"]
        assert [s["title"] for s in suggestions] == ["Paris"]

        body = editing.post("/api/search/select", json={"id": suggestions[0]["id"]}).get_json()
        assert body["search"]["selected"] == "Paris, Ile-de-France, France"
        assert body["payload"].endswith("query=48.856600,2.352200")

    def test_unknown_suggestion(self, editing):
        assert editing.post("/api/search/select", json={"id": "missing"}).status_code == 404


class TestSave:
    def test_save_writes_asset_and_ends_session(self, editing):
        r = editing.post("/api/save")
        assert r.status_code == 201
        body = r.get_json()
        assert os.path.exists(body["path"])
        with Image.open(body["path"]) as im:
            assert im.size == (320, 500)
        assert not editing.get("/api/session").get_json()["active"]

    def test_save_without_image(self, client):
        assert client.post("/api/save").status_code == 409

    def test_preview(self, editing):
        r = editing.get("/preview.jpg")
        assert r.mimetype == "image/jpeg"
        assert Image.open(io.BytesIO(r.data)).size == (320, 500)

    def test_cancel(self, editing):
        assert not editing.post("/api/cancel").get_json()["active"]


class TestSettings:
    def test_update_is_clamped_and_saved(self, client, tmp_path, app):
        body = client.post("/api/settings", json={"quality": 200, "debounce_ms": -5}).get_json()
        assert body["output"]["quality"] == 95
        assert body["search"]["debounce_ms"] == 0
        rt = app.extensions["geostamp"]
        assert rt.renderer.options["quality"] == 95
        assert rt.search.debounce == 0.0
        with open(tmp_path / "config.json") as f:
            assert json.load(f)["output"]["quality"] == 95

    def test_disabling_location(self, client):
        client.post("/api/settings", json={"location": {"enabled": False}})
        body = client.post("/api/capture", json={}).get_json()
        assert body["location"] is None
        assert body["payload"] == ""

    def test_bad_default_color(self, client):
        assert client.post("/api/settings", json={"default_color": "nope"}).status_code == 400

    def test_rejected_update_changes_nothing(self, client, app, tmp_path):
        r = client.post("/api/settings", json={"location": {"latitude": 1.0, "longitude": 2.0}, "quality": "abc"})
        assert r.status_code == 400
        loc = client.get("/api/settings").get_json()["location"]
        assert (loc["latitude"], loc["longitude"]) == (40.0, -73.0)
        assert app.extensions["geostamp"].location.latitude == 40.0
        assert not (tmp_path / "config.json").exists()

    def test_bad_location_value(self, client):
        r = client.post("/api/settings", json={"location": {"latitude": "north"}})
        assert r.status_code == 400
        assert client.get("/api/settings").get_json()["location"]["latitude"] == 40.0
