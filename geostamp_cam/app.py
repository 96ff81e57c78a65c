from __future__ import annotations
import io, logging, math, os
from types import SimpleNamespace
from typing import Any, Dict, Optional, Sequence

from flask import Flask, Response, jsonify, request

from . import config as cfgmod
from .assets import AssetStore
from .camera import GalleryImporter, PiCamera
from .composite import CompositeRenderer, SnapshotFn
from .errors import NoImageError, PermissionDenied, SaveFailure, SaveInProgress
from .location import ConfiguredLocation
from .logging_utils import configure_logging
from .loop_thread import EventLoopThread
from .overlay import capture_composite, normalize_color, render_composite
from .providers import PlaceProvider, build_providers
from .search import PlaceSearchService
from .session import EditingSession

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0


def _body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _number(data: Dict[str, Any], key: str, default: Any = 0) -> float:
    v = data.get(key, default)
    try:
        n = float(v)
    except (TypeError, ValueError):
        n = math.nan
    if isinstance(v, bool) or not math.isfinite(n):
        raise ValueError(f"{key} must be a finite number, got {v!r}")
    return n


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def create_app(cfg: Optional[Dict[str, Any]] = None, *, camera=None, location=None,
               providers: Optional[Sequence[PlaceProvider]] = None, store: Optional[AssetStore] = None,
               snapshot: SnapshotFn = capture_composite, config_path: Optional[str] = None):
    app = Flask(__name__)
    cfg = cfg if cfg is not None else cfgmod.load_config()
    bridge = EventLoopThread().start()

    providers = build_providers(cfg) if providers is None else providers
    store = store or AssetStore.from_config(cfg)
    search = PlaceSearchService.from_config(cfg, providers, loop=bridge.loop)
    renderer = CompositeRenderer.from_config(cfg, store, snapshot)
    session = EditingSession.from_config(cfg, search, renderer)
    rt = SimpleNamespace(
        cfg=cfg, bridge=bridge, session=session, search=search, renderer=renderer,
        camera=camera or PiCamera(cfg), gallery=GalleryImporter(),
        location=location or ConfiguredLocation(cfg), config_path=config_path,
    )
    app.extensions["geostamp"] = rt

    def state():
        return jsonify(bridge.call(session.to_dict, timeout=REQUEST_TIMEOUT))

    # ---------- errors ----------
    @app.errorhandler(NoImageError)
    def no_image(e):
        return _error(str(e), 409)

    @app.errorhandler(SaveInProgress)
    def save_busy(e):
        return _error("A save is already in progress", 409)

    @app.errorhandler(PermissionDenied)
    def denied(e):
        return _error(f"Need permission to save: {e}", 403)

    @app.errorhandler(SaveFailure)
    def save_failed(e):
        return _error(f"Save failed: {e}", 500)

    @app.errorhandler(ValueError)
    def bad_value(e):
        return _error(str(e), 400)

    # ---------- routes ----------
    @app.get("/healthz")
    def healthz():
        return ("ok", 200)

    @app.get("/api/session")
    def session_get():
        return state()

    @app.post("/api/capture")
    def capture():
        data = _body()
        cam_cfg = cfg.get("camera", {})
        facing = data.get("facing", cam_cfg.get("default_facing", "back"))
        flash = data.get("flash", cam_cfg.get("default_flash", "off"))

        async def _capture():
            coords = await rt.location.current_device_location()
            result = await rt.camera.capture_frame(facing, flash)
            if result.ok:
                result.coords = coords
                session.begin(result)
            return result

        result = bridge.run(_capture(), REQUEST_TIMEOUT)
        if not result.ok:
            return _error(f"Take picture failed: {result.error}", 503)
        return state()

    @app.post("/api/import")
    def import_image():
        f = request.files.get("image")
        stream = io.BytesIO(f.read()) if f else None

        async def _import():
            result = await rt.gallery.pick_from_gallery(stream)
            if result is not None and result.ok:
                result.coords = await rt.location.current_device_location()
                session.begin(result)
            return result

        result = bridge.run(_import(), REQUEST_TIMEOUT)
        if result is None:
            return jsonify({"cancelled": True})
        if not result.ok:
            return _error(result.error or "import failed", 400)
        return state()

    @app.post("/api/marker/gesture")
    def marker_gesture():
        data = _body()
        bridge.call(session.gesture, str(data.get("state", "")),
                    _number(data, "dx"), _number(data, "dy"), timeout=REQUEST_TIMEOUT)
        return state()

    @app.post("/api/marker/size")
    def marker_size():
        bridge.call(session.resize, _number(_body(), "size"), timeout=REQUEST_TIMEOUT)
        return state()

    @app.post("/api/marker/color")
    def marker_color():
        bridge.call(session.set_color, str(_body().get("color", "")), timeout=REQUEST_TIMEOUT)
        return state()

    @app.post("/api/marker/reset")
    def marker_reset():
        bridge.call(session.reset_marker, timeout=REQUEST_TIMEOUT)
        return state()

    @app.post("/api/search/query")
    def search_query():
        bridge.call(session.query_changed, str(_body().get("text", "")), timeout=REQUEST_TIMEOUT)
        return state()

    @app.post("/api/search/submit")
    def search_submit():
        async def _submit():
            session.submit_search()
            await search.drain()

        bridge.run(_submit(), REQUEST_TIMEOUT)
        return state()

    @app.post("/api/search/select")
    def search_select():
        try:
            bridge.call(session.select_place, str(_body().get("id", "")), timeout=REQUEST_TIMEOUT)
        except KeyError as e:
            return _error(f"no suggestion {e}", 404)
        return state()

    @app.post("/api/save")
    def save():
        asset_id = bridge.run(session.save(), REQUEST_TIMEOUT)
        return jsonify({"asset": asset_id, "path": store.path(asset_id)}), 201

    @app.post("/api/cancel")
    def cancel():
        bridge.call(session.end, timeout=REQUEST_TIMEOUT)
        return state()

    @app.get("/preview.jpg")
    def preview():
        view = bridge.call(session.view, True, timeout=REQUEST_TIMEOUT)
        return Response(render_composite(view, "JPEG", 85), mimetype="image/jpeg")

    @app.get("/api/settings")
    def settings_get():
        return jsonify({k: cfg[k] for k in ("marker", "search", "location", "output", "payload")})

    @app.post("/api/settings")
    def settings_post():
        data = _body()
        loc = cfg["location"]
        mk = cfg["marker"]
        sc = cfg["search"]
        out = cfg["output"]

        # validate everything before touching the shared config
        new_loc = None
        if "location" in data:
            new = data["location"] or {}
            if not isinstance(new, dict):
                raise ValueError("location must be an object")
            new_loc = {"enabled": bool(new.get("enabled", loc["enabled"]))}
            for k in ("latitude", "longitude"):
                v = new.get(k, loc[k])
                new_loc[k] = None if v is None else _number(new, k, v)
        color = normalize_color(str(data["default_color"])) if "default_color" in data else mk["default_color"]
        debounce_ms = (max(0, min(5000, int(_number(data, "debounce_ms"))))
                       if "debounce_ms" in data else sc["debounce_ms"])
        quality = max(1, min(95, int(_number(data, "quality")))) if "quality" in data else out["quality"]

        if new_loc is not None:
            loc.update(new_loc)
        mk["default_color"] = color
        sc["debounce_ms"] = debounce_ms
        out["quality"] = quality

        def _apply():
            rt.location.update(cfg)
            session.engine.default_color = mk["default_color"]
            search.debounce = sc["debounce_ms"] / 1000.0
            renderer.options["quality"] = out["quality"]

        bridge.call(_apply, timeout=REQUEST_TIMEOUT)
        cfgmod.save_config(cfg, rt.config_path)
        return settings_get()

    return app


def main():
    configure_logging()
    app = create_app()
    port = int(os.environ.get("PORT", "8000"))
    logger.info("Serving on port %d", port)
    app.run(host="0.0.0.0", port=port, threaded=True)


if __name__ == "__main__":
    main()
