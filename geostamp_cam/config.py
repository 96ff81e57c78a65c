from __future__ import annotations
import copy, json, logging, os, tempfile, shutil
from typing import Any, Dict

logger = logging.getLogger(__name__)

# Default config (canvas and marker sizes are in canvas pixels)
DEFAULT: Dict[str, Any] = {
    "canvas": {"width": 320, "height": 500},
    "marker": {
        "min_size": 40,
        "max_size": 180,
        "default_size": 90,
        "default_color": "#000",
        "margin_right": 20,
        "margin_bottom": 40,
        "color_presets": ["#000", "#2e8b57", "#e85d04", "#005af0", "#222", "#ff0000", "#edff21"],
    },
    "search": {
        "debounce_ms": 350,
        "min_query_length": 2,
        "providers": ["photon", "nominatim"],
        "limit": 8,
        "timeout_s": 6.0,
        "user_agent": "geostamp-cam/0.1",
        "photon_url": "https://photon.komoot.io/api/",
        "nominatim_url": "https://nominatim.openstreetmap.org/search",
    },
    "payload": {"map_base_url": "https://www.google.com/maps/search/?api=1"},
    "camera": {"width": 1280, "height": 960, "rotation": 0, "default_facing": "back", "default_flash": "off"},
    "location": {"enabled": False, "latitude": None, "longitude": None},
    "output": {"format": "JPEG", "quality": 90, "scale": 1.0, "directory": "~/Pictures/geostamp"},
}

CONF_ENV = "GEOSTAMP_CONFIG"
CONF_NAME = "config.json"
CONF_PATHS = [
    os.environ.get(CONF_ENV) or "",
    "/opt/geostamp-cam/config.json",
    os.path.expanduser("~/.config/geostamp-cam/config.json"),
    os.path.join(os.path.dirname(__file__), "config.json"),
]

def _first_writable_path() -> str:
    candidates = [
        "/opt/geostamp-cam/config.json",
        os.path.expanduser("~/.config/geostamp-cam/config.json"),
        os.path.join(os.path.dirname(__file__), "config.json"),
    ]
    for p in candidates:
        d = os.path.dirname(p)
        try:
            os.makedirs(d, exist_ok=True)
            open(p, "a").close()
            return p
        except OSError:
            continue
    # not persisted across reboot
    return os.path.join(tempfile.gettempdir(), CONF_NAME)

def load_config(paths=None) -> Dict[str, Any]:
    for p in CONF_PATHS if paths is None else paths:
        if not p:
            continue
        try:
            with open(p, "r") as f:
                data = json.load(f)
        except FileNotFoundError:
            continue
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable config %s: %s", p, e)
            continue
        if not isinstance(data, dict):
            logger.warning("Ignoring config %s: top level is not an object", p)
            continue
        logger.info("Loaded config from %s", p)
        return _merge(DEFAULT, data)
    return copy.deepcopy(DEFAULT)

def save_config(cfg: Dict[str, Any], path: str | None = None) -> str:
    path = path or os.environ.get(CONF_ENV) or _first_writable_path()
    tmp = path + ".tmp"
    with open(tmp, "w") as f:
        json.dump(cfg, f, indent=2)
    shutil.move(tmp, path)
    logger.info("Saved config to %s", path)
    return path

def _merge(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in patch.items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            out[k] = _merge(base[k], v)
        else:
            out[k] = v
    return out
