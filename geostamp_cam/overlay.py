from __future__ import annotations
import asyncio, io, logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

import qrcode
from PIL import Image, ImageDraw, ImageOps

from .geometry import Canvas, OverlayState

logger = logging.getLogger(__name__)

FORMATS = {"JPEG": "jpg", "PNG": "png"}


@dataclass(frozen=True)
class CompositeView:
    """Everything the snapshot needs, frozen at the moment of capture."""
    image: Image.Image
    canvas: Canvas
    overlay: OverlayState
    payload: str


def _hex_to_rgb(s: str) -> Tuple[int,int,int]:
    s = s.strip()
    if s.startswith("#"): s = s[1:]
    if len(s) == 3:
        s = "".join(ch*2 for ch in s)
    if len(s) != 6:
        raise ValueError(f"not a hex color: {s!r}")
    r = int(s[0:2], 16); g = int(s[2:4], 16); b = int(s[4:6], 16)
    return (r,g,b)

def normalize_color(s: str) -> str:
    """Validate a ``#rgb``/``#rrggbb`` color and return it as given (stripped)."""
    _hex_to_rgb(s)
    return s.strip()

def qr_modules(payload: str) -> List[List[bool]]:
    qr = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_M, border=0)
    qr.add_data(payload)
    qr.make(fit=True)
    return qr.get_matrix()

def draw_marker(draw: ImageDraw.ImageDraw, ov: OverlayState, payload: str, scale: float = 1.0) -> None:
    """Draw the QR modules only; the background stays transparent so the photo shows through."""
    if not payload:
        return
    modules = qr_modules(payload)
    n = len(modules)
    cell = ov.size * scale / n
    x0 = ov.position.x * scale; y0 = ov.position.y * scale
    fill = _hex_to_rgb(ov.color) + (255,)
    for r, row in enumerate(modules):
        for c, dark in enumerate(row):
            if not dark:
                continue
            xa = round(x0 + c*cell); xb = round(x0 + (c+1)*cell) - 1
            ya = round(y0 + r*cell); yb = round(y0 + (r+1)*cell) - 1
            draw.rectangle([(xa, ya), (max(xa, xb), max(ya, yb))], fill=fill)

def render_image(view: CompositeView, scale: float = 1.0) -> Image.Image:
    W = max(1, round(view.canvas.width * scale)); H = max(1, round(view.canvas.height * scale))
    # cover-fit the photo to the canvas, as the preview shows it
    img = ImageOps.fit(view.image.convert("RGB"), (W, H), method=Image.Resampling.LANCZOS).convert("RGBA")
    lay = Image.new("RGBA", img.size, (0,0,0,0))
    draw_marker(ImageDraw.Draw(lay), view.overlay, view.payload, scale)
    return Image.alpha_composite(img, lay).convert("RGB")

def render_composite(view: CompositeView, fmt: str = "JPEG", quality: int = 90, scale: float = 1.0) -> bytes:
    fmt = fmt.upper()
    if fmt not in FORMATS:
        raise ValueError(f"unsupported format {fmt!r}")
    im = render_image(view, scale)
    buf = io.BytesIO()
    if fmt == "JPEG":
        im.save(buf, format="JPEG", quality=max(1, min(95, int(quality))))
    else:
        im.save(buf, format="PNG")
    return buf.getvalue()

async def capture_composite(view: CompositeView, options: Dict[str, Any]) -> bytes:
    """Rasterize ``view`` off the loop thread; ``options`` holds format, quality, scale."""
    loop = asyncio.get_running_loop()
    raster = await loop.run_in_executor(
        None,
        render_composite,
        view,
        options.get("format", "JPEG"),
        int(options.get("quality", 90)),
        float(options.get("scale", 1.0)),
    )
    logger.debug("Captured composite %dx%d, %d bytes", view.canvas.width, view.canvas.height, len(raster))
    return raster
