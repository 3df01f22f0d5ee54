"""Format encoders turning a canvas plan into image bytes."""

from __future__ import annotations

from io import BytesIO
from typing import Protocol
from xml.sax.saxutils import escape

from PIL import Image

from .models import CanvasPlan


class Encoder(Protocol):
    format: str
    content_type: str

    def encode(self, plan: CanvasPlan, title: str) -> bytes: ...


class SvgEncoder:
    """SVG document with one ``<image>`` per glyph, glyph bytes inlined as data URIs."""

    format = "svg"
    content_type = "image/svg+xml"

    def encode(self, plan: CanvasPlan, title: str) -> bytes:
        style = " style='image-rendering: pixelated;'" if plan.pixelated else ""
        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            f'<svg width="{plan.width}" height="{plan.height}" version="1.1" '
            f'xmlns="http://www.w3.org/2000/svg" xmlns:xlink="http://www.w3.org/1999/xlink"{style}>',
            f"<title>{escape(title)}</title>",
            "<g>",
        ]
        for p in plan.placements:
            g = p.glyph
            lines.append(f'<image x="{p.x}" y="0" width="{g.width}" height="{g.height}" href="{g.data_uri}" />')
        lines.append("</g>")
        lines.append("</svg>")
        return "\n".join(lines).encode("utf-8")


class WebpEncoder:
    """Lossless WEBP raster of the glyphs pasted side by side on a transparent canvas."""

    format = "webp"
    content_type = "image/webp"

    def encode(self, plan: CanvasPlan, title: str) -> bytes:
        canvas = Image.new("RGBA", (max(plan.width, 1), max(plan.height, 1)), (0, 0, 0, 0))
        for p in plan.placements:
            glyph_image = p.glyph.image
            if glyph_image is None:
                with Image.open(BytesIO(p.glyph.data)) as img:
                    glyph_image = img.convert("RGBA")
            canvas.paste(glyph_image, (p.x, 0))
        buf = BytesIO()
        canvas.save(buf, format="WEBP", lossless=True, quality=100, method=4, exact=True)
        return buf.getvalue()


def default_encoders() -> list[Encoder]:
    return [SvgEncoder(), WebpEncoder()]
