"""Seven-segment digit glyphs for the built-in themes."""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO

from PIL import Image, ImageColor, ImageDraw

from .models import Glyph, GlyphLayout

SEGMENTS: dict[int, str] = {
    0: "abcdef",
    1: "bc",
    2: "abdeg",
    3: "abcdg",
    4: "bcfg",
    5: "acdfg",
    6: "acdefg",
    7: "abc",
    8: "abcdefg",
    9: "abcdfg",
}


@dataclass(frozen=True)
class SegmentStyle:
    name: str
    background: str
    lit: str
    unlit: str
    width: int = 30
    height: int = 52
    thickness: int = 6
    margin: int = 3
    gap: int = 1
    spacing: int = 2


def _horizontal(x0: float, x1: float, yc: float, t: float) -> list[tuple[float, float]]:
    h = t / 2
    return [(x0, yc), (x0 + h, yc - h), (x1 - h, yc - h), (x1, yc), (x1 - h, yc + h), (x0 + h, yc + h)]


def _vertical(xc: float, y0: float, y1: float, t: float) -> list[tuple[float, float]]:
    h = t / 2
    return [(xc, y0), (xc + h, y0 + h), (xc + h, y1 - h), (xc, y1), (xc - h, y1 - h), (xc - h, y0 + h)]


def segment_polygons(style: SegmentStyle) -> dict[str, list[tuple[float, float]]]:
    t = style.thickness
    g = style.gap
    left = style.margin + t / 2
    right = style.width - style.margin - t / 2
    top = style.margin + t / 2
    bottom = style.height - style.margin - t / 2
    mid = style.height / 2

    return {
        "a": _horizontal(left + g, right - g, top, t),
        "g": _horizontal(left + g, right - g, mid, t),
        "d": _horizontal(left + g, right - g, bottom, t),
        "f": _vertical(left, top + g, mid - g, t),
        "b": _vertical(right, top + g, mid - g, t),
        "e": _vertical(left, mid + g, bottom - g, t),
        "c": _vertical(right, mid + g, bottom - g, t),
    }


def draw_digit(style: SegmentStyle, digit: int) -> Image.Image:
    if digit not in SEGMENTS:
        raise ValueError(f"Unknown digit: {digit}")
    image = Image.new("RGBA", (style.width, style.height), ImageColor.getrgb(style.background))
    draw = ImageDraw.Draw(image)
    lit = ImageColor.getrgb(style.lit)
    unlit = ImageColor.getrgb(style.unlit)
    on = SEGMENTS[digit]
    for name, points in segment_polygons(style).items():
        draw.polygon(points, fill=lit if name in on else unlit)
    return image


def _png_bytes(image: Image.Image) -> bytes:
    buf = BytesIO()
    image.save(buf, format="PNG", optimize=False)
    return buf.getvalue()


def build_segment_glyphs(style: SegmentStyle) -> dict[int, Glyph]:
    glyphs: dict[int, Glyph] = {}
    for digit in range(10):
        image = draw_digit(style, digit)
        glyphs[digit] = Glyph(
            digit=digit,
            width=style.width,
            height=style.height,
            data=_png_bytes(image),
            mime_type="image/png",
            image=image,
        )
    return glyphs


def segment_layout(style: SegmentStyle, pixelated: bool = False) -> GlyphLayout:
    return GlyphLayout(width=style.width, height=style.height, spacing=style.spacing, pixelated=pixelated)
