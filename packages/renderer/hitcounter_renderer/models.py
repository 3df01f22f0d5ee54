"""Typed renderer models."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class GlyphLayout:
    width: int
    height: int
    spacing: int = 0
    pixelated: bool = False


@dataclass(frozen=True)
class Glyph:
    digit: int
    width: int
    height: int
    data: bytes
    mime_type: str
    image: Any = field(default=None, compare=False, repr=False)

    @property
    def data_uri(self) -> str:
        b64 = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};charset=utf-8;base64,{b64}"


@dataclass(frozen=True)
class ThemeDescriptor:
    name: str
    glyphs: Mapping[int, Glyph]
    layout: GlyphLayout
    source: str = "builtin"

    def glyph(self, digit: int) -> Glyph:
        return self.glyphs[digit]


@dataclass(frozen=True)
class ThemeResolution:
    theme: ThemeDescriptor
    requested: str | None
    defaulted: bool


@dataclass(frozen=True)
class RenderRequest:
    count: int
    min_length: int = 0
    theme: str | None = None
    format: str | None = None


@dataclass(frozen=True)
class Placement:
    glyph: Glyph
    x: int


@dataclass(frozen=True)
class CanvasPlan:
    width: int
    height: int
    placements: tuple[Placement, ...]
    pixelated: bool = False


@dataclass(frozen=True)
class RenderedImage:
    body: bytes
    content_type: str
    format: str
    width: int
    height: int
    theme: str
    theme_defaulted: bool = False
    format_defaulted: bool = False
