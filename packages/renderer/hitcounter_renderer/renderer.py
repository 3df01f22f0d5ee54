"""Badge renderer: theme + format resolution, layout, and encoding."""

from __future__ import annotations

import logging
import threading
from typing import Iterable

from cachetools import LRUCache

from .compose import compose_digits
from .encoders import Encoder, default_encoders
from .models import CanvasPlan, Glyph, GlyphLayout, Placement, RenderedImage, RenderRequest
from .themes import ThemeRegistry

_logger = logging.getLogger("hitcounter.renderer")

DEFAULT_FORMAT = "svg"


def layout_glyphs(glyphs: list[Glyph], layout: GlyphLayout) -> CanvasPlan:
    placements: list[Placement] = []
    x = 0
    for idx, glyph in enumerate(glyphs):
        if idx:
            x += layout.spacing
        placements.append(Placement(glyph=glyph, x=x))
        x += glyph.width
    height = max([layout.height] + [g.height for g in glyphs])
    return CanvasPlan(width=x, height=height, placements=tuple(placements), pixelated=layout.pixelated)


class ImageRenderer:
    def __init__(
        self,
        registry: ThemeRegistry,
        default_format: str = DEFAULT_FORMAT,
        cache_size: int = 256,
        encoders: Iterable[Encoder] | None = None,
    ) -> None:
        self.registry = registry
        self._encoders: dict[str, Encoder] = {e.format: e for e in (encoders or default_encoders())}
        default_format = (default_format or DEFAULT_FORMAT).lower()
        if default_format not in self._encoders:
            _logger.warning(
                "default format %r unsupported, using %s",
                default_format,
                DEFAULT_FORMAT,
                extra={"event": "default_format_unsupported"},
            )
            default_format = DEFAULT_FORMAT
        self.default_format = default_format
        self._cache: LRUCache | None = LRUCache(maxsize=cache_size) if cache_size > 0 else None
        self._cache_lock = threading.Lock()

    def formats(self) -> list[str]:
        return sorted(self._encoders)

    def content_type(self, fmt: str) -> str:
        return self._encoders[fmt].content_type

    def resolve_format(self, name: str | None) -> tuple[str, bool]:
        if not name:
            return self.default_format, False
        fmt = name.strip().lower()
        if fmt in self._encoders:
            return fmt, False
        _logger.debug("unsupported format %r, using %s", name, self.default_format)
        return self.default_format, True

    def render(self, request: RenderRequest) -> RenderedImage:
        resolution = self.registry.resolve(request.theme)
        theme = resolution.theme
        fmt, format_defaulted = self.resolve_format(request.format)
        cache_key = (request.count, theme.name, request.min_length, fmt)

        cached = None
        if self._cache is not None:
            with self._cache_lock:
                cached = self._cache.get(cache_key)

        if cached is None:
            glyphs = compose_digits(request.count, request.min_length, theme)
            plan = layout_glyphs(glyphs, theme.layout)
            body = self._encoders[fmt].encode(plan, title=str(request.count))
            cached = (body, plan.width, plan.height)
            if self._cache is not None:
                with self._cache_lock:
                    self._cache[cache_key] = cached

        body, width, height = cached
        return RenderedImage(
            body=body,
            content_type=self._encoders[fmt].content_type,
            format=fmt,
            width=width,
            height=height,
            theme=theme.name,
            theme_defaulted=resolution.defaulted,
            format_defaulted=format_defaulted,
        )
