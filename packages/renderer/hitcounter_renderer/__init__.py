"""Renderer package: theme registry, digit composition, and badge encoding."""

from .compose import MAX_COUNT, compose_digits, digits_of
from .encoders import SvgEncoder, WebpEncoder, default_encoders
from .models import (
    CanvasPlan,
    Glyph,
    GlyphLayout,
    Placement,
    RenderedImage,
    RenderRequest,
    ThemeDescriptor,
    ThemeResolution,
)
from .renderer import DEFAULT_FORMAT, ImageRenderer, layout_glyphs
from .themes import DEFAULT_THEME_NAME, ThemeRegistry, build_registry, builtin_themes, load_themes_dir

__all__ = [
    "CanvasPlan",
    "DEFAULT_FORMAT",
    "DEFAULT_THEME_NAME",
    "Glyph",
    "GlyphLayout",
    "ImageRenderer",
    "MAX_COUNT",
    "Placement",
    "RenderRequest",
    "RenderedImage",
    "SvgEncoder",
    "ThemeDescriptor",
    "ThemeRegistry",
    "ThemeResolution",
    "WebpEncoder",
    "build_registry",
    "builtin_themes",
    "compose_digits",
    "default_encoders",
    "digits_of",
    "layout_glyphs",
    "load_themes_dir",
]
