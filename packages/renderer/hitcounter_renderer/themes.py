"""Theme registry: built-in segment themes plus themes loaded from a directory."""

from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType

from PIL import Image, UnidentifiedImageError

from .glyphs import SegmentStyle, build_segment_glyphs, segment_layout
from .models import Glyph, GlyphLayout, ThemeDescriptor, ThemeResolution

_logger = logging.getLogger("hitcounter.themes")

DEFAULT_THEME_NAME = "classic"

BUILTIN_STYLES: dict[str, SegmentStyle] = {
    "classic": SegmentStyle(
        name="classic",
        background="#0A0F1D",
        lit="#35D9FF",
        unlit="#1A253F",
    ),
    "amber": SegmentStyle(
        name="amber",
        background="#1A140E",
        lit="#FFB347",
        unlit="#473022",
    ),
    "arctic": SegmentStyle(
        name="arctic",
        background="#07171F",
        lit="#86FFD0",
        unlit="#173F52",
    ),
    "mono": SegmentStyle(
        name="mono",
        background="#00000000",
        lit="#111111",
        unlit="#11111114",
        spacing=1,
    ),
}

IMAGE_SUFFIXES = (".png", ".gif", ".jpg", ".jpeg", ".webp", ".bmp")


class ThemeRegistry:
    """Read-only map of lower-cased theme name -> :class:`ThemeDescriptor`.

    ``resolve`` never fails: unknown names come back as the default theme
    with ``defaulted=True``.
    """

    def __init__(self, themes: dict[str, ThemeDescriptor], default_name: str = DEFAULT_THEME_NAME) -> None:
        if not themes:
            raise ValueError("ThemeRegistry needs at least one theme")
        self._themes = MappingProxyType({name.lower(): theme for name, theme in themes.items()})
        default_key = default_name.lower()
        if default_key not in self._themes:
            fallback = DEFAULT_THEME_NAME if DEFAULT_THEME_NAME in self._themes else sorted(self._themes)[0]
            _logger.warning(
                "default theme %r not found, using %r", default_name, fallback, extra={"event": "default_theme_missing"}
            )
            default_key = fallback
        self._default = self._themes[default_key]

    @property
    def default(self) -> ThemeDescriptor:
        return self._default

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._themes

    def __len__(self) -> int:
        return len(self._themes)

    def names(self) -> list[str]:
        return sorted(self._themes.keys())

    def resolve(self, name: str | None) -> ThemeResolution:
        if not name:
            return ThemeResolution(theme=self._default, requested=name, defaulted=False)
        theme = self._themes.get(name.strip().lower())
        if theme is None:
            _logger.debug("unknown theme %r, using %s", name, self._default.name)
            return ThemeResolution(theme=self._default, requested=name, defaulted=True)
        return ThemeResolution(theme=theme, requested=name, defaulted=False)


def builtin_themes(pixelated: bool = False) -> dict[str, ThemeDescriptor]:
    themes: dict[str, ThemeDescriptor] = {}
    for name, style in BUILTIN_STYLES.items():
        themes[name] = ThemeDescriptor(
            name=name,
            glyphs=MappingProxyType(build_segment_glyphs(style)),
            layout=segment_layout(style, pixelated=pixelated),
            source="builtin",
        )
    return themes


def _load_glyph(path: Path, digit: int) -> Glyph:
    data = path.read_bytes()
    with Image.open(path) as img:
        mime_type = Image.MIME.get(img.format or "", "image/png")
        image = img.convert("RGBA")
    return Glyph(digit=digit, width=image.width, height=image.height, data=data, mime_type=mime_type, image=image)


def load_theme_dir(path: Path, pixelated: bool = False) -> ThemeDescriptor | None:
    """Load ``<path>/0.<ext>`` .. ``<path>/9.<ext>``; None when the set is incomplete."""
    glyphs: dict[int, Glyph] = {}
    for item in sorted(path.iterdir()):
        if not item.is_file() or item.suffix.lower() not in IMAGE_SUFFIXES:
            continue
        if item.stem not in {str(d) for d in range(10)}:
            continue
        digit = int(item.stem)
        if digit in glyphs:
            _logger.warning("duplicate glyph for digit %d in %s", digit, path, extra={"event": "theme_duplicate_glyph"})
            continue
        try:
            glyphs[digit] = _load_glyph(item, digit)
        except (OSError, UnidentifiedImageError) as exc:
            _logger.warning("unreadable glyph %s: %s", item, exc, extra={"event": "theme_bad_glyph"})
            return None

    if len(glyphs) != 10:
        _logger.warning(
            "skipping theme %s: %d of 10 digit glyphs", path.name, len(glyphs), extra={"event": "theme_incomplete"}
        )
        return None

    layout = GlyphLayout(
        width=max(g.width for g in glyphs.values()),
        height=max(g.height for g in glyphs.values()),
        spacing=0,
        pixelated=pixelated,
    )
    return ThemeDescriptor(name=path.name, glyphs=MappingProxyType(glyphs), layout=layout, source=str(path))


def load_themes_dir(themes_dir: Path, pixelated: bool = False) -> dict[str, ThemeDescriptor]:
    if not themes_dir.is_dir():
        _logger.warning("themes dir not found: %s", themes_dir, extra={"event": "themes_dir_missing"})
        return {}
    themes: dict[str, ThemeDescriptor] = {}
    for entry in sorted(themes_dir.iterdir()):
        if not entry.is_dir():
            continue
        theme = load_theme_dir(entry, pixelated=pixelated)
        if theme is not None:
            themes[theme.name] = theme
    return themes


def build_registry(
    themes_dir: Path | str | None = None,
    default_name: str = DEFAULT_THEME_NAME,
    pixelated: bool = False,
) -> ThemeRegistry:
    themes = builtin_themes(pixelated=pixelated)
    if themes_dir:
        for name, theme in load_themes_dir(Path(themes_dir), pixelated=pixelated).items():
            themes[name.lower()] = theme
    _logger.info("loaded %d themes", len(themes), extra={"event": "themes_loaded"})
    return ThemeRegistry(themes, default_name=default_name)
