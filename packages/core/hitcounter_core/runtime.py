"""Wires store, counter service, theme registry, and renderer from an AppConfig."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from hitcounter_counter import CounterService, CounterStore, open_store
from hitcounter_renderer import ImageRenderer, ThemeRegistry, build_registry

from .config import AppConfig

_logger = logging.getLogger("hitcounter.runtime")


@dataclass
class Runtime:
    config: AppConfig
    store: CounterStore
    service: CounterService
    registry: ThemeRegistry
    renderer: ImageRenderer

    def start(self) -> None:
        self.service.start()
        _logger.info(
            "runtime started write_mode=%s themes=%d",
            self.service.write_mode.value,
            len(self.registry),
            extra={"event": "runtime_started"},
        )

    def close(self) -> None:
        try:
            self.service.close()
        finally:
            self.store.close()
        _logger.info("runtime closed", extra={"event": "runtime_closed"})


def _resolve_path(value: str | None, base: Path | None) -> Path | None:
    if not value:
        return None
    path = Path(value).expanduser()
    if not path.is_absolute() and base is not None:
        path = base / path
    return path


def build_registry_from_config(cfg: AppConfig, base_dir: Path | None = None) -> ThemeRegistry:
    return build_registry(
        themes_dir=_resolve_path(cfg.render.themes_dir, base_dir),
        default_name=cfg.render.default_theme,
        pixelated=cfg.render.pixelated,
    )


def build_renderer(cfg: AppConfig, registry: ThemeRegistry) -> ImageRenderer:
    return ImageRenderer(registry, default_format=cfg.render.default_format, cache_size=cfg.render.cache_size)


def build_store(cfg: AppConfig, base_dir: Path | None = None) -> CounterStore:
    path = _resolve_path(cfg.store.path, base_dir) or Path("data.db")
    return open_store(cfg.store.backend, path=path, table_name=cfg.store.table_name)


def build_runtime(
    cfg: AppConfig,
    base_dir: Path | None = None,
    store: CounterStore | None = None,
) -> Runtime:
    store = store if store is not None else build_store(cfg, base_dir)
    service = CounterService(
        store,
        write_mode=cfg.counter.write_mode,
        flush_interval_s=cfg.counter.flush_interval_s,
        retry_budget=cfg.counter.retry_budget,
        max_idle_s=cfg.counter.max_idle_s,
    )
    registry = build_registry_from_config(cfg, base_dir)
    renderer = build_renderer(cfg, registry)
    return Runtime(config=cfg, store=store, service=service, registry=registry, renderer=renderer)
