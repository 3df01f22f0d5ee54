"""Persistent service settings schema and load/save helpers."""

from __future__ import annotations

import json
import os
import platform
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any


CONFIG_VERSION = 2


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 9534


@dataclass
class StoreConfig:
    backend: str = "sqlite"
    path: str = "data.db"
    table_name: str = "count"


@dataclass
class CounterConfig:
    write_mode: str = "batched"
    flush_interval_s: float = 1.0
    retry_budget: int = 5
    max_key_length: int = 256
    max_idle_s: float | None = None


@dataclass
class RenderConfig:
    themes_dir: str | None = "themes"
    default_theme: str = "classic"
    default_format: str = "svg"
    digit_count: int = 0
    max_length: int = 32
    pixelated: bool = False
    cache_size: int = 256


@dataclass
class LoggingConfig:
    level: str = "INFO"
    keep_files: int = 7
    console: bool = True


@dataclass
class AppConfig:
    config_version: int = CONFIG_VERSION
    server: ServerConfig = field(default_factory=ServerConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    counter: CounterConfig = field(default_factory=CounterConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def config_root() -> Path:
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        return base / "HitCounter"
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / "HitCounter"
    return Path.home() / ".config" / "hitcounter"


def config_path() -> Path:
    override = os.environ.get("HITCOUNTER_CONFIG")
    if override:
        return Path(override).expanduser()
    return config_root() / "config.json"


def _merge(dataclass_type, raw: dict[str, Any]):
    defaults = dataclass_type()  # type: ignore[misc]
    for k, v in (raw or {}).items():
        if hasattr(defaults, k):
            setattr(defaults, k, v)
    return defaults


def _normalize_server(cfg: AppConfig) -> None:
    cfg.server.port = max(1, min(65535, int(cfg.server.port)))


def _normalize_store(cfg: AppConfig) -> None:
    if cfg.store.backend not in ("sqlite", "memory"):
        cfg.store.backend = "sqlite"


def _normalize_counter(cfg: AppConfig) -> None:
    if cfg.counter.write_mode not in ("batched", "inline"):
        cfg.counter.write_mode = "batched"
    cfg.counter.flush_interval_s = float(max(0.05, min(300.0, float(cfg.counter.flush_interval_s))))
    cfg.counter.retry_budget = max(1, int(cfg.counter.retry_budget))
    cfg.counter.max_key_length = max(1, int(cfg.counter.max_key_length))
    if cfg.counter.max_idle_s is not None:
        cfg.counter.max_idle_s = float(max(1.0, float(cfg.counter.max_idle_s)))


def _normalize_render(cfg: AppConfig) -> None:
    cfg.render.default_format = str(cfg.render.default_format).lower()
    if cfg.render.default_format not in ("svg", "webp"):
        cfg.render.default_format = "svg"
    cfg.render.max_length = max(1, min(64, int(cfg.render.max_length)))
    cfg.render.digit_count = max(0, min(cfg.render.max_length, int(cfg.render.digit_count)))
    cfg.render.cache_size = max(0, int(cfg.render.cache_size))


def _migrate(raw: dict[str, Any]) -> dict[str, Any]:
    version = int(raw.get("config_version", 1))
    data = dict(raw)

    if version < 2:
        # v1 was a flat table: listen/port/themes_dir/default_theme/digit_count/
        # default_format/pixelated plus a [sqlite] sub-table.
        server = dict(data.get("server", {}) or {})
        if "listen" in data:
            server.setdefault("host", data.pop("listen"))
        if "port" in data:
            server.setdefault("port", data.pop("port"))
        data["server"] = server

        render = dict(data.get("render", {}) or {})
        for key in ("themes_dir", "default_theme", "digit_count", "default_format", "pixelated"):
            if key in data:
                render.setdefault(key, data.pop(key))
        data["render"] = render

        store = dict(data.get("store", {}) or {})
        sqlite = data.pop("sqlite", None) or {}
        if sqlite:
            store.setdefault("backend", "sqlite")
            store.setdefault("path", sqlite.get("path", "data.db"))
            store.setdefault("table_name", sqlite.get("table_name", "count"))
        data["store"] = store
        data["config_version"] = 2

    return data


def load_config(path: Path | None = None) -> AppConfig:
    path = path or config_path()
    if not path.exists():
        return AppConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return AppConfig()

    data = _migrate(raw)
    cfg = AppConfig(
        config_version=int(data.get("config_version", CONFIG_VERSION)),
        server=_merge(ServerConfig, data.get("server", {})),
        store=_merge(StoreConfig, data.get("store", {})),
        counter=_merge(CounterConfig, data.get("counter", {})),
        render=_merge(RenderConfig, data.get("render", {})),
        logging=_merge(LoggingConfig, data.get("logging", {})),
    )

    _normalize_server(cfg)
    _normalize_store(cfg)
    _normalize_counter(cfg)
    _normalize_render(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    cfg.config_version = CONFIG_VERSION
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True), encoding="utf-8")
    return path
