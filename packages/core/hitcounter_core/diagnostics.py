"""Diagnostics payload for the ``doctor`` command and the status endpoint."""

from __future__ import annotations

import platform
import re
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

import psutil

from hitcounter_counter import StorageError

from .config import AppConfig, config_path
from .logging_setup import log_dir
from .runtime import Runtime


_SECRET_RE = re.compile(r"(token|secret|password|apikey|api_key|auth)", re.IGNORECASE)


def redact(value: Any) -> Any:
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if _SECRET_RE.search(k):
                out[k] = "***REDACTED***"
            else:
                out[k] = redact(v)
        return out
    if isinstance(value, list):
        return [redact(v) for v in value]
    return value


def process_stats() -> dict[str, Any]:
    proc = psutil.Process()
    with proc.oneshot():
        return {
            "pid": proc.pid,
            "rss_mb": float(proc.memory_info().rss) / (1024 * 1024),
            "cpu_percent": float(proc.cpu_percent(interval=None)),
            "threads": proc.num_threads(),
        }


def storage_status(runtime: Runtime) -> dict[str, Any]:
    health = runtime.service.health
    return {
        "write_mode": runtime.service.write_mode.value,
        "degraded": health.degraded,
        "unavailable": health.unavailable,
        "consecutive_failures": health.consecutive_failures,
        "retry_budget": health.retry_budget,
        "last_error": health.last_error,
        "last_success_utc": health.last_success_utc,
    }


def build_doctor_payload(cfg: AppConfig, runtime: Runtime | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "ts_utc": datetime.now(timezone.utc).isoformat(),
        "platform": platform.platform(),
        "python": platform.python_version(),
        "config_path": str(config_path()),
        "log_dir": str(log_dir()),
        "config": redact(asdict(cfg)),
        "process": process_stats(),
    }
    if runtime is None:
        return payload

    store_info: dict[str, Any] = {"backend": cfg.store.backend, "records": None}
    count_records = getattr(runtime.store, "count_records", None)
    if callable(count_records):
        try:
            store_info["records"] = count_records()
        except StorageError as exc:
            store_info["error"] = str(exc)
    payload["store"] = store_info
    payload["storage"] = storage_status(runtime)
    payload["cache"] = asdict(runtime.service.stats())
    payload["themes"] = runtime.registry.names()
    payload["formats"] = runtime.renderer.formats()
    payload["recent_events"] = redact(runtime.service.recent_events(limit=50))
    return payload
