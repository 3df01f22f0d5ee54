"""Core service wiring: settings, logging, runtime assembly, and diagnostics."""

from .config import AppConfig, config_path, load_config, save_config
from .diagnostics import build_doctor_payload, process_stats, redact, storage_status
from .runtime import Runtime, build_registry_from_config, build_renderer, build_runtime, build_store

__all__ = [
    "AppConfig",
    "Runtime",
    "build_doctor_payload",
    "build_registry_from_config",
    "build_renderer",
    "build_runtime",
    "build_store",
    "config_path",
    "load_config",
    "process_stats",
    "redact",
    "save_config",
    "storage_status",
]
