"""Counter service: counting semantics, write-back policy, and storage health."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from .cache import CounterCache
from .errors import StorageUnavailable
from .flusher import Flusher
from .models import CacheStats, CountResult, FlushReport
from .store import CounterStore

_logger = logging.getLogger("hitcounter.service")


class WriteMode(str, Enum):
    BATCHED = "batched"
    INLINE = "inline"


@dataclass
class StorageHealth:
    retry_budget: int = 5
    consecutive_failures: int = 0
    total_failures: int = 0
    last_error: str | None = None
    last_success_utc: str | None = None
    last_failure_utc: str | None = None

    @property
    def degraded(self) -> bool:
        return self.consecutive_failures > 0

    @property
    def unavailable(self) -> bool:
        return self.consecutive_failures >= self.retry_budget


class CounterService:
    """Long-lived owner of the counter cache, handed to request handlers.

    In ``batched`` mode a background flusher persists dirty keys every
    ``flush_interval_s`` seconds, so a crash loses at most that window of
    increments per key. In ``inline`` mode each increment writes its key
    before returning and the flusher only picks up keys whose write failed.
    A failed write never fails the increment; it degrades storage health,
    and once ``retry_budget`` consecutive write attempts have failed every
    call raises :class:`StorageUnavailable` until a write succeeds again.
    While unavailable, an inline call retries only its own key, so a stuck
    write for one key never runs on another key's request.
    """

    def __init__(
        self,
        store: CounterStore,
        write_mode: str | WriteMode = WriteMode.BATCHED,
        flush_interval_s: float = 1.0,
        retry_budget: int = 5,
        max_idle_s: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.write_mode = WriteMode(write_mode)
        self.flush_interval_s = float(flush_interval_s)
        self.max_idle_s = max_idle_s
        self._store = store
        self._cache = CounterCache(store, clock=clock)
        self._health = StorageHealth(retry_budget=max(1, int(retry_budget)))
        self._health_lock = threading.Lock()
        self._events: list[dict[str, Any]] = []
        self._events_lock = threading.Lock()
        self._flusher: Flusher | None = None

    @property
    def cache(self) -> CounterCache:
        return self._cache

    @property
    def health(self) -> StorageHealth:
        with self._health_lock:
            return replace(self._health)

    def __enter__(self) -> CounterService:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def start(self) -> None:
        if self._flusher is None:
            self._flusher = Flusher(self._maintain, interval_s=self.flush_interval_s)
            self._flusher.start()
            self._log_event("flusher_started", interval_s=self.flush_interval_s)

    def close(self) -> None:
        if self._flusher is not None:
            self._flusher.stop()
            self._flusher = None
        report = self.flush()
        if not report.ok:
            _logger.error(
                "final flush left %d keys unpersisted", report.failed, extra={"event": "final_flush_failed"}
            )
        self._log_event("closed", flushed=report.flushed, failed=report.failed)

    def recent_events(self, limit: int = 200) -> list[dict[str, Any]]:
        with self._events_lock:
            return list(self._events[-limit:])

    def _log_event(self, event: str, **fields: Any) -> None:
        row = {"ts_utc": datetime.now(timezone.utc).isoformat(), "event": event}
        row.update(fields)
        with self._events_lock:
            self._events.append(row)
            if len(self._events) > 1000:
                self._events = self._events[-1000:]

    def _record_success(self) -> None:
        with self._health_lock:
            recovered = self._health.consecutive_failures > 0
            self._health.consecutive_failures = 0
            self._health.last_error = None
            self._health.last_success_utc = datetime.now(timezone.utc).isoformat()
        if recovered:
            _logger.info("storage writes recovered", extra={"event": "storage_recovered"})
            self._log_event("storage_recovered")

    def _record_failure(self, error: str, key: str | None = None) -> str:
        with self._health_lock:
            self._health.consecutive_failures += 1
            self._health.total_failures += 1
            self._health.last_error = error
            self._health.last_failure_utc = datetime.now(timezone.utc).isoformat()
            failures = self._health.consecutive_failures
            budget = self._health.retry_budget
        _logger.warning(
            "storage write failed (%d/%d): %s",
            failures,
            budget,
            error,
            extra={
                "event": "storage_write_failed",
                "key": key,
                "write_mode": self.write_mode.value,
                "consecutive_failures": failures,
            },
        )
        self._log_event("storage_write_failed", error=error, consecutive_failures=failures)
        return f"count not persisted: {error}"

    def _storage_warning(self) -> str | None:
        with self._health_lock:
            if not self._health.degraded:
                return None
            return f"count not persisted: {self._health.last_error}"

    def _ensure_available(self, key: str) -> None:
        if not self.health.unavailable:
            return
        if self.write_mode is WriteMode.INLINE:
            # Probe with this key only; the flusher retries the rest.
            self._write_through(key)
        health = self.health
        if health.unavailable:
            raise StorageUnavailable(
                f"storage unavailable after {health.consecutive_failures} failed writes: {health.last_error}",
                consecutive_failures=health.consecutive_failures,
            )

    def _write_through(self, key: str) -> str | None:
        try:
            written = self._cache.flush_key(key)
        except Exception as exc:
            return self._record_failure(f"{key}: {exc}", key=key)
        if written:
            self._record_success()
        return self._storage_warning()

    def flush(self) -> FlushReport:
        report = self._cache.flush()
        if report.failed:
            self._record_failure("; ".join(report.errors[:5]))
        elif report.flushed:
            self._record_success()
        return report

    def _maintain(self) -> bool:
        report = self.flush()
        if self.max_idle_s is not None:
            evicted = self._cache.evict_idle(self.max_idle_s)
            if evicted:
                self._log_event("evicted", count=evicted)
        return report.ok

    def hit(self, key: str, read_only: bool = False) -> CountResult:
        self._ensure_available(key)
        if read_only:
            return CountResult(key=key, count=self._cache.peek(key), storage_warning=self._storage_warning())

        count = self._cache.increment(key)
        if self.write_mode is WriteMode.INLINE:
            warning = self._write_through(key)
        else:
            warning = self._storage_warning()
        return CountResult(key=key, count=count, storage_warning=warning)

    def increment_and_get(self, key: str) -> int:
        return self.hit(key).count

    def peek(self, key: str) -> int:
        return self.hit(key, read_only=True).count

    def stats(self) -> CacheStats:
        return self._cache.stats()
