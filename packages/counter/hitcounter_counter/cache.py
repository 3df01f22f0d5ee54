"""In-memory counter cache with per-key locking and lazy fill from the store."""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Callable

from .errors import StorageError, StorageUnavailable
from .models import U64_MAX, CacheStats, CounterRecord, FlushReport
from .store import CounterStore

_logger = logging.getLogger("hitcounter.cache")


class EntryState(str, Enum):
    LOADING = "loading"
    RESIDENT = "resident"
    DETACHED = "detached"


class _CacheEntry:
    __slots__ = ("key", "count", "persisted", "state", "last_access", "lock", "flush_lock", "ready")

    def __init__(self, key: str, now: float) -> None:
        self.key = key
        self.count = 0
        self.persisted = 0
        self.state = EntryState.LOADING
        self.last_access = now
        self.lock = threading.Lock()
        self.flush_lock = threading.Lock()
        self.ready = threading.Event()

    @property
    def dirty(self) -> bool:
        return self.count > self.persisted


class CounterCache:
    """Key -> count map that is authoritative while the process runs.

    The key-set lock is only held to insert or remove an entry. Counting
    happens under the entry's own lock and store I/O happens under no lock
    shared with another key. An unseen key is inserted in the loading state
    by exactly one caller, who reads the store and then publishes the entry;
    everyone else racing on that key waits for the publication.
    """

    def __init__(self, store: CounterStore, clock: Callable[[], float] = time.monotonic) -> None:
        self._store = store
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._keys_lock = threading.Lock()

    def __len__(self) -> int:
        with self._keys_lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._keys_lock:
            return key in self._entries

    def _detach(self, entry: _CacheEntry) -> None:
        with self._keys_lock:
            if self._entries.get(entry.key) is entry:
                del self._entries[entry.key]
        entry.state = EntryState.DETACHED
        entry.ready.set()

    def _fill(self, entry: _CacheEntry) -> _CacheEntry:
        try:
            stored = self._store.load(entry.key)
        except StorageError as exc:
            self._detach(entry)
            _logger.warning(
                "cache fill failed key=%s: %s", entry.key, exc, extra={"event": "cache_fill_failed", "key": entry.key}
            )
            raise StorageUnavailable(f"could not load {entry.key!r}: {exc}") from exc
        except BaseException:
            self._detach(entry)
            raise

        with entry.lock:
            entry.count = entry.persisted = stored or 0
            entry.last_access = self._clock()
            entry.state = EntryState.RESIDENT
        entry.ready.set()
        return entry

    def _resident(self, key: str) -> _CacheEntry:
        while True:
            with self._keys_lock:
                entry = self._entries.get(key)
                owner = entry is None
                if owner:
                    entry = _CacheEntry(key, self._clock())
                    self._entries[key] = entry

            if owner:
                return self._fill(entry)

            entry.ready.wait()
            if entry.state is EntryState.RESIDENT:
                return entry
            # Loader failed or the entry was evicted; race for a fresh one.

    def increment(self, key: str) -> int:
        while True:
            entry = self._resident(key)
            with entry.lock:
                if entry.state is not EntryState.RESIDENT:
                    continue
                if entry.count < U64_MAX:
                    entry.count += 1
                entry.last_access = self._clock()
                return entry.count

    def peek(self, key: str) -> int:
        while True:
            entry = self._resident(key)
            with entry.lock:
                if entry.state is not EntryState.RESIDENT:
                    continue
                entry.last_access = self._clock()
                return entry.count

    def _flush_entry(self, entry: _CacheEntry) -> bool:
        # flush_lock orders store writes per key; snapshots only ever grow.
        with entry.flush_lock:
            with entry.lock:
                if entry.state is not EntryState.RESIDENT:
                    return False
                snapshot = entry.count
                if snapshot <= entry.persisted:
                    return False

            self._store.store(entry.key, snapshot)

            with entry.lock:
                if snapshot > entry.persisted:
                    entry.persisted = snapshot
            return True

    def flush_key(self, key: str) -> bool:
        with self._keys_lock:
            entry = self._entries.get(key)
        if entry is None:
            return False
        return self._flush_entry(entry)

    def flush(self) -> FlushReport:
        with self._keys_lock:
            entries = list(self._entries.values())

        report = FlushReport()
        for entry in entries:
            try:
                if self._flush_entry(entry):
                    report.flushed += 1
                else:
                    report.skipped += 1
            except Exception as exc:
                report.failed += 1
                report.errors.append(f"{entry.key}: {exc}")
        return report

    def dirty_keys(self) -> list[str]:
        with self._keys_lock:
            entries = list(self._entries.values())
        out = []
        for entry in entries:
            with entry.lock:
                if entry.state is EntryState.RESIDENT and entry.dirty:
                    out.append(entry.key)
        return sorted(out)

    def evict_idle(self, max_idle_s: float) -> int:
        """Drop clean entries idle for at least ``max_idle_s`` seconds."""
        now = self._clock()
        evicted = 0
        with self._keys_lock:
            for key, entry in list(self._entries.items()):
                if entry.state is not EntryState.RESIDENT:
                    continue
                if not entry.lock.acquire(blocking=False):
                    continue
                try:
                    if entry.dirty or now - entry.last_access < max_idle_s:
                        continue
                    entry.state = EntryState.DETACHED
                    del self._entries[key]
                    evicted += 1
                finally:
                    entry.lock.release()
        return evicted

    def records(self) -> list[CounterRecord]:
        with self._keys_lock:
            entries = list(self._entries.values())
        out = []
        for entry in entries:
            with entry.lock:
                if entry.state is EntryState.RESIDENT:
                    out.append(CounterRecord(key=entry.key, count=entry.count))
        return sorted(out, key=lambda r: r.key)

    def stats(self) -> CacheStats:
        with self._keys_lock:
            entries = list(self._entries.values())
        resident = loading = dirty = 0
        for entry in entries:
            if entry.state is EntryState.LOADING:
                loading += 1
            elif entry.state is EntryState.RESIDENT:
                resident += 1
                if entry.dirty:
                    dirty += 1
        return CacheStats(resident=resident, loading=loading, dirty=dirty)
