"""Counting core: persistent stores, the counter cache, and the counter service."""

from .cache import CounterCache, EntryState
from .errors import CounterError, StorageError, StorageUnavailable
from .flusher import Flusher
from .models import U64_MAX, CacheStats, CounterRecord, CountResult, FlushReport
from .service import CounterService, StorageHealth, WriteMode
from .store import CounterStore, MemoryStore, SqliteStore, open_store

__all__ = [
    "CacheStats",
    "CountResult",
    "CounterCache",
    "CounterError",
    "CounterRecord",
    "CounterService",
    "CounterStore",
    "EntryState",
    "FlushReport",
    "Flusher",
    "MemoryStore",
    "SqliteStore",
    "StorageError",
    "StorageHealth",
    "StorageUnavailable",
    "U64_MAX",
    "WriteMode",
    "open_store",
]
