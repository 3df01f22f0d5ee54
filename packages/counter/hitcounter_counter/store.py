"""Durable key -> count stores backing the counter cache."""

from __future__ import annotations

import logging
import re
import sqlite3
import threading
from pathlib import Path
from typing import Protocol

from .errors import StorageError
from .models import U64_MAX, CounterRecord

_logger = logging.getLogger("hitcounter.store")

_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_I64_SPAN = 2**64


class CounterStore(Protocol):
    def load(self, key: str) -> int | None: ...

    def store(self, key: str, count: int) -> None: ...

    def close(self) -> None: ...


def _check_count(count: int) -> int:
    count = int(count)
    if count < 0 or count > U64_MAX:
        raise ValueError(f"count out of u64 range: {count}")
    return count


def _to_sql(count: int) -> int:
    # SQLite integers are signed 64-bit; the upper half of u64 wraps negative.
    return count - _I64_SPAN if count > 2**63 - 1 else count


def _from_sql(value: int) -> int:
    return value + _I64_SPAN if value < 0 else value


class MemoryStore:
    """Dict-backed store with the same never-regress semantics as the SQLite store."""

    def __init__(self, initial: dict[str, int] | None = None) -> None:
        self._data: dict[str, int] = dict(initial or {})
        self._lock = threading.Lock()

    def load(self, key: str) -> int | None:
        with self._lock:
            return self._data.get(key)

    def store(self, key: str, count: int) -> None:
        count = _check_count(count)
        with self._lock:
            if count > self._data.get(key, -1):
                self._data[key] = count

    def records(self) -> list[CounterRecord]:
        with self._lock:
            return [CounterRecord(key=k, count=v) for k, v in sorted(self._data.items())]

    def count_records(self) -> int:
        with self._lock:
            return len(self._data)

    def close(self) -> None:
        return None


class SqliteStore:
    """One row per key in a single SQLite table.

    Writes use an upsert that keeps the larger of the stored and incoming
    value, so repeating a write is harmless and a late stale write can never
    move a key backwards.

    Every thread gets its own connection and no Python lock is held around
    statements, so a write stuck on the database lock only stalls the thread
    that issued it. The database runs in WAL mode, where readers never wait
    for a writer.
    """

    def __init__(self, path: str | Path, table_name: str = "count", busy_timeout_s: float = 5.0) -> None:
        if not _TABLE_RE.match(table_name):
            raise ValueError(f"Invalid table name: {table_name!r}")
        self.path = Path(path)
        self.table_name = table_name
        self.busy_timeout_s = max(0.0, float(busy_timeout_s))
        # Guards the connection map only; never held while a statement runs.
        self._conns_lock = threading.Lock()
        self._conns: dict[int, sqlite3.Connection] = {}

    def _connection(self) -> sqlite3.Connection:
        ident = threading.get_ident()
        with self._conns_lock:
            conn = self._conns.get(ident)
        if conn is not None:
            return conn

        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            str(self.path),
            timeout=self.busy_timeout_s,
            check_same_thread=False,
            isolation_level=None,
        )
        with self._conns_lock:
            self._conns[ident] = conn
        return conn

    def connections(self) -> int:
        with self._conns_lock:
            return len(self._conns)

    def init(self) -> None:
        sql = (
            f"CREATE TABLE IF NOT EXISTS {self.table_name} ("
            " key TEXT NOT NULL PRIMARY KEY,"
            " value INTEGER NOT NULL"
            ")"
        )
        try:
            conn = self._connection()
            # journal_mode is persistent in the database file.
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(sql)
        except sqlite3.Error as exc:
            raise StorageError(f"failed to initialise {self.path}: {exc}") from exc
        _logger.info("sqlite store ready path=%s table=%s", self.path, self.table_name, extra={"event": "store_ready"})

    def load(self, key: str) -> int | None:
        sql = f"SELECT value FROM {self.table_name} WHERE key = ?"
        try:
            row = self._connection().execute(sql, (key,)).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"load failed for {key!r}: {exc}") from exc
        if row is None:
            return None
        return _from_sql(int(row[0]))

    def store(self, key: str, count: int) -> None:
        value = _to_sql(_check_count(count))
        # Compare in the unsigned domain so wrapped values still order correctly.
        sql = (
            f"INSERT INTO {self.table_name} (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value "
            f"WHERE (CASE WHEN excluded.value < 0 THEN 1 ELSE 0 END, excluded.value) "
            f"> (CASE WHEN {self.table_name}.value < 0 THEN 1 ELSE 0 END, {self.table_name}.value)"
        )
        try:
            self._connection().execute(sql, (key, value))
        except sqlite3.Error as exc:
            raise StorageError(f"store failed for {key!r}: {exc}") from exc

    def records(self) -> list[CounterRecord]:
        sql = f"SELECT key, value FROM {self.table_name} ORDER BY key"
        try:
            rows = self._connection().execute(sql).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"scan failed: {exc}") from exc
        return [CounterRecord(key=str(k), count=_from_sql(int(v))) for k, v in rows]

    def count_records(self) -> int:
        sql = f"SELECT COUNT(*) FROM {self.table_name}"
        try:
            return int(self._connection().execute(sql).fetchone()[0])
        except sqlite3.Error as exc:
            raise StorageError(f"count failed: {exc}") from exc

    def close(self) -> None:
        with self._conns_lock:
            conns = list(self._conns.values())
            self._conns.clear()
        for conn in conns:
            conn.close()


def open_store(backend: str, path: str | Path = "data.db", table_name: str = "count") -> CounterStore:
    if backend == "memory":
        return MemoryStore()
    if backend != "sqlite":
        raise ValueError(f"Unknown store backend: {backend}")
    store = SqliteStore(path, table_name=table_name)
    store.init()
    return store
