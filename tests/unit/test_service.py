import sqlite3
import sys
import tempfile
import threading
import time
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "counter"))

from hitcounter_counter import (
    CounterService,
    MemoryStore,
    SqliteStore,
    StorageError,
    StorageUnavailable,
    WriteMode,
)


class _FlakyStore(MemoryStore):
    def __init__(self):
        super().__init__()
        self.fail = False

    def store(self, key, count):
        if self.fail:
            raise StorageError("disk I/O error")
        super().store(key, count)


class _BlockingStore(MemoryStore):
    def __init__(self, block_key: str):
        super().__init__()
        self.block_key = block_key
        self.entered = threading.Event()
        self.release = threading.Event()

    def store(self, key, count):
        if key == self.block_key:
            self.entered.set()
            self.release.wait(5)
        super().store(key, count)


class _StuckKeyStore(_FlakyStore):
    """Fails writes while ``fail`` is set; once held, writes for ``key`` wait for ``release``."""

    def __init__(self, key: str):
        super().__init__()
        self.key = key
        self.holding = False
        self.entered = threading.Event()
        self.release = threading.Event()

    def hold(self) -> None:
        self.holding = True

    def store(self, key, count):
        if self.holding and key == self.key:
            self.entered.set()
            self.release.wait(5)
        super().store(key, count)


class CounterServiceTests(unittest.TestCase):
    def test_increment_and_peek(self):
        service = CounterService(MemoryStore())
        self.assertEqual(service.peek("page"), 0)
        self.assertEqual([service.increment_and_get("page") for _ in range(3)], [1, 2, 3])
        self.assertEqual(service.peek("page"), 3)

    def test_hit_read_only(self):
        service = CounterService(MemoryStore())
        service.hit("page")
        result = service.hit("page", read_only=True)
        self.assertEqual(result.count, 1)
        self.assertIsNone(result.storage_warning)

    def test_inline_writes_through(self):
        store = MemoryStore()
        service = CounterService(store, write_mode=WriteMode.INLINE)
        service.increment_and_get("page")
        service.increment_and_get("page")
        self.assertEqual(store.load("page"), 2)

    def test_batched_persists_on_flush_and_close(self):
        store = MemoryStore()
        service = CounterService(store, write_mode="batched")
        service.increment_and_get("page")
        self.assertIsNone(store.load("page"))
        service.flush()
        self.assertEqual(store.load("page"), 1)
        service.increment_and_get("page")
        service.close()
        self.assertEqual(store.load("page"), 2)

    def test_background_flusher_persists(self):
        store = MemoryStore()
        with CounterService(store, flush_interval_s=0.05) as service:
            service.increment_and_get("page")
            for _ in range(100):
                if store.load("page") == 1:
                    break
                time.sleep(0.02)
        self.assertEqual(store.load("page"), 1)

    def test_restart_sees_flushed_value(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "counts.db"
            store = SqliteStore(path)
            store.init()
            first = CounterService(store)
            for _ in range(5):
                first.increment_and_get("page")
            first.close()
            store.close()

            reopened = SqliteStore(path)
            reopened.init()
            try:
                second = CounterService(reopened)
                self.assertGreaterEqual(second.peek("page"), 5)
                self.assertEqual(second.increment_and_get("page"), 6)
            finally:
                reopened.close()

    def test_inline_failure_warns_then_becomes_unavailable(self):
        store = _FlakyStore()
        service = CounterService(store, write_mode="inline", retry_budget=3)
        store.fail = True

        results = [service.hit("page") for _ in range(3)]
        self.assertEqual([r.count for r in results], [1, 2, 3])
        self.assertTrue(all(r.storage_warning for r in results))
        self.assertTrue(service.health.unavailable)

        with self.assertRaises(StorageUnavailable):
            service.increment_and_get("page")
        with self.assertRaises(StorageUnavailable):
            service.peek("page")
        self.assertEqual(service.cache.peek("page"), 3)

        store.fail = False
        self.assertEqual(service.increment_and_get("page"), 4)
        self.assertFalse(service.health.degraded)
        self.assertEqual(store.load("page"), 4)

    def test_write_failure_log_carries_key(self):
        store = _FlakyStore()
        service = CounterService(store, write_mode="inline")
        store.fail = True
        with self.assertLogs("hitcounter.service", level="WARNING") as logs:
            service.hit("page")
        record = logs.records[0]
        self.assertEqual(record.event, "storage_write_failed")
        self.assertEqual(record.key, "page")
        self.assertEqual(record.write_mode, "inline")
        self.assertEqual(record.consecutive_failures, 1)

    def test_inline_flusher_retries_failed_writes(self):
        store = _FlakyStore()
        with CounterService(store, write_mode="inline", flush_interval_s=0.05) as service:
            store.fail = True
            self.assertIsNotNone(service.hit("page").storage_warning)
            store.fail = False
            for _ in range(100):
                if store.load("page") == 1 and not service.health.degraded:
                    break
                time.sleep(0.02)
            self.assertEqual(store.load("page"), 1)
            self.assertFalse(service.health.degraded)

    def test_batched_failure_budget(self):
        store = _FlakyStore()
        service = CounterService(store, write_mode="batched", retry_budget=2)
        store.fail = True

        self.assertIsNone(service.hit("page").storage_warning)
        self.assertFalse(service.flush().ok)
        self.assertIsNotNone(service.hit("page").storage_warning)
        service.flush()
        with self.assertRaises(StorageUnavailable) as ctx:
            service.hit("page")
        self.assertEqual(ctx.exception.consecutive_failures, 2)

        store.fail = False
        self.assertTrue(service.flush().ok)
        self.assertEqual(store.load("page"), 2)
        self.assertEqual(service.increment_and_get("page"), 3)

        events = [e["event"] for e in service.recent_events()]
        self.assertIn("storage_write_failed", events)
        self.assertIn("storage_recovered", events)

    def test_blocked_write_does_not_block_other_keys(self):
        store = _BlockingStore(block_key="A")
        service = CounterService(store, write_mode="inline")

        a_thread = threading.Thread(target=service.increment_and_get, args=("A",))
        a_thread.start()
        self.assertTrue(store.entered.wait(2))

        b_result: list[int] = []
        b_thread = threading.Thread(target=lambda: b_result.append(service.increment_and_get("B")))
        b_thread.start()
        b_thread.join(2)
        try:
            self.assertFalse(b_thread.is_alive())
            self.assertEqual(b_result, [1])
            self.assertEqual(service.peek("A"), 1)
        finally:
            store.release.set()
            a_thread.join(5)
        self.assertEqual(store.load("A"), 1)

    def test_blocked_flush_does_not_block_increments(self):
        store = _BlockingStore(block_key="A")
        service = CounterService(store, write_mode="batched")
        service.increment_and_get("A")

        flush_thread = threading.Thread(target=service.flush)
        flush_thread.start()
        self.assertTrue(store.entered.wait(2))
        try:
            self.assertEqual(service.increment_and_get("B"), 1)
            self.assertEqual(service.increment_and_get("A"), 2)
        finally:
            store.release.set()
            flush_thread.join(5)
        service.flush()
        self.assertEqual(store.load("A"), 2)

    def test_unavailable_inline_retries_only_own_key(self):
        store = _StuckKeyStore("A")
        service = CounterService(store, write_mode="inline", retry_budget=2)
        store.fail = True
        service.hit("A")
        service.hit("B")
        self.assertTrue(service.health.unavailable)

        store.fail = False
        store.hold()
        a_result: list[int] = []
        a_thread = threading.Thread(target=lambda: a_result.append(service.increment_and_get("A")))
        a_thread.start()
        self.assertTrue(store.entered.wait(2))
        try:
            started = time.monotonic()
            result = service.hit("B")
            self.assertLess(time.monotonic() - started, 1.0)
            self.assertEqual(result.count, 2)
            self.assertIsNone(result.storage_warning)
            self.assertEqual(store.load("B"), 2)
        finally:
            store.release.set()
            a_thread.join(5)
        self.assertEqual(a_result, [2])
        self.assertEqual(store.load("A"), 2)

    def test_sqlite_write_waiting_on_lock_does_not_block_other_keys(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "counts.db"
            store = SqliteStore(path, busy_timeout_s=3.0)
            store.init()
            service = CounterService(store, write_mode="inline")

            holder = sqlite3.connect(str(path), isolation_level=None)
            holder.execute("BEGIN IMMEDIATE")
            a_thread = threading.Thread(target=service.increment_and_get, args=("A",))
            try:
                a_thread.start()
                time.sleep(0.2)

                started = time.monotonic()
                self.assertEqual(service.peek("B"), 0)
                self.assertLess(time.monotonic() - started, 1.0)
                self.assertTrue(a_thread.is_alive())
            finally:
                holder.execute("ROLLBACK")
                holder.close()
                a_thread.join(5)

            try:
                self.assertEqual(store.load("A"), 1)
                self.assertFalse(service.health.degraded)
            finally:
                store.close()


if __name__ == "__main__":
    unittest.main()
