import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "apps" / "server"))
sys.path.insert(0, str(ROOT / "packages" / "core"))
sys.path.insert(0, str(ROOT / "packages" / "counter"))
sys.path.insert(0, str(ROOT / "packages" / "renderer"))

from fastapi.testclient import TestClient

from hitcounter_app.server import InvalidKey, create_app, validate_key
from hitcounter_core import AppConfig, build_runtime
from hitcounter_counter import MemoryStore, StorageError


class _FlakyStore(MemoryStore):
    def __init__(self):
        super().__init__()
        self.fail = False

    def store(self, key, count):
        if self.fail:
            raise StorageError("disk full")
        super().store(key, count)


def _config(write_mode: str = "inline", retry_budget: int = 5) -> AppConfig:
    cfg = AppConfig()
    cfg.render.themes_dir = None
    cfg.counter.write_mode = write_mode
    cfg.counter.retry_budget = retry_budget
    return cfg


class ValidateKeyTests(unittest.TestCase):
    def test_accepts_common_keys(self):
        for key in ("home", "user@github", "repo.name:main", "a-b_c"):
            self.assertEqual(validate_key(key, 64), key)

    def test_rejects_bad_keys(self):
        for key in ("", "has space", "x" * 65, "slash/inside"):
            with self.assertRaises(InvalidKey):
                validate_key(key, 64)


class BadgeServerTests(unittest.TestCase):
    def setUp(self):
        self.store = MemoryStore()
        self.runtime = build_runtime(_config(), store=self.store)
        self.client = TestClient(create_app(runtime=self.runtime))
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)

    def test_badge_counts_up(self):
        first = self.client.get("/home")
        second = self.client.get("/home")
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.headers["content-type"], "image/svg+xml")
        self.assertEqual(first.headers["x-counter-value"], "1")
        self.assertEqual(second.headers["x-counter-value"], "2")
        self.assertIn("no-cache", second.headers["cache-control"])
        self.assertIn("<title>2</title>", second.text)
        self.assertEqual(self.store.load("home"), 2)

    def test_keys_are_independent_and_case_sensitive(self):
        self.client.get("/Home")
        response = self.client.get("/home")
        self.assertEqual(response.headers["x-counter-value"], "1")

    def test_readonly_does_not_increment(self):
        self.client.get("/home")
        response = self.client.get("/home", params={"readonly": "true"})
        self.assertEqual(response.headers["x-counter-value"], "1")
        self.assertEqual(self.client.get("/fresh", params={"readonly": "1"}).headers["x-counter-value"], "0")

    def test_length_pads_digits(self):
        response = self.client.get("/home", params={"length": 4})
        self.assertEqual(response.text.count("<image "), 4)

    def test_negative_length_rejected(self):
        self.assertEqual(self.client.get("/home", params={"length": -1}).status_code, 422)

    def test_webp_format(self):
        response = self.client.get("/home", params={"format": "webp"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["content-type"], "image/webp")
        self.assertEqual(response.content[:4], b"RIFF")

    def test_unknown_theme_and_format_fall_back(self):
        response = self.client.get("/home", params={"theme": "nope", "format": "gif"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["content-type"], "image/svg+xml")
        self.assertEqual(response.headers["x-counter-theme"], "classic")

    def test_invalid_key_rejected(self):
        response = self.client.get("/bad%20key")
        self.assertEqual(response.status_code, 400)
        self.assertIsNone(self.store.load("bad key"))

    def test_status_ok(self):
        response = self.client.get("/status")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["storage"]["write_mode"], "inline")
        self.assertIn("classic", payload["themes"])


class BatchedShutdownTests(unittest.TestCase):
    def test_shutdown_flushes_pending_counts(self):
        store = MemoryStore()
        runtime = build_runtime(_config(write_mode="batched"), store=store)
        with TestClient(create_app(runtime=runtime)) as client:
            for _ in range(3):
                client.get("/page")
        self.assertEqual(store.load("page"), 3)


class StorageFailureTests(unittest.TestCase):
    def test_warning_then_unavailable_then_recovery(self):
        store = _FlakyStore()
        runtime = build_runtime(_config(retry_budget=1), store=store)
        with TestClient(create_app(runtime=runtime)) as client:
            store.fail = True
            warned = client.get("/page")
            self.assertEqual(warned.status_code, 200)
            self.assertEqual(warned.headers["x-counter-value"], "1")
            self.assertIn("disk full", warned.headers["x-counter-warning"])

            refused = client.get("/page")
            self.assertEqual(refused.status_code, 503)
            self.assertEqual(refused.json()["error"], "storage_unavailable")

            status = client.get("/status")
            self.assertEqual(status.status_code, 503)
            self.assertEqual(status.json()["status"], "unavailable")

            store.fail = False
            recovered = client.get("/page")
            self.assertEqual(recovered.status_code, 200)
            self.assertEqual(recovered.headers["x-counter-value"], "2")
            self.assertNotIn("x-counter-warning", recovered.headers)
        self.assertEqual(store.load("page"), 2)


class AppFromConfigTests(unittest.TestCase):
    def test_builds_sqlite_runtime_from_config(self):
        with tempfile.TemporaryDirectory() as tmp, mock.patch.dict(os.environ, {"HITCOUNTER_LOG_DIR": tmp}):
            cfg = _config()
            cfg.store.path = "counts.db"
            with TestClient(create_app(config=cfg, base_dir=Path(tmp))) as client:
                self.assertEqual(client.get("/home").headers["x-counter-value"], "1")
            self.assertTrue((Path(tmp) / "counts.db").exists())


if __name__ == "__main__":
    unittest.main()
