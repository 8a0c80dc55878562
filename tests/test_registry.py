import json
import os
import socket
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest import mock

from jfp.db import PromptStore
from jfp.errors import RegistryFetchError
from jfp.models import Prompt, RegistrySource
from jfp.paths import resolve_paths
from jfp.registry import RegistryLoader, RemoteFetchResult, apply_to_store, is_stale


def _prompts(n, prefix="cached"):
    return [Prompt(id=f"{prefix}-{i}", title=f"{prefix} {i}", content=f"body {i}") for i in range(n)]


def _free_port():
    sock = socket.socket()
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class IsStaleTests(unittest.TestCase):
    def test_boundary_is_not_stale(self):
        now = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

        self.assertFalse(is_stale((now - timedelta(seconds=3600)).isoformat(), 3600, now=now))
        self.assertTrue(is_stale((now - timedelta(seconds=3601)).isoformat(), 3600, now=now))
        self.assertFalse(is_stale((now - timedelta(seconds=10)).isoformat(), 3600, now=now))

    def test_zulu_suffix_and_garbage(self):
        now = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

        self.assertFalse(is_stale("2024-06-01T11:30:00Z", 3600, now=now))
        self.assertTrue(is_stale("yesterday", 3600, now=now))
        self.assertTrue(is_stale(None, 3600, now=now))


class RegistryLoaderTests(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.cache_path = str(self.root / "registry.json")
        self.meta_path = str(self.root / "registry.meta.json")
        self.loader = RegistryLoader(self.cache_path, self.meta_path, ttl=3600, timeout_ms=500)

    def tearDown(self):
        self.temp_dir.cleanup()

    def _write_cache(self, prompts, fetched_at=None, etag="etag-1", with_meta=True):
        Path(self.cache_path).write_text(json.dumps([p.to_dict() for p in prompts]), encoding="utf-8")
        if with_meta:
            meta = {
                "version": "v1",
                "etag": etag,
                "fetched_at": fetched_at or datetime.now(timezone.utc).isoformat(),
                "prompt_count": len(prompts),
            }
            Path(self.meta_path).write_text(json.dumps(meta), encoding="utf-8")

    def _meta(self):
        return json.loads(Path(self.meta_path).read_text(encoding="utf-8"))

    def test_load_without_cache_returns_bundled(self):
        result = self.loader.load()

        self.assertEqual(result.source, RegistrySource.BUNDLED)
        self.assertFalse(result.stale)
        self.assertGreater(len(result.prompts), 0)

    def test_load_fresh_cache(self):
        self._write_cache(_prompts(3))

        result = self.loader.load()

        self.assertEqual(result.source, RegistrySource.CACHE)
        self.assertFalse(result.stale)
        self.assertEqual([p.id for p in result.prompts], ["cached-0", "cached-1", "cached-2"])

    def test_load_old_cache_is_stale_but_returned(self):
        old = (datetime.now(timezone.utc) - timedelta(hours=2)).isoformat()
        self._write_cache(_prompts(2), fetched_at=old)

        result = self.loader.load()

        self.assertEqual(result.source, RegistrySource.CACHE)
        self.assertTrue(result.stale)
        self.assertEqual(len(result.prompts), 2)

    def test_missing_or_broken_sidecar_means_stale(self):
        self._write_cache(_prompts(1), with_meta=False)
        self.assertTrue(self.loader.load().stale)

        Path(self.meta_path).write_text("{broken", encoding="utf-8")
        self.assertTrue(self.loader.load().stale)

    def test_corrupt_cache_falls_back_to_bundled(self):
        Path(self.cache_path).write_text("not json", encoding="utf-8")

        with self.assertLogs("jfp", level="WARNING"):
            result = self.loader.load()

        self.assertEqual(result.source, RegistrySource.BUNDLED)

    def test_load_never_fetches(self):
        with mock.patch.object(RegistryLoader, "_fetch_remote") as fetch:
            self.loader.load()
        fetch.assert_not_called()

    def test_refresh_failure_with_cache_returns_stale_cache(self):
        self._write_cache(_prompts(3))

        with mock.patch.object(RegistryLoader, "_fetch_remote", side_effect=RegistryFetchError("offline")):
            result = self.loader.refresh()

        self.assertEqual(result.source, RegistrySource.CACHE)
        self.assertTrue(result.stale)
        self.assertEqual(len(result.prompts), 3)
        self.assertIsInstance(result.error, RegistryFetchError)

    def test_refresh_without_network_degrades_to_cache(self):
        self._write_cache(_prompts(3))
        self.loader.url = f"http://127.0.0.1:{_free_port()}/api/prompts"

        result = self.loader.refresh()

        self.assertEqual(result.source, RegistrySource.CACHE)
        self.assertTrue(result.stale)
        self.assertEqual(len(result.prompts), 3)
        self.assertIsInstance(result.error, RegistryFetchError)

    def test_refresh_failure_without_cache_returns_bundled_with_error(self):
        with mock.patch.object(RegistryLoader, "_fetch_remote", side_effect=RegistryFetchError("dns")):
            result = self.loader.refresh()

        self.assertEqual(result.source, RegistrySource.BUNDLED)
        self.assertFalse(result.stale)
        self.assertTrue(result.prompts)
        self.assertIn("dns", str(result.error))

    def test_refresh_success_writes_cache_and_sidecar(self):
        fetched = RemoteFetchResult(not_modified=False, prompts=_prompts(2, "remote"), version="v9", etag='"abc"')

        with mock.patch.object(RegistryLoader, "_fetch_remote", return_value=fetched) as fetch:
            result = self.loader.refresh()

        fetch.assert_called_once_with(None)
        self.assertEqual(result.source, RegistrySource.REMOTE)
        self.assertFalse(result.stale)
        meta = self._meta()
        self.assertEqual(meta["etag"], '"abc"')
        self.assertEqual(meta["version"], "v9")
        self.assertEqual(meta["prompt_count"], 2)
        again = self.loader.load()
        self.assertEqual(again.source, RegistrySource.CACHE)
        self.assertFalse(again.stale)
        self.assertEqual([p.id for p in again.prompts], ["remote-0", "remote-1"])

    def test_not_modified_touches_sidecar_only(self):
        old = "2020-01-01T00:00:00+00:00"
        self._write_cache(_prompts(3), fetched_at=old, etag="etag-1")
        payload_before = Path(self.cache_path).read_text(encoding="utf-8")
        not_modified = RemoteFetchResult(not_modified=True, prompts=[], version=None, etag="etag-1")

        with mock.patch.object(RegistryLoader, "_fetch_remote", return_value=not_modified) as fetch:
            result = self.loader.refresh()

        fetch.assert_called_once_with("etag-1")
        self.assertEqual(result.source, RegistrySource.CACHE)
        self.assertFalse(result.stale)
        self.assertEqual(len(result.prompts), 3)
        meta = self._meta()
        self.assertGreater(datetime.fromisoformat(meta["fetched_at"]), datetime.fromisoformat(old))
        self.assertEqual(meta["etag"], "etag-1")
        self.assertEqual(meta["version"], "v1")
        self.assertEqual(Path(self.cache_path).read_text(encoding="utf-8"), payload_before)

    def test_not_modified_without_cache_loads_offline(self):
        not_modified = RemoteFetchResult(not_modified=True, prompts=[], version=None, etag=None)

        with mock.patch.object(RegistryLoader, "_fetch_remote", return_value=not_modified):
            result = self.loader.refresh()

        self.assertEqual(result.source, RegistrySource.BUNDLED)
        self.assertFalse(result.stale)

    def test_cache_write_failure_still_returns_remote_data(self):
        fetched = RemoteFetchResult(not_modified=False, prompts=_prompts(1, "remote"), version=None, etag=None)

        with mock.patch.object(RegistryLoader, "_fetch_remote", return_value=fetched), mock.patch(
            "jfp.registry.atomic_write", side_effect=OSError("disk full")
        ):
            result = self.loader.refresh()

        self.assertEqual(result.source, RegistrySource.REMOTE)
        self.assertEqual([p.id for p in result.prompts], ["remote-0"])
        self.assertIn("disk full", str(result.cache_error))

    def test_cache_status(self):
        self.assertFalse(self.loader.cache_status()["exists"])
        self._write_cache(_prompts(2), etag="e")

        status = self.loader.cache_status()

        self.assertTrue(status["exists"])
        self.assertEqual(status["etag"], "e")
        self.assertEqual(status["prompt_count"], 2)
        self.assertFalse(status["stale"])

    def test_from_config_reads_registry_settings(self):
        paths = resolve_paths(home=self.temp_dir.name)
        config = {"registry": {"cache_ttl": 60, "timeout_ms": 250, "url": "http://example.invalid/p"}}

        loader = RegistryLoader.from_config(config, paths)

        self.assertEqual(loader.ttl, 60)
        self.assertEqual(loader.timeout_ms, 250)
        self.assertEqual(loader.url, "http://example.invalid/p")
        self.assertEqual(loader.cache_path, paths.registry_cache_path)


class ApplyToStoreTests(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.store = PromptStore.open_at(os.path.join(self.temp_dir.name, "jfp.db"))
        self.loader = RegistryLoader(
            os.path.join(self.temp_dir.name, "registry.json"),
            os.path.join(self.temp_dir.name, "registry.meta.json"),
        )

    def test_bundled_result_does_not_record_sync(self):
        count = apply_to_store(self.store, self.loader.load())

        self.assertEqual(count, self.store.count())
        self.assertIsNone(self.store.get_meta("last_sync"))
        self.assertEqual(self.store.get_meta("registry_source"), "bundled")

    def test_remote_result_records_sync(self):
        fetched = RemoteFetchResult(not_modified=False, prompts=_prompts(2, "remote"), version=None, etag=None)
        with mock.patch.object(RegistryLoader, "_fetch_remote", return_value=fetched):
            result = self.loader.refresh()

        apply_to_store(self.store, result)

        self.assertIsNotNone(self.store.get_meta("last_sync"))
        self.assertEqual(self.store.get_meta("registry_source"), "remote")
        self.assertIsNotNone(self.store.get("remote-1"))


if __name__ == "__main__":
    unittest.main()
