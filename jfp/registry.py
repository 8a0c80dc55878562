"""
Remote registry access with a stale-while-revalidate file cache.

Three sources of prompts, in order of preference: the remote registry, the
cached snapshot (``registry.json`` plus its ``registry.meta.json`` sidecar),
and the bundled set. ``load()`` is offline-only; ``refresh()`` performs one
conditional GET and degrades to cache or bundled on any failure.
"""
import asyncio
import json
import logging
import os
from collections import namedtuple
from datetime import datetime, timezone

import aiohttp

logger = logging.getLogger("jfp")

from .bundled import bundled_prompts
from .config import load_config
from .constants import APP_NAME, DEFAULT_CACHE_TTL, DEFAULT_TIMEOUT_MS, REGISTRY_URL, VERSION
from .errors import CacheIoError, RegistryFetchError
from .models import Prompt, RegistryLoadResult, RegistryMeta, RegistrySource
from .paths import resolve_paths
from .utils import atomic_write, json_dumps, now_iso, parse_iso, run_async_sync

LAST_SYNC_KEY = "last_sync"
SOURCE_KEY = "registry_source"

RemoteFetchResult = namedtuple("RemoteFetchResult", ["not_modified", "prompts", "version", "etag"])


def is_stale(fetched_at, ttl, now=None):
    """True when more than ``ttl`` seconds have passed since ``fetched_at``.

    An unparseable timestamp counts as stale.
    """
    fetched = parse_iso(fetched_at) if isinstance(fetched_at, str) else fetched_at
    if fetched is None:
        return True
    if fetched.tzinfo is None:
        fetched = fetched.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return (now - fetched).total_seconds() > ttl


class RegistryLoader:
    def __init__(
        self,
        cache_path,
        meta_path,
        ttl=DEFAULT_CACHE_TTL,
        timeout_ms=DEFAULT_TIMEOUT_MS,
        url=REGISTRY_URL,
        fallback=bundled_prompts,
    ):
        self.cache_path = cache_path
        self.meta_path = meta_path
        self.ttl = ttl
        self.timeout_ms = timeout_ms
        self.url = url
        self.fallback = fallback

    @classmethod
    def from_config(cls, config=None, paths=None, home=None):
        paths = paths or resolve_paths(home)
        if config is None:
            config = load_config(paths.config_path)
        registry = config.get("registry", {})
        return cls(
            cache_path=paths.registry_cache_path,
            meta_path=paths.registry_meta_path,
            ttl=registry.get("cache_ttl", DEFAULT_CACHE_TTL),
            timeout_ms=registry.get("timeout_ms", DEFAULT_TIMEOUT_MS),
            url=registry.get("url") or REGISTRY_URL,
        )

    # ── offline ──

    def load(self):
        cached = self._load_cache()
        if cached is None:
            return RegistryLoadResult(prompts=self.fallback(), source=RegistrySource.BUNDLED, stale=False)
        meta = self._read_meta()
        stale = True if meta is None else is_stale(meta.fetched_at, self.ttl)
        return RegistryLoadResult(prompts=cached, source=RegistrySource.CACHE, stale=stale)

    def cache_status(self):
        meta = self._read_meta()
        exists = os.path.exists(self.cache_path)
        return {
            "cache_path": self.cache_path,
            "meta_path": self.meta_path,
            "exists": exists,
            "fetched_at": meta.fetched_at if meta else None,
            "etag": meta.etag if meta else None,
            "version": meta.version if meta else None,
            "prompt_count": meta.prompt_count if meta else None,
            "stale": True if meta is None else is_stale(meta.fetched_at, self.ttl),
        }

    def _load_cache(self):
        """Cached prompts, or None when the cache is missing or unreadable."""
        if not os.path.exists(self.cache_path):
            return None
        try:
            with open(self.cache_path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
            if not isinstance(data, list):
                raise ValueError("cache payload is not a JSON array")
            return [Prompt.from_dict(item) for item in data]
        except (OSError, ValueError) as exc:
            logger.warning("ignoring unreadable registry cache %s: %s", self.cache_path, exc)
            return None

    def _read_meta(self):
        try:
            with open(self.meta_path, "r", encoding="utf-8") as fh:
                return RegistryMeta.from_dict(json.load(fh))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.debug("registry metadata %s unreadable: %s", self.meta_path, exc)
            return None

    # ── cache writes ──

    def _write_json(self, path, obj):
        try:
            atomic_write(path, [json_dumps(obj), "\n"])
        except OSError as exc:
            raise CacheIoError(f"Failed to write registry cache file {path}: {exc}") from exc

    def _save_cache(self, fetched):
        self._write_json(self.cache_path, [p.to_dict() for p in fetched.prompts])
        meta = RegistryMeta(
            fetched_at=now_iso(),
            prompt_count=len(fetched.prompts),
            version=fetched.version,
            etag=fetched.etag,
        )
        self._write_json(self.meta_path, meta.to_dict())
        logger.info("cached %d registry prompts (etag=%s)", len(fetched.prompts), fetched.etag)

    def _touch_cache(self, meta, prompt_count):
        """Restart the TTL clock without rewriting the payload."""
        touched = RegistryMeta(
            fetched_at=now_iso(),
            prompt_count=meta.prompt_count if meta else prompt_count,
            version=meta.version if meta else None,
            etag=meta.etag if meta else None,
        )
        self._write_json(self.meta_path, touched.to_dict())

    # ── network ──

    def refresh(self):
        cached = self._load_cache()
        meta = self._read_meta() if cached is not None else None
        etag = meta.etag if meta else None

        try:
            fetched = self._fetch_remote(etag)
        except RegistryFetchError as exc:
            if cached is not None:
                logger.warning("registry refresh failed, using stale cache: %s", exc)
                return RegistryLoadResult(prompts=cached, source=RegistrySource.CACHE, stale=True, error=exc)
            logger.warning("registry refresh failed, using bundled prompts: %s", exc)
            return RegistryLoadResult(
                prompts=self.fallback(), source=RegistrySource.BUNDLED, stale=False, error=exc
            )

        if fetched.not_modified:
            if cached is None:
                logger.info("registry not modified but no cache on disk; loading offline")
                return self.load()
            cache_error = None
            try:
                self._touch_cache(meta, len(cached))
            except CacheIoError as exc:
                logger.warning("%s", exc)
                cache_error = exc
            logger.info("registry not modified; cache of %d prompts is fresh", len(cached))
            return RegistryLoadResult(
                prompts=cached, source=RegistrySource.CACHE, stale=False, cache_error=cache_error
            )

        cache_error = None
        try:
            self._save_cache(fetched)
        except CacheIoError as exc:
            logger.warning("%s", exc)
            cache_error = exc
        logger.info("fetched %d prompts from %s", len(fetched.prompts), self.url)
        return RegistryLoadResult(
            prompts=fetched.prompts, source=RegistrySource.REMOTE, stale=False, cache_error=cache_error
        )

    def _fetch_remote(self, etag=None):
        return run_async_sync(self._fetch_remote_async(etag))

    async def _fetch_remote_async(self, etag=None):
        headers = {"Accept": "application/json", "User-Agent": f"{APP_NAME}/{VERSION}"}
        if etag:
            headers["If-None-Match"] = etag

        timeout = aiohttp.ClientTimeout(total=self.timeout_ms / 1000.0)
        logger.debug("GET %s etag=%r timeout=%dms", self.url, etag, self.timeout_ms)
        try:
            async with aiohttp.ClientSession(timeout=timeout, trust_env=False) as session:
                async with session.get(self.url, headers=headers) as resp:
                    if resp.status == 304:
                        return RemoteFetchResult(not_modified=True, prompts=[], version=None, etag=etag)
                    if not 200 <= resp.status < 300:
                        text = await resp.text(errors="replace")
                        raise RegistryFetchError(
                            f"Registry {self.url} returned {resp.status}: {text[:200] if text.strip() else '(empty body)'}"
                        )
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError as exc:
                        raise RegistryFetchError(f"Registry {self.url} returned invalid JSON: {exc}") from exc
                    new_etag = resp.headers.get("ETag")
        except asyncio.TimeoutError as exc:
            raise RegistryFetchError(f"Registry {self.url} timed out after {self.timeout_ms}ms") from exc
        except aiohttp.ClientError as exc:
            raise RegistryFetchError(f"Failed to reach registry {self.url}: {exc}") from exc

        return self._parse_payload(data, new_etag)

    def _parse_payload(self, data, etag):
        if not isinstance(data, dict) or not isinstance(data.get("prompts"), list):
            raise RegistryFetchError(f"Registry {self.url} payload has no 'prompts' array")
        prompts = []
        for index, item in enumerate(data["prompts"]):
            try:
                prompts.append(Prompt.from_dict(item))
            except ValueError as exc:
                raise RegistryFetchError(f"Registry prompt #{index} is invalid: {exc}") from exc
        version = data.get("version")
        return RemoteFetchResult(
            not_modified=False,
            prompts=prompts,
            version=None if version is None else str(version),
            etag=etag,
        )


def apply_to_store(store, result):
    """Write a load/refresh result into the store and record where it came from."""
    count = store.bulk_upsert(result.prompts)
    if result.source in (RegistrySource.REMOTE, RegistrySource.CACHE):
        store.set_meta(LAST_SYNC_KEY, now_iso())
    store.set_meta(SOURCE_KEY, result.source.value)
    return count
