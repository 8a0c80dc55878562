"""
Operations behind each CLI subcommand.

Everything here returns plain data (prompts, dicts, tuples); presentation and
exit status are decided by ``jfp.cli``.
"""
import json
import logging
import os
import random
import re

logger = logging.getLogger("jfp")

from .bundled import BUNDLES, bundled_prompts, get_bundle
from .constants import MAX_SEARCH_LIMIT, MIN_SEARCH_LIMIT, SCHEMA_VERSION
from .db import PromptStore, escape_fts_phrase
from .errors import SearchSyntaxError
from .registry import LAST_SYNC_KEY, SOURCE_KEY, apply_to_store
from .utils import normalize_text

_word_re = re.compile(r"\w+", re.UNICODE)


def open_store(home=None, seed=True):
    """Open the store and seed it from the bundled set if it is empty."""
    store = PromptStore.open(home)
    if seed and store.count() == 0:
        n = store.bulk_upsert(bundled_prompts())
        store.set_meta(SOURCE_KEY, "bundled")
        logger.info("seeded empty store with %d bundled prompts", n)
    return store


def validate_limit(limit):
    try:
        n = int(limit)
    except (TypeError, ValueError):
        raise ValueError(f"limit must be an integer, got {limit!r}") from None
    if n < MIN_SEARCH_LIMIT or n > MAX_SEARCH_LIMIT:
        raise ValueError(f"limit must be between {MIN_SEARCH_LIMIT} and {MAX_SEARCH_LIMIT}, got {n}")
    return n


def search_prompts(store, query, limit=10):
    """Ranked search, retrying once with the query quoted as a literal phrase."""
    limit = validate_limit(limit)
    query = normalize_text(query)
    if not query:
        return []
    try:
        return store.search(query, limit)
    except SearchSyntaxError as exc:
        logger.debug("search syntax error for %r (%s); retrying as phrase", query, exc)
        return store.search(escape_fts_phrase(query), limit)


def build_match_reasons(query, prompt):
    """Names of the fields in which any query word occurs (case-insensitive)."""
    words = [w.lower() for w in _word_re.findall(query or "")]
    if not words:
        return []
    fields = (
        ("id", prompt.id),
        ("title", prompt.title),
        ("description", prompt.description or ""),
        ("content", prompt.content),
        ("tags", prompt.tags_text),
    )
    reasons = []
    for name, text in fields:
        lowered = text.lower()
        if any(w in lowered for w in words):
            reasons.append(name)
    return reasons


def suggest(store, task, limit=5, semantic=False):
    """Prompts relevant to a free-text task description.

    Words of the task are OR-ed so any overlap counts; bm25 ranks the rest.
    """
    if semantic:
        logger.info("semantic ranking is not available; using lexical search")
    limit = validate_limit(limit)
    words = []
    for w in _word_re.findall(task or ""):
        if len(w) > 2 and w.lower() not in words:
            words.append(w.lower())
    if not words:
        return []
    query = " OR ".join(escape_fts_phrase(w) for w in words)
    return store.search(query, limit)


def pick_random(store, category=None, tag=None, rng=None):
    prompts = store.list(category=category, tag=tag)
    if not prompts:
        return None
    return (rng or random).choice(prompts)


def refresh_registry(store, loader):
    result = loader.refresh()
    count = apply_to_store(store, result)
    return result, count


def status(store, loader):
    return {
        "db_path": store.db_path,
        "schema_version": store.schema_version(),
        "prompt_count": store.count(),
        "last_sync": store.get_meta(LAST_SYNC_KEY),
        "registry_source": store.get_meta(SOURCE_KEY),
        "data_version": store.get_meta("data_version"),
        "registry": loader.cache_status(),
    }


def _check(name, ok, detail):
    return {"name": name, "ok": bool(ok), "detail": detail}


def doctor(store, loader, config_file):
    checks = []
    checks.append(_check("store_integrity", store.integrity_check(), store.db_path))

    version = store.schema_version()
    checks.append(_check("schema_version", version == SCHEMA_VERSION, f"{version} (expected {SCHEMA_VERSION})"))

    count = store.count()
    checks.append(_check("prompts", count > 0, f"{count} prompts"))

    if os.path.exists(config_file):
        try:
            with open(config_file, "r", encoding="utf-8") as fh:
                json.load(fh)
            checks.append(_check("config", True, config_file))
        except (OSError, ValueError) as exc:
            checks.append(_check("config", False, f"{config_file}: {exc}"))
    else:
        checks.append(_check("config", True, f"{config_file} (defaults)"))

    cache = loader.cache_status()
    if cache["exists"]:
        detail = f"{cache['prompt_count']} prompts, fetched {cache['fetched_at']}"
        checks.append(_check("registry_cache", not cache["stale"], detail + (" (stale)" if cache["stale"] else "")))
    else:
        checks.append(_check("registry_cache", True, "no cache; bundled prompts in use"))

    return {"ok": all(c["ok"] for c in checks if c["name"] != "registry_cache"), "checks": checks}


def _bundle_prompts(store, bundle):
    """The bundle's prompts that exist in the store, in bundle order."""
    prompts = []
    for prompt_id in bundle["prompt_ids"]:
        prompt = store.get(prompt_id)
        if prompt is None:
            logger.debug("bundle %s references missing prompt %s", bundle["id"], prompt_id)
            continue
        prompts.append(prompt)
    return prompts


def list_bundles(store):
    return [
        {
            "id": b["id"],
            "title": b["title"],
            "description": b["description"],
            "prompt_count": len(_bundle_prompts(store, b)),
        }
        for b in BUNDLES
    ]


def show_bundle(store, bundle_id):
    """Bundle details with the titles of its prompts, or None for an unknown id."""
    bundle = get_bundle(bundle_id)
    if bundle is None:
        return None
    return {
        "id": bundle["id"],
        "title": bundle["title"],
        "description": bundle["description"],
        "prompts": [{"id": p.id, "title": p.title} for p in _bundle_prompts(store, bundle)],
    }


def select_prompts(store, ids=None):
    """Prompts to export: all of them, or the named ids that exist.

    Returns ``(prompts, missing_ids)``.
    """
    if not ids or list(ids) == ["all"]:
        return store.list(), []
    prompts = []
    missing = []
    for prompt_id in ids:
        prompt = store.get(prompt_id)
        if prompt is None:
            missing.append(prompt_id)
        else:
            prompts.append(prompt)
    return prompts, missing
