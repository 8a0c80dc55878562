"""
JSONL backup export/import.

Format: an optional first line ``{"_meta": {...}}`` followed by one compact
JSON prompt object per line. Export replaces the destination by rename so a
reader never sees a partially written file; import parses every line before
writing anything and applies the whole set in one transaction.
"""
import json
import logging

logger = logging.getLogger("jfp")

from .constants import META_KEY, SCHEMA_VERSION
from .errors import BackupIoError, ImportParseError
from .models import Prompt
from .utils import atomic_write, json_dumps, now_iso

DATA_VERSION_KEY = "data_version"


def _export_lines(meta, prompts):
    yield json_dumps({META_KEY: meta}) + "\n"
    for prompt in prompts:
        yield json_dumps(prompt.to_dict()) + "\n"


def export_jsonl(store, path):
    prompts = store.list()
    meta = {
        "version": store.get_meta(DATA_VERSION_KEY) or now_iso(),
        "count": len(prompts),
        "exported_at": now_iso(),
        "schema_version": SCHEMA_VERSION,
    }
    try:
        atomic_write(path, _export_lines(meta, prompts))
    except OSError as exc:
        raise BackupIoError(f"Failed to write backup {path}: {exc}") from exc
    store.set_meta(DATA_VERSION_KEY, now_iso())
    logger.info("exported %d prompts to %s", len(prompts), path)
    return len(prompts)


def _is_meta_line(obj):
    return isinstance(obj, dict) and META_KEY in obj


def parse_jsonl(lines):
    """Parse backup lines into ``(meta, prompts)``.

    Raises ImportParseError naming the 1-based line number of the first bad
    record.
    """
    meta = None
    prompts = []
    first_content_line = True
    for line_number, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError as exc:
            raise ImportParseError(line_number, f"invalid JSON: {exc.msg}") from exc

        if first_content_line and _is_meta_line(obj):
            meta = obj.get(META_KEY)
            first_content_line = False
            continue
        first_content_line = False

        try:
            prompts.append(Prompt.from_dict(obj))
        except ValueError as exc:
            raise ImportParseError(line_number, str(exc)) from exc
    return meta, prompts


def import_jsonl(store, path):
    try:
        with open(path, "r", encoding="utf-8") as fh:
            meta, prompts = parse_jsonl(fh)
    except OSError as exc:
        raise BackupIoError(f"Failed to read backup {path}: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise BackupIoError(f"Backup {path} is not valid UTF-8: {exc}") from exc

    if meta is not None:
        logger.debug("backup meta: %r", meta)
    count = store.bulk_upsert(prompts)
    store.set_meta(DATA_VERSION_KEY, now_iso())
    logger.info("imported %d prompts from %s", count, path)
    return count
