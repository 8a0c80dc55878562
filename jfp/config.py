import copy
import json
import logging
import os

logger = logging.getLogger("jfp")

from .constants import DEFAULT_CACHE_TTL, DEFAULT_TIMEOUT_MS, REGISTRY_URL
from .errors import ConfigError
from .paths import resolve_paths
from .utils import atomic_write

DEFAULT_CONFIG = {
    "registry": {
        "url": REGISTRY_URL,
        "cache_ttl": DEFAULT_CACHE_TTL,
        "timeout_ms": DEFAULT_TIMEOUT_MS,
        "auto_refresh": True,
    },
    "output": {
        "json": False,
        "color": True,
    },
}


def config_path(home=None):
    return resolve_paths(home).config_path


def _deep_merge(base, override):
    out = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _deep_merge(out[key], value)
        else:
            out[key] = value
    return out


def _coerce_int(value, default, minimum):
    if isinstance(value, bool):
        return default
    try:
        n = int(value)
    except (TypeError, ValueError):
        return default
    return n if n >= minimum else default


def normalize_config(config):
    cfg = _deep_merge(DEFAULT_CONFIG, config)
    registry = cfg["registry"]
    registry["cache_ttl"] = _coerce_int(registry.get("cache_ttl"), DEFAULT_CACHE_TTL, 0)
    registry["timeout_ms"] = _coerce_int(registry.get("timeout_ms"), DEFAULT_TIMEOUT_MS, 1)
    if not isinstance(registry.get("url"), str) or not registry["url"].strip():
        registry["url"] = REGISTRY_URL
    registry["auto_refresh"] = bool(registry.get("auto_refresh"))
    return cfg


def _read_file(path):
    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError("config root must be an object")
    return data


def load_config(path=None):
    """Defaults deep-merged with the user's config file.

    A missing file gives the defaults; so does a corrupt one, with a warning.
    """
    path = path or config_path()
    if not os.path.exists(path):
        return normalize_config({})
    try:
        stored = _read_file(path)
    except (OSError, ValueError) as exc:
        logger.warning("ignoring unreadable config %s: %s", path, exc)
        return normalize_config({})
    return normalize_config(stored)


def parse_config_value(text):
    """Infer bool, then int, then float, else keep the string."""
    raw = str(text).strip()
    lowered = raw.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        pass
    return str(text)


def _lookup(config, key):
    node = config
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            raise KeyError(key)
        node = node[part]
    return node


def get_config_value(key, path=None):
    try:
        return _lookup(load_config(path), key)
    except KeyError:
        raise ConfigError(f"Unknown config key '{key}'") from None


def set_config_value(key, text, path=None):
    """Store ``key`` (dotted) with its inferred type; returns the stored value."""
    path = path or config_path()
    parts = [p for p in (key or "").split(".") if p]
    if not parts:
        raise ConfigError("Config key must not be empty")

    stored = {}
    if os.path.exists(path):
        try:
            stored = _read_file(path)
        except (OSError, ValueError) as exc:
            raise ConfigError(f"Config file {path} is unreadable: {exc}") from exc

    value = parse_config_value(text)
    node = stored
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = value

    try:
        atomic_write(path, [json.dumps(stored, ensure_ascii=False, indent=2), "\n"])
    except OSError as exc:
        raise ConfigError(f"Failed to write config {path}: {exc}") from exc
    logger.info("config %s set to %r", key, value)
    return value


def reset_config(path=None):
    path = path or config_path()
    try:
        os.remove(path)
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise ConfigError(f"Failed to remove config {path}: {exc}") from exc
    return True
