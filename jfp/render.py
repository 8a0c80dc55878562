import json
import os
import re
import tomllib

_placeholder_re = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def extract_placeholders(content):
    """Unique placeholder names in order of first appearance."""
    seen = []
    for m in _placeholder_re.finditer(content or ""):
        name = m.group(1)
        if name not in seen:
            seen.append(name)
    return seen


def render_prompt(prompt, values=None):
    """
    Fill ``{{NAME}}`` placeholders in ``prompt.content``.

    Value precedence is: supplied value, declared variable default, unchanged
    token. ``filled`` traces where each value came from; ``missing`` lists the
    required variables and undeclared placeholders left unfilled.
    """
    values = dict(values or {})
    declared = {v.name: v for v in prompt.variables}
    resolved = {}
    filled = []
    for name in extract_placeholders(prompt.content):
        if name in values:
            resolved[name] = str(values[name])
            filled.append({"name": name, "value": resolved[name], "source": "value"})
            continue
        var = declared.get(name)
        if var is not None and var.default is not None:
            resolved[name] = var.default
            filled.append({"name": name, "value": var.default, "source": "default"})

    def _sub(m):
        name = m.group(1)
        if name in resolved:
            return resolved[name]
        return m.group(0)

    rendered = _placeholder_re.sub(_sub, prompt.content)

    missing = []
    for var in prompt.variables:
        if var.required and var.name not in resolved:
            missing.append(var.name)
    for name in extract_placeholders(prompt.content):
        if name not in resolved and name not in declared and name not in missing:
            missing.append(name)
    return {"rendered": rendered, "filled": filled, "missing": missing}


def _stringify(value):
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _as_mapping(data, path):
    if not isinstance(data, dict):
        raise ValueError(f"context file {path} must contain an object of name/value pairs")
    return {str(k): _stringify(v) for k, v in data.items()}


def load_context_file(path):
    """Read template values from a ``.json`` or ``.toml`` file."""
    ext = os.path.splitext(path)[1].lower()
    try:
        with open(path, "rb") as fh:
            raw = fh.read()
    except OSError as e:
        raise ValueError(f"cannot read context file {path}: {e}") from e

    if ext == ".json":
        try:
            return _as_mapping(json.loads(raw.decode("utf-8")), path)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValueError(f"invalid JSON in context file {path}: {e}") from e
    if ext == ".toml":
        try:
            return _as_mapping(tomllib.loads(raw.decode("utf-8")), path)
        except (UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
            raise ValueError(f"invalid TOML in context file {path}: {e}") from e

    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"context file {path} is not UTF-8 text: {e}") from e
    try:
        return _as_mapping(json.loads(text), path)
    except json.JSONDecodeError:
        pass
    try:
        return _as_mapping(tomllib.loads(text), path)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"context file {path} is neither JSON nor TOML: {e}") from e


def parse_variable_args(args):
    """``["NAME=value", ...]`` -> ``{"NAME": "value"}``; later pairs win."""
    out = {}
    for arg in args or []:
        name, sep, value = str(arg).partition("=")
        name = name.strip()
        if not sep or not name:
            raise ValueError(f"expected NAME=VALUE, got {arg!r}")
        out[name] = value
    return out
