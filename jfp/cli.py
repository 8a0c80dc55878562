"""
Command-line entry point.

Usage:
    jfp list --category debugging
    jfp search "code review" --limit 5
    jfp show code-review
    jfp render debug --var ERROR="boom" --context ctx.toml
    jfp refresh
    jfp export backup.jsonl
    jfp export prompts/ --format md --id code-review
    jfp bundle getting-started
    jfp config set registry.cache_ttl 600
"""
import argparse
import json
import logging
import sys

logger = logging.getLogger("jfp")

from . import commands
from .backup import export_jsonl, import_jsonl
from .config import get_config_value, load_config, reset_config, set_config_value
from .constants import VERSION
from .errors import JfpError
from .markdown import export_markdown, format_prompt
from .paths import resolve_paths
from .registry import RegistryLoader
from .render import extract_placeholders, load_context_file, parse_variable_args, render_prompt


class Output:
    """Writes results as JSON or as human-readable text."""

    def __init__(self, json_mode, stdout=None, stderr=None):
        self.json_mode = json_mode
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr

    def emit(self, data, text=None):
        if self.json_mode:
            self.stdout.write(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
            return
        if text is None:
            text = json.dumps(data, ensure_ascii=False, indent=2)
        if text:
            self.stdout.write(text + "\n")

    def warn(self, message):
        if not self.json_mode:
            self.stderr.write(f"Warning: {message}\n")

    def error(self, code, message):
        if self.json_mode:
            self.stderr.write(json.dumps({"error": code, "message": message}, ensure_ascii=False) + "\n")
        else:
            self.stderr.write(f"Error: {message}\n")


class Context:
    def __init__(self, args, out):
        self.args = args
        self.out = out
        self.paths = resolve_paths(args.home)
        self.config = load_config(self.paths.config_path)
        self._store = None

    @property
    def store(self):
        if self._store is None:
            self._store = commands.open_store(self.args.home)
        return self._store

    def loader(self):
        return RegistryLoader.from_config(self.config, self.paths)

    def hint_if_stale(self):
        if not self.config["registry"]["auto_refresh"]:
            return
        status = self.loader().cache_status()
        if status["exists"] and status["stale"]:
            self.out.warn("registry cache is stale; run `jfp refresh` to update")


def _prompt_line(prompt, extra=""):
    star = "*" if prompt.featured else " "
    category = f"[{prompt.category}]" if prompt.category else ""
    return f"{star} {prompt.id:<24} {prompt.title:<32} {category}{extra}"


def _ranked_payload(query, results):
    return [
        {**p.summary(), "score": round(score, 6), "matched": commands.build_match_reasons(query, p)}
        for p, score in results
    ]


def _ranked_text(results):
    if not results:
        return "No matching prompts."
    return "\n".join(_prompt_line(p, f"  ({score:.3f})") for p, score in results)


# ── subcommands ──


def cmd_list(ctx):
    a = ctx.args
    prompts = ctx.store.list(category=a.category, tag=a.tag, featured_only=a.featured)
    ctx.hint_if_stale()
    text = "\n".join(_prompt_line(p) for p in prompts) if prompts else "No prompts found."
    ctx.out.emit([p.summary() for p in prompts], text)
    return 0


def cmd_search(ctx):
    results = commands.search_prompts(ctx.store, ctx.args.query, ctx.args.limit)
    ctx.out.emit(_ranked_payload(ctx.args.query, results), _ranked_text(results))
    return 0


def cmd_suggest(ctx):
    results = commands.suggest(ctx.store, ctx.args.task, ctx.args.limit, semantic=ctx.args.semantic)
    ctx.out.emit(_ranked_payload(ctx.args.task, results), _ranked_text(results))
    return 0


def _not_found(ctx, what):
    ctx.out.error("not_found", what)
    return 1


def cmd_show(ctx):
    prompt = ctx.store.get(ctx.args.id)
    if prompt is None:
        return _not_found(ctx, f"Prompt '{ctx.args.id}' not found")
    data = prompt.to_dict()
    data["placeholders"] = extract_placeholders(prompt.content)
    if ctx.args.raw:
        text = prompt.content
    else:
        lines = [f"{prompt.title} ({prompt.id})"]
        if prompt.description:
            lines.append(prompt.description)
        meta = []
        if prompt.category:
            meta.append(f"category: {prompt.category}")
        if prompt.tags:
            meta.append(f"tags: {', '.join(prompt.tags)}")
        if prompt.author:
            meta.append(f"author: {prompt.author}")
        if meta:
            lines.append(" | ".join(meta))
        lines.extend(["", prompt.content])
        text = "\n".join(lines)
    ctx.out.emit(data, text)
    return 0


def _counts(ctx, pairs, label):
    if pairs:
        text = "\n".join(f"{name:<24} {count}" for name, count in pairs)
    else:
        text = f"No {label}."
    ctx.out.emit([{"name": name, "count": count} for name, count in pairs], text)
    return 0


def cmd_categories(ctx):
    return _counts(ctx, ctx.store.category_counts(), "categories")


def cmd_tags(ctx):
    return _counts(ctx, ctx.store.tag_counts(), "tags")


def cmd_random(ctx):
    prompt = commands.pick_random(ctx.store, category=ctx.args.category, tag=ctx.args.tag)
    if prompt is None:
        return _not_found(ctx, "No prompts match the given filters")
    ctx.out.emit(prompt.to_dict(), f"{prompt.title} ({prompt.id})\n\n{prompt.content}")
    return 0


def cmd_render(ctx):
    prompt = ctx.store.get(ctx.args.id)
    if prompt is None:
        return _not_found(ctx, f"Prompt '{ctx.args.id}' not found")
    values = {}
    if ctx.args.context:
        values.update(load_context_file(ctx.args.context))
    values.update(parse_variable_args(ctx.args.var))
    result = render_prompt(prompt, values)
    if result["missing"]:
        ctx.out.warn(f"unfilled variables: {', '.join(result['missing'])}")
    ctx.out.emit({"id": prompt.id, **result}, result["rendered"])
    return 0


def cmd_refresh(ctx):
    result, count = commands.refresh_registry(ctx.store, ctx.loader())
    data = {
        "source": result.source.value,
        "stale": result.stale,
        "count": count,
        "error": str(result.error) if result.error else None,
        "cache_error": str(result.cache_error) if result.cache_error else None,
    }
    if result.error:
        ctx.out.warn(f"registry unavailable: {result.error}")
    if result.cache_error:
        ctx.out.warn(str(result.cache_error))
    text = f"Loaded {count} prompts from {result.source.value}" + (" (stale)" if result.stale else "")
    ctx.out.emit(data, text)
    return 0


def cmd_status(ctx):
    data = commands.status(ctx.store, ctx.loader())
    reg = data["registry"]
    text = "\n".join(
        [
            f"store:           {data['db_path']}",
            f"schema version:  {data['schema_version']}",
            f"prompts:         {data['prompt_count']}",
            f"source:          {data['registry_source'] or '-'}",
            f"last sync:       {data['last_sync'] or 'never'}",
            f"registry cache:  {reg['cache_path'] if reg['exists'] else 'none'}"
            + (" (stale)" if reg["exists"] and reg["stale"] else ""),
        ]
    )
    ctx.out.emit(data, text)
    return 0


def cmd_export(ctx):
    a = ctx.args
    if a.format == "jsonl":
        if a.ids or a.stdout:
            raise ValueError("--id and --stdout apply only to --format md or skill")
        if not a.path:
            raise ValueError("a backup file path is required for --format jsonl")
        count = export_jsonl(ctx.store, a.path)
        ctx.out.emit({"exported": count, "path": a.path}, f"Exported {count} prompts to {a.path}")
        return 0

    prompts, missing = commands.select_prompts(ctx.store, a.ids)
    for prompt_id in missing:
        ctx.out.warn(f"prompt '{prompt_id}' not found, skipping")
    if not prompts:
        return _not_found(ctx, "No prompts to export")
    if a.stdout:
        separator = "\n---\n\n"
        text = separator.join(format_prompt(p, a.format) for p in prompts)
        ctx.out.emit(
            {"format": a.format, "count": len(prompts), "exported": [{"id": p.id, "file": None} for p in prompts]},
            text.rstrip("\n"),
        )
        return 0
    out_dir = a.path or "."
    written = export_markdown(prompts, out_dir, a.format)
    ctx.out.emit(
        {
            "format": a.format,
            "count": len(written),
            "output_dir": out_dir,
            "exported": [{"id": pid, "file": path} for pid, path in written],
        },
        "\n".join(f"Exported: {path}" for _, path in written) + f"\n\nExported {len(written)} prompt(s)",
    )
    return 0


def cmd_import(ctx):
    # A restore must contain exactly the backup, so the store is not seeded first.
    store = commands.open_store(ctx.args.home, seed=False)
    count = import_jsonl(store, ctx.args.path)
    ctx.out.emit({"imported": count, "path": ctx.args.path}, f"Imported {count} prompts from {ctx.args.path}")
    return 0


def cmd_bundles(ctx):
    bundles = commands.list_bundles(ctx.store)
    lines = []
    for b in bundles:
        lines.append(f"  {b['id']} - {b['title']} ({b['prompt_count']} prompts)")
        lines.append(f"    {b['description']}")
    lines.append("\nUse 'jfp bundle <id>' to see bundle contents")
    ctx.out.emit({"bundles": bundles, "count": len(bundles)}, "\n".join(lines))
    return 0


def cmd_bundle(ctx):
    bundle = commands.show_bundle(ctx.store, ctx.args.id)
    if bundle is None:
        return _not_found(ctx, f"Bundle '{ctx.args.id}' not found")
    lines = [f"Bundle: {bundle['id']} - {bundle['title']}", "", bundle["description"], ""]
    lines.append(f"Prompts ({len(bundle['prompts'])}):")
    lines.extend(f"  - {p['title']} ({p['id']})" for p in bundle["prompts"])
    ctx.out.emit(bundle, "\n".join(lines))
    return 0


def cmd_config(ctx):
    a = ctx.args
    path = ctx.paths.config_path
    if a.config_command == "list":
        ctx.out.emit(ctx.config)
    elif a.config_command == "get":
        value = get_config_value(a.key, path)
        ctx.out.emit({"key": a.key, "value": value}, json.dumps(value) if not isinstance(value, str) else value)
    elif a.config_command == "set":
        value = set_config_value(a.key, a.value, path)
        ctx.out.emit({"key": a.key, "value": value}, f"{a.key} = {json.dumps(value)}")
    elif a.config_command == "reset":
        existed = reset_config(path)
        ctx.out.emit({"reset": existed, "path": path}, "Config reset to defaults" if existed else "Config already at defaults")
    else:
        ctx.out.emit({"path": path}, path)
    return 0


def cmd_doctor(ctx):
    report = commands.doctor(ctx.store, ctx.loader(), ctx.paths.config_path)
    text = "\n".join(f"{'ok  ' if c['ok'] else 'FAIL'} {c['name']:<18} {c['detail']}" for c in report["checks"])
    ctx.out.emit(report, text)
    return 0 if report["ok"] else 1


def build_parser():
    parser = argparse.ArgumentParser(prog="jfp", description="Browse, search and render curated prompts")
    parser.add_argument("--version", action="version", version=f"jfp {VERSION}")
    parser.add_argument("--json", action="store_true", help="Machine-readable JSON output")
    parser.add_argument("--home", help="Use this directory in place of the home directory (also $JFP_HOME)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("list", aliases=["ls"], help="List prompts")
    p.add_argument("--category")
    p.add_argument("--tag")
    p.add_argument("--featured", action="store_true")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("search", help="Ranked full-text search")
    p.add_argument("query")
    p.add_argument("--limit", type=int, default=10)
    p.set_defaults(func=cmd_search)

    p = sub.add_parser("show", help="Show one prompt")
    p.add_argument("id")
    p.add_argument("--raw", action="store_true", help="Print only the prompt content")
    p.set_defaults(func=cmd_show)

    p = sub.add_parser("suggest", help="Suggest prompts for a task description")
    p.add_argument("task")
    p.add_argument("--limit", type=int, default=5)
    p.add_argument("--semantic", action="store_true", help="Request semantic ranking (falls back to lexical)")
    p.set_defaults(func=cmd_suggest)

    sub.add_parser("categories", help="Categories with prompt counts").set_defaults(func=cmd_categories)
    sub.add_parser("tags", help="Tags with prompt counts").set_defaults(func=cmd_tags)

    p = sub.add_parser("random", help="Pick a random prompt")
    p.add_argument("--category")
    p.add_argument("--tag")
    p.set_defaults(func=cmd_random)

    p = sub.add_parser("render", help="Fill a prompt's {{VARIABLES}}")
    p.add_argument("id")
    p.add_argument("--context", help="JSON or TOML file of variable values")
    p.add_argument("--var", action="append", default=[], metavar="NAME=VALUE")
    p.set_defaults(func=cmd_render)

    sub.add_parser("refresh", help="Fetch the registry and update the local store").set_defaults(func=cmd_refresh)
    sub.add_parser("status", help="Store and registry cache status").set_defaults(func=cmd_status)

    p = sub.add_parser("export", help="Write prompts to a JSONL backup or as markdown files")
    p.add_argument("path", nargs="?", help="Backup file (jsonl) or output directory (md/skill, default .)")
    p.add_argument("--format", choices=["jsonl", "md", "skill"], default="jsonl")
    p.add_argument("--id", dest="ids", action="append", default=[], metavar="ID", help="Export only this prompt (md/skill)")
    p.add_argument("--stdout", action="store_true", help="Print markdown instead of writing files")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("import", help="Load prompts from a JSONL backup")
    p.add_argument("path")
    p.set_defaults(func=cmd_import)

    sub.add_parser("bundles", help="List curated prompt bundles").set_defaults(func=cmd_bundles)
    p = sub.add_parser("bundle", help="Show one bundle")
    p.add_argument("id")
    p.set_defaults(func=cmd_bundle)

    p = sub.add_parser("config", help="Read or change configuration")
    csub = p.add_subparsers(dest="config_command", metavar="ACTION", required=True)
    csub.add_parser("list")
    g = csub.add_parser("get")
    g.add_argument("key")
    s = csub.add_parser("set")
    s.add_argument("key")
    s.add_argument("value")
    csub.add_parser("reset")
    csub.add_parser("path")
    p.set_defaults(func=cmd_config)

    sub.add_parser("doctor", help="Check the installation").set_defaults(func=cmd_doctor)
    return parser


def main(argv=None, stdout=None, stderr=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        stream=stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not getattr(args, "func", None):
        parser.print_help(stdout)
        return 1

    out = Output(args.json or not stdout.isatty(), stdout, stderr)
    try:
        ctx = Context(args, out)
        if ctx.config["output"]["json"]:
            out.json_mode = True
        return args.func(ctx)
    except JfpError as e:
        logger.debug("command %s failed", args.command, exc_info=True)
        out.error(e.code, str(e))
        return 1
    except ValueError as e:
        out.error("invalid_argument", str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
