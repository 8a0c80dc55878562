"""
Markdown export of prompts.

Two layouts are supported: ``md`` (title, description, category/tags line,
then the prompt body) and ``skill`` (a SKILL.md style document with metadata
and variable sections and the prompt in a fenced block). Each prompt is
written to ``<id>.md`` in the output directory.
"""
import logging
import os
import re

logger = logging.getLogger("jfp")

from .errors import BackupIoError
from .utils import atomic_write

FORMATS = ("md", "skill")

_unsafe_re = re.compile(r"[^\w.-]+", re.UNICODE)


def _format_md(prompt):
    parts = [f"# {prompt.title}\n\n"]
    if prompt.description:
        parts.append(f"{prompt.description}\n\n")
    if prompt.category:
        parts.append(f"**Category**: {prompt.category}\n\n")
    if prompt.tags:
        parts.append(f"**Tags**: {', '.join(prompt.tags)}\n\n")
    parts.append("---\n\n")
    parts.append(prompt.content + "\n")
    return "".join(parts)


def _format_skill(prompt):
    parts = [f"# {prompt.title}\n\n"]
    if prompt.description:
        parts.append(f"> {prompt.description}\n\n")
    parts.append("## Metadata\n\n")
    parts.append(f"- **ID**: {prompt.id}\n")
    if prompt.category:
        parts.append(f"- **Category**: {prompt.category}\n")
    if prompt.tags:
        parts.append(f"- **Tags**: {', '.join(prompt.tags)}\n")
    parts.append("\n")
    if prompt.variables:
        parts.append("## Variables\n\n")
        for var in prompt.variables:
            line = f"- `{{{{{var.name}}}}}`"
            if var.description:
                line += f": {var.description}"
            if var.default is not None:
                line += f" (default: {var.default})"
            parts.append(line + "\n")
        parts.append("\n")
    parts.append("## Prompt\n\n```\n")
    parts.append(prompt.content)
    parts.append("\n```\n")
    return "".join(parts)


def format_prompt(prompt, fmt="md"):
    if fmt == "md":
        return _format_md(prompt)
    if fmt == "skill":
        return _format_skill(prompt)
    raise ValueError(f"unknown export format {fmt!r}; use one of {', '.join(FORMATS)}")


def export_filename(prompt):
    name = _unsafe_re.sub("-", prompt.id).strip(".-")
    return f"{name or 'prompt'}.md"


def export_markdown(prompts, out_dir, fmt="md"):
    """Write one markdown file per prompt; returns ``[(prompt_id, path)]``."""
    if fmt not in FORMATS:
        raise ValueError(f"unknown export format {fmt!r}; use one of {', '.join(FORMATS)}")
    written = []
    try:
        os.makedirs(out_dir, exist_ok=True)
        for prompt in prompts:
            path = os.path.join(out_dir, export_filename(prompt))
            atomic_write(path, [format_prompt(prompt, fmt)])
            written.append((prompt.id, path))
    except OSError as exc:
        raise BackupIoError(f"Failed to export markdown to {out_dir}: {exc}") from exc
    logger.info("exported %d prompts as %s to %s", len(written), fmt, out_dir)
    return written
