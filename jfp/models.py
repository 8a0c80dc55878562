"""
Prompt record model and registry result types.

These are plain dataclasses with explicit ``to_dict``/``from_dict`` so the
same shape is used by the store, the JSONL backup, the registry cache and
the remote registry payload.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .utils import normalize_tags, normalize_text


class VariableType(Enum):
    """Kinds of template variables."""
    TEXT = "text"
    MULTILINE = "multiline"
    FILE = "file"
    PATH = "path"
    SELECT = "select"

    @classmethod
    def parse(cls, value) -> "VariableType":
        if value is None or value == "":
            return cls.TEXT
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"unknown variable type: {value!r}") from None


class RegistrySource(Enum):
    """Where a set of prompts was loaded from."""
    REMOTE = "remote"
    CACHE = "cache"
    BUNDLED = "bundled"


def _optional_text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def _check_text(key: str, value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"prompt field '{key}' must be a non-empty string")
    return value


def _required_text(data: Dict[str, Any], key: str) -> str:
    return _check_text(key, data.get(key))


def _parse_flag(data: Dict[str, Any], key: str) -> bool:
    """Read a boolean field; JSON booleans and the strings true/false only."""
    value = data.get(key)
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"field '{key}' must be a boolean, got {value!r}")


@dataclass
class PromptVariable:
    """One named placeholder declared by a prompt."""
    name: str
    type: VariableType = VariableType.TEXT
    required: bool = False
    description: Optional[str] = None
    default: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "required": self.required,
            "description": self.description,
            "default": self.default,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PromptVariable":
        if not isinstance(data, dict):
            raise ValueError("variable must be an object")
        name = normalize_text(data.get("name"))
        if not name:
            raise ValueError("variable name is required")
        default = data.get("default")
        return cls(
            name=name,
            type=VariableType.parse(data.get("type")),
            required=_parse_flag(data, "required"),
            description=_optional_text(data.get("description")),
            default=None if default is None else str(default),
        )


@dataclass
class Prompt:
    """A prompt template document."""
    id: str
    title: str
    content: str
    description: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    variables: List[PromptVariable] = field(default_factory=list)
    featured: bool = False
    version: Optional[str] = None
    author: Optional[str] = None
    saved_at: Optional[str] = None
    is_local: bool = False

    def __post_init__(self):
        for key in ("id", "title", "content"):
            _check_text(key, getattr(self, key))
        seen = set()
        for var in self.variables:
            if var.name in seen:
                raise ValueError(f"prompt '{self.id}' declares variable '{var.name}' twice")
            seen.add(var.name)
        self.tags = normalize_tags(self.tags)

    @property
    def tags_text(self) -> str:
        return " ".join(self.tags)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "description": self.description,
            "category": self.category,
            "tags": list(self.tags),
            "variables": [v.to_dict() for v in self.variables],
            "featured": self.featured,
            "version": self.version,
            "author": self.author,
            "saved_at": self.saved_at,
            "is_local": self.is_local,
        }

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "tags": list(self.tags),
            "featured": self.featured,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Prompt":
        """Build a prompt from its JSON form; unknown keys are ignored."""
        if not isinstance(data, dict):
            raise ValueError("prompt must be an object")
        tags = data.get("tags") or []
        if not isinstance(tags, list):
            raise ValueError("prompt field 'tags' must be a list")
        variables = data.get("variables") or []
        if not isinstance(variables, list):
            raise ValueError("prompt field 'variables' must be a list")
        return cls(
            id=_required_text(data, "id").strip(),
            title=_required_text(data, "title"),
            content=_required_text(data, "content"),
            description=_optional_text(data.get("description")),
            category=_optional_text(data.get("category")),
            tags=[str(t) for t in tags],
            variables=[PromptVariable.from_dict(v) for v in variables],
            featured=_parse_flag(data, "featured"),
            version=_optional_text(data.get("version")),
            author=_optional_text(data.get("author")),
            saved_at=_optional_text(data.get("saved_at")),
            is_local=_parse_flag(data, "is_local"),
        )


@dataclass
class RegistryMeta:
    """Sidecar metadata describing the cached registry snapshot."""
    fetched_at: str
    prompt_count: int
    version: Optional[str] = None
    etag: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "etag": self.etag,
            "fetched_at": self.fetched_at,
            "prompt_count": self.prompt_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryMeta":
        if not isinstance(data, dict):
            raise ValueError("registry metadata must be an object")
        fetched_at = data.get("fetched_at")
        if not isinstance(fetched_at, str):
            raise ValueError("registry metadata is missing fetched_at")
        return cls(
            fetched_at=fetched_at,
            prompt_count=int(data.get("prompt_count") or 0),
            version=_optional_text(data.get("version")),
            etag=_optional_text(data.get("etag")),
        )


@dataclass
class RegistryLoadResult:
    prompts: List[Prompt]
    source: RegistrySource
    stale: bool
    error: Optional[Exception] = None
    cache_error: Optional[Exception] = None
