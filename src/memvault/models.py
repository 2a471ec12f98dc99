"""Data models for memory records and their derived cache entries."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

# Record types. Ephemeral types live under temporary/, everything else under permanent/.
MEMORY_TYPES = ("decision", "learning", "artifact", "gotcha", "breadcrumb", "hub", "thought")
TEMPORARY_TYPES = frozenset({"breadcrumb", "thought"})

SCOPES = ("user", "project", "local", "enterprise")
_SCOPE_ALIASES = {"global": "user"}

SEVERITIES = ("low", "medium", "high", "critical")

EDGE_LABELS = (
    "relates-to",
    "informed-by",
    "implements",
    "supersedes",
    "warns",
    "documents",
    "extends",
    "depends-on",
    "contradicts",
    "auto-linked-by-similarity",
)
DEFAULT_EDGE_LABEL = "relates-to"
AUTO_LINK_LABEL = "auto-linked-by-similarity"

PERMANENT_DIR = "permanent"
TEMPORARY_DIR = "temporary"
ARCHIVE_DIR = "archive"


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


def parse_timestamp(value: str) -> datetime | None:
    """Parse an ISO-8601 string; naive values are taken as UTC. None if unparsable."""
    try:
        dt = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def subdir_for(memory_type: str) -> str:
    """permanent/ or temporary/ depending on the record type."""
    return TEMPORARY_DIR if memory_type in TEMPORARY_TYPES else PERMANENT_DIR


def normalise_scope(scope: str) -> str:
    return _SCOPE_ALIASES.get(scope, scope)


def scope_tag(scope: str) -> str:
    """The tag every record in a scope carries."""
    return normalise_scope(scope)


def merge_tags(*groups: list[str] | tuple[str, ...]) -> list[str]:
    """Concatenate tag lists, dropping blanks and duplicates, first occurrence wins."""
    seen: set[str] = set()
    out: list[str] = []
    for group in groups:
        for tag in group:
            tag = tag.strip()
            if tag and tag not in seen:
                seen.add(tag)
                out.append(tag)
    return out


def _opt_str(value: Any) -> str | None:
    """Optional scalar header field. Hand-edited files may hold anything here."""
    if value is None or isinstance(value, dict | list):
        return None
    return str(value)


# ---------------------------------------------------------------------------
# Record header
# ---------------------------------------------------------------------------

@dataclass
class Frontmatter:
    """Structured header of a record file."""

    type: str
    title: str
    created: str
    updated: str
    tags: list[str] = field(default_factory=list)
    id: str | None = None
    scope: str | None = None
    project: str | None = None
    severity: str | None = None
    links: list[str] = field(default_factory=list)
    source: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def new(cls, memory_type: str, title: str, tags: list[str], **optional: Any) -> Frontmatter:
        ts = now_iso()
        return cls(type=memory_type, title=title, created=ts, updated=ts, tags=list(tags), **optional)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Frontmatter:
        raw_meta = d.get("meta")
        meta = dict(raw_meta) if isinstance(raw_meta, dict) else {}
        record_id = d.get("id")
        # Older files carry the id inside meta; lift it into the typed field.
        if not record_id and isinstance(meta.get("id"), str):
            record_id = meta.pop("id")
        tags = d.get("tags")
        links = d.get("links")
        return cls(
            type=str(d.get("type", "")),
            title=str(d.get("title", "")),
            created=str(d.get("created", "")),
            updated=str(d.get("updated", "")),
            tags=[str(t) for t in tags] if isinstance(tags, list) else [],
            id=_opt_str(record_id),
            scope=_opt_str(d.get("scope")),
            project=_opt_str(d.get("project")),
            severity=_opt_str(d.get("severity")),
            links=[str(link) for link in links] if isinstance(links, list) else [],
            source=_opt_str(d.get("source")),
            meta=meta,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialisable mapping in canonical key order, optional keys omitted when empty."""
        d: dict[str, Any] = {}
        if self.id:
            d["id"] = self.id
        d["title"] = self.title
        d["type"] = self.type
        if self.scope:
            d["scope"] = self.scope
        if self.project:
            d["project"] = self.project
        d["created"] = self.created
        d["updated"] = self.updated
        d["tags"] = list(self.tags)
        if self.severity:
            d["severity"] = self.severity
        if self.links:
            d["links"] = list(self.links)
        if self.source:
            d["source"] = self.source
        if self.meta:
            d["meta"] = dict(self.meta)
        return d

    def touch(self, **changes: Any) -> Frontmatter:
        """Copy with changes applied and a fresh updated stamp. created never changes."""
        changes.pop("created", None)
        return replace(self, updated=now_iso(), **changes)


@dataclass
class Record:
    """A parsed record: header, body and where it lives."""

    id: str
    frontmatter: Frontmatter
    content: str
    relative_path: str = ""

    @property
    def type(self) -> str:
        return self.frontmatter.type

    @property
    def title(self) -> str:
        return self.frontmatter.title

    @property
    def tags(self) -> list[str]:
        return self.frontmatter.tags

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "frontmatter": self.frontmatter.to_dict(),
            "content": self.content,
            "relativePath": self.relative_path,
        }


# ---------------------------------------------------------------------------
# Derived caches
# ---------------------------------------------------------------------------

@dataclass
class IndexEntry:
    """Summary of one record, as stored in index.json."""

    id: str
    type: str
    title: str
    tags: list[str]
    created: str
    updated: str
    scope: str
    relative_path: str
    severity: str | None = None

    @classmethod
    def from_record(cls, record: Record, scope: str) -> IndexEntry:
        fm = record.frontmatter
        return cls(
            id=record.id,
            type=fm.type,
            title=fm.title,
            tags=list(fm.tags),
            created=fm.created,
            updated=fm.updated,
            scope=fm.scope or scope,
            relative_path=record.relative_path,
            severity=fm.severity,
        )

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> IndexEntry:
        return cls(
            id=d["id"],
            type=d.get("type", ""),
            title=d.get("title", ""),
            tags=list(d.get("tags") or []),
            created=d.get("created", ""),
            updated=d.get("updated", ""),
            scope=d.get("scope", ""),
            relative_path=d.get("relativePath", ""),
            severity=d.get("severity"),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "tags": list(self.tags),
            "created": self.created,
            "updated": self.updated,
            "scope": self.scope,
            "relativePath": self.relative_path,
        }
        if self.severity:
            d["severity"] = self.severity
        return d


@dataclass
class GraphNode:
    id: str
    type: str

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> GraphNode:
        return cls(id=d["id"], type=d.get("type", ""))

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "type": self.type}


@dataclass(frozen=True)
class GraphEdge:
    """Directed, labelled edge. Identity is the (source, target, label) tuple."""

    source: str
    target: str
    label: str = DEFAULT_EDGE_LABEL

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> GraphEdge:
        return cls(source=d["source"], target=d["target"], label=d.get("label") or DEFAULT_EDGE_LABEL)

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "target": self.target, "label": self.label}

    def touches(self, node_id: str) -> bool:
        return node_id in (self.source, self.target)
