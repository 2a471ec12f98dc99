"""Write orchestration: create/upsert records and mutate existing ones.

write_memory() runs, in order:
    validate -> id (caller-supplied or generated) -> tags + scope tag
    -> cross-scope duplicate check -> atomic file write -> index
    -> graph node + links (best-effort) -> auto-link (best-effort)
    -> similar-title warnings

Only the steps up to and including the index update can fail the write.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from memvault.errors import CrossScopeDuplicateError, FieldError, ValidationError, VaultError
from memvault.models import AUTO_LINK_LABEL, Frontmatter, Record, merge_tags, normalise_scope, now_iso, scope_tag
from memvault.outcome import Outcome, attempt
from memvault.slug import generate_unique_id
from memvault.validation import validate_tags, validate_write_request

if TYPE_CHECKING:
    from pathlib import Path

    from memvault.embedder import EmbeddingProvider
    from memvault.vault import Vault


DEFAULT_AUTO_LINK_THRESHOLD = 0.85
AUTO_LINK_LIMIT = 5
SIMILAR_TITLE_THRESHOLD = 0.6
SIMILAR_TITLE_LIMIT = 5

_WORD = re.compile(r"[a-z0-9]+")


@dataclass
class WriteRequest:
    title: str
    content: str
    type: str
    tags: list[str] = field(default_factory=list)
    scope: str | None = None
    id: str | None = None
    severity: str | None = None
    links: list[str] | None = None
    source: str | None = None
    project: str | None = None
    meta: dict[str, Any] | None = None
    auto_link: bool = False
    auto_link_threshold: float = DEFAULT_AUTO_LINK_THRESHOLD

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> WriteRequest:
        """Build from a JSON payload (camelCase keys accepted)."""
        threshold = d.get("autoLinkThreshold", d.get("auto_link_threshold", DEFAULT_AUTO_LINK_THRESHOLD))
        try:
            threshold = float(threshold)
        except (TypeError, ValueError):
            raise ValidationError.from_errors([FieldError("autoLinkThreshold", "must be a number")]) from None
        return cls(
            title=d.get("title", ""),
            content=d.get("content", ""),
            type=d.get("type", ""),
            tags=d.get("tags", []),
            scope=d.get("scope"),
            id=d.get("id"),
            severity=d.get("severity"),
            links=d.get("links"),
            source=d.get("source"),
            project=d.get("project"),
            meta=d.get("meta"),
            auto_link=bool(d.get("autoLink", d.get("auto_link", False))),
            auto_link_threshold=threshold,
        )


@dataclass
class SimilarTitle:
    id: str
    title: str
    overlap: float

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.title, "overlap": round(self.overlap, 3)}


@dataclass
class WriteResult:
    id: str
    path: Path
    frontmatter: Frontmatter
    scope: str
    created: bool = True
    graph: Outcome[int] | None = None
    auto_linked: int = 0
    warnings: list[str] = field(default_factory=list)
    similar: list[SimilarTitle] = field(default_factory=list)

    @property
    def links_created(self) -> int:
        if self.graph is None or not self.graph.ok:
            return 0
        return self.graph.value or 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "path": str(self.path),
            "scope": self.scope,
            "created": self.created,
            "frontmatter": self.frontmatter.to_dict(),
            "graph": self.graph.to_dict() if self.graph else None,
            "linksCreated": self.links_created,
            "autoLinked": self.auto_linked,
            "warnings": self.warnings,
            "similar": [s.to_dict() for s in self.similar],
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def title_tokens(title: str) -> set[str]:
    return {w for w in _WORD.findall(title.lower()) if len(w) > 2}


def similar_titles(vault: Vault, memory_id: str, title: str) -> list[SimilarTitle]:
    """Existing records whose title shares most of its words with title (Jaccard overlap)."""
    tokens = title_tokens(title)
    if not tokens:
        return []
    found: list[SimilarTitle] = []
    for entry in vault.index.load():
        if entry.id == memory_id:
            continue
        other = title_tokens(entry.title)
        if not other:
            continue
        overlap = len(tokens & other) / len(tokens | other)
        if overlap >= SIMILAR_TITLE_THRESHOLD:
            found.append(SimilarTitle(entry.id, entry.title, overlap))
    found.sort(key=lambda s: s.overlap, reverse=True)
    return found[:SIMILAR_TITLE_LIMIT]


def auto_link(vault: Vault, memory_id: str, provider: EmbeddingProvider, threshold: float) -> int:
    """Link memory_id to its close neighbours. Returns edges created; single edge failures are logged.

    Vectors for other records are brought up to date first (only changed texts hit the provider).
    """
    vault.embeddings.batch_embed(provider)
    matches = vault.embeddings.find_similar_to_memory(
        memory_id, provider, threshold=threshold, limit=AUTO_LINK_LIMIT, for_auto_link=True,
    )
    if not matches:
        return 0
    types = {e.id: e.type for e in vault.index.load()}
    created = 0
    with vault.graphs.mutate() as graph:
        if not graph.has_node(memory_id):
            graph.add_node(memory_id, types.get(memory_id, ""))
        for match in matches:
            try:
                if not graph.has_node(match.id):
                    graph.add_node(match.id, types.get(match.id, ""))
                if graph.add_edge(memory_id, match.id, AUTO_LINK_LABEL):
                    created += 1
            except VaultError as exc:
                vault.log.warning("auto-link %s -> %s failed: %s", memory_id, match.id, exc)
    if created:
        vault.log.info("auto-linked %s to %d similar memories", memory_id, created)
    return created


# ---------------------------------------------------------------------------
# Write
# ---------------------------------------------------------------------------

def write_memory(vault: Vault, request: WriteRequest, provider: EmbeddingProvider | None = None) -> WriteResult:
    """Create a record (or upsert one when the caller supplies an existing id)."""
    validate_write_request(request)
    scope = normalise_scope(request.scope or vault.scope)
    if scope != vault.scope:
        msg = f"scope '{scope}' does not match storage root scope '{vault.scope}'"
        raise ValidationError(msg, [FieldError("scope", msg)])

    existing: Record | None = None
    if request.id:
        memory_id = request.id
        path = vault.store.locate(memory_id)
        if path is not None:
            existing = vault.store.load(path, lenient=True)
    else:
        memory_id = generate_unique_id(request.type, request.title, vault.exists)

    tags = merge_tags(request.tags, [scope_tag(scope)])

    dup = vault.find_in_siblings(memory_id)
    if dup is not None:
        raise CrossScopeDuplicateError(memory_id, dup[0], str(dup[1]))

    optional: dict[str, Any] = {
        "id": memory_id,
        "scope": scope,
        "project": request.project or vault.project,
        "severity": request.severity,
        "links": list(request.links or []),
        "source": request.source,
        "meta": dict(request.meta or {}),
    }
    if existing is not None:
        ts = now_iso()
        fm = Frontmatter(
            type=request.type, title=request.title, created=existing.frontmatter.created or ts,
            updated=ts, tags=tags, **optional,
        )
    else:
        fm = Frontmatter.new(request.type, request.title, tags, **optional)

    record = Record(id=memory_id, frontmatter=fm, content=request.content.strip())
    path = vault.save_record(record)
    vault.log.info("%s memory %s", "updated" if existing else "wrote", memory_id)

    result = WriteResult(id=memory_id, path=path, frontmatter=fm, scope=scope, created=existing is None)

    result.graph = attempt(
        "graph", lambda: vault.attach_to_graph(memory_id, request.type, fm.links), vault.log,
    )
    if not result.graph.ok:
        result.warnings.append(f"graph not updated ({result.graph.error}); run sync to repair")

    if request.auto_link:
        if provider is None:
            result.warnings.append("auto-link skipped: no embedding provider")
        else:
            linked = attempt(
                "auto-link",
                lambda: auto_link(vault, memory_id, provider, request.auto_link_threshold),
                vault.log,
            )
            if linked.ok:
                result.auto_linked = linked.value or 0
            else:
                result.warnings.append(f"auto-link failed: {linked.error}")

    result.similar = similar_titles(vault, memory_id, request.title)
    if result.similar:
        names = ", ".join(s.id for s in result.similar)
        result.warnings.append(f"similar existing titles: {names}")
    return result


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

@dataclass
class TagResult:
    id: str
    tags: list[str]
    changed: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "tags": self.tags, "changed": self.changed}


def _rewrite(vault: Vault, record: Record, **changes: Any) -> Record:
    record.frontmatter = record.frontmatter.touch(**changes)
    vault.save_record(record)
    attempt(
        "graph",
        lambda: vault.attach_to_graph(record.id, record.type, record.frontmatter.links),
        vault.log,
    )
    return record


def tag_memory(vault: Vault, memory_id: str, tags: list[str]) -> TagResult:
    """Add tags. Re-adding existing tags is a no-op and leaves the file untouched."""
    tags = validate_tags(tags)
    record = vault.read(memory_id)
    merged = merge_tags(record.tags, tags)
    added = [t for t in merged if t not in record.tags]
    if added:
        _rewrite(vault, record, tags=merged)
    return TagResult(memory_id, merged, added)


def untag_memory(vault: Vault, memory_id: str, tags: list[str]) -> TagResult:
    """Remove tags. The scope tag stays."""
    tags = validate_tags(tags)
    record = vault.read(memory_id)
    protected = scope_tag(record.frontmatter.scope or vault.scope)
    if protected in tags:
        msg = f"cannot remove scope tag '{protected}'"
        raise ValidationError(msg, [FieldError("tags", msg)])
    kept = [t for t in record.tags if t not in tags]
    removed = [t for t in record.tags if t in tags]
    if removed:
        _rewrite(vault, record, tags=kept)
    return TagResult(memory_id, kept, removed)


_UPDATABLE = ("title", "severity", "source", "links", "meta")


def update_memory(vault: Vault, memory_id: str, *, content: str | None = None, **fields: Any) -> Record:
    """Change header fields and/or body in place. id and created never change."""
    unknown = sorted(set(fields) - set(_UPDATABLE))
    if unknown:
        msg = f"fields cannot be updated: {', '.join(unknown)}"
        raise ValidationError(msg, [FieldError(k, "not updatable") for k in unknown])
    record = vault.read(memory_id)
    candidate = WriteRequest(
        title=fields.get("title", record.title),
        content=content if content is not None else record.content,
        type=record.type,
        tags=record.tags,
        severity=fields.get("severity", record.frontmatter.severity),
        links=fields.get("links", record.frontmatter.links),
        meta=fields.get("meta", record.frontmatter.meta),
    )
    validate_write_request(candidate)
    if content is not None:
        record.content = content.strip()
    changes = {k: v for k, v in fields.items() if v is not None or k == "severity"}
    return _rewrite(vault, record, **changes)

