"""Vault: one storage root with its file store, index, graph and embedding cache.

    vault = Vault("/repo/.memvault", scope="project", siblings={"user": "~/.memvault"})
    record = vault.read("gotcha-edge-case")
    vault.link("decision-use-yaml", "gotcha-edge-case", "warns")

Files are authoritative. Index and graph lag behind them at times; reads fall
back to the files and memvault.audit heals the drift.
"""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from memvault.codec import serialise_record
from memvault.embeddings import EmbeddingEngine, effective_threshold
from memvault.errors import CrossScopeDuplicateError, NotFoundError, ValidationError, VaultError
from memvault.graph import GraphStore
from memvault.index import IndexCache
from memvault.models import (
    AUTO_LINK_LABEL,
    DEFAULT_EDGE_LABEL,
    TEMPORARY_TYPES,
    GraphEdge,
    IndexEntry,
    Record,
    merge_tags,
    normalise_scope,
    scope_tag,
)
from memvault.outcome import Outcome, attempt
from memvault.similarity import DUPLICATE_THRESHOLD, find_potential_duplicates, find_similar_memories
from memvault.slug import parse_id
from memvault.store import FileStore
from memvault.validation import id_errors, validate_edge_label

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from memvault.embedder import EmbeddingProvider
    from memvault.graph import Graph
    from memvault.similarity import DuplicatePair

logger = logging.getLogger("memvault.vault")

SUGGEST_THRESHOLD = 0.75
SUGGEST_LIMIT = 20
SNIPPET_RADIUS = 60


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class LinkResult:
    edge: GraphEdge
    already_exists: bool

    def to_dict(self) -> dict[str, Any]:
        return {"edge": self.edge.to_dict(), "alreadyExists": self.already_exists}


@dataclass
class DeleteResult:
    id: str
    path: str | None
    cleanup: list[Outcome[Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "path": self.path, "cleanup": [o.to_dict() for o in self.cleanup]}


@dataclass
class KeywordHit:
    id: str
    title: str
    type: str
    score: float
    snippet: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.title, "type": self.type, "score": round(self.score, 3),
                "snippet": self.snippet}


@dataclass
class LinkSuggestion:
    source: str
    target: str
    similarity: float

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "target": self.target, "similarity": round(self.similarity, 4)}


@dataclass
class SuggestResult:
    suggestions: list[LinkSuggestion] = field(default_factory=list)
    created: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"suggestions": [s.to_dict() for s in self.suggestions], "created": self.created}


@dataclass
class RenameResult:
    old_id: str
    new_id: str
    path: str
    edges_updated: int = 0
    references_updated: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "oldId": self.old_id,
            "newId": self.new_id,
            "path": self.path,
            "edgesUpdated": self.edges_updated,
            "referencesUpdated": self.references_updated,
        }


def _snippet(content: str, needle: str) -> str:
    pos = content.lower().find(needle)
    if pos < 0:
        return content[: SNIPPET_RADIUS * 2].strip()
    start = max(0, pos - SNIPPET_RADIUS)
    end = min(len(content), pos + len(needle) + SNIPPET_RADIUS)
    text = " ".join(content[start:end].split())
    return ("..." if start > 0 else "") + text + ("..." if end < len(content) else "")


# ---------------------------------------------------------------------------
# Vault
# ---------------------------------------------------------------------------

class Vault:
    """A resolved storage root. Scope resolution happens before this is built."""

    def __init__(
        self,
        root: Path | str,
        scope: str = "project",
        siblings: Mapping[str, Path | str] | None = None,
        log: logging.Logger | None = None,
        project: str | None = None,
    ) -> None:
        self.log = log or logger
        self.scope = normalise_scope(scope)
        self.project = project
        self.store = FileStore(root, self.log)
        self.index = IndexCache(self.store, self.scope, self.log)
        self.graphs = GraphStore(self.store, self.log)
        self.embeddings = EmbeddingEngine(self.store, self.index, self.log)
        self.siblings: dict[str, Path] = {}
        for name, path in (siblings or {}).items():
            name = normalise_scope(name)
            if name != self.scope and Path(path).expanduser().resolve() != self.root.resolve():
                self.siblings[name] = Path(path).expanduser()

    @property
    def root(self) -> Path:
        return self.store.root

    def __repr__(self) -> str:
        return f"Vault({str(self.root)!r}, scope={self.scope!r})"

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def locate(self, memory_id: str) -> Path | None:
        """Path of a record: index first, then a direct look on disk."""
        self.store.check_id(memory_id)
        entry = self.index.find(memory_id)
        if entry is not None and entry.relative_path:
            path = self.store.safe_path(entry.relative_path)
            if path.is_file():
                return path
        return self.store.locate(memory_id)

    def exists(self, memory_id: str) -> bool:
        return self.store.exists(memory_id) or self.index.find(memory_id) is not None

    def read(self, memory_id: str, *, lenient: bool = False) -> Record:
        path = self.locate(memory_id)
        if path is None:
            raise NotFoundError(memory_id)
        record = self.store.load(path, lenient=lenient)
        record.id = memory_id
        return record

    def find_in_siblings(self, memory_id: str) -> tuple[str, Path] | None:
        """(scope, path) of the first sibling root already holding memory_id."""
        for scope, root in self.siblings.items():
            path = FileStore(root, self.log).locate(memory_id)
            if path is not None:
                return scope, path
        return None

    def graph(self) -> Graph:
        return self.graphs.load()

    def entry_type(self, memory_id: str) -> str | None:
        entry = self.index.find(memory_id)
        if entry is not None:
            return entry.type
        if self.store.exists(memory_id):
            parsed = parse_id(memory_id)
            return parsed[0] if parsed else None
        return None

    # ------------------------------------------------------------------
    # Persisting a record (shared by writer, tag and update paths)
    # ------------------------------------------------------------------

    def save_record(self, record: Record) -> Path:
        """Write the file atomically and refresh its index entry. Errors propagate."""
        path = self.store.path_for(record.id, record.type)
        self.store.write(path, serialise_record(record.frontmatter, record.content))
        record.relative_path = self.store.relative(path)
        self.index.add(IndexEntry.from_record(record, self.scope))
        return path

    def attach_to_graph(self, memory_id: str, memory_type: str, links: Iterable[str] = ()) -> int:
        """Upsert the node and a relates-to edge for every resolvable link. Returns edges created."""
        known = {e.id: e.type for e in self.index.load()}
        created = 0
        with self.graphs.mutate() as graph:
            graph.add_node(memory_id, memory_type)
            for target in links:
                if target == memory_id:
                    continue
                if not graph.has_node(target):
                    if target not in known:
                        self.log.warning("link from %s to unknown memory %s ignored", memory_id, target)
                        continue
                    graph.add_node(target, known[target])
                if graph.add_edge(memory_id, target, DEFAULT_EDGE_LABEL):
                    created += 1
        return created

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_memories(
        self,
        memory_type: str | None = None,
        tags: Iterable[str] | None = None,
        pattern: str | None = None,
        scope: str | None = None,
        limit: int | None = None,
    ) -> list[IndexEntry]:
        """Index entries, newest update first. tags must all match; pattern is a glob on ids."""
        wanted = set(tags or ())
        entries = [
            e for e in self.index.load()
            if (memory_type is None or e.type == memory_type)
            and (scope is None or e.scope == normalise_scope(scope))
            and wanted.issubset(e.tags)
            and (pattern is None or fnmatch.fnmatchcase(e.id, pattern))
        ]
        entries.sort(key=lambda e: e.updated, reverse=True)
        return entries[:limit] if limit is not None else entries

    def search(self, query: str, limit: int = 20, memory_type: str | None = None) -> list[KeywordHit]:
        """Weighted substring match over title, tags and content."""
        needle = query.strip().lower()
        if not needle:
            msg = "search query must not be empty"
            raise ValidationError(msg)
        hits: list[KeywordHit] = []
        for entry in self.index.load():
            if memory_type is not None and entry.type != memory_type:
                continue
            score = 0.0
            title = entry.title.lower()
            if needle in title:
                score += 0.5
                if title == needle:
                    score += 0.3
            if any(needle in t.lower() for t in entry.tags):
                score += 0.3
            content = ""
            try:
                path = self.store.safe_path(entry.relative_path) if entry.relative_path else None
                if path is not None and path.is_file():
                    content = self.store.load(path, lenient=True).content
            except VaultError as exc:
                self.log.warning("search skipped content of %s: %s", entry.id, exc)
            occurrences = content.lower().count(needle)
            if occurrences:
                score += 0.2 + min(occurrences * 0.02, 0.1)
            if score > 0:
                hits.append(KeywordHit(entry.id, entry.title, entry.type, min(score, 1.0), _snippet(content, needle)))
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:limit]

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete(self, memory_id: str) -> DeleteResult:
        """Remove the file, then best-effort index, graph and embedding cleanup."""
        path = self.locate(memory_id)
        if path is None and self.index.find(memory_id) is None:
            raise NotFoundError(memory_id)
        rel = None
        if path is not None:
            rel = self.store.relative(path)
            self.store.delete(path)
        result = DeleteResult(id=memory_id, path=rel)
        result.cleanup.append(attempt("index", lambda: self.index.remove(memory_id), self.log))
        result.cleanup.append(attempt("graph", lambda: self.graphs.remove_node(memory_id), self.log))
        result.cleanup.append(attempt("embeddings", lambda: self.embeddings.cache.remove([memory_id]), self.log))
        self.log.info("deleted memory %s", memory_id)
        return result

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    def link(self, source: str, target: str, label: str = DEFAULT_EDGE_LABEL) -> LinkResult:
        """Create source -> target. Reports already_exists instead of duplicating."""
        if not source or not target:
            msg = "source and target are required"
            raise ValidationError(msg)
        if source == target:
            msg = "cannot link a memory to itself"
            raise ValidationError(msg)
        label = validate_edge_label(label)
        types: dict[str, str] = {}
        for memory_id in (source, target):
            memory_type = self.entry_type(memory_id)
            if memory_type is None:
                raise NotFoundError(memory_id)
            types[memory_id] = memory_type

        edge = GraphEdge(source, target, label)
        with self.graphs.mutate() as graph:
            for memory_id, memory_type in types.items():
                if not graph.has_node(memory_id):
                    graph.add_node(memory_id, memory_type)
            created = graph.add_edge(source, target, label)
        if created:
            self.log.info("linked %s -[%s]-> %s", source, label, target)
        return LinkResult(edge=edge, already_exists=not created)

    def unlink(self, source: str, target: str, label: str | None = None) -> int:
        """Remove source -> target edges (one label, or all). Returns how many went."""
        if not source or not target:
            msg = "source and target are required"
            raise ValidationError(msg)
        if not self.graphs.exists():
            return 0
        with self.graphs.mutate() as graph:
            return graph.remove_edge(source, target, label)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def reindex(self, memory_id: str) -> IndexEntry:
        """Re-derive one record's index entry and graph node from its file.

        A file missing its scope tag gets it back.
        """
        path = self.store.locate(memory_id)
        if path is None:
            raise NotFoundError(memory_id)
        record = self.store.load(path)
        tag = scope_tag(record.frontmatter.scope or self.scope)
        if tag not in record.tags:
            record.frontmatter = record.frontmatter.touch(tags=merge_tags(record.tags, [tag]))
            self.store.write(path, serialise_record(record.frontmatter, record.content))
            self.log.info("restored scope tag %r on %s", tag, memory_id)
        entry = IndexEntry.from_record(record, self.scope)
        self.index.add(entry)
        attempt("graph node", lambda: self.attach_to_graph(memory_id, record.type), self.log)
        return entry

    def rename(self, old_id: str, new_id: str) -> RenameResult:
        """Move a record to a new id: file, index entry, graph node/edges, embedding, and links."""
        record = self.read(old_id)
        errors = id_errors(new_id, record.type)
        if errors:
            raise ValidationError.from_errors(errors)
        if new_id == old_id:
            msg = "new id equals old id"
            raise ValidationError(msg)
        if self.exists(new_id):
            msg = f"memory already exists: {new_id}"
            raise ValidationError(msg)
        dup = self.find_in_siblings(new_id)
        if dup is not None:
            raise CrossScopeDuplicateError(new_id, dup[0], str(dup[1]))

        old_path = self.locate(old_id)
        renamed = Record(
            id=new_id,
            frontmatter=record.frontmatter.touch(id=new_id),
            content=record.content,
        )
        new_path = self.save_record(renamed)
        if old_path is not None:
            self.store.delete(old_path)
        self.index.remove(old_id)

        edges_updated = 0
        if self.graphs.exists():
            with self.graphs.mutate() as graph:
                if graph.has_node(old_id):
                    edges_updated = sum(1 for e in graph.edges if e.touches(old_id))
                    graph.rename_node(old_id, new_id)
        attempt("embeddings", lambda: self.embeddings.cache.rename(old_id, new_id), self.log)

        refs: list[str] = []
        for other_id, path in self.store.list_files().items():
            if other_id == new_id:
                continue
            try:
                other = self.store.load(path, lenient=True)
            except VaultError as exc:
                self.log.warning("rename: cannot check links in %s: %s", other_id, exc)
                continue
            if old_id in other.frontmatter.links:
                links = [new_id if link == old_id else link for link in other.frontmatter.links]
                other.frontmatter = other.frontmatter.touch(links=links)
                self.save_record(other)
                refs.append(other_id)

        self.log.info("renamed %s -> %s", old_id, new_id)
        return RenameResult(old_id, new_id, self.store.relative(new_path), edges_updated, refs)

    # ------------------------------------------------------------------
    # Similarity suggestions
    # ------------------------------------------------------------------

    def suggest_links(
        self,
        provider: EmbeddingProvider | None = None,
        *,
        threshold: float = SUGGEST_THRESHOLD,
        limit: int = SUGGEST_LIMIT,
        auto_link: bool = False,
    ) -> SuggestResult:
        """Pairs of unlinked durable records whose vectors are close.

        With auto_link, each suggestion becomes an auto-linked-by-similarity edge
        (threshold raised to the auto-link minimum).
        """
        threshold = effective_threshold(threshold, for_auto_link=auto_link)
        if provider is not None:
            self.embeddings.batch_embed(provider)
        entries = {e.id: e for e in self.index.load() if e.type not in TEMPORARY_TYPES}
        vectors = {k: v for k, v in self.embeddings.fresh_vectors().items() if k in entries}
        graph = self.graphs.load()
        linked = {frozenset((e.source, e.target)) for e in graph.edges}

        seen: set[frozenset[str]] = set()
        suggestions: list[LinkSuggestion] = []
        for memory_id, vec in vectors.items():
            for match in find_similar_memories(vec, vectors, threshold=threshold, exclude_id=memory_id):
                pair = frozenset((memory_id, match.id))
                if pair in seen or pair in linked:
                    continue
                seen.add(pair)
                suggestions.append(LinkSuggestion(memory_id, match.id, match.similarity))
        suggestions.sort(key=lambda s: s.similarity, reverse=True)
        result = SuggestResult(suggestions=suggestions[:limit])

        if auto_link and result.suggestions:
            with self.graphs.mutate() as g:
                for s in result.suggestions:
                    for memory_id in (s.source, s.target):
                        if not g.has_node(memory_id):
                            g.add_node(memory_id, entries[memory_id].type)
                    if g.add_edge(s.source, s.target, AUTO_LINK_LABEL):
                        result.created += 1
            self.log.info("auto-linked %d suggested pairs", result.created)
        return result


    def find_duplicates(
        self,
        provider: EmbeddingProvider | None = None,
        *,
        threshold: float = DUPLICATE_THRESHOLD,
        limit: int | None = None,
    ) -> list[DuplicatePair]:
        """Record pairs whose current vectors are near-identical, best first.

        Linked pairs are included.
        """
        if provider is not None:
            self.embeddings.batch_embed(provider)
        return find_potential_duplicates(self.embeddings.fresh_vectors(), threshold=threshold, limit=limit)
