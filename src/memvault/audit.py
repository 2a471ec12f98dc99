"""Consistency and health auditing across files, index and graph.

validate()  read-only cross-check, 0-100 score, fix suggestions
sync()      non-destructive reconciliation; graph edges between live records survive
rebuild()   destructive reconstruction from files; only `links` edges come back
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from memvault.embeddings import embedding_text
from memvault.errors import FormatError, StorageError, ValidationError
from memvault.graph import Graph
from memvault.models import DEFAULT_EDGE_LABEL, TEMPORARY_TYPES, IndexEntry, now_iso, scope_tag
from memvault.traversal import connected_components

if TYPE_CHECKING:
    from memvault.models import Record
    from memvault.vault import Vault

logger = logging.getLogger("memvault.audit")

HUB_DEGREE_LIMIT = 25

# kind -> (penalty per item, cap or None)
PENALTIES: dict[str, tuple[float, float | None]] = {
    "missing_index": (30, None),
    "missing_graph": (30, None),
    "orphan_index_entry": (10, None),
    "missing_node": (10, None),
    "orphan_file": (5, None),
    "ghost_node": (5, None),
    "dangling_edge": (5, None),
    "unparsable_file": (5, None),
    "tag_inconsistency": (2, None),
    "orphaned_nodes": (3, 30),
    "low_connectivity": (10, None),
    "hub_overload": (2, None),
    "stale_embedding": (1, 10),
}

FIXES = {
    "missing_index": "rebuild",
    "missing_graph": "rebuild",
    "orphan_index_entry": "sync",
    "missing_node": "sync",
    "orphan_file": "reindex {id}",
    "ghost_node": "sync",
    "dangling_edge": "sync",
    "unparsable_file": "reindex {id}",
    "tag_inconsistency": "reindex {id}",
    "orphaned_nodes": "suggest-links",
    "low_connectivity": "suggest-links --auto-link",
    "hub_overload": "graph impact {id}",
    "stale_embedding": "embed",
}

DETAIL_LIMIT = 10


@dataclass
class Issue:
    kind: str
    count: int
    ids: list[str] = field(default_factory=list)
    message: str = ""

    @property
    def penalty(self) -> float:
        per_item, cap = PENALTIES.get(self.kind, (5, None))
        total = per_item * self.count
        return min(total, cap) if cap is not None else total

    @property
    def fixes(self) -> list[str]:
        template = FIXES.get(self.kind, "sync")
        if "{id}" not in template:
            return [template]
        return [template.format(id=i) for i in self.ids[:DETAIL_LIMIT]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "count": self.count,
            "penalty": self.penalty,
            "message": self.message,
            "details": self.ids[:DETAIL_LIMIT],
            "fix": self.fixes,
        }


def rating_for(score: float) -> str:
    if score >= 90:
        return "Excellent"
    if score >= 70:
        return "Good"
    if score >= 50:
        return "Needs Attention"
    return "Critical"


def status_for(score: float) -> str:
    if score >= 90:
        return "healthy"
    if score >= 70:
        return "warning"
    return "critical"


@dataclass
class HealthReport:
    score: float
    issues: list[Issue]
    stats: dict[str, Any]
    timestamp: str = field(default_factory=now_iso)

    @property
    def rating(self) -> str:
        return rating_for(self.score)

    @property
    def status(self) -> str:
        return status_for(self.score)

    def issue(self, kind: str) -> Issue | None:
        for i in self.issues:
            if i.kind == kind:
                return i
        return None

    def count(self, kind: str) -> int:
        found = self.issue(kind)
        return found.count if found else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "rating": self.rating,
            "status": self.status,
            "stats": self.stats,
            "issues": [i.to_dict() for i in self.issues],
            "timestamp": self.timestamp,
        }


# ---------------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------------

@dataclass
class _Scan:
    records: dict[str, Record]
    unparsable: dict[str, str]
    file_ids: set[str]


def _scan(vault: Vault) -> _Scan:
    records: dict[str, Record] = {}
    unparsable: dict[str, str] = {}
    files = vault.store.list_files()
    for memory_id, path in files.items():
        try:
            record = vault.store.load(path)
        except (FormatError, ValidationError, StorageError) as exc:
            unparsable[memory_id] = str(exc)
            continue
        records[memory_id] = record
    return _Scan(records=records, unparsable=unparsable, file_ids=set(files))


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------

def validate(vault: Vault, *, hub_degree: int = HUB_DEGREE_LIMIT) -> HealthReport:
    """Cross-reference files, index and graph. Read-only."""
    scan = _scan(vault)
    issues: list[Issue] = []

    def add(kind: str, ids: list[str], message: str, count: int | None = None) -> None:
        n = len(ids) if count is None else count
        if n:
            issues.append(Issue(kind=kind, count=n, ids=sorted(ids), message=message))

    if not vault.index.exists():
        add("missing_index", [], "index.json is missing", count=1)
    if not vault.graphs.exists():
        add("missing_graph", [], "graph.json is missing", count=1)

    entries = {e.id: e for e in vault.index.load()}
    graph = vault.graphs.load()

    add("unparsable_file", list(scan.unparsable), "record files that fail to parse")
    add("orphan_index_entry", [i for i in entries if i not in scan.file_ids], "index entries without a file")
    add("orphan_file", [i for i in scan.file_ids if i not in entries], "files missing from the index")
    add(
        "missing_node",
        [i for i in entries if i in scan.file_ids and not graph.has_node(i)],
        "indexed records without a graph node",
    )
    add("ghost_node", [n for n in graph.nodes if n not in scan.file_ids], "graph nodes without a file")
    dangling = graph.dangling_edges()
    add(
        "dangling_edge",
        [f"{e.source}->{e.target}" for e in dangling],
        "edges referencing missing nodes",
    )

    mismatched: list[str] = []
    for memory_id, record in scan.records.items():
        entry = entries.get(memory_id)
        if entry is None:
            continue
        expected_tag = scope_tag(record.frontmatter.scope or vault.scope)
        if set(entry.tags) != set(record.tags) or expected_tag not in record.tags:
            mismatched.append(memory_id)
    add("tag_inconsistency", mismatched, "index tags differ from the file, or the scope tag is missing")

    isolated = [
        n for n in graph.find_orphaned_nodes()
        if graph.nodes[n].type not in TEMPORARY_TYPES
    ]
    add("orphaned_nodes", isolated, "records with no relationships")

    total_nodes = len(graph.nodes)
    connected = total_nodes - len(graph.find_orphaned_nodes())
    ratio = connected / total_nodes if total_nodes else 1.0
    if ratio < 0.5 and total_nodes > 5:
        add("low_connectivity", [], f"only {ratio:.0%} of nodes are connected", count=1)

    degrees = {n: graph.degree(n) for n in graph.nodes}
    add("hub_overload", [n for n, d in degrees.items() if d > hub_degree], f"nodes with more than {hub_degree} edges")

    if vault.embeddings.cache.path.exists():
        texts = {i: embedding_text(r) for i, r in scan.records.items()}
        add("stale_embedding", vault.embeddings.stale_ids(texts), "cached embeddings older than their record")

    score = max(0.0, min(100.0, 100.0 - sum(i.penalty for i in issues)))
    stats = {
        "files": len(scan.file_ids),
        "indexEntries": len(entries),
        "nodes": total_nodes,
        "edges": len(graph.edges),
        "components": len(connected_components(graph)),
        "orphanedNodes": len(isolated),
        "connectivityRatio": round(ratio, 3),
        "averageDegree": round(sum(degrees.values()) / total_nodes, 2) if total_nodes else 0.0,
    }
    report = HealthReport(score=score, issues=issues, stats=stats)
    vault.log.info("health check %s: score=%.0f issues=%d", vault.root, score, len(issues))
    return report


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------

@dataclass
class SyncResult:
    dry_run: bool = False
    entries_added: list[str] = field(default_factory=list)
    entries_refreshed: list[str] = field(default_factory=list)
    entries_removed: list[str] = field(default_factory=list)
    nodes_added: list[str] = field(default_factory=list)
    nodes_removed: list[str] = field(default_factory=list)
    edges_removed: int = 0
    embeddings_removed: list[str] = field(default_factory=list)
    failures: list[tuple[str, str]] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(
            self.entries_added or self.entries_refreshed or self.entries_removed
            or self.nodes_added or self.nodes_removed or self.edges_removed or self.embeddings_removed
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "dryRun": self.dry_run,
            "entriesAdded": self.entries_added,
            "entriesRefreshed": self.entries_refreshed,
            "entriesRemoved": self.entries_removed,
            "nodesAdded": self.nodes_added,
            "nodesRemoved": self.nodes_removed,
            "edgesRemoved": self.edges_removed,
            "embeddingsRemoved": self.embeddings_removed,
            "failures": [{"id": i, "error": e} for i, e in self.failures],
        }


def sync(vault: Vault, *, dry_run: bool = False) -> SyncResult:
    """Reconcile index and graph with the files without discarding edges between live records."""
    scan = _scan(vault)
    result = SyncResult(dry_run=dry_run, failures=sorted(scan.unparsable.items()))

    current = {e.id: e for e in vault.index.load()}
    new_entries: list[IndexEntry] = []
    for memory_id, entry in current.items():
        if memory_id not in scan.file_ids:
            result.entries_removed.append(memory_id)
            continue
        record = scan.records.get(memory_id)
        if record is None:
            new_entries.append(entry)  # unparsable file: leave its entry alone
            continue
        fresh = IndexEntry.from_record(record, vault.scope)
        if fresh != entry:
            result.entries_refreshed.append(memory_id)
        new_entries.append(fresh)
    for memory_id, record in scan.records.items():
        if memory_id not in current:
            result.entries_added.append(memory_id)
            new_entries.append(IndexEntry.from_record(record, vault.scope))

    graph = vault.graphs.load()
    for memory_id in list(graph.nodes):
        if memory_id not in scan.file_ids:
            result.nodes_removed.append(memory_id)
    for memory_id, record in scan.records.items():
        if not graph.has_node(memory_id):
            result.nodes_added.append(memory_id)

    orphan_vectors = vault.embeddings.orphan_ids(scan.file_ids) if vault.embeddings.cache.path.exists() else []
    result.embeddings_removed = orphan_vectors

    if not dry_run:
        vault.index.replace_all(new_entries)
        with vault.graphs.mutate() as g:
            before = len(g.edges)
            for memory_id in result.nodes_removed:
                g.remove_node(memory_id)
            for memory_id in result.nodes_added:
                g.add_node(memory_id, scan.records[memory_id].type)
            g.remove_dangling_edges()
            result.edges_removed = before - len(g.edges)
        if orphan_vectors:
            vault.embeddings.cache.remove(orphan_vectors)
        vault.log.info(
            "sync %s: +%d/-%d entries, +%d/-%d nodes, -%d edges",
            vault.root, len(result.entries_added), len(result.entries_removed),
            len(result.nodes_added), len(result.nodes_removed), result.edges_removed,
        )
    else:
        doomed = set(result.nodes_removed)
        result.edges_removed = sum(
            1 for e in graph.edges
            if e.source in doomed or e.target in doomed or not graph.has_node(e.source) or not graph.has_node(e.target)
        )

    for lst in (result.entries_added, result.entries_refreshed, result.entries_removed,
                result.nodes_added, result.nodes_removed):
        lst.sort()
    return result


# ---------------------------------------------------------------------------
# rebuild
# ---------------------------------------------------------------------------

@dataclass
class RebuildReport:
    entries: int = 0
    nodes: int = 0
    edges_recovered: int = 0
    edges_dropped: int = 0
    orphans_removed: list[str] = field(default_factory=list)
    new_entries_added: list[str] = field(default_factory=list)
    failures: list[tuple[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entries": self.entries,
            "nodes": self.nodes,
            "edgesRecovered": self.edges_recovered,
            "edgesDropped": self.edges_dropped,
            "orphansRemoved": self.orphans_removed,
            "newEntriesAdded": self.new_entries_added,
            "failures": [{"path": p, "error": e} for p, e in self.failures],
        }


def rebuild(vault: Vault) -> RebuildReport:
    """Throw away index and graph and derive both from the files.

    Edges survive only where a record's `links` header names them.
    """
    old_edges = len(vault.graphs.load().edges)
    index_result = vault.index.rebuild()

    graph = Graph()
    links: dict[str, list[str]] = {}
    for entry in index_result.entries:
        graph.add_node(entry.id, entry.type)
        try:
            record = vault.store.load(vault.store.safe_path(entry.relative_path), lenient=True)
        except (FormatError, StorageError) as exc:
            vault.log.warning("rebuild: cannot read links of %s: %s", entry.id, exc)
            continue
        links[entry.id] = record.frontmatter.links
    for source, targets in links.items():
        for target in targets:
            if target != source and graph.has_node(target):
                graph.add_edge(source, target, DEFAULT_EDGE_LABEL)

    with vault.graphs.mutate() as g:
        g.nodes = graph.nodes
        g.edges = graph.edges

    report = RebuildReport(
        entries=len(index_result.entries),
        nodes=len(graph.nodes),
        edges_recovered=len(graph.edges),
        edges_dropped=max(0, old_edges - len(graph.edges)),
        orphans_removed=index_result.orphans_removed,
        new_entries_added=index_result.new_entries_added,
        failures=index_result.failures,
    )
    vault.log.warning(
        "rebuilt %s from files: %d entries, %d edges recovered, %d dropped",
        vault.root, report.entries, report.edges_recovered, report.edges_dropped,
    )
    return report


def format_report(report: HealthReport) -> str:
    lines = [f"Health: {report.score:.0f}/100 ({report.rating})"]
    for key, value in report.stats.items():
        lines.append(f"  {key}: {value}")
    if not report.issues:
        lines.append("No issues found.")
    for issue in report.issues:
        lines.append(f"- {issue.kind} x{issue.count} (-{issue.penalty:g}): {issue.message}")
        for fix in issue.fixes:
            lines.append(f"    fix: memvault {fix}")
    return "\n".join(lines)
