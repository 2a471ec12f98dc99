"""graph.json: directed, labelled relationship graph over record ids.

Document layout:
    {"version": 1,
     "nodes": [{"id": "decision-use-yaml", "type": "decision"}],
     "edges": [{"source": "decision-use-yaml", "target": "gotcha-tabs", "label": "relates-to"}]}

Invariant: every edge references two existing nodes. remove_node() cascades.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from memvault.errors import NotFoundError, ValidationError
from memvault.models import DEFAULT_EDGE_LABEL, GraphEdge, GraphNode
from memvault.store import json_lock, read_json, write_json

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from memvault.store import FileStore

logger = logging.getLogger("memvault.graph")

GRAPH_FILENAME = "graph.json"
GRAPH_VERSION = 1


@dataclass
class Graph:
    """In-memory graph. Node order is insertion order; edges keep insertion order too."""

    nodes: dict[str, GraphNode] = field(default_factory=dict)
    edges: list[GraphEdge] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Graph:
        graph = cls()
        for n in d.get("nodes") or []:
            if isinstance(n, dict) and isinstance(n.get("id"), str):
                graph.nodes[n["id"]] = GraphNode.from_dict(n)
        seen: set[GraphEdge] = set()
        for e in d.get("edges") or []:
            if not (isinstance(e, dict) and isinstance(e.get("source"), str) and isinstance(e.get("target"), str)):
                continue
            edge = GraphEdge.from_dict(e)
            if edge not in seen:
                seen.add(edge)
                graph.edges.append(edge)
        return graph

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": GRAPH_VERSION,
            "nodes": [n.to_dict() for n in self.nodes.values()],
            "edges": [e.to_dict() for e in self.edges],
        }

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def add_node(self, node_id: str, node_type: str) -> GraphNode:
        """Insert or replace a node. Existing edges are kept."""
        node = GraphNode(id=node_id, type=node_type)
        self.nodes[node_id] = node
        return node

    def has_node(self, node_id: str) -> bool:
        return node_id in self.nodes

    def get_node(self, node_id: str) -> GraphNode | None:
        return self.nodes.get(node_id)

    def remove_node(self, node_id: str) -> bool:
        """Remove a node and every edge touching it."""
        if node_id not in self.nodes:
            return False
        del self.nodes[node_id]
        self.edges = [e for e in self.edges if not e.touches(node_id)]
        return True

    def rename_node(self, old_id: str, new_id: str) -> None:
        if old_id not in self.nodes:
            raise NotFoundError(old_id, "graph node")
        self.nodes = {
            (new_id if k == old_id else k): (GraphNode(id=new_id, type=n.type) if k == old_id else n)
            for k, n in self.nodes.items()
        }
        renamed: list[GraphEdge] = []
        seen: set[GraphEdge] = set()
        for e in self.edges:
            edge = GraphEdge(
                source=new_id if e.source == old_id else e.source,
                target=new_id if e.target == old_id else e.target,
                label=e.label,
            )
            if edge not in seen:
                seen.add(edge)
                renamed.append(edge)
        self.edges = renamed

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def add_edge(self, source: str, target: str, label: str = DEFAULT_EDGE_LABEL) -> bool:
        """Add an edge. Returns False when the exact (source, target, label) already exists."""
        if source == target:
            msg = f"self-referencing edge on {source}"
            raise ValidationError(msg)
        for node_id in (source, target):
            if node_id not in self.nodes:
                raise NotFoundError(node_id, "graph node")
        edge = GraphEdge(source=source, target=target, label=label)
        if edge in self.edges:
            return False
        self.edges.append(edge)
        return True

    def has_edge(self, source: str, target: str, label: str | None = None) -> bool:
        return any(
            e.source == source and e.target == target and (label is None or e.label == label)
            for e in self.edges
        )

    def remove_edge(self, source: str, target: str, label: str | None = None) -> int:
        """Remove source->target edges (all labels unless one is given). Returns count removed."""
        before = len(self.edges)
        self.edges = [
            e for e in self.edges
            if not (e.source == source and e.target == target and (label is None or e.label == label))
        ]
        return before - len(self.edges)

    def remove_dangling_edges(self) -> int:
        before = len(self.edges)
        self.edges = [e for e in self.edges if e.source in self.nodes and e.target in self.nodes]
        return before - len(self.edges)

    def dangling_edges(self) -> list[GraphEdge]:
        return [e for e in self.edges if e.source not in self.nodes or e.target not in self.nodes]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def outbound(self, node_id: str) -> list[GraphEdge]:
        return [e for e in self.edges if e.source == node_id]

    def inbound(self, node_id: str) -> list[GraphEdge]:
        return [e for e in self.edges if e.target == node_id]

    def neighbours(self, node_id: str) -> list[str]:
        """Ids connected in either direction, in edge order, without duplicates."""
        seen: dict[str, None] = {}
        for e in self.edges:
            if e.source == node_id:
                seen.setdefault(e.target, None)
            elif e.target == node_id:
                seen.setdefault(e.source, None)
        return list(seen)

    def degree(self, node_id: str) -> int:
        return sum(1 for e in self.edges if e.touches(node_id))

    def find_orphaned_nodes(self) -> list[str]:
        """Nodes with neither inbound nor outbound edges."""
        connected: set[str] = set()
        for e in self.edges:
            connected.add(e.source)
            connected.add(e.target)
        return [n for n in self.nodes if n not in connected]

    def subgraph(self, node_ids: Iterable[str]) -> Graph:
        """Induced subgraph: the given nodes and the edges between them."""
        keep = set(node_ids)
        sub = Graph()
        for node_id, node in self.nodes.items():
            if node_id in keep:
                sub.nodes[node_id] = GraphNode(id=node.id, type=node.type)
        sub.edges = [e for e in self.edges if e.source in sub.nodes and e.target in sub.nodes]
        return sub


class GraphStore:
    """Load/mutate/save wrapper around graph.json."""

    def __init__(self, store: FileStore, log: logging.Logger | None = None) -> None:
        self.path = store.root / GRAPH_FILENAME
        self.log = log or logger

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Graph:
        data = read_json(self.path, self.log)
        if data is None:
            return Graph()
        if not isinstance(data, dict):
            self.log.warning("graph %s is not an object, treating as empty", self.path)
            return Graph()
        return Graph.from_dict(data)

    def save(self, graph: Graph) -> None:
        write_json(self.path, graph.to_dict())

    @contextlib.contextmanager
    def mutate(self) -> Iterator[Graph]:
        """Locked load, yield for in-place changes, save on clean exit."""
        with json_lock(self.path):
            graph = self.load()
            yield graph
            self.save(graph)

    # Convenience single-step mutations

    def upsert_node(self, node_id: str, node_type: str) -> None:
        with self.mutate() as graph:
            graph.add_node(node_id, node_type)

    def remove_node(self, node_id: str) -> bool:
        with self.mutate() as graph:
            return graph.remove_node(node_id)
