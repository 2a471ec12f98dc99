"""Graph algorithms over a memvault Graph, delegated to networkx.

The Graph document stays the persisted form; to_networkx() builds a
MultiDiGraph from it for each query, one edge per label keyed by the label.
Edges whose endpoints are missing from the node table are left out.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import networkx as nx

if TYPE_CHECKING:
    from memvault.graph import Graph
    from memvault.models import GraphEdge

DEFAULT_IMPACT_DEPTH = 3


@dataclass
class Traversal:
    """Visit order plus hop distance from the start node."""

    order: list[str] = field(default_factory=list)
    depths: dict[str, int] = field(default_factory=dict)


@dataclass
class ImpactReport:
    """What changing or removing a record would touch."""

    node_id: str
    affected: dict[str, int] = field(default_factory=dict)
    orphaned_nodes: list[str] = field(default_factory=list)
    broken_edges: list[GraphEdge] = field(default_factory=list)
    max_depth: int = DEFAULT_IMPACT_DEPTH

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.node_id,
            "maxDepth": self.max_depth,
            "affected": [{"id": k, "depth": v} for k, v in self.affected.items()],
            "orphanedNodes": self.orphaned_nodes,
            "brokenEdges": [e.to_dict() for e in self.broken_edges],
        }


def to_networkx(graph: Graph) -> nx.MultiDiGraph:
    g = nx.MultiDiGraph()
    for node_id, node in graph.nodes.items():
        g.add_node(node_id, type=node.type)
    for e in graph.edges:
        if e.source in graph.nodes and e.target in graph.nodes:
            g.add_edge(e.source, e.target, key=e.label)
    return g


def _levels(g: nx.MultiDiGraph | nx.MultiGraph, start: str, max_depth: int | None) -> Traversal:
    if start not in g:
        return Traversal()
    depths = nx.single_source_shortest_path_length(g, start, cutoff=max_depth)
    return Traversal(order=list(depths), depths=dict(depths))


def bfs(graph: Graph, start: str, max_depth: int | None = None) -> Traversal:
    """Breadth-first walk along outbound edges."""
    return _levels(to_networkx(graph), start, max_depth)


def dfs(graph: Graph, start: str, max_depth: int | None = None) -> Traversal:
    """Depth-first (pre-order) walk along outbound edges."""
    g = to_networkx(graph)
    if start not in g:
        return Traversal()
    result = Traversal(order=[start], depths={start: 0})
    if max_depth == 0:
        return result
    for parent, child in nx.dfs_edges(g, start, depth_limit=max_depth):
        result.depths[child] = result.depths[parent] + 1
        result.order.append(child)
    return result


def find_reachable(graph: Graph, start: str, max_depth: int | None = None) -> set[str]:
    """Forward closure of start, start itself excluded."""
    g = to_networkx(graph)
    if start not in g:
        return set()
    if max_depth is None:
        return set(nx.descendants(g, start))
    return set(_levels(g, start, max_depth).order) - {start}


def find_predecessors(graph: Graph, target: str, max_depth: int | None = None) -> set[str]:
    """Every node with a directed path into target, target itself excluded."""
    g = to_networkx(graph)
    if target not in g:
        return set()
    if max_depth is None:
        return set(nx.ancestors(g, target))
    return set(_levels(g.reverse(), target, max_depth).order) - {target}


def find_shortest_path(graph: Graph, start: str, end: str) -> list[str] | None:
    """Unweighted shortest directed path, or None when there is none."""
    try:
        return nx.shortest_path(to_networkx(graph), start, end)
    except (nx.NetworkXNoPath, nx.NodeNotFound):
        return None


def connected_components(graph: Graph) -> list[list[str]]:
    """Weakly connected components (edges taken as undirected), largest first.

    Members keep the node table's order.
    """
    position = {node_id: i for i, node_id in enumerate(graph.nodes)}
    components = [
        sorted(members, key=position.__getitem__)
        for members in nx.weakly_connected_components(to_networkx(graph))
    ]
    components.sort(key=len, reverse=True)
    return components


def calculate_impact(graph: Graph, node_id: str, max_depth: int = DEFAULT_IMPACT_DEPTH) -> ImpactReport:
    """Bounded forward blast radius of node_id, plus what its removal would break."""
    g = to_networkx(graph)
    walk = _levels(g, node_id, max_depth)
    affected = {n: d for n, d in walk.depths.items() if n != node_id}
    broken = [e for e in graph.edges if e.touches(node_id)]

    orphaned: list[str] = []
    if node_id in g:
        for neighbour in graph.neighbours(node_id):
            if neighbour not in g:
                continue
            shared = g.number_of_edges(node_id, neighbour) + g.number_of_edges(neighbour, node_id)
            if g.degree(neighbour) == shared:
                orphaned.append(neighbour)

    return ImpactReport(
        node_id=node_id,
        affected=affected,
        orphaned_nodes=orphaned,
        broken_edges=broken,
        max_depth=max_depth,
    )


def subgraph_around(graph: Graph, node_id: str, depth: int = 1) -> Graph:
    """Induced subgraph of everything within depth hops of node_id, in either direction."""
    walk = _levels(to_networkx(graph).to_undirected(), node_id, depth)
    return graph.subgraph(walk.order)
