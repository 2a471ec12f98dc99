"""Render a Graph as a Mermaid flowchart."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from memvault.traversal import subgraph_around

if TYPE_CHECKING:
    from memvault.graph import Graph

_SHAPES = {
    "decision": ("{{", "}}"),
    "learning": ("([", "])"),
    "hub": ("((", "))"),
    "gotcha": (">", "]"),
}
_DEFAULT_SHAPE = ("[", "]")

_STYLES = {
    "decision": "fill:#e1f5fe,stroke:#0288d1",
    "artifact": "fill:#f3e5f5,stroke:#7b1fa2",
    "learning": "fill:#fff3e0,stroke:#f57c00",
    "gotcha": "fill:#ffebee,stroke:#c62828",
    "hub": "fill:#e8f5e9,stroke:#388e3c,stroke-width:3px",
}

_ABBREVIATIONS = {
    "relates-to": "rel",
    "informed-by": "inf",
    "implements": "impl",
    "supersedes": "sup",
    "warns": "warn",
    "documents": "doc",
    "extends": "ext",
    "depends-on": "dep",
    "contradicts": "con",
    "auto-linked-by-similarity": "sim",
}

_UNSAFE_ID = re.compile(r"[^a-zA-Z0-9_-]")


def _node_id(node_id: str) -> str:
    return _UNSAFE_ID.sub("_", node_id)


def _escape(text: str) -> str:
    return (
        text.replace('"', "'")
        .replace("[", "(").replace("]", ")")
        .replace("{", "(").replace("}", ")")
        .replace("<", "&lt;").replace(">", "&gt;")
    )


def render(
    graph: Graph,
    *,
    direction: str = "TB",
    from_node: str | None = None,
    depth: int = 1,
    node_type: str | None = None,
    titles: dict[str, str] | None = None,
    abbreviate: bool = True,
) -> str:
    """Flowchart text. from_node narrows to its neighbourhood; node_type keeps one type."""
    if from_node is not None:
        graph = subgraph_around(graph, from_node, depth)
    if node_type is not None:
        graph = graph.subgraph(n for n, node in graph.nodes.items() if node.type == node_type)

    lines = [f"flowchart {direction}"]
    for node in graph.nodes.values():
        open_, close = _SHAPES.get(node.type, _DEFAULT_SHAPE)
        label = (titles or {}).get(node.id, node.id)
        lines.append(f'  {_node_id(node.id)}{open_}"{_escape(label)}"{close}')
    for edge in graph.edges:
        label = _ABBREVIATIONS.get(edge.label, edge.label[:3]) if abbreviate else edge.label
        lines.append(f"  {_node_id(edge.source)} -->|{_escape(label)}| {_node_id(edge.target)}")

    types = [t for t in _STYLES if any(n.type == t for n in graph.nodes.values())]
    if types:
        lines.append("")
        for t in types:
            lines.append(f"  classDef {t} {_STYLES[t]}")
        for t in types:
            members = ",".join(_node_id(n.id) for n in graph.nodes.values() if n.type == t)
            lines.append(f"  class {members} {t}")
    return "\n".join(lines)
