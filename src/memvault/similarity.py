"""Cosine similarity and ranking over cached vectors (numpy)."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from numpy.typing import NDArray

    Vector = Sequence[float] | NDArray[np.floating[Any]]

DUPLICATE_THRESHOLD = 0.92
_EPS = 1e-12


@dataclass(frozen=True)
class Match:
    id: str
    similarity: float

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "similarity": round(self.similarity, 4)}


@dataclass(frozen=True)
class DuplicatePair:
    id1: str
    id2: str
    similarity: float

    def to_dict(self) -> dict[str, Any]:
        return {"id1": self.id1, "id2": self.id2, "similarity": round(self.similarity, 4)}


def _as_array(v: Vector) -> NDArray[np.float64]:
    return np.asarray(v, dtype=np.float64).ravel()


def normalise(v: Vector) -> NDArray[np.float32]:
    """Unit-length copy; degenerate vectors come back unchanged."""
    arr = _as_array(v)
    norm = float(np.linalg.norm(arr)) if arr.size else 0.0
    if not math.isfinite(norm) or norm < _EPS:
        return arr.astype(np.float32)
    return (arr / norm).astype(np.float32)


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Dot product over norms, clamped to [-1, 1].

    Empty, zero, NaN or infinite vectors score 0.0 instead of raising.
    Vectors of different lengths raise ValueError.
    """
    va, vb = _as_array(a), _as_array(b)
    if va.shape != vb.shape:
        msg = f"vector dimensions differ: {va.size} vs {vb.size}"
        raise ValueError(msg)
    if va.size == 0 or not (np.isfinite(va).all() and np.isfinite(vb).all()):
        return 0.0
    na, nb = float(np.linalg.norm(va)), float(np.linalg.norm(vb))
    if na < _EPS or nb < _EPS:
        return 0.0
    score = float(np.dot(va, vb) / (na * nb))
    if not math.isfinite(score):
        return 0.0
    return max(-1.0, min(1.0, score))


def _score_all(query: Vector, embeddings: Mapping[str, Vector], exclude_id: str | None) -> list[Match]:
    q = _as_array(query)
    matches: list[Match] = []
    for memory_id, vec in embeddings.items():
        if memory_id == exclude_id:
            continue
        v = _as_array(vec)
        if v.shape != q.shape:
            continue
        matches.append(Match(memory_id, cosine_similarity(q, v)))
    matches.sort(key=lambda m: m.similarity, reverse=True)
    return matches


def find_similar_memories(
    query: Vector,
    embeddings: Mapping[str, Vector],
    *,
    threshold: float = 0.0,
    limit: int | None = None,
    exclude_id: str | None = None,
) -> list[Match]:
    """Candidates scoring at least threshold, best first. Mismatched dimensions are skipped."""
    matches = [m for m in _score_all(query, embeddings, exclude_id) if m.similarity >= threshold]
    return matches[:limit] if limit is not None else matches


def find_potential_duplicates(
    embeddings: Mapping[str, Vector],
    *,
    threshold: float = DUPLICATE_THRESHOLD,
    limit: int | None = None,
) -> list[DuplicatePair]:
    """Pairs scoring at least threshold, best first. Each unordered pair appears once."""
    items = [(memory_id, _as_array(v)) for memory_id, v in embeddings.items()]
    pairs: list[DuplicatePair] = []
    for i, (id1, v1) in enumerate(items):
        for id2, v2 in items[i + 1:]:
            if v1.shape != v2.shape:
                continue
            score = cosine_similarity(v1, v2)
            if score >= threshold:
                pairs.append(DuplicatePair(id1, id2, score))
    pairs.sort(key=lambda p: p.similarity, reverse=True)
    return pairs[:limit] if limit is not None else pairs
