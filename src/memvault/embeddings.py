"""embeddings.json: per-record vector cache keyed by content hash, plus similarity queries.

Document layout:
    {"version": 1,
     "memories": {"gotcha-edge-case": {"embedding": [0.01, ...], "hash": "3f2a...", "timestamp": "..."}}}

An entry is trusted only while its hash matches the record's current text.
A corrupt cache file loads as empty and is rebuilt lazily.
"""

from __future__ import annotations

import contextlib
import hashlib
import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np

from memvault.errors import FormatError, NotFoundError, ProviderError, StorageError, ValidationError
from memvault.models import now_iso
from memvault.similarity import Match, find_similar_memories, normalise
from memvault.store import json_lock, read_json, write_json

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

    from numpy.typing import NDArray

    from memvault.embedder import EmbeddingProvider
    from memvault.index import IndexCache
    from memvault.models import Record
    from memvault.store import FileStore

logger = logging.getLogger("memvault.embeddings")

EMBEDDINGS_FILENAME = "embeddings.json"
CACHE_VERSION = 1

AUTO_LINK_MIN_THRESHOLD = 0.8
SIMILAR_THRESHOLD = 0.85
SIMILAR_LIMIT = 5
SEARCH_THRESHOLD = 0.5
SEARCH_LIMIT = 20


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def embedding_text(record: Record) -> str:
    """The text a record is embedded from."""
    return f"{record.title}\n\n{record.content}"


def effective_threshold(threshold: float, *, for_auto_link: bool) -> float:
    """Auto-link never goes below AUTO_LINK_MIN_THRESHOLD, whatever the caller asks."""
    return max(threshold, AUTO_LINK_MIN_THRESHOLD) if for_auto_link else threshold


def generate_embedding(text: str, provider: EmbeddingProvider) -> NDArray[np.float32]:
    """Run the provider and return a unit vector. Any provider failure becomes ProviderError."""
    if not text or not text.strip():
        msg = "cannot embed empty text"
        raise ValidationError(msg)
    try:
        raw = provider.generate(text)
    except ProviderError:
        raise
    except Exception as exc:
        msg = f"{provider.name}: {exc}"
        raise ProviderError(msg) from exc
    vec = np.asarray(raw, dtype=np.float32).ravel()
    if vec.size == 0:
        msg = f"{provider.name} returned an empty vector"
        raise ProviderError(msg)
    return normalise(vec)


# ---------------------------------------------------------------------------
# Cache document
# ---------------------------------------------------------------------------

@dataclass
class CacheEntry:
    embedding: list[float]
    hash: str
    timestamp: str = ""

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> CacheEntry | None:
        vec, h = d.get("embedding"), d.get("hash")
        if not isinstance(vec, list) or not vec or not isinstance(h, str):
            return None
        if not all(isinstance(x, int | float) and math.isfinite(x) for x in vec):
            return None
        return cls(embedding=[float(x) for x in vec], hash=h, timestamp=str(d.get("timestamp", "")))

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"embedding": self.embedding, "hash": self.hash}
        if self.timestamp:
            d["timestamp"] = self.timestamp
        return d


class EmbeddingCache:
    """Load/mutate/save wrapper around embeddings.json."""

    def __init__(self, store: FileStore, log: logging.Logger | None = None) -> None:
        self.path = store.root / EMBEDDINGS_FILENAME
        self.log = log or logger

    def load(self) -> dict[str, CacheEntry]:
        data = read_json(self.path, self.log)
        if data is None:
            return {}
        raw = data.get("memories") if isinstance(data, dict) else None
        if not isinstance(raw, dict):
            self.log.warning("embedding cache %s is malformed, treating as empty", self.path)
            return {}
        entries: dict[str, CacheEntry] = {}
        for memory_id, item in raw.items():
            entry = CacheEntry.from_dict(item) if isinstance(item, dict) else None
            if entry is not None:
                entries[memory_id] = entry
        return entries

    def save(self, entries: dict[str, CacheEntry]) -> None:
        write_json(self.path, {
            "version": CACHE_VERSION,
            "memories": {k: v.to_dict() for k, v in entries.items()},
        })

    @contextlib.contextmanager
    def mutate(self) -> Iterator[dict[str, CacheEntry]]:
        with json_lock(self.path):
            entries = self.load()
            yield entries
            self.save(entries)

    def get(self, memory_id: str, text_hash: str | None = None) -> NDArray[np.float32] | None:
        """Cached vector for memory_id, or None when missing or its hash differs from text_hash."""
        entry = self.load().get(memory_id)
        if entry is None or (text_hash is not None and entry.hash != text_hash):
            return None
        return np.asarray(entry.embedding, dtype=np.float32)

    def put(self, memory_id: str, vector: NDArray[np.float32], text_hash: str) -> None:
        with self.mutate() as entries:
            entries[memory_id] = CacheEntry([float(x) for x in vector], text_hash, now_iso())

    def vectors(self) -> dict[str, NDArray[np.float32]]:
        return {k: np.asarray(e.embedding, dtype=np.float32) for k, e in self.load().items()}

    def remove(self, memory_ids: Iterable[str]) -> int:
        doomed = set(memory_ids)
        if not self.path.exists() or not doomed:
            return 0
        with self.mutate() as entries:
            hits = [k for k in entries if k in doomed]
            for k in hits:
                del entries[k]
        return len(hits)

    def rename(self, old_id: str, new_id: str) -> bool:
        if not self.path.exists():
            return False
        with self.mutate() as entries:
            entry = entries.pop(old_id, None)
            if entry is None:
                return False
            entries[new_id] = entry
        return True


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

@dataclass
class BatchResult:
    generated: int = 0
    cached: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated": self.generated,
            "cached": self.cached,
            "failures": [{"id": i, "error": e} for i, e in self.failures],
        }


@dataclass
class SearchHit:
    id: str
    similarity: float
    title: str
    type: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.title, "type": self.type, "similarity": round(self.similarity, 4)}


class EmbeddingEngine:
    """Similarity queries over the records of one storage root."""

    def __init__(self, store: FileStore, index: IndexCache, log: logging.Logger | None = None) -> None:
        self.store = store
        self.index = index
        self.log = log or logger
        self.cache = EmbeddingCache(store, self.log)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def embedding_for(self, memory_id: str, text: str, provider: EmbeddingProvider) -> NDArray[np.float32]:
        """Cached vector for text, regenerated only when the text's hash changed."""
        h = content_hash(text)
        cached = self.cache.get(memory_id, h)
        if cached is not None:
            return cached
        vec = generate_embedding(text, provider)
        self.cache.put(memory_id, vec, h)
        return vec

    def current_texts(self) -> dict[str, str]:
        """id -> embedding text for every parseable record on disk."""
        texts: dict[str, str] = {}
        for memory_id, path in self.store.list_files().items():
            try:
                texts[memory_id] = embedding_text(self.store.load(path, lenient=True))
            except (FormatError, StorageError) as exc:
                self.log.warning("skipping %s for embeddings: %s", memory_id, exc)
        return texts

    def batch_embed(
        self,
        provider: EmbeddingProvider,
        items: dict[str, str] | None = None,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> BatchResult:
        """Bring the cache up to date for items (default: every record). Failures are collected."""
        items = self.current_texts() if items is None else items
        result = BatchResult()
        existing = self.cache.load()
        fresh: dict[str, CacheEntry] = {}
        total = len(items)
        for n, (memory_id, text) in enumerate(items.items(), start=1):
            h = content_hash(text)
            entry = existing.get(memory_id)
            if entry is not None and entry.hash == h:
                result.cached += 1
            else:
                try:
                    vec = generate_embedding(text, provider)
                except (ProviderError, ValidationError) as exc:
                    self.log.warning("embedding failed for %s: %s", memory_id, exc)
                    result.failures.append((memory_id, str(exc)))
                else:
                    fresh[memory_id] = CacheEntry([float(x) for x in vec], h, now_iso())
                    result.generated += 1
            if on_progress is not None:
                on_progress(n, total)
        if fresh:
            with self.cache.mutate() as entries:
                entries.update(fresh)
        return result

    def fresh_vectors(self, texts: dict[str, str] | None = None) -> dict[str, NDArray[np.float32]]:
        """Cached vectors whose hash still matches the record text. Stale ones are left out."""
        texts = self.current_texts() if texts is None else texts
        vectors: dict[str, NDArray[np.float32]] = {}
        for memory_id, entry in self.cache.load().items():
            text = texts.get(memory_id)
            if text is not None and entry.hash == content_hash(text):
                vectors[memory_id] = np.asarray(entry.embedding, dtype=np.float32)
        return vectors

    def stale_ids(self, texts: dict[str, str] | None = None) -> list[str]:
        """Cached ids whose record text changed since they were embedded."""
        texts = self.current_texts() if texts is None else texts
        return sorted(
            memory_id for memory_id, entry in self.cache.load().items()
            if memory_id in texts and entry.hash != content_hash(texts[memory_id])
        )

    def orphan_ids(self, known: set[str]) -> list[str]:
        return sorted(k for k in self.cache.load() if k not in known)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_similar_to_memory(
        self,
        memory_id: str,
        provider: EmbeddingProvider | None = None,
        *,
        threshold: float = SIMILAR_THRESHOLD,
        limit: int = SIMILAR_LIMIT,
        for_auto_link: bool = False,
    ) -> list[Match]:
        """Records whose cached vectors are close to memory_id's, best first, self excluded."""
        texts = self.current_texts()
        if memory_id not in texts:
            raise NotFoundError(memory_id)
        vectors = self.fresh_vectors(texts)
        query = vectors.get(memory_id)
        if query is None:
            if provider is None:
                raise NotFoundError(memory_id, "embedding")
            query = self.embedding_for(memory_id, texts[memory_id], provider)
        return find_similar_memories(
            query,
            vectors,
            threshold=effective_threshold(threshold, for_auto_link=for_auto_link),
            limit=limit,
            exclude_id=memory_id,
        )

    def semantic_search(
        self,
        query: str,
        provider: EmbeddingProvider,
        *,
        threshold: float = SEARCH_THRESHOLD,
        limit: int = SEARCH_LIMIT,
        memory_type: str | None = None,
        scope: str | None = None,
        for_auto_link: bool = False,
        refresh: bool = True,
    ) -> list[SearchHit]:
        """Embed query and rank indexed records against it.

        With refresh set, missing or stale record vectors are generated first.
        """
        entries = {e.id: e for e in self.index.load()}
        if memory_type:
            entries = {k: e for k, e in entries.items() if e.type == memory_type}
        if scope:
            entries = {k: e for k, e in entries.items() if e.scope == scope}
        texts = self.current_texts()
        if refresh:
            self.batch_embed(provider, {k: v for k, v in texts.items() if k in entries})
        vectors = {k: v for k, v in self.fresh_vectors(texts).items() if k in entries}
        query_vec = generate_embedding(query, provider)
        matches = find_similar_memories(
            query_vec,
            vectors,
            threshold=effective_threshold(threshold, for_auto_link=for_auto_link),
            limit=limit,
        )
        return [SearchHit(m.id, m.similarity, entries[m.id].title, entries[m.id].type) for m in matches]
