"""Embedding providers: Ollama (default), local fastembed, Gemini, and an offline hash embedder.

Every provider satisfies EmbeddingProvider: a name and generate(text) -> vector.
Failures surface as ProviderError; callers decide whether that is fatal.
"""

from __future__ import annotations

import hashlib
import json
import os
import re
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import numpy as np

from memvault.errors import ProviderError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fastembed import TextEmbedding
    from google import genai
    from numpy.typing import NDArray

MAX_INPUT_CHARS = 6000
DEFAULT_OLLAMA_MODEL = "embeddinggemma:latest"
DEFAULT_OLLAMA_ENDPOINT = "http://localhost:11434"
_TIMEOUT = 30  # seconds; first call may load the model


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Anything that turns text into a vector."""

    @property
    def name(self) -> str: ...

    def generate(self, text: str) -> Sequence[float] | NDArray[np.float32]: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def truncate_text(text: str, limit: int = MAX_INPUT_CHARS) -> str:
    """Cut text to at most limit chars, on a word boundary when one is near."""
    if len(text) <= limit:
        return text
    cut = text[:limit]
    space = cut.rfind(" ")
    if space > limit * 0.8:
        cut = cut[:space]
    return cut


def _post(url: str, body: dict[str, Any], timeout: float = _TIMEOUT) -> dict[str, Any]:
    """POST JSON to url and decode the JSON reply."""
    data = json.dumps(body).encode()
    req = urllib.request.Request(  # noqa: S310
        url,
        data=data,
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:  # noqa: S310
            return json.loads(resp.read())  # type: ignore[no-any-return]
    except urllib.error.HTTPError as exc:
        msg = f"{url} returned HTTP {exc.code}"
        raise ProviderError(msg) from exc
    except (urllib.error.URLError, TimeoutError, ConnectionError) as exc:
        reason = exc.reason if isinstance(exc, urllib.error.URLError) else exc
        msg = f"cannot reach {url}: {reason}"
        raise ProviderError(msg) from exc
    except json.JSONDecodeError as exc:
        msg = f"{url} returned invalid JSON"
        raise ProviderError(msg) from exc


# ---------------------------------------------------------------------------
# OllamaEmbedder
# ---------------------------------------------------------------------------

@dataclass
class OllamaEmbedder:
    """HTTP embedder against a local Ollama server."""

    model: str = DEFAULT_OLLAMA_MODEL
    endpoint: str = DEFAULT_OLLAMA_ENDPOINT
    timeout: float = _TIMEOUT

    @property
    def name(self) -> str:
        return f"ollama:{self.model}"

    def generate(self, text: str) -> NDArray[np.float32]:
        reply = _post(
            f"{self.endpoint.rstrip('/')}/api/embeddings",
            {"model": self.model, "prompt": truncate_text(text)},
            timeout=self.timeout,
        )
        embedding = reply.get("embedding")
        if not embedding:
            msg = f"ollama returned no embedding for model {self.model}"
            raise ProviderError(msg)
        return np.array(embedding, dtype=np.float32)


# ---------------------------------------------------------------------------
# FastEmbedEmbedder
# ---------------------------------------------------------------------------

@dataclass
class FastEmbedEmbedder:
    """Local embedder using fastembed TextEmbedding (ONNX, no API key needed)."""

    model: str = "BAAI/bge-small-en-v1.5"
    _fe_model: TextEmbedding | None = field(default=None, repr=False, init=False)  # pyright: ignore[reportUndefinedVariable]

    @property
    def name(self) -> str:
        return f"fastembed:{self.model}"

    @property
    def _model(self) -> TextEmbedding:  # pyright: ignore[reportUndefinedVariable]
        """Get or create the fastembed model (lazy)."""
        if self._fe_model is None:
            try:
                from fastembed import TextEmbedding
            except ImportError as e:
                msg = "fastembed is required for local embeddings: pip install 'memvault[fastembed]'"
                raise ProviderError(msg) from e
            self._fe_model = TextEmbedding(self.model)
        return self._fe_model

    def generate(self, text: str) -> NDArray[np.float32]:
        embeddings = list(self._model.embed([truncate_text(text)]))
        return np.array(embeddings[0], dtype=np.float32)


# ---------------------------------------------------------------------------
# GeminiEmbedder
# ---------------------------------------------------------------------------

@dataclass
class GeminiEmbedder:
    """Google Gemini embeddings (reads GEMINI_API_KEY or GOOGLE_API_KEY)."""

    model: str = "gemini-embedding-001"
    dimensions: int = 768
    task_type: str = "SEMANTIC_SIMILARITY"
    api_key: str | None = None

    _client: genai.Client | None = field(default=None, repr=False, init=False)  # pyright: ignore[reportUndefinedVariable]

    @property
    def name(self) -> str:
        return f"gemini:{self.model}"

    @property
    def client(self) -> genai.Client:  # pyright: ignore[reportUndefinedVariable]
        """Get or create the Gemini client (lazy)."""
        if self._client is None:
            try:
                from google import genai as _genai
            except ImportError as e:
                msg = "google-genai is required for Gemini embeddings: pip install 'memvault[gemini]'"
                raise ProviderError(msg) from e
            key = self.api_key or os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
            self._client = _genai.Client(api_key=key) if key else _genai.Client()
        return self._client

    def generate(self, text: str) -> NDArray[np.float32]:
        result = self.client.models.embed_content(
            model=self.model,
            contents=truncate_text(text),
            config={
                "task_type": self.task_type,
                "output_dimensionality": self.dimensions,
            },
        )
        if not result.embeddings:
            msg = "Gemini API returned no embeddings"
            raise ProviderError(msg)
        return np.array(result.embeddings[0].values, dtype=np.float32)


# ---------------------------------------------------------------------------
# HashEmbedder
# ---------------------------------------------------------------------------

_TOKEN = re.compile(r"[a-z0-9]+")


@dataclass
class HashEmbedder:
    """Deterministic bag-of-words feature hashing. No model, no network.

    Texts sharing words land close together, which is enough for offline use
    and tests. Not a semantic model.
    """

    dimensions: int = 256

    @property
    def name(self) -> str:
        return f"hash:{self.dimensions}"

    def generate(self, text: str) -> NDArray[np.float32]:
        vec = np.zeros(self.dimensions, dtype=np.float32)
        for token in _TOKEN.findall(text.lower()):
            digest = hashlib.sha256(token.encode()).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.dimensions
            vec[bucket] += 1.0 if digest[4] & 1 else -1.0
        return vec


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def get_provider(model: str, *, endpoint: str | None = None) -> EmbeddingProvider:
    """Factory: build a provider from a prefixed model string.

    Supported prefixes:
    - ``ollama:<model>`` or bare name → OllamaEmbedder
    - ``fastembed:<model>``          → FastEmbedEmbedder
    - ``gemini:<model>``             → GeminiEmbedder
    - ``hash:<dimensions>``          → HashEmbedder
    """
    prefix, sep, bare = model.partition(":")
    prefix = prefix.lower() if sep or model == "hash" else ""
    endpoint = endpoint or os.environ.get("OLLAMA_HOST") or DEFAULT_OLLAMA_ENDPOINT
    if "://" not in endpoint:
        endpoint = f"http://{endpoint}"
    if prefix == "fastembed":
        return FastEmbedEmbedder(model=bare) if bare else FastEmbedEmbedder()
    if prefix == "gemini":
        return GeminiEmbedder(model=bare) if bare else GeminiEmbedder()
    if prefix == "hash":
        return HashEmbedder(dimensions=int(bare) if bare else 256)
    if prefix == "ollama":
        return OllamaEmbedder(model=bare or DEFAULT_OLLAMA_MODEL, endpoint=endpoint)
    # No known prefix: the whole string is an Ollama model name (which may itself contain ':').
    return OllamaEmbedder(model=model or DEFAULT_OLLAMA_MODEL, endpoint=endpoint)
