"""
External collaborators: embedding providers, summarizers, remote graph stores.

The engine only talks to these through the narrow protocols below, and always
through :func:`call_with_timeout` so a slow backend can never stall a caller.
"""

from __future__ import annotations

import hashlib
import logging
import math
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, TypeVar, runtime_checkable

from hybrid_memory.exceptions import CollaboratorTimeout, EmbeddingError

__all__ = [
    "EmbeddingProvider",
    "Summarizer",
    "RemoteGraph",
    "SentenceTransformerEmbedder",
    "HashingEmbedder",
    "call_with_timeout",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

Summarizer = Callable[[str], str]


@runtime_checkable
class EmbeddingProvider(Protocol):
    def embed(self, text: str) -> List[float]:
        ...


@runtime_checkable
class RemoteGraph(Protocol):
    """Remote knowledge-graph backend mirrored by :class:`GraphStore`."""

    def create_entity(self, name: str, entity_type: str, observations: Sequence[str]) -> None:
        ...

    def create_relation(self, source: str, target: str, relation_type: str) -> None:
        ...

    def related_entities(self, name: str, relation_type: Optional[str] = None) -> List[Dict[str, Any]]:
        ...

    def search(self, query: str) -> List[Dict[str, Any]]:
        ...


def call_with_timeout(fn: Callable[..., T], timeout: Optional[float], *args: Any) -> T:
    """Run ``fn(*args)`` and give up after *timeout* seconds.

    ``None`` means no limit. On timeout the worker thread is abandoned, not
    killed; its eventual result is discarded.
    """
    if timeout is None:
        return fn(*args)
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="collaborator")
    try:
        future = pool.submit(fn, *args)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError as e:
            raise CollaboratorTimeout(
                f"{getattr(fn, '__qualname__', fn)!s} did not finish within {timeout}s"
            ) from e
    finally:
        pool.shutdown(wait=False)


# ----------------------------------------------------------------------
# Embedding providers
# ----------------------------------------------------------------------


class SentenceTransformerEmbedder:
    """sentence-transformers backed embedder. The model is loaded on first use."""

    def __init__(self, model_name: str = "all-MiniLM-L6-v2") -> None:
        self.model_name = model_name
        self._model = None
        self._lock = threading.Lock()

    def _get_model(self):
        if self._model is None:
            with self._lock:
                if self._model is None:
                    from sentence_transformers import SentenceTransformer
                    self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed(self, text: str) -> List[float]:
        try:
            return self._get_model().encode(text).tolist()
        except Exception as e:
            raise EmbeddingError(f"{self.model_name} failed to embed text: {e}") from e


class HashingEmbedder:
    """Deterministic hashed bag-of-words embedder.

    Needs no model download, so it suits tests and offline deployments.
    Identical text always yields the identical vector.
    """

    _TOKEN = re.compile(r"\w+", re.UNICODE)

    def __init__(self, dimension: int = 128) -> None:
        if dimension < 1:
            raise ValueError("dimension must be positive")
        self.dimension = dimension

    def embed(self, text: str) -> List[float]:
        vec = [0.0] * self.dimension
        for token in self._TOKEN.findall(text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vec[idx] += sign
        norm = math.sqrt(sum(v * v for v in vec))
        if norm == 0.0:
            return vec
        return [v / norm for v in vec]
