"""
Vector Index — cosine-similarity recall over memory records.

Records are embedded through the injected embedding provider with a bounded
timeout. A record whose embedding failed stays *pending*: it is invisible to
similarity search until :meth:`VectorStore.retry_pending` succeeds for it.
Search is a brute-force scan; the store's size is bounded by consolidation.
"""

from __future__ import annotations

import functools
import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from hybrid_memory.collaborators import EmbeddingProvider, call_with_timeout
from hybrid_memory.models import MemoryRecord

__all__ = ["VectorStore", "cosine_similarity"]

logger = logging.getLogger(__name__)

TIE_TOLERANCE = 1e-6


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between *a* and *b*; 0.0 when either has zero length.

    Vectors of different dimension are compared over their common prefix.
    """
    dim = min(len(a), len(b))
    if dim == 0:
        return 0.0
    va = np.asarray(a[:dim], dtype=np.float64)
    vb = np.asarray(b[:dim], dtype=np.float64)
    na = float(np.linalg.norm(va))
    nb = float(np.linalg.norm(vb))
    if na == 0.0 or nb == 0.0:
        return 0.0
    return float(np.dot(va, vb) / (na * nb))


def _rank(a: Tuple[MemoryRecord, float], b: Tuple[MemoryRecord, float]) -> int:
    (ra, sa), (rb, sb) = a, b
    if abs(sa - sb) > TIE_TOLERANCE:
        return -1 if sa > sb else 1
    if ra.created_at != rb.created_at:
        return -1 if ra.created_at > rb.created_at else 1
    if ra.id != rb.id:
        return -1 if ra.id > rb.id else 1
    return 0


class VectorStore:
    """In-memory embedding index keyed by memory record id."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        embedding_timeout: Optional[float] = 10.0,
    ) -> None:
        self.embedder = embedder
        self.embedding_timeout = embedding_timeout
        self._lock = threading.Lock()
        self._entries: Dict[str, MemoryRecord] = {}
        self._pending: Dict[str, MemoryRecord] = {}

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def _embed(self, text: str) -> Optional[List[float]]:
        try:
            vector = call_with_timeout(self.embedder.embed, self.embedding_timeout, text)
        except Exception as e:
            logger.warning("Embedding failed, will retry later: %s", e)
            return None
        vector = [float(x) for x in vector]
        return vector or None

    def upsert(self, record: MemoryRecord) -> bool:
        """Embed *record* and make it searchable. Returns ``False`` if it stays pending."""
        if record.is_embedded:
            with self._lock:
                self._pending.pop(record.id, None)
                self._entries[record.id] = record
            return True

        with self._lock:
            self._entries.pop(record.id, None)
            self._pending[record.id] = record

        vector = self._embed(record.content)
        if vector is None:
            return False

        with self._lock:
            # Removed while we were embedding: drop the result.
            if self._pending.get(record.id) is not record:
                return False
            del self._pending[record.id]
            record.embedding = vector
            self._entries[record.id] = record
        logger.debug("Indexed %s (%d dims)", record.id, len(vector))
        return True

    def retry_pending(self, on_indexed: Optional[Callable[[MemoryRecord], None]] = None) -> int:
        """Re-attempt embedding for every pending record. Returns how many succeeded.

        *on_indexed* is called with each record that became searchable.
        """
        with self._lock:
            pending = list(self._pending.values())
        indexed = 0
        for record in pending:
            if not self.upsert(record):
                continue
            indexed += 1
            if on_indexed is not None:
                on_indexed(record)
        return indexed

    def remove(self, record_id: str) -> None:
        with self._lock:
            self._entries.pop(record_id, None)
            self._pending.pop(record_id, None)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search_with_scores(self, query: str, k: int = 5) -> List[Tuple[MemoryRecord, float]]:
        """Top *k* embedded records by cosine similarity to *query*, with scores.

        Near-ties (within 1e-6) go to the more recently created record.
        """
        if k <= 0:
            return []
        with self._lock:
            candidates = list(self._entries.values())
        if not candidates:
            return []

        query_vec = self._embed(query)
        if query_vec is None:
            return []

        scored = [(r, cosine_similarity(query_vec, r.embedding or [])) for r in candidates]
        scored.sort(key=functools.cmp_to_key(_rank))
        return scored[:k]

    def search(self, query: str, k: int = 5) -> List[MemoryRecord]:
        return [r for r, _ in self.search_with_scores(query, k)]

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------

    def contains(self, record_id: str) -> bool:
        with self._lock:
            return record_id in self._entries or record_id in self._pending

    def is_pending(self, record_id: str) -> bool:
        with self._lock:
            return record_id in self._pending

    def count(self) -> int:
        """Number of searchable (embedded) records."""
        with self._lock:
            return len(self._entries)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._pending.clear()
