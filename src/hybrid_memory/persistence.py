"""
Pluggable persistence for memory records.

The engine itself is volatile. A :class:`PersistenceHook` is told about every
stored, embedded, deleted and cleared record; :class:`ChromaPersistence` mirrors
embedded records into a ChromaDB collection so they can be restored later.
Hook failures are logged and never affect the in-memory engine.
"""

from __future__ import annotations

import logging
import os
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from hybrid_memory.models import MemoryRecord, utcnow

__all__ = ["PersistenceHook", "ChromaPersistence", "notify_hook"]

logger = logging.getLogger(__name__)


@runtime_checkable
class PersistenceHook(Protocol):
    def on_store(self, record: MemoryRecord) -> None:
        ...

    def on_embedded(self, record: MemoryRecord) -> None:
        ...

    def on_delete(self, record_id: str) -> None:
        ...

    def on_clear(self) -> None:
        ...


def notify_hook(hook: Optional[PersistenceHook], method: str, *args: Any) -> None:
    if hook is None:
        return
    try:
        getattr(hook, method)(*args)
    except Exception as e:
        logger.warning("Persistence hook %s failed: %s", method, e)


class ChromaPersistence:
    """Mirror embedded memory records into a ChromaDB collection."""

    COLLECTION_NAME = "memory_records"

    def __init__(self, db_path: str, collection_name: Optional[str] = None) -> None:
        self.db_path = os.path.abspath(db_path)
        self.collection_name = collection_name or self.COLLECTION_NAME
        self._lock = threading.Lock()
        self._client = None
        self._collection = None

    # ------------------------------------------------------------------
    # Lazy client / collection
    # ------------------------------------------------------------------

    def _ensure_client(self):
        if self._client is None:
            import chromadb
            os.makedirs(self.db_path, exist_ok=True)
            self._client = chromadb.PersistentClient(path=self.db_path)
            self._collection = self._client.get_or_create_collection(name=self.collection_name)

    @property
    def collection(self):
        self._ensure_client()
        return self._collection

    # ------------------------------------------------------------------
    # Hook
    # ------------------------------------------------------------------

    @staticmethod
    def _metadata(record: MemoryRecord) -> Dict[str, Any]:
        return {
            "agent_id": record.agent_id,
            "created_at": record.created_at.isoformat(),
            "importance": float(record.importance),
            "tags": ",".join(record.tags),
        }

    def on_store(self, record: MemoryRecord) -> None:
        # Chroma rows need a vector; the record is written once it is embedded.
        return None

    def on_embedded(self, record: MemoryRecord) -> None:
        if not record.embedding:
            return
        with self._lock:
            self.collection.upsert(
                ids=[record.id],
                documents=[record.content],
                embeddings=[record.embedding],
                metadatas=[self._metadata(record)],
            )

    def on_delete(self, record_id: str) -> None:
        with self._lock:
            self.collection.delete(ids=[record_id])

    def on_clear(self) -> None:
        with self._lock:
            self._ensure_client()
            self._client.delete_collection(self.collection_name)
            self._collection = self._client.get_or_create_collection(name=self.collection_name)

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def load_records(self) -> List[MemoryRecord]:
        """Read every mirrored record back, embeddings included."""
        with self._lock:
            data = self.collection.get(include=["documents", "metadatas", "embeddings"])
        ids = data.get("ids") or []
        documents = data.get("documents")
        metadatas = data.get("metadatas")
        embeddings = data.get("embeddings")
        records: List[MemoryRecord] = []
        for i, record_id in enumerate(ids):
            meta = (metadatas[i] if metadatas is not None else None) or {}
            embedding = embeddings[i] if embeddings is not None else None
            tags = tuple(t for t in str(meta.get("tags", "")).split(",") if t)
            records.append(MemoryRecord(
                id=record_id,
                agent_id=str(meta.get("agent_id", "system")),
                content=documents[i] if documents is not None else "",
                created_at=datetime.fromisoformat(meta["created_at"]) if "created_at" in meta else utcnow(),
                importance=float(meta.get("importance", 1.0)),
                tags=tags,
                embedding=[float(x) for x in embedding] if embedding is not None else None,
            ))
        return records

    def count(self) -> int:
        return self.collection.count()
