"""
Memory Store — authoritative per-agent collection of memory records.

Each agent owns one bucket guarded by its own lock, so writes to one agent's
bucket never wait on readers of another. The store also owns id generation.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from typing import Dict, Iterable, List, Optional, Sequence

from hybrid_memory.exceptions import InvalidInputError
from hybrid_memory.models import MemoryRecord, normalize_tags, utcnow

__all__ = ["MemoryStore", "validate_importance"]

logger = logging.getLogger(__name__)


def validate_importance(importance: float) -> float:
    if isinstance(importance, bool) or not isinstance(importance, (int, float)):
        raise InvalidInputError("importance must be a number")
    importance = float(importance)
    if not 0.0 <= importance <= 1.0:
        raise InvalidInputError(f"importance must be within [0, 1], got {importance}")
    return importance


class _Bucket:
    __slots__ = ("records", "lock")

    def __init__(self) -> None:
        self.records: List[MemoryRecord] = []
        self.lock = threading.Lock()


class MemoryStore:
    """Per-agent buckets of :class:`MemoryRecord`."""

    def __init__(self) -> None:
        self._buckets: Dict[str, _Bucket] = {}
        self._registry_lock = threading.Lock()
        self._counter = itertools.count(1)
        self._id_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def new_id(self) -> str:
        with self._id_lock:
            n = next(self._counter)
        return f"mem_{int(time.time() * 1000)}_{n:06d}"

    # ------------------------------------------------------------------
    # Buckets
    # ------------------------------------------------------------------

    def _bucket(self, agent_id: str, create: bool = False) -> Optional[_Bucket]:
        with self._registry_lock:
            bucket = self._buckets.get(agent_id)
            if bucket is None and create:
                bucket = self._buckets[agent_id] = _Bucket()
            return bucket

    def _all_buckets(self) -> List[_Bucket]:
        with self._registry_lock:
            return list(self._buckets.values())

    def agent_ids(self) -> List[str]:
        with self._registry_lock:
            return list(self._buckets)

    def bucket(self, agent_id: str) -> List[MemoryRecord]:
        """Snapshot of *agent_id*'s records in insertion order."""
        b = self._bucket(agent_id)
        if b is None:
            return []
        with b.lock:
            return list(b.records)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def new_record(
        self,
        agent_id: str,
        content: str,
        importance: float = 1.0,
        tags: Optional[Iterable[str]] = None,
    ) -> MemoryRecord:
        """Validate and build a record without inserting it."""
        if not isinstance(agent_id, str) or not agent_id.strip():
            raise InvalidInputError("agent_id must be a non-empty string")
        if not isinstance(content, str) or not content.strip():
            raise InvalidInputError("content must be a non-empty string")
        return MemoryRecord(
            id=self.new_id(),
            agent_id=agent_id,
            content=content,
            created_at=utcnow(),
            importance=validate_importance(importance),
            tags=normalize_tags(tags),
        )

    def add(
        self,
        agent_id: str,
        content: str,
        importance: float = 1.0,
        tags: Optional[Iterable[str]] = None,
    ) -> MemoryRecord:
        record = self.new_record(agent_id, content, importance, tags)
        self.insert(record)
        return record

    def insert(self, record: MemoryRecord) -> None:
        bucket = self._bucket(record.agent_id, create=True)
        with bucket.lock:
            bucket.records.append(record)
        logger.debug("Stored %s for agent %s", record.id, record.agent_id)

    def remove(self, record_id: str) -> Optional[MemoryRecord]:
        """Remove *record_id* from whichever bucket holds it. Unknown ids are ignored."""
        for bucket in self._all_buckets():
            with bucket.lock:
                for i, r in enumerate(bucket.records):
                    if r.id == record_id:
                        return bucket.records.pop(i)
        return None

    def replace(
        self,
        agent_id: str,
        old_ids: Sequence[str],
        new_record: MemoryRecord,
    ) -> List[MemoryRecord]:
        """Swap *old_ids* for *new_record* in one step. Returns the records removed."""
        if new_record.agent_id != agent_id:
            raise InvalidInputError("replacement record belongs to a different agent")
        doomed = set(old_ids)
        bucket = self._bucket(agent_id, create=True)
        with bucket.lock:
            removed = [r for r in bucket.records if r.id in doomed]
            bucket.records = [r for r in bucket.records if r.id not in doomed]
            bucket.records.append(new_record)
        return removed

    def clear(self) -> None:
        with self._registry_lock:
            self._buckets.clear()
        logger.info("Cleared all memory buckets")

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find_by_id(self, record_id: str) -> Optional[MemoryRecord]:
        for bucket in self._all_buckets():
            with bucket.lock:
                for r in bucket.records:
                    if r.id == record_id:
                        return r
        return None

    def find_by_agent(self, agent_id: str) -> List[MemoryRecord]:
        return self.bucket(agent_id)

    def find_by_tags(self, tags: Iterable[str], agent_id: Optional[str] = None) -> List[MemoryRecord]:
        """Records carrying ANY of *tags*, embedded or not."""
        wanted = set(tags)
        if agent_id is not None:
            candidates = self.bucket(agent_id)
        else:
            candidates = self.all_records()
        return [r for r in candidates if r.has_any_tag(wanted)]

    def all_records(self) -> List[MemoryRecord]:
        out: List[MemoryRecord] = []
        for bucket in self._all_buckets():
            with bucket.lock:
                out.extend(bucket.records)
        return out

    def total_count(self) -> int:
        total = 0
        for bucket in self._all_buckets():
            with bucket.lock:
                total += len(bucket.records)
        return total

    def count(self, agent_id: str) -> int:
        b = self._bucket(agent_id)
        if b is None:
            return 0
        with b.lock:
            return len(b.records)
