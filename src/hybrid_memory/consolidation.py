"""
Consolidation — bound memory growth by summarizing old records.

A pass looks at each agent bucket on its own: the oldest half is grouped by
first tag, and every group of at least ``min_group_size`` records is replaced by
a single summary record. The newest half of a bucket is never touched.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from hybrid_memory.collaborators import Summarizer, call_with_timeout
from hybrid_memory.graph_store import MEMORY_ENTITY_TYPE, GraphStore
from hybrid_memory.models import MemoryRecord, normalize_tags, utcnow
from hybrid_memory.persistence import PersistenceHook, notify_hook
from hybrid_memory.store import MemoryStore
from hybrid_memory.vector_store import VectorStore

__all__ = ["ConsolidationEngine", "ConsolidationReport", "fallback_summary"]

logger = logging.getLogger(__name__)

CONSOLIDATED_TAG = "consolidated"
UNTAGGED_GROUP = "general"

SUMMARY_PROMPT = (
    "You are consolidating an AI agent's long-term memory.\n"
    "Summarize the following related memories (topic: {tag}) into one short paragraph "
    "that keeps every fact worth remembering. Reply with the summary only.\n\n"
    "{memories}\n"
)


def fallback_summary(group: Sequence[MemoryRecord], tag: str, max_chars: int = 500) -> str:
    """Deterministic summary used when no summarizer is available or it fails."""
    ordered = sorted(group, key=lambda r: r.created_at)
    text = f"Consolidated {len(ordered)} {tag} memories: " + "; ".join(
        " ".join(r.content.split()) for r in ordered
    )
    if len(text) > max_chars:
        text = text[: max(max_chars - 3, 0)] + "..."
    return text


@dataclass
class ConsolidationReport:
    started_at: datetime = field(default_factory=utcnow)
    buckets_examined: int = 0
    groups_consolidated: int = 0
    records_removed: int = 0
    created_ids: List[str] = field(default_factory=list)
    failed_agents: List[str] = field(default_factory=list)


class ConsolidationEngine:
    """Runs size- or age-triggered consolidation passes over a :class:`MemoryStore`."""

    def __init__(
        self,
        store: MemoryStore,
        vectors: VectorStore,
        graph: GraphStore,
        summarize_fn: Optional[Summarizer] = None,
        *,
        threshold: int = 50,
        interval: float = 3600.0,
        min_bucket_size: int = 10,
        min_group_size: int = 3,
        summary_max_chars: int = 500,
        summary_timeout: Optional[float] = 30.0,
        persistence: Optional[PersistenceHook] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.vectors = vectors
        self.graph = graph
        self.summarize_fn = summarize_fn
        self.threshold = threshold
        self.interval = interval
        self.min_bucket_size = min_bucket_size
        self.min_group_size = min_group_size
        self.summary_max_chars = summary_max_chars
        self.summary_timeout = summary_timeout
        self.persistence = persistence
        self._clock = clock
        self._last_run = clock()
        self._run_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Trigger
    # ------------------------------------------------------------------

    def should_run(self, total: Optional[int] = None) -> bool:
        """True when the store is over threshold or the last pass is too old."""
        if total is None:
            total = self.store.total_count()
        return total > self.threshold or (self._clock() - self._last_run) > self.interval

    def maybe_run(self) -> Optional[ConsolidationReport]:
        """Run a pass if the trigger fires and no other pass is in progress."""
        if not self.should_run():
            return None
        return self.run(blocking=False)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan(self, records: Sequence[MemoryRecord]) -> List[Tuple[str, List[MemoryRecord]]]:
        """Pick the groups a pass would consolidate from one bucket's *records*."""
        if len(records) < self.min_bucket_size:
            return []
        ordered = sorted(records, key=lambda r: r.created_at)
        oldest = ordered[: len(ordered) // 2]

        groups: Dict[str, List[MemoryRecord]] = {}
        for record in oldest:
            tag = record.tags[0] if record.tags else UNTAGGED_GROUP
            groups.setdefault(tag, []).append(record)
        return [(tag, grp) for tag, grp in groups.items() if len(grp) >= self.min_group_size]

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def summarize(self, group: Sequence[MemoryRecord], tag: str) -> str:
        if self.summarize_fn is not None:
            memories = "\n".join(f"- {r.content}" for r in group)
            prompt = SUMMARY_PROMPT.format(tag=tag, memories=memories)
            try:
                summary = call_with_timeout(self.summarize_fn, self.summary_timeout, prompt)
                if isinstance(summary, str) and summary.strip():
                    return summary.strip()
                logger.warning("Summarizer returned nothing for %d %s memories", len(group), tag)
            except Exception as e:
                logger.warning("Summarizer failed, using fallback summary: %s", e)
        return fallback_summary(group, tag, self.summary_max_chars)

    def run(self, blocking: bool = True) -> Optional[ConsolidationReport]:
        """Consolidate every bucket. Returns ``None`` if another pass holds the lock."""
        if not self._run_lock.acquire(blocking=blocking):
            logger.debug("Consolidation already in progress, skipping")
            return None
        try:
            report = ConsolidationReport()
            for agent_id in self.store.agent_ids():
                report.buckets_examined += 1
                try:
                    self._consolidate_bucket(agent_id, report)
                except Exception:
                    logger.exception("Consolidation failed for agent %s", agent_id)
                    report.failed_agents.append(agent_id)
            self._last_run = self._clock()
            if report.groups_consolidated:
                logger.info(
                    "Consolidated %d records into %d across %d buckets",
                    report.records_removed,
                    report.groups_consolidated,
                    report.buckets_examined,
                )
            return report
        finally:
            self._run_lock.release()

    def _consolidate_bucket(self, agent_id: str, report: ConsolidationReport) -> None:
        for tag, group in self.plan(self.store.bucket(agent_id)):
            # Summaries may be slow: no store, index or graph lock is held here.
            summary = self.summarize(group, tag)
            record = MemoryRecord(
                id=self.store.new_id(),
                agent_id=agent_id,
                content=summary,
                created_at=utcnow(),
                importance=max(r.importance for r in group),
                tags=normalize_tags((CONSOLIDATED_TAG, tag)),
            )
            old_ids = [r.id for r in group]
            removed = self.store.replace(agent_id, old_ids, record)
            if len(removed) < len(old_ids):
                logger.debug("%d originals vanished before consolidation", len(old_ids) - len(removed))

            for rid in old_ids:
                self.vectors.remove(rid)
                notify_hook(self.persistence, "on_delete", rid)

            self.graph.create_entity(record.id, MEMORY_ENTITY_TYPE, [record.content])
            self.graph.replace_entities(old_ids, record.id)

            notify_hook(self.persistence, "on_store", record)
            if self.vectors.upsert(record):
                notify_hook(self.persistence, "on_embedded", record)

            report.groups_consolidated += 1
            report.records_removed += len(removed)
            report.created_ids.append(record.id)
