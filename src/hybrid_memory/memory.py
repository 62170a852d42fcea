"""
MemoryService — single entry point to the hybrid memory system.

    service = MemoryService(embedder=HashingEmbedder())
    mid = service.store("agent-1", "User prefers dark mode", tags=["preference"])
    service.flush()
    print(service.retrieve_relevant("dark mode"))

The service is built once at start-up and handed to whatever needs it (the tool
gateway, agent-framework tools); there is no global instance.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

from hybrid_memory.categorical import (
    AppStateStore,
    DeviceContextStore,
    InteractionStore,
    UserPreferenceStore,
)
from hybrid_memory.classifier import UI_KINDS, SignificanceFilter
from hybrid_memory.collaborators import (
    EmbeddingProvider,
    RemoteGraph,
    SentenceTransformerEmbedder,
    Summarizer,
)
from hybrid_memory.config import MemoryConfig
from hybrid_memory.consolidation import ConsolidationEngine, ConsolidationReport
from hybrid_memory.exceptions import InvalidInputError
from hybrid_memory.graph_store import MEMORY_ENTITY_TYPE, GraphStore
from hybrid_memory.models import (
    CategoricalEntry,
    MemoryRecord,
    Observation,
    PayloadValue,
    RelatedEntity,
    format_value,
    normalize_tags,
)
from hybrid_memory.observations import ObservationBuffer
from hybrid_memory.persistence import PersistenceHook, notify_hook
from hybrid_memory.store import MemoryStore
from hybrid_memory.vector_store import VectorStore

__all__ = ["MemoryService"]

logger = logging.getLogger(__name__)

SYSTEM_AGENT_ID = "system"
RELATED_TO = "related_to"
# Observed window changes keep one App-State entry per app under this name.
CURRENT_APP_STATE = "current"


def _stamp(ts) -> str:
    return ts.isoformat(timespec="seconds")


class MemoryService:
    """Facade over the memory store, vector index, graph and categorical stores.

    Args:
        embedder: Embedding provider. Defaults to a sentence-transformers model.
        summarize_fn: Optional ``fn(prompt) -> summary`` used by consolidation.
        remote_graph: Optional remote knowledge-graph backend.
        persistence: Optional hook notified of every record change.
        config: Tunables; defaults to :class:`MemoryConfig`.
        significance: Observation filter; defaults to :class:`SignificanceFilter`.
    """

    NO_MEMORIES = "No relevant memories found."
    NO_RELATED = "No related memories found."
    NO_OBSERVATIONS = "No recent system observations."
    NO_UI_ACTIVITY = "No recent UI activity observed."
    NO_PREFERENCES = "No user preferences found."
    NO_INTERACTIONS = "No recent interactions found."
    NO_DEVICE_CONTEXT = "No device context available."

    def __init__(
        self,
        embedder: Optional[EmbeddingProvider] = None,
        summarize_fn: Optional[Summarizer] = None,
        remote_graph: Optional[RemoteGraph] = None,
        persistence: Optional[PersistenceHook] = None,
        config: Optional[MemoryConfig] = None,
        significance: Optional[SignificanceFilter] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.config = config or MemoryConfig()
        self.embedder = embedder or SentenceTransformerEmbedder(self.config.model_name)
        self.persistence = persistence

        self.records = MemoryStore()
        self.vectors = VectorStore(self.embedder, embedding_timeout=self.config.embedding_timeout)
        self.graph = GraphStore(remote=remote_graph, remote_timeout=self.config.remote_timeout)
        self.observations = ObservationBuffer(self.config.observation_capacity)
        self.significance = significance or SignificanceFilter()

        self.preferences = UserPreferenceStore()
        self.app_states = AppStateStore()
        self.interactions = InteractionStore()
        self.device_context = DeviceContextStore()

        engine_kwargs: Dict[str, Any] = {}
        if clock is not None:
            engine_kwargs["clock"] = clock
        self.consolidation = ConsolidationEngine(
            self.records,
            self.vectors,
            self.graph,
            summarize_fn,
            threshold=self.config.consolidation_threshold,
            interval=self.config.consolidation_interval,
            min_bucket_size=self.config.min_bucket_size,
            min_group_size=self.config.min_group_size,
            summary_max_chars=self.config.summary_max_chars,
            summary_timeout=self.config.summary_timeout,
            persistence=persistence,
            **engine_kwargs,
        )

        self._executor = ThreadPoolExecutor(
            max_workers=self.config.embedding_workers,
            thread_name_prefix="memory-embed",
        )
        self._jobs: Set[Future] = set()
        self._jobs_lock = threading.Lock()
        self._retry_job: Optional[Future] = None
        # Separate from _jobs_lock, which _submit takes.
        self._retry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def __enter__(self) -> "MemoryService":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        """Finish outstanding embedding jobs and stop the worker pool."""
        self._executor.shutdown(wait=True)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for scheduled embedding jobs. Returns ``False`` if some are still running."""
        with self._jobs_lock:
            jobs = list(self._jobs)
        if not jobs:
            return True
        _, not_done = wait(jobs, timeout=timeout)
        return not not_done

    # ------------------------------------------------------------------
    # Embedding jobs
    # ------------------------------------------------------------------

    def _submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        future = self._executor.submit(fn, *args)
        with self._jobs_lock:
            self._jobs.add(future)

        def _done(f: Future) -> None:
            with self._jobs_lock:
                self._jobs.discard(f)

        future.add_done_callback(_done)
        return future

    def _embed_record(self, record: MemoryRecord) -> bool:
        if self.records.find_by_id(record.id) is None:
            return False
        indexed = self.vectors.upsert(record)
        if self.records.find_by_id(record.id) is None:
            # Deleted or consolidated while the embedding was in flight.
            self.vectors.remove(record.id)
            return False
        if indexed:
            notify_hook(self.persistence, "on_embedded", record)
        return indexed

    def _on_retry_indexed(self, record: MemoryRecord) -> None:
        if self.records.find_by_id(record.id) is None:
            self.vectors.remove(record.id)
            return
        notify_hook(self.persistence, "on_embedded", record)

    def _retry_pending(self) -> int:
        return self.vectors.retry_pending(on_indexed=self._on_retry_indexed)

    def retry_pending_embeddings(self) -> int:
        """Synchronously retry every record whose embedding is still pending."""
        return self._retry_pending()

    def _kick_pending_retry(self) -> None:
        if not self.vectors.pending_count():
            return
        with self._retry_lock:
            if self._retry_job is None or self._retry_job.done():
                self._retry_job = self._submit(self._retry_pending)

    # ------------------------------------------------------------------
    # Memory records
    # ------------------------------------------------------------------

    def store(
        self,
        agent_id: str,
        content: str,
        importance: float = 1.0,
        tags: Optional[Iterable[str]] = None,
        related_ids: Optional[Iterable[str]] = None,
    ) -> str:
        """Store a memory and return its id without waiting for its embedding.

        Every id in *related_ids* that names an existing record gets a
        ``related_to`` edge from the new record.
        """
        if related_ids is None:
            related = []
        elif isinstance(related_ids, str):
            raise InvalidInputError("related_ids must be a list of ids, not a string")
        else:
            related = list(related_ids)
            if not all(isinstance(r, str) for r in related):
                raise InvalidInputError("related_ids must contain strings only")

        record = self.records.new_record(agent_id, content, importance, tags)
        self.records.insert(record)

        self.graph.create_entity(record.id, MEMORY_ENTITY_TYPE, [record.content])
        for rid in dict.fromkeys(related):
            if rid != record.id and self.records.find_by_id(rid) is not None:
                self.graph.create_relation(record.id, rid, RELATED_TO)
            else:
                logger.debug("Skipping unknown related memory %s", rid)

        notify_hook(self.persistence, "on_store", record)
        self._submit(self._embed_record, record)
        self.consolidation.maybe_run()
        return record.id

    def find_by_id(self, record_id: str) -> Optional[MemoryRecord]:
        return self.records.find_by_id(record_id)

    def find_by_agent(self, agent_id: str) -> List[MemoryRecord]:
        return self.records.find_by_agent(agent_id)

    def find_by_tags(self, tags: Iterable[str], agent_id: Optional[str] = None) -> List[MemoryRecord]:
        return self.records.find_by_tags(normalize_tags(tags), agent_id=agent_id)

    def delete(self, record_id: str) -> bool:
        """Remove a memory everywhere. Unknown ids are a no-op returning ``False``."""
        removed = self.records.remove(record_id)
        self.vectors.remove(record_id)
        self.graph.remove_entity(record_id)
        if removed is None:
            return False
        notify_hook(self.persistence, "on_delete", record_id)
        logger.debug("Deleted %s", record_id)
        return True

    def consolidate(self) -> Optional[ConsolidationReport]:
        """Run a consolidation pass now, regardless of the trigger."""
        return self.consolidation.run()

    def clear_all(self) -> None:
        """Forget everything: records, indexes, categorical stores and observations."""
        self.records.clear()
        self.vectors.clear()
        self.graph.clear()
        for categorical in (self.preferences, self.app_states, self.interactions, self.device_context):
            categorical.clear()
        self.observations.clear()
        notify_hook(self.persistence, "on_clear")
        logger.info("Cleared all memories")

    def restore(self) -> int:
        """Reload records from the persistence hook, if it can provide them."""
        loader = getattr(self.persistence, "load_records", None)
        if loader is None:
            return 0
        restored = 0
        for record in loader():
            if self.records.find_by_id(record.id) is not None:
                continue
            self.records.insert(record)
            self.graph.create_entity(record.id, MEMORY_ENTITY_TYPE, [record.content])
            if record.is_embedded:
                self.vectors.upsert(record)
            else:
                self._submit(self._embed_record, record)
            restored += 1
        logger.info("Restored %d memories", restored)
        return restored

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def search(
        self,
        query: str,
        limit: int = 5,
        agent_id: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        min_importance: float = 0.0,
    ) -> List[MemoryRecord]:
        """Most similar records to *query* after agent, tag and importance filters."""
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidInputError("limit must be a positive integer")
        wanted = set(normalize_tags(tags))
        self._kick_pending_retry()

        results: List[MemoryRecord] = []
        for record in self.vectors.search(query, limit * 2):
            if agent_id is not None and record.agent_id != agent_id:
                continue
            if wanted and not record.has_any_tag(wanted):
                continue
            if record.importance < min_importance:
                continue
            results.append(record)
            if len(results) == limit:
                break
        return results

    def retrieve_relevant(
        self,
        query: str,
        limit: int = 5,
        agent_id: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        min_importance: float = 0.0,
    ) -> str:
        """Formatted :meth:`search` results, or :attr:`NO_MEMORIES`."""
        records = self.search(query, limit, agent_id, tags, min_importance)
        if not records:
            return self.NO_MEMORIES
        return "\n\n".join(f"[Memory from {_stamp(r.created_at)}]: {r.content}" for r in records)

    def related(self, record_id: str, relation_type: Optional[str] = None) -> List[RelatedEntity]:
        return self.graph.related_entities(record_id, relation_type)

    def retrieve_related(self, record_id: str, relation_type: Optional[str] = None) -> str:
        related = self.related(record_id, relation_type)
        if not related:
            return self.NO_RELATED
        return "\n".join(
            f"[{r.entity.entity_type}: {r.name}]: {'; '.join(r.entity.observations)}"
            for r in related
        )

    # ------------------------------------------------------------------
    # Observations
    # ------------------------------------------------------------------

    def observe(self, observation: Observation) -> Optional[str]:
        """Buffer *observation*; promote it to a memory if it is significant.

        Returns the new memory id, or ``None`` when nothing was promoted.
        """
        self.observations.record(observation)
        if not self.significance.is_significant(observation):
            return None

        memory_id = self.store(
            SYSTEM_AGENT_ID,
            self.significance.to_memory_content(observation),
            importance=self.significance.OBSERVATION_IMPORTANCE,
            tags=self.significance.OBSERVATION_TAGS,
        )
        if self.significance.updates_app_state(observation):
            self.app_states.store_app_state(
                observation.source_app,
                CURRENT_APP_STATE,
                {
                    "event": observation.kind.value,
                    "text": observation.text,
                    "description": observation.description,
                    "observed_at": _stamp(observation.timestamp),
                },
                importance=self.significance.OBSERVATION_IMPORTANCE,
            )
        return memory_id

    def get_recent_observations_context(self, limit: int = 10) -> str:
        observations = self.observations.recent(limit)
        if not observations:
            return self.NO_OBSERVATIONS
        return "\n".join(f"[{_stamp(o.timestamp)}] {o.describe()}" for o in observations)

    def get_ui_context(self) -> str:
        observations = self.observations.recent_of_kinds(UI_KINDS, 5)
        if not observations:
            return self.NO_UI_ACTIVITY
        return "\n".join(f"[{_stamp(o.timestamp)}] {o.describe()}" for o in observations)

    # ------------------------------------------------------------------
    # Categorical memories
    # ------------------------------------------------------------------

    def store_user_preference(
        self,
        key: str,
        value: PayloadValue,
        category: str = "general",
        importance: float = 1.0,
    ) -> CategoricalEntry:
        return self.preferences.store_preference(key, value, category, importance)

    def get_user_preferences_context(self, category: Optional[str] = None) -> str:
        entries = self.preferences.by_category(category) if category else self.preferences.all()
        if not entries:
            return self.NO_PREFERENCES
        lines = []
        for e in sorted(entries, key=lambda e: e.key):
            cat = e.tags[1] if len(e.tags) > 1 else "general"
            lines.append(f"- {e.key}: {format_value(e.value)} ({cat})")
        return "\n".join(lines)

    def store_interaction(
        self,
        agent_id: str,
        user_query: str,
        agent_response: str,
        success: bool = True,
        importance: float = 1.0,
    ) -> CategoricalEntry:
        return self.interactions.store_interaction(agent_id, user_query, agent_response, success, importance)

    def get_recent_interactions_context(self, agent_id: Optional[str] = None, limit: int = 5) -> str:
        if agent_id:
            entries = self.interactions.for_agent(agent_id, limit)
        else:
            entries = self.interactions.recent(limit)
        if not entries:
            return self.NO_INTERACTIONS
        lines = []
        for e in entries:
            data = e.value if isinstance(e.value, dict) else {}
            outcome = "success" if data.get("success", True) else "failure"
            lines.append(
                f"[{_stamp(e.timestamp)}] {data.get('agent_id', '?')} ({outcome})\n"
                f"  User: {data.get('user_query', '')}\n"
                f"  Agent: {data.get('agent_response', '')}"
            )
        return "\n".join(lines)

    def store_app_state(
        self,
        package: str,
        state_name: str,
        data: Mapping[str, PayloadValue],
        importance: float = 1.0,
    ) -> CategoricalEntry:
        return self.app_states.store_app_state(package, state_name, data, importance)

    def get_app_state_context(self, package: str) -> Optional[str]:
        entry = self.app_states.latest_state(package)
        if entry is None:
            return None
        return f"{entry.key}: {format_value(entry.value)}"

    def store_device_context(
        self,
        state_type: str,
        data: Mapping[str, PayloadValue],
        importance: float = 1.0,
    ) -> CategoricalEntry:
        return self.device_context.store_device_state(state_type, data, importance)

    def get_device_context_info(self, state_type: Optional[str] = None) -> str:
        if state_type:
            entry = self.device_context.device_state(state_type)
            entries = [entry] if entry is not None else []
        else:
            entries = sorted(self.device_context.device_states(), key=lambda e: e.key)
        if not entries:
            return self.NO_DEVICE_CONTEXT
        return "\n".join(
            f"{e.key.split(':', 1)[-1]}: {format_value(e.value)} (updated {_stamp(e.timestamp)})"
            for e in entries
        )

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, int]:
        return {
            "records": self.records.total_count(),
            "agents": len(self.records.agent_ids()),
            "embedded": self.vectors.count(),
            "pending_embeddings": self.vectors.pending_count(),
            **self.graph.stats(),
            "observations": len(self.observations),
            "preferences": len(self.preferences),
            "app_states": len(self.app_states),
            "interactions": len(self.interactions),
            "device_context": len(self.device_context),
        }
