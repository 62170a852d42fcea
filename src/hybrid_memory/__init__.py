"""
hybrid-memory-core: hybrid memory for AI agents.

Layers:
    Memory store     - per-agent buckets of memory records (authoritative)
    Vector index     - cosine-similarity recall over record embeddings
    Graph            - NetworkX entities and typed relations, optional remote mirror
    Categorical      - preferences, app state, interactions, device context
    Observations     - bounded window of raw UI events

Usage:
    from hybrid_memory import MemoryService, HashingEmbedder

    service = MemoryService(embedder=HashingEmbedder())
    service.store("agent-1", "User prefers dark mode", tags=["preference"])
    service.flush()
    print(service.retrieve_relevant("dark mode"))
"""

import logging

__version__ = "0.1.0"

from hybrid_memory.categorical import (
    AppStateStore,
    CategoricalStore,
    DeviceContextStore,
    InteractionStore,
    UserPreferenceStore,
)
from hybrid_memory.classifier import SignificanceFilter
from hybrid_memory.collaborators import HashingEmbedder, SentenceTransformerEmbedder
from hybrid_memory.config import MemoryConfig
from hybrid_memory.consolidation import ConsolidationEngine
from hybrid_memory.exceptions import InvalidInputError, MemoryCoreError
from hybrid_memory.gateway import MemoryToolGateway
from hybrid_memory.graph_store import GraphStore, HttpGraphClient
from hybrid_memory.memory import MemoryService
from hybrid_memory.models import (
    CategoricalEntry,
    Entity,
    EventKind,
    MemoryRecord,
    Observation,
    RelatedEntity,
    Relation,
)
from hybrid_memory.observations import ObservationBuffer
from hybrid_memory.persistence import ChromaPersistence
from hybrid_memory.store import MemoryStore
from hybrid_memory.vector_store import VectorStore

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "MemoryService",
    "MemoryToolGateway",
    "MemoryConfig",
    "MemoryStore",
    "VectorStore",
    "GraphStore",
    "HttpGraphClient",
    "ObservationBuffer",
    "ConsolidationEngine",
    "SignificanceFilter",
    "CategoricalStore",
    "UserPreferenceStore",
    "AppStateStore",
    "InteractionStore",
    "DeviceContextStore",
    "ChromaPersistence",
    "HashingEmbedder",
    "SentenceTransformerEmbedder",
    "MemoryRecord",
    "Observation",
    "EventKind",
    "Entity",
    "Relation",
    "RelatedEntity",
    "CategoricalEntry",
    "MemoryCoreError",
    "InvalidInputError",
]
