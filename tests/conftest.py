"""
Shared pytest fixtures for hybrid-memory-core tests.

All tests use the deterministic HashingEmbedder, so no model is downloaded and
no network is needed.
"""

import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from hybrid_memory.collaborators import HashingEmbedder
from hybrid_memory.config import MemoryConfig
from hybrid_memory.exceptions import EmbeddingError
from hybrid_memory.models import MemoryRecord


# ----------------------------------------------------------------
# Embedders
# ----------------------------------------------------------------

class FlakyEmbedder:
    """Fails while ``broken`` is set, then behaves like HashingEmbedder."""

    def __init__(self, broken=True):
        self.broken = broken
        self.calls = 0
        self._inner = HashingEmbedder()

    def embed(self, text):
        self.calls += 1
        if self.broken:
            raise EmbeddingError("backend offline")
        return self._inner.embed(text)


class SlowEmbedder:
    """Blocks until released, to exercise timeouts."""

    def __init__(self):
        self.release = threading.Event()

    def embed(self, text):
        self.release.wait(5)
        return HashingEmbedder().embed(text)


class FixedEmbedder:
    """Returns canned vectors per text, for exact ranking tests."""

    def __init__(self, vectors, default=None):
        self.vectors = vectors
        self.default = default or [0.0, 0.0, 1.0]

    def embed(self, text):
        return list(self.vectors.get(text, self.default))


@pytest.fixture
def embedder():
    return HashingEmbedder()


@pytest.fixture
def flaky_embedder():
    return FlakyEmbedder()


@pytest.fixture
def slow_embedder():
    emb = SlowEmbedder()
    yield emb
    emb.release.set()


# ----------------------------------------------------------------
# Records
# ----------------------------------------------------------------

BASE_TIME = datetime(2025, 4, 15, 9, 0, tzinfo=timezone.utc)


def make_record(record_id, content="note", agent_id="a1", minutes=0, importance=1.0,
                tags=(), embedding=None):
    return MemoryRecord(
        id=record_id,
        agent_id=agent_id,
        content=content,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        importance=importance,
        tags=tuple(tags),
        embedding=embedding,
    )


@pytest.fixture
def record_factory():
    return make_record


# ----------------------------------------------------------------
# Components
# ----------------------------------------------------------------

@pytest.fixture
def memory_store():
    from hybrid_memory.store import MemoryStore
    return MemoryStore()


@pytest.fixture
def vector_store(embedder):
    from hybrid_memory.vector_store import VectorStore
    return VectorStore(embedder, embedding_timeout=5.0)


@pytest.fixture
def graph_store():
    from hybrid_memory.graph_store import GraphStore
    return GraphStore()


@pytest.fixture
def graph_store_with_data():
    """GraphStore pre-populated with a small meeting graph."""
    from hybrid_memory.graph_store import GraphStore

    gs = GraphStore()
    gs.create_entity("Meeting", "Work", ["Weekly team sync meeting on Mondays at 10am"])
    gs.create_entity("John", "Person", ["Team lead, prefers detailed reports"])
    gs.create_entity("Presentation", "Document", ["Q1 results presentation"])
    gs.create_entity("Conference Room A", "Location", ["4th floor, has video conferencing"])

    gs.create_relation("Meeting", "John", "attended_by")
    gs.create_relation("Meeting", "Presentation", "includes")
    gs.create_relation("Meeting", "Conference Room A", "located_at")
    return gs


@pytest.fixture
def config():
    return MemoryConfig(embedding_timeout=5.0, summary_timeout=5.0, remote_timeout=1.0)


@pytest.fixture
def service(embedder, config):
    """MemoryService on the hashing embedder."""
    from hybrid_memory.memory import MemoryService

    svc = MemoryService(embedder=embedder, config=config)
    yield svc
    svc.close()


@pytest.fixture
def gateway(service):
    from hybrid_memory.gateway import MemoryToolGateway
    return MemoryToolGateway(service)


@pytest.fixture
def fake_clock():
    """Manually advanced monotonic clock."""
    class Clock:
        def __init__(self):
            self.now = 1000.0

        def __call__(self):
            return self.now

        def advance(self, seconds):
            self.now += seconds

    return Clock()


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()
