"""
Exception hierarchy for hybrid-memory-core.

Collaborator errors are recovered locally by the component that made the call;
only ``InvalidInputError`` is meant to reach callers of the library.
"""

from __future__ import annotations

__all__ = [
    "MemoryCoreError",
    "InvalidInputError",
    "CollaboratorError",
    "CollaboratorTimeout",
    "EmbeddingError",
    "SummarizationError",
    "RemoteGraphError",
]


class MemoryCoreError(Exception):
    """Base class for every error raised by this package."""


class InvalidInputError(MemoryCoreError, ValueError):
    """A caller supplied a missing or malformed argument."""


class CollaboratorError(MemoryCoreError):
    """An external collaborator (embedder, summarizer, remote graph) failed."""


class CollaboratorTimeout(CollaboratorError):
    """An external collaborator did not answer within its time budget."""


class EmbeddingError(CollaboratorError):
    """The embedding provider could not produce a vector."""


class SummarizationError(CollaboratorError):
    """The summarizer could not produce a summary."""


class RemoteGraphError(CollaboratorError):
    """The remote relationship graph is unreachable or rejected a request."""
