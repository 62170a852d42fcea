"""Bounded, newest-first window of raw UI observations."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Deque, Iterable, List

from hybrid_memory.exceptions import InvalidInputError
from hybrid_memory.models import EventKind, Observation

__all__ = ["ObservationBuffer"]

logger = logging.getLogger(__name__)


class ObservationBuffer:
    """Fixed-capacity ring; when full, the oldest observation is dropped."""

    def __init__(self, capacity: int = 50) -> None:
        if capacity < 1:
            raise InvalidInputError("capacity must be at least 1")
        self.capacity = capacity
        self._ring: Deque[Observation] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def record(self, observation: Observation) -> None:
        with self._lock:
            self._ring.appendleft(observation)

    def recent(self, limit: int = 10) -> List[Observation]:
        """Return up to *limit* observations, newest first."""
        if limit < 0:
            raise InvalidInputError("limit must not be negative")
        with self._lock:
            snapshot = list(self._ring)
        return snapshot[:limit]

    def recent_of_kinds(self, kinds: Iterable[EventKind], limit: int = 10) -> List[Observation]:
        if limit < 0:
            raise InvalidInputError("limit must not be negative")
        wanted = frozenset(kinds)
        with self._lock:
            snapshot = list(self._ring)
        return [o for o in snapshot if o.kind in wanted][:limit]

    def clear(self) -> None:
        with self._lock:
            self._ring.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._ring)
