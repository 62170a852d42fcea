"""
Categorical Stores — typed key/value memories that bypass the vector index.

:class:`CategoricalStore` implements the storage contract once; the four
specialisations only add key-building conventions and typed accessors.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from typing import Dict, List, Mapping, Optional

from hybrid_memory.exceptions import InvalidInputError
from hybrid_memory.models import CategoricalEntry, MemoryRecord, PayloadValue, format_value, utcnow
from hybrid_memory.store import validate_importance

__all__ = [
    "CategoricalStore",
    "UserPreferenceStore",
    "AppStateStore",
    "InteractionStore",
    "DeviceContextStore",
]

logger = logging.getLogger(__name__)


class CategoricalStore:
    """Thread-safe upsert-by-key store of :class:`CategoricalEntry`."""

    memory_type = "categorical"

    def __init__(self) -> None:
        self._entries: Dict[str, CategoricalEntry] = {}
        self._lock = threading.Lock()

    def put(self, entry: CategoricalEntry) -> CategoricalEntry:
        validate_importance(entry.importance)
        with self._lock:
            self._entries[entry.key] = entry
        logger.debug("Stored %s entry %s", self.memory_type, entry.key)
        return entry

    def get(self, key: str) -> Optional[CategoricalEntry]:
        with self._lock:
            return self._entries.get(key)

    def all(self) -> List[CategoricalEntry]:
        with self._lock:
            return list(self._entries.values())

    def search(self, query: str) -> List[CategoricalEntry]:
        """Entries whose key or rendered value contains *query* (case-insensitive)."""
        needle = query.lower()
        return [
            e for e in self.all()
            if needle in e.key.lower() or needle in format_value(e.value).lower()
        ]

    def with_tag(self, tag: str) -> List[CategoricalEntry]:
        return [e for e in self.all() if tag in e.tags]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Cleared all %s entries", self.memory_type)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def to_memory_record(self, entry: CategoricalEntry, agent_id: str = "system") -> MemoryRecord:
        """Render *entry* as a general memory record (not inserted anywhere)."""
        tags = (self.memory_type,) + tuple(t for t in entry.tags if t != self.memory_type)
        return MemoryRecord(
            id=f"{self.memory_type}_{entry.key}",
            agent_id=agent_id,
            content=f"{entry.key}: {format_value(entry.value)}",
            created_at=entry.timestamp,
            importance=entry.importance,
            tags=tags,
        )


class UserPreferenceStore(CategoricalStore):
    """User preferences and habits, grouped by category."""

    memory_type = "user_preferences"

    def store_preference(
        self,
        key: str,
        value: PayloadValue,
        category: str = "general",
        importance: float = 1.0,
    ) -> CategoricalEntry:
        return self.put(CategoricalEntry(
            key=key,
            value=value,
            timestamp=utcnow(),
            importance=importance,
            tags=("preference", category or "general"),
        ))

    def by_category(self, category: str) -> List[CategoricalEntry]:
        return self.with_tag(category)

    def has_preference(self, key: str) -> bool:
        return self.get(key) is not None


class AppStateStore(CategoricalStore):
    """Per-app navigation state, keyed ``<package>:<state name>``."""

    memory_type = "app_state"

    @staticmethod
    def make_key(package: str, state_name: str) -> str:
        return f"{package}:{state_name}"

    def store_app_state(
        self,
        package: str,
        state_name: str,
        data: Mapping[str, PayloadValue],
        importance: float = 1.0,
    ) -> CategoricalEntry:
        if not package:
            raise InvalidInputError("package must not be empty")
        return self.put(CategoricalEntry(
            key=self.make_key(package, state_name),
            value=dict(data),
            timestamp=utcnow(),
            importance=importance,
            tags=("app_state", package),
        ))

    def states_for(self, package: str) -> List[CategoricalEntry]:
        return self.with_tag(package)

    def latest_state(self, package: str) -> Optional[CategoricalEntry]:
        states = self.states_for(package)
        if not states:
            return None
        return max(states, key=lambda e: e.timestamp)


def _key_seq(key: str) -> int:
    tail = key.rsplit("_", 1)[-1]
    return int(tail) if tail.isdigit() else 0


class InteractionStore(CategoricalStore):
    """Log of user/agent exchanges, newest first on read."""

    memory_type = "interaction"

    def __init__(self) -> None:
        super().__init__()
        self._seq = itertools.count(1)

    def store_interaction(
        self,
        agent_id: str,
        user_query: str,
        agent_response: str,
        success: bool = True,
        importance: float = 1.0,
    ) -> CategoricalEntry:
        if not agent_id:
            raise InvalidInputError("agent_id must not be empty")
        key = f"interaction_{int(time.time() * 1000)}_{next(self._seq)}"
        return self.put(CategoricalEntry(
            key=key,
            value={
                "agent_id": agent_id,
                "user_query": user_query,
                "agent_response": agent_response,
                "success": bool(success),
            },
            timestamp=utcnow(),
            importance=importance,
            tags=("interaction", agent_id, "success" if success else "failure"),
        ))

    def _newest(self, entries: List[CategoricalEntry], limit: int) -> List[CategoricalEntry]:
        # Keys carry a sequence number, which orders entries written in the same instant.
        entries.sort(key=lambda e: (e.timestamp, _key_seq(e.key)), reverse=True)
        return entries[:max(limit, 0)]

    def recent(self, limit: int = 10) -> List[CategoricalEntry]:
        return self._newest(self.all(), limit)

    def for_agent(self, agent_id: str, limit: int = 10) -> List[CategoricalEntry]:
        return self._newest(self.with_tag(agent_id), limit)

    def by_result(self, success: bool, limit: int = 10) -> List[CategoricalEntry]:
        return self._newest(self.with_tag("success" if success else "failure"), limit)


class DeviceContextStore(CategoricalStore):
    """Device state snapshots (``device-state:<type>``) and installed-app info."""

    memory_type = "device_context"

    @staticmethod
    def state_key(state_type: str) -> str:
        return f"device-state:{state_type}"

    @staticmethod
    def app_info_key(package: str) -> str:
        return f"app-info:{package}"

    def store_device_state(
        self,
        state_type: str,
        data: Mapping[str, PayloadValue],
        importance: float = 1.0,
    ) -> CategoricalEntry:
        if not state_type:
            raise InvalidInputError("state_type must not be empty")
        return self.put(CategoricalEntry(
            key=self.state_key(state_type),
            value=dict(data),
            timestamp=utcnow(),
            importance=importance,
            tags=("device_state", state_type),
        ))

    def store_app_info(
        self,
        package: str,
        info: Mapping[str, PayloadValue],
        importance: float = 0.7,
    ) -> CategoricalEntry:
        if not package:
            raise InvalidInputError("package must not be empty")
        return self.put(CategoricalEntry(
            key=self.app_info_key(package),
            value=dict(info),
            timestamp=utcnow(),
            importance=importance,
            tags=("app_info", package),
        ))

    def device_state(self, state_type: str) -> Optional[CategoricalEntry]:
        return self.get(self.state_key(state_type))

    def device_states(self) -> List[CategoricalEntry]:
        return self.with_tag("device_state")

    def app_info(self, package: str) -> Optional[CategoricalEntry]:
        return self.get(self.app_info_key(package))

    def all_app_info(self) -> List[CategoricalEntry]:
        return self.with_tag("app_info")
