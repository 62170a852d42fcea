"""
Data model shared by every memory layer.

Memory records are owned by :class:`~hybrid_memory.store.MemoryStore`; the vector
index and the relationship graph only hold derived views keyed by record id.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from hybrid_memory.exceptions import InvalidInputError

__all__ = [
    "PayloadValue",
    "EventKind",
    "MemoryRecord",
    "Observation",
    "Entity",
    "Relation",
    "RelatedEntity",
    "CategoricalEntry",
    "normalize_tags",
    "validate_value",
    "format_value",
    "utcnow",
]

# Categorical payloads are restricted to these shapes so consumers can branch on
# type instead of guessing.
PayloadValue = Union[str, int, float, bool, Dict[str, "PayloadValue"]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_tags(tags: Optional[Iterable[str]]) -> Tuple[str, ...]:
    """De-duplicate *tags*, keeping first-seen order and dropping blanks."""
    if tags is None:
        return ()
    if isinstance(tags, str):
        raise InvalidInputError("tags must be a list of strings, not a string")
    seen: Dict[str, None] = {}
    for tag in tags:
        if not isinstance(tag, str):
            raise InvalidInputError(f"tag must be a string, got {type(tag).__name__}")
        tag = tag.strip()
        if tag:
            seen.setdefault(tag, None)
    return tuple(seen)


def validate_value(value: Any) -> PayloadValue:
    """Check that *value* is a string, number, boolean or nested string-keyed map."""
    if isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Mapping):
        out: Dict[str, PayloadValue] = {}
        for k, v in value.items():
            if not isinstance(k, str):
                raise InvalidInputError(f"payload keys must be strings, got {k!r}")
            out[k] = validate_value(v)
        return out
    raise InvalidInputError(f"unsupported payload type: {type(value).__name__}")


def format_value(value: PayloadValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict):
        inner = ", ".join(f"{k}={format_value(v)}" for k, v in value.items())
        return "{" + inner + "}"
    return str(value)


class EventKind(str, enum.Enum):
    """Kinds of UI events produced by the observation source."""

    WINDOW_STATE_CHANGED = "window_state_changed"
    WINDOW_CONTENT_CHANGED = "window_content_changed"
    VIEW_CLICKED = "view_clicked"
    VIEW_FOCUSED = "view_focused"
    VIEW_SCROLLED = "view_scrolled"
    VIEW_TEXT_CHANGED = "view_text_changed"
    NOTIFICATION_STATE_CHANGED = "notification_state_changed"
    ANNOUNCEMENT = "announcement"
    OTHER = "other"

    @property
    def label(self) -> str:
        return _EVENT_LABELS[self]


_EVENT_LABELS = {
    EventKind.WINDOW_STATE_CHANGED: "Window Changed",
    EventKind.WINDOW_CONTENT_CHANGED: "Content Changed",
    EventKind.VIEW_CLICKED: "Click",
    EventKind.VIEW_FOCUSED: "Focus",
    EventKind.VIEW_SCROLLED: "Scroll",
    EventKind.VIEW_TEXT_CHANGED: "Text Changed",
    EventKind.NOTIFICATION_STATE_CHANGED: "Notification",
    EventKind.ANNOUNCEMENT: "Announcement",
    EventKind.OTHER: "Event",
}


@dataclass
class MemoryRecord:
    id: str
    agent_id: str
    content: str
    created_at: datetime = field(default_factory=utcnow)
    importance: float = 1.0
    tags: Tuple[str, ...] = ()
    embedding: Optional[List[float]] = None

    @property
    def is_embedded(self) -> bool:
        return bool(self.embedding)

    def has_any_tag(self, tags: Iterable[str]) -> bool:
        return not set(self.tags).isdisjoint(tags)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
            "importance": self.importance,
            "tags": list(self.tags),
        }


@dataclass(frozen=True)
class Observation:
    """A raw UI event. Lives only in the observation buffer unless promoted."""

    kind: EventKind
    source_app: str = ""
    text: str = ""
    description: str = ""
    timestamp: datetime = field(default_factory=utcnow)

    def describe(self) -> str:
        return f"[{self.kind.label}] {self.source_app}: {self.text}"


@dataclass
class Entity:
    name: str
    entity_type: str
    observations: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Relation:
    source: str
    target: str
    relation_type: str


@dataclass(frozen=True)
class RelatedEntity:
    """An entity reached from a query node, with the edge that led to it."""

    entity: Entity
    relation_type: str
    direction: str  # "outbound" or "inbound"

    @property
    def name(self) -> str:
        return self.entity.name


@dataclass
class CategoricalEntry:
    key: str
    value: PayloadValue
    timestamp: datetime = field(default_factory=utcnow)
    importance: float = 1.0
    tags: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.key:
            raise InvalidInputError("categorical entry key must not be empty")
        self.value = validate_value(self.value)
        self.tags = normalize_tags(self.tags)
