"""
Significance filter — decides which observations are promoted to memories.

Promotion is rule-based on the event kind; the filter also renders a promoted
observation as memory text.
"""

from __future__ import annotations

from typing import FrozenSet, Iterable, Optional

from hybrid_memory.models import EventKind, Observation

__all__ = ["SignificanceFilter", "SIGNIFICANT_KINDS", "UI_KINDS"]

SIGNIFICANT_KINDS: FrozenSet[EventKind] = frozenset({
    EventKind.WINDOW_STATE_CHANGED,
    EventKind.ANNOUNCEMENT,
    EventKind.NOTIFICATION_STATE_CHANGED,
    EventKind.VIEW_CLICKED,
})

# Kinds that describe what is on screen, used for UI context.
UI_KINDS: FrozenSet[EventKind] = frozenset({
    EventKind.WINDOW_STATE_CHANGED,
    EventKind.WINDOW_CONTENT_CHANGED,
    EventKind.VIEW_CLICKED,
    EventKind.VIEW_FOCUSED,
    EventKind.VIEW_SCROLLED,
})


class SignificanceFilter:
    """Classify observations for promotion to long-term memory."""

    OBSERVATION_IMPORTANCE = 0.7
    OBSERVATION_TAGS = ("observation", "system_event")

    def __init__(self, significant_kinds: Optional[Iterable[EventKind]] = None) -> None:
        """
        Args:
            significant_kinds: Kinds to promote. Defaults to window state changes,
                announcements, notifications and clicks.
        """
        self.significant_kinds = frozenset(significant_kinds) if significant_kinds is not None else SIGNIFICANT_KINDS

    def is_significant(self, observation: Observation) -> bool:
        return observation.kind in self.significant_kinds

    @staticmethod
    def updates_app_state(observation: Observation) -> bool:
        return observation.kind is EventKind.WINDOW_STATE_CHANGED and bool(observation.source_app)

    @staticmethod
    def to_memory_content(observation: Observation) -> str:
        """Render *observation* as a sentence suitable for a memory record."""
        kind = observation.kind
        if kind is EventKind.WINDOW_STATE_CHANGED:
            text = f"App changed to {observation.source_app}"
            if observation.text:
                text += f" ({observation.text})"
            return text
        if kind is EventKind.NOTIFICATION_STATE_CHANGED:
            return f"Notification from {observation.source_app}: {observation.text}"
        if kind is EventKind.VIEW_CLICKED:
            target = observation.text or observation.description or "an element"
            return f"Clicked {target} in {observation.source_app}"
        return f"System event: {kind.label} - {observation.text or observation.description}"
