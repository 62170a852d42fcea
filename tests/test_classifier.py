"""Tests for SignificanceFilter — observation promotion rules."""

import pytest

from hybrid_memory.classifier import SIGNIFICANT_KINDS, SignificanceFilter
from hybrid_memory.models import EventKind, Observation


@pytest.fixture
def significance():
    return SignificanceFilter()


class TestIsSignificant:

    @pytest.mark.parametrize("kind", sorted(SIGNIFICANT_KINDS, key=lambda k: k.value))
    def test_significant_kinds(self, significance, kind):
        assert significance.is_significant(Observation(kind, "com.app", "x"))

    @pytest.mark.parametrize("kind", [
        EventKind.VIEW_SCROLLED,
        EventKind.VIEW_FOCUSED,
        EventKind.WINDOW_CONTENT_CHANGED,
        EventKind.VIEW_TEXT_CHANGED,
        EventKind.OTHER,
    ])
    def test_noise_is_not_significant(self, significance, kind):
        assert not significance.is_significant(Observation(kind, "com.app", "x"))

    def test_custom_kinds(self):
        only_scroll = SignificanceFilter([EventKind.VIEW_SCROLLED])

        assert only_scroll.is_significant(Observation(EventKind.VIEW_SCROLLED))
        assert not only_scroll.is_significant(Observation(EventKind.VIEW_CLICKED))


class TestUpdatesAppState:

    def test_window_change_with_app(self, significance):
        assert significance.updates_app_state(Observation(EventKind.WINDOW_STATE_CHANGED, "com.mail"))

    def test_window_change_without_app(self, significance):
        assert not significance.updates_app_state(Observation(EventKind.WINDOW_STATE_CHANGED, ""))

    def test_other_kinds(self, significance):
        assert not significance.updates_app_state(Observation(EventKind.VIEW_CLICKED, "com.mail"))


class TestToMemoryContent:
    """Test rendering promoted observations."""

    def test_window_change(self, significance):
        obs = Observation(EventKind.WINDOW_STATE_CHANGED, "com.mail", "Inbox")
        assert significance.to_memory_content(obs) == "App changed to com.mail (Inbox)"

    def test_window_change_without_text(self, significance):
        obs = Observation(EventKind.WINDOW_STATE_CHANGED, "com.mail")
        assert significance.to_memory_content(obs) == "App changed to com.mail"

    def test_notification(self, significance):
        obs = Observation(EventKind.NOTIFICATION_STATE_CHANGED, "com.chat", "New message")
        assert significance.to_memory_content(obs) == "Notification from com.chat: New message"

    def test_click_falls_back_to_description(self, significance):
        obs = Observation(EventKind.VIEW_CLICKED, "com.mail", "", "Send button")
        assert significance.to_memory_content(obs) == "Clicked Send button in com.mail"

    def test_other_event(self, significance):
        obs = Observation(EventKind.ANNOUNCEMENT, "com.app", "Download complete")
        assert significance.to_memory_content(obs) == "System event: Announcement - Download complete"
