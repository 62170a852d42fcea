"""Tests for ObservationBuffer."""

import threading

import pytest

from hybrid_memory.exceptions import InvalidInputError
from hybrid_memory.models import EventKind, Observation
from hybrid_memory.observations import ObservationBuffer


def _obs(text, kind=EventKind.VIEW_CLICKED):
    return Observation(kind, source_app="com.example", text=text)


class TestObservationBuffer:

    def test_recent_is_newest_first(self):
        buf = ObservationBuffer(5)
        for i in range(3):
            buf.record(_obs(f"e{i}"))

        assert [o.text for o in buf.recent()] == ["e2", "e1", "e0"]

    def test_capacity_drops_oldest(self):
        """Once full, each new observation evicts the oldest one."""
        buf = ObservationBuffer(3)
        for i in range(5):
            buf.record(_obs(f"e{i}"))

        assert len(buf) == 3
        assert [o.text for o in buf.recent()] == ["e4", "e3", "e2"]

    def test_recent_limit(self):
        buf = ObservationBuffer(10)
        for i in range(6):
            buf.record(_obs(f"e{i}"))

        assert [o.text for o in buf.recent(2)] == ["e5", "e4"]
        assert buf.recent(0) == []

    def test_negative_limit_rejected(self):
        with pytest.raises(InvalidInputError):
            ObservationBuffer().recent(-1)

    def test_zero_capacity_rejected(self):
        with pytest.raises(InvalidInputError):
            ObservationBuffer(0)

    def test_recent_of_kinds(self):
        """Filtering keeps newest-first order and applies the limit after filtering."""
        buf = ObservationBuffer(10)
        buf.record(_obs("click-1"))
        buf.record(_obs("note", EventKind.NOTIFICATION_STATE_CHANGED))
        buf.record(_obs("click-2"))
        buf.record(_obs("scroll", EventKind.VIEW_SCROLLED))

        picked = buf.recent_of_kinds({EventKind.VIEW_CLICKED, EventKind.VIEW_SCROLLED}, 2)

        assert [o.text for o in picked] == ["scroll", "click-2"]

    def test_clear(self):
        buf = ObservationBuffer(3)
        buf.record(_obs("x"))
        buf.clear()

        assert len(buf) == 0
        assert buf.recent() == []

    def test_concurrent_record(self):
        """Concurrent producers never push the buffer past capacity."""
        buf = ObservationBuffer(20)

        def produce(n):
            for i in range(50):
                buf.record(_obs(f"{n}-{i}"))

        threads = [threading.Thread(target=produce, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(buf) == 20
