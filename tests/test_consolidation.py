"""Tests for ConsolidationEngine — bounding memory growth."""

import threading
from unittest.mock import MagicMock

import pytest

from conftest import make_record
from hybrid_memory.consolidation import (
    CONSOLIDATED_TAG,
    ConsolidationEngine,
    SUMMARY_PROMPT,
    fallback_summary,
)
from hybrid_memory.exceptions import SummarizationError


@pytest.fixture
def engine(memory_store, vector_store, graph_store, fake_clock):
    return ConsolidationEngine(memory_store, vector_store, graph_store, clock=fake_clock)


def _fill(store, agent_id="a1", count=12, tag="work", start=0, importance=0.5):
    records = []
    for i in range(count):
        rec = make_record(
            f"{agent_id}-{start + i:03d}",
            f"{tag} note {start + i}",
            agent_id=agent_id,
            minutes=start + i,
            importance=importance,
            tags=(tag,) if tag else (),
        )
        store.insert(rec)
        records.append(rec)
    return records


class TestTrigger:
    """Test when a pass is due."""

    def test_below_threshold_not_due(self, engine, memory_store):
        _fill(memory_store, count=50)
        assert not engine.should_run()

    def test_over_threshold_due(self, engine, memory_store):
        _fill(memory_store, count=51)
        assert engine.should_run()

    def test_interval_elapsed_due(self, engine, fake_clock):
        """An old last pass triggers even with a small store."""
        assert not engine.should_run()
        fake_clock.advance(3601)
        assert engine.should_run()

    def test_run_resets_interval(self, engine, fake_clock):
        fake_clock.advance(3601)
        engine.run()
        assert not engine.should_run()

    def test_maybe_run_skips_when_not_due(self, engine, memory_store):
        _fill(memory_store, count=12)
        assert engine.maybe_run() is None
        assert memory_store.total_count() == 12

    def test_concurrent_pass_is_skipped(self, engine):
        """A non-blocking run returns None while another pass holds the lock."""
        engine._run_lock.acquire()
        try:
            assert engine.run(blocking=False) is None
        finally:
            engine._run_lock.release()


class TestPlan:
    """Test group selection."""

    def test_small_bucket_skipped(self, engine, memory_store):
        records = _fill(memory_store, count=9)
        assert engine.plan(records) == []

    def test_only_oldest_half_considered(self, engine, memory_store):
        records = _fill(memory_store, count=12)

        [(tag, group)] = engine.plan(list(reversed(records)))

        assert tag == "work"
        assert [r.id for r in group] == [r.id for r in records[:6]]

    def test_small_groups_skipped(self, engine, memory_store):
        """Groups below the minimum size are left alone."""
        records = _fill(memory_store, count=2, tag="lunch")
        records += _fill(memory_store, count=10, tag="work", start=2)

        plan = dict(engine.plan(records))

        assert "lunch" not in plan
        assert len(plan["work"]) == 4

    def test_untagged_records_grouped_as_general(self, engine, memory_store):
        records = _fill(memory_store, count=10, tag=None)
        assert [tag for tag, _ in engine.plan(records)] == ["general"]

    def test_groups_by_first_tag(self, engine):
        records = [make_record(f"m{i}", minutes=i, tags=("meeting", "work")) for i in range(10)]
        assert [tag for tag, _ in engine.plan(records)] == ["meeting"]


class TestRun:
    """Test executing a pass."""

    def test_replaces_group_with_summary(self, engine, memory_store, vector_store):
        records = _fill(memory_store, count=12)
        for rec in records:
            vector_store.upsert(rec)
        records[2].importance = 0.9

        report = engine.run()

        remaining = memory_store.find_by_agent("a1")
        assert report.groups_consolidated == 1
        assert report.records_removed == 6
        assert len(remaining) == 7
        summary = memory_store.find_by_id(report.created_ids[0])
        assert summary.tags == (CONSOLIDATED_TAG, "work")
        assert summary.importance == 0.9
        assert summary.content.startswith("Consolidated 6 work memories: work note 0; work note 1")

    def test_newest_half_untouched(self, engine, memory_store):
        records = _fill(memory_store, count=12)

        engine.run()

        for rec in records[6:]:
            assert memory_store.find_by_id(rec.id) is rec
        for rec in records[:6]:
            assert memory_store.find_by_id(rec.id) is None

    def test_originals_leave_index_and_graph(self, engine, memory_store, vector_store, graph_store):
        records = _fill(memory_store, count=12)
        for rec in records:
            vector_store.upsert(rec)
            graph_store.create_entity(rec.id, "Memory", [rec.content])
        graph_store.create_relation(records[0].id, "Project X", "about")

        report = engine.run()

        new_id = report.created_ids[0]
        assert not any(vector_store.contains(r.id) for r in records[:6])
        assert vector_store.contains(new_id)
        assert graph_store.get_entity(records[0].id) is None
        assert [r.name for r in graph_store.related_entities(new_id)] == ["Project X"]

    def test_buckets_are_independent(self, engine, memory_store):
        """Agents are consolidated separately; a small bucket stays intact."""
        _fill(memory_store, agent_id="a1", count=12)
        _fill(memory_store, agent_id="a2", count=5)

        engine.run()

        assert memory_store.count("a1") == 7
        assert memory_store.count("a2") == 5

    def test_failure_in_one_bucket_does_not_stop_others(self, memory_store, vector_store, graph_store):
        _fill(memory_store, agent_id="a1", count=12)
        _fill(memory_store, agent_id="a2", count=12)
        engine = ConsolidationEngine(memory_store, vector_store, graph_store)
        real_plan = engine.plan
        calls = {"n": 0}

        def flaky_plan(records):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("boom")
            return real_plan(records)

        engine.plan = flaky_plan

        report = engine.run()

        assert len(report.failed_agents) == 1
        assert report.groups_consolidated == 1

    def test_persistence_hook_notified(self, memory_store, vector_store, graph_store):
        hook = MagicMock()
        engine = ConsolidationEngine(memory_store, vector_store, graph_store, persistence=hook)
        records = _fill(memory_store, count=12)

        report = engine.run()

        deleted = [c.args[0] for c in hook.on_delete.call_args_list]
        assert deleted == [r.id for r in records[:6]]
        hook.on_store.assert_called_once()
        assert hook.on_embedded.call_args.args[0].id == report.created_ids[0]


class TestSummarize:
    """Test summary generation."""

    def test_uses_summarizer(self, memory_store, vector_store, graph_store):
        prompts = []

        def summarize(prompt):
            prompts.append(prompt)
            return "  Weekly work notes.  "

        engine = ConsolidationEngine(memory_store, vector_store, graph_store, summarize)
        _fill(memory_store, count=12)

        report = engine.run()

        assert memory_store.find_by_id(report.created_ids[0]).content == "Weekly work notes."
        assert "- work note 0" in prompts[0]
        assert "topic: work" in prompts[0]

    def test_summarizer_failure_falls_back(self, memory_store, vector_store, graph_store):
        def broken(prompt):
            raise SummarizationError("llm offline")

        engine = ConsolidationEngine(memory_store, vector_store, graph_store, broken)
        _fill(memory_store, count=12)

        report = engine.run()

        content = memory_store.find_by_id(report.created_ids[0]).content
        assert content.startswith("Consolidated 6 work memories:")

    def test_blank_summary_falls_back(self, memory_store, vector_store, graph_store):
        engine = ConsolidationEngine(memory_store, vector_store, graph_store, lambda p: "   ")
        _fill(memory_store, count=12)

        report = engine.run()

        assert memory_store.find_by_id(report.created_ids[0]).content.startswith("Consolidated")

    def test_slow_summarizer_times_out(self, memory_store, vector_store, graph_store):
        release = threading.Event()

        def slow(prompt):
            release.wait(5)
            return "late"

        engine = ConsolidationEngine(
            memory_store, vector_store, graph_store, slow, summary_timeout=0.05
        )
        _fill(memory_store, count=12)
        try:
            report = engine.run()
        finally:
            release.set()

        assert memory_store.find_by_id(report.created_ids[0]).content.startswith("Consolidated")

    def test_fallback_truncates(self):
        group = [make_record(f"m{i}", "x" * 100, minutes=i) for i in range(10)]

        text = fallback_summary(group, "work", max_chars=500)

        assert len(text) == 500
        assert text.endswith("...")

    def test_fallback_is_chronological(self):
        group = [make_record("b", "second", minutes=2), make_record("a", "first", minutes=1)]
        assert fallback_summary(group, "misc") == "Consolidated 2 misc memories: first; second"

    def test_prompt_template_has_placeholders(self):
        assert "{tag}" in SUMMARY_PROMPT and "{memories}" in SUMMARY_PROMPT
