"""Tests for observability / traces."""

import os
import tempfile

import pytest

from curio_mind import CuriousMind
from curio_mind.models import Outcome
from curio_mind.storage import Storage


@pytest.fixture
def mind():
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    m = CuriousMind(path, seed=7, enable_traces=True)
    yield m
    m.close()
    os.unlink(path)


@pytest.fixture
def mind_no_traces():
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    m = CuriousMind(path, seed=7, enable_traces=False)
    yield m
    m.close()
    os.unlink(path)


class TestTraces:
    def test_add_interest_creates_trace(self, mind):
        mind.add_interest("astronomy")
        traces = mind.traces(operation="add_interest")
        assert len(traces) == 1
        assert traces[0].input_text == "astronomy"
        assert traces[0].output_text == "weight=0.500"
        assert traces[0].duration_ms is not None

    def test_decay_creates_trace(self, mind):
        mind.add_interest("astronomy", now=0.0)
        mind.decay(now=10_000.0)
        traces = mind.traces(operation="decay")
        assert len(traces) == 1
        assert traces[0].output_text == "1 forgotten"

    def test_consolidate_creates_trace(self, mind):
        mind.add_interest("astronomy")
        mind.consolidate()
        assert len(mind.traces(operation="consolidate")) == 1

    def test_rejected_dream_is_traced(self, mind):
        mind.dream()
        traces = mind.traces(operation="dream")
        assert len(traces) == 1
        assert traces[0].output_text.startswith("rejected:")

    def test_strategy_operations_traced(self, mind):
        genome = mind.select_strategy()
        mind.record_outcome(genome, Outcome(discoveries=1))
        mind.record_outcome("strat_missing", Outcome())
        mind.evolve()
        outcomes = mind.traces(operation="record_outcome")
        assert sorted(t.output_text for t in outcomes) == ["fitness=0.300", "unknown"]
        assert len(mind.traces(operation="evolve")) == 1

    def test_no_traces_when_disabled(self, mind_no_traces):
        mind_no_traces.add_interest("astronomy")
        mind_no_traces.decay()
        assert mind_no_traces.traces() == []

    def test_trace_limit(self, mind):
        for i in range(10):
            mind.add_interest(f"topic number{i}")
        assert len(mind.traces(limit=5)) == 5

    def test_trace_has_duration(self, mind):
        mind.add_interest("astronomy")
        assert mind.traces()[0].duration_ms >= 0

    def test_zero_overhead_by_default(self):
        """Verify enable_traces=False is the default."""
        m = CuriousMind()
        assert m._enable_traces is False
        m.close()


class TestStorage:
    def test_snapshot_roundtrip(self):
        storage = Storage(":memory:")
        storage.save_snapshot("brain", {"version": 1, "interests": []})
        assert storage.load_snapshot("brain") == {"version": 1, "interests": []}
        assert storage.subsystems() == ["brain"]
        assert storage.delete_snapshot("brain")
        assert not storage.delete_snapshot("brain")
        assert storage.load_snapshot("brain") is None
        storage.close()

    def test_corrupt_snapshot_reads_as_missing(self):
        storage = Storage(":memory:")
        storage.conn.execute(
            "INSERT INTO snapshots (subsystem, version, data, saved_at) VALUES (?, ?, ?, ?)",
            ("dreams", 1, "{not json", 0.0),
        )
        storage.conn.execute(
            "INSERT INTO snapshots (subsystem, version, data, saved_at) VALUES (?, ?, ?, ?)",
            ("genetics", 1, "[1, 2]", 0.0),
        )
        assert storage.load_snapshot("dreams") is None
        assert storage.load_snapshot("genetics") is None
        storage.close()
