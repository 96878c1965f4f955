"""Tests for dream replay."""

import numpy as np
import pytest

from curio_mind.config import DreamConfig
from curio_mind.dream import DreamReplayEngine
from curio_mind.errors import IncompatibleSnapshotError
from curio_mind.events import EventKind
from curio_mind.graph import InterestGraph
from curio_mind.models import ConnectionOrigin, Discovery


class FixedRng:
    """Always draws the same value. Makes walks and noise predictable."""

    def __init__(self, value=0.0):
        self.value = value

    def random(self):
        return self.value

    def integers(self, low, high=None, size=None):
        return 0


TOPICS = [
    "machine learning", "deep learning", "learning theory",
    "quantum computing", "quantum physics", "particle physics",
    "jazz history", "jazz piano", "piano technique", "astronomy",
]


@pytest.fixture
def graph():
    g = InterestGraph()
    for i, topic in enumerate(TOPICS):
        g.add_or_reinforce(topic, now=float(i))
    return g


@pytest.fixture
def triangle():
    """astronomy and botany share a neighbour but are not linked."""
    g = InterestGraph()
    for topic in ("astronomy", "chemistry", "botany"):
        g.add_or_reinforce(topic, now=0.0)
    g.connect("astronomy", "chemistry", 0.5)
    g.connect("botany", "chemistry", 0.5)
    return g


def edge_set(graph):
    return [frozenset((c.source, c.target)) for c in graph.connection_log]


# ── Rejections ─────────────────────────────────────────────────────────


class TestRejections:
    def test_no_graph(self):
        result = DreamReplayEngine(None).dream()
        assert not result.success
        assert result.reason == "Brain not initialized"

    def test_too_few_interests(self):
        g = InterestGraph()
        g.add_or_reinforce("astronomy")
        g.add_or_reinforce("botany")
        result = DreamReplayEngine(g).dream()
        assert not result.success
        assert result.reason == "Need at least 3 interests to dream"
        assert len(g) == 2

    def test_overlapping_dream_rejected(self, graph):
        engine = DreamReplayEngine(graph, rng=np.random.default_rng(1))
        engine._session_lock.acquire()
        try:
            assert engine.is_dreaming
            result = engine.dream()
        finally:
            engine._session_lock.release()
        assert not result.success
        assert result.reason == "Already dreaming"
        assert engine.dream_log == []

    def test_rejection_leaves_graph_untouched(self):
        g = InterestGraph()
        g.add_or_reinforce("astronomy", now=0.0)
        g.add_or_reinforce("botany", now=0.0)
        before = g.export_state()
        DreamReplayEngine(g).dream(now=1.0)
        after = g.export_state()
        assert before["interests"] == after["interests"]
        assert before["connections"] == after["connections"]


# ── Chains ─────────────────────────────────────────────────────────────


class TestChains:
    def test_chain_topics_are_distinct(self, graph):
        engine = DreamReplayEngine(graph, rng=np.random.default_rng(7))
        for _ in range(50):
            chain = engine.generate_chain(graph.topics())
            assert 1 <= len(chain) <= 5
            assert len(set(chain)) == len(chain)
            assert set(chain) <= set(TOPICS)

    def test_chain_bounded_by_topic_count(self, triangle):
        engine = DreamReplayEngine(triangle, rng=np.random.default_rng(3))
        chain = engine.generate_chain(triangle.topics())
        assert sorted(chain) == ["astronomy", "botany", "chemistry"]

    def test_walk_follows_neighbours(self, triangle):
        engine = DreamReplayEngine(triangle, rng=FixedRng(0.0))
        assert engine.generate_chain(triangle.topics()) == [
            "astronomy", "chemistry", "botany",
        ]

    def test_empty_topic_list(self, graph):
        assert DreamReplayEngine(graph).generate_chain([]) == []

    def test_analyze_skips_adjacent_pairs(self, triangle):
        engine = DreamReplayEngine(triangle, rng=FixedRng(0.0))
        found = engine.analyze_chain(["astronomy", "chemistry", "botany"], now=0.0)
        assert len(found) == 1
        conn = found[0]
        assert (conn.source, conn.target) == ("astronomy", "botany")
        assert conn.distance == 2
        assert conn.similarity == pytest.approx(0.3)


# ── Similarity ─────────────────────────────────────────────────────────


class TestDreamSimilarity:
    def test_unrelated_topics(self, triangle):
        engine = DreamReplayEngine(triangle, rng=FixedRng(0.0))
        assert engine.dream_similarity("astronomy", "chemistry") == pytest.approx(0.0)

    def test_shared_neighbour(self, triangle):
        engine = DreamReplayEngine(triangle, rng=FixedRng(0.0))
        assert engine.dream_similarity("astronomy", "botany") == pytest.approx(0.3)

    def test_noise_term(self, triangle):
        engine = DreamReplayEngine(triangle, rng=FixedRng(0.5))
        assert engine.dream_similarity("astronomy", "chemistry") == pytest.approx(0.05)

    def test_cooccurrence_bonus(self):
        g = InterestGraph()
        for topic in ("astronomy", "chemistry", "botany"):
            g.add_or_reinforce(topic)
        found = [Discovery(title="Star gardens", search_topic="astronomy",
                           keywords=["Botany"])]
        engine = DreamReplayEngine(g, rng=FixedRng(0.0), discoveries=lambda: found)
        assert engine.dream_similarity("astronomy", "botany") == pytest.approx(0.06)
        assert engine.dream_similarity("astronomy", "chemistry") == pytest.approx(0.0)

    def test_unknown_topic(self, triangle):
        engine = DreamReplayEngine(triangle, rng=FixedRng(0.9))
        assert engine.dream_similarity("astronomy", "geology") == 0.0


# ── Sessions ───────────────────────────────────────────────────────────


class TestDream:
    def test_links_hidden_pair(self, triangle):
        engine = DreamReplayEngine(triangle, rng=FixedRng(0.0))
        result = engine.dream(now=100.0)

        assert result.success
        session = result.session
        assert [(c.source, c.target) for c in session.new_connections] == [
            ("astronomy", "botany"),
        ]
        assert triangle.is_linked("astronomy", "botany")
        assert triangle.is_linked("botany", "astronomy")
        assert triangle.get("astronomy").weight > 0.5
        dream_links = [c for c in triangle.connection_log
                       if c.origin == ConnectionOrigin.DREAM]
        assert len(dream_links) == 1

    def test_second_dream_strengthens_instead(self, triangle):
        engine = DreamReplayEngine(triangle, rng=FixedRng(0.0))
        engine.dream(now=100.0)
        result = engine.dream(now=200.0)
        assert result.session.new_connections == []
        assert result.session.strengthened_connections

    def test_adjacency_stays_symmetric(self, graph):
        engine = DreamReplayEngine(graph, rng=np.random.default_rng(42))
        for i in range(5):
            assert engine.dream(now=100.0 + i).success
        for topic in graph.topics():
            for other in graph.neighbors(topic):
                assert topic in graph.neighbors(other)

    def test_no_duplicate_links(self, graph):
        engine = DreamReplayEngine(graph, rng=np.random.default_rng(42))
        for i in range(5):
            engine.dream(now=100.0 + i)
        edges = edge_set(graph)
        assert len(edges) == len(set(edges))

    def test_insights_capped(self, graph):
        engine = DreamReplayEngine(graph, rng=np.random.default_rng(5))
        result = engine.dream()
        assert len(result.session.insights) <= 5

    def test_seeded_sessions_repeat(self):
        def run(seed):
            g = InterestGraph()
            for i, topic in enumerate(TOPICS):
                g.add_or_reinforce(topic, now=float(i))
            engine = DreamReplayEngine(g, rng=np.random.default_rng(seed))
            return engine.dream(now=50.0).session.chains

        assert run(11) == run(11)

    def test_log_is_bounded(self, graph):
        engine = DreamReplayEngine(graph, DreamConfig(max_log=2),
                                   rng=np.random.default_rng(0))
        for i in range(4):
            engine.dream(now=float(i))
        assert [s.start_time for s in engine.dream_log] == [2.0, 3.0]

    def test_events_published(self, triangle):
        seen = []
        triangle.bus.subscribe(
            lambda e: seen.append(e.kind),
            kinds=[EventKind.DREAM_STARTED, EventKind.DREAM_CONNECTION,
                   EventKind.DREAM_ENDED],
        )
        DreamReplayEngine(triangle, rng=FixedRng(0.0)).dream(now=1.0)
        assert seen == [
            EventKind.DREAM_STARTED,
            EventKind.DREAM_CONNECTION,
            EventKind.DREAM_ENDED,
        ]

    def test_stats(self, triangle):
        engine = DreamReplayEngine(triangle, rng=FixedRng(0.0))
        engine.dream(now=10.0)
        stats = engine.get_stats()
        assert stats["total_dreams"] == 1
        assert stats["total_connections_discovered"] == 1
        assert stats["last_dream"] == 10.0
        assert stats["average_connections_per_dream"] == 1.0


# ── Insights ───────────────────────────────────────────────────────────


class TestInsights:
    def test_themes_before_bridges(self, graph):
        engine = DreamReplayEngine(graph)
        insights = engine.generate_insights([
            ["astronomy", "botany", "chemistry", "dancing"],
            ["astronomy", "geology"],
        ])
        assert [(i.kind, i.topic) for i in insights] == [
            ("theme", "astronomy"),
            ("bridge", "chemistry"),
        ]
        assert insights[0].frequency == 2
        assert (insights[1].source, insights[1].target) == ("astronomy", "dancing")

    def test_short_chains_give_no_bridge(self, graph):
        engine = DreamReplayEngine(graph)
        assert engine.generate_insights([["a", "b", "c"]]) == []

    def test_cap(self, graph):
        engine = DreamReplayEngine(graph)
        chains = [["a", "b", "c", "d"] for _ in range(10)]
        assert len(engine.generate_insights(chains)) == 5


# ── Snapshots ──────────────────────────────────────────────────────────


class TestSnapshots:
    def test_export_import(self, triangle):
        engine = DreamReplayEngine(triangle, rng=FixedRng(0.0))
        engine.dream(now=10.0)
        data = engine.export_state()

        fresh = DreamReplayEngine(triangle)
        fresh.import_state(data)
        assert len(fresh.dream_log) == 1
        assert fresh.dream_log[0].chains == engine.dream_log[0].chains
        assert [(c.source, c.target) for c in fresh.discovered_connections] == [
            ("astronomy", "botany"),
        ]

    def test_version_mismatch(self, triangle):
        with pytest.raises(IncompatibleSnapshotError):
            DreamReplayEngine(triangle).import_state({"version": 2})

    def test_reset(self, triangle):
        engine = DreamReplayEngine(triangle, rng=FixedRng(0.0))
        engine.dream()
        engine.reset()
        assert engine.dream_log == []
        assert engine.discovered_connections == []
