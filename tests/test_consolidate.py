"""Tests for memory consolidation."""

import math

import pytest

from curio_mind.config import GraphConfig, MemoryConfig
from curio_mind.consolidate import (
    MAX_AGE,
    MemoryConsolidator,
    cluster_topics,
    retention,
    score_for_promotion,
    topic_similarity,
)
from curio_mind.errors import IncompatibleSnapshotError
from curio_mind.graph import InterestGraph
from curio_mind.models import LongTermEntry, MemoryType, NodeView


def make_view(weight=0.5, connections=(), access_count=1, last_active=0.0):
    return NodeView(
        topic="topic",
        weight=weight,
        keywords=frozenset({"topic"}),
        connections=tuple(connections),
        last_active=last_active,
        created_at=0.0,
        access_count=access_count,
        is_core=False,
        memory_type=MemoryType.SHORT_TERM,
    )


@pytest.fixture
def graph():
    return InterestGraph()


@pytest.fixture
def memory(graph):
    return MemoryConsolidator(graph)


# ── Scoring ────────────────────────────────────────────────────────────


class TestScoring:
    def test_fresh_weak_node(self):
        score = score_for_promotion(make_view(weight=0.5), now=0.0)
        assert score.weight == 0.5
        assert score.connections == 0.0
        assert score.access == pytest.approx(math.log(2) / math.log(51))
        assert score.recency == 1.0
        expected = 0.5 * 0.3 + score.access * 0.2 + 0.2
        assert score.total == pytest.approx(expected)

    def test_sub_scores_saturate(self):
        view = make_view(weight=1.0, connections=[f"t{i}" for i in range(25)],
                         access_count=500)
        score = score_for_promotion(view, now=0.0)
        assert score.connections == 1.0
        assert score.access == 1.0
        assert score.total == pytest.approx(1.0)

    def test_recency_bottoms_out(self):
        score = score_for_promotion(make_view(), now=2 * MAX_AGE)
        assert score.recency == 0.0

    def test_retention_curve(self):
        view = make_view(access_count=10, connections=["a", "b"])
        assert retention(view, 0.0) == 1.0
        strength = 1 + 1.0 + 0.4
        assert retention(view, 24 * 3600) == pytest.approx(math.exp(-1 / strength))

    def test_retention_higher_for_well_used_nodes(self):
        elapsed = 48 * 3600
        assert retention(make_view(access_count=20), elapsed) > retention(make_view(), elapsed)


# ── Consolidate ────────────────────────────────────────────────────────


class TestConsolidate:
    def test_promotes_qualifying_nodes(self, graph):
        memory = MemoryConsolidator(graph, MemoryConfig(promotion_threshold=0.45))
        graph.add_or_reinforce("machine learning", now=0.0)
        graph.add_or_reinforce("astronomy", now=0.0)
        for _ in range(4):
            graph.reinforce("machine learning", 0.02, now=0.0)
        # 0.58 * 0.3 + log(6)/log(51) * 0.2 + 0.2 ~= 0.465
        result = memory.consolidate(now=0.0)

        assert [t for t, _ in result.promoted] == ["machine learning"]
        assert graph.get("machine learning").memory_type == MemoryType.LONG_TERM
        assert [e.topic for e in memory.long_term] == ["machine learning"]
        assert memory.long_term[0].promoted_at == 0.0

    def test_below_threshold_not_promoted(self, graph, memory):
        graph.add_or_reinforce("astronomy", now=0.0)
        result = memory.consolidate(now=0.0)
        assert result.promoted == []
        assert graph.get("astronomy").memory_type == MemoryType.SHORT_TERM

    def test_weak_nodes_reported_not_removed(self):
        graph = InterestGraph(GraphConfig(initial_weight=0.08))
        memory = MemoryConsolidator(graph)
        graph.add_or_reinforce("astronomy", now=0.0)
        result = memory.consolidate(now=10 * MAX_AGE)
        assert result.forgotten == [("astronomy", 0.08)]
        assert "astronomy" in graph

    def test_core_and_long_term_skipped(self):
        graph = InterestGraph(GraphConfig(initial_weight=0.9))
        memory = MemoryConsolidator(graph, MemoryConfig(promotion_threshold=0.0))
        graph.add_or_reinforce("astronomy", now=0.0)
        result = memory.consolidate(now=0.0)
        assert result.promoted == []

    def test_repromotion_merges(self, graph):
        memory = MemoryConsolidator(graph, MemoryConfig(promotion_threshold=0.0))
        graph.add_or_reinforce("machine learning", now=0.0)
        memory.consolidate(now=0.0)

        graph.remove("machine learning")
        graph.add_or_reinforce("machine learning", now=10.0)
        graph.add_or_reinforce("machine learning", 0.1, now=10.0)
        graph.add_or_reinforce("deep learning", now=10.0)
        memory.consolidate(now=20.0)

        entries = memory.long_term
        ml = next(e for e in entries if e.topic == "machine learning")
        assert ml.weight == pytest.approx(0.65)
        assert ml.access_count == 1 + 2
        assert ml.connections == ["deep learning"]
        assert ml.last_active == 20.0

    def test_history_capped(self, graph):
        memory = MemoryConsolidator(graph, MemoryConfig(max_history=3))
        for i in range(5):
            memory.consolidate(now=float(i))
        assert len(memory.history) == 3
        assert memory.history[0].timestamp == 2.0

    def test_missing_graph_is_neutral(self):
        memory = MemoryConsolidator(None)
        result = memory.consolidate(now=5.0)
        assert result.promoted == []
        assert result.forgotten == []
        assert result.timestamp == 5.0
        assert memory.retrieve_long_term_memories() == 0


# ── Clustering ─────────────────────────────────────────────────────────


class TestClustering:
    def test_similar_topics_share_a_cluster(self):
        entries = [
            LongTermEntry(topic="quantum computing", weight=0.8),
            LongTermEntry(topic="quantum computing hardware", weight=0.8),
            LongTermEntry(topic="medieval castles", weight=0.8),
        ]
        clusters = cluster_topics(entries, topic_similarity, 0.3)
        assert clusters == {
            "quantum computing": ["quantum computing", "quantum computing hardware"],
            "medieval castles": ["medieval castles"],
        }

    def test_connections_pulled_in_regardless_of_similarity(self):
        entries = [
            LongTermEntry(topic="jazz", weight=0.8, connections=["saxophone repair"]),
            LongTermEntry(topic="saxophone repair", weight=0.8),
        ]
        clusters = cluster_topics(entries, topic_similarity, 0.3)
        assert clusters == {"jazz": ["jazz", "saxophone repair"]}

    def test_threshold_is_strict(self):
        entries = [
            LongTermEntry(topic="machine learning", weight=0.8),
            LongTermEntry(topic="deep learning", weight=0.8),
        ]
        # Jaccard 1/3 is above 0.3 but not above 0.4
        assert len(cluster_topics(entries, topic_similarity, 0.3)) == 1
        assert len(cluster_topics(entries, topic_similarity, 0.4)) == 2

    def test_clusters_rebuilt_each_pass(self, graph):
        memory = MemoryConsolidator(graph, MemoryConfig(promotion_threshold=0.0))
        graph.add_or_reinforce("astronomy", now=0.0)
        memory.consolidate(now=0.0)
        assert list(memory.clusters) == ["astronomy"]
        graph.add_or_reinforce("botany", now=1.0)
        result = memory.consolidate(now=1.0)
        assert result.clusters == ["astronomy", "botany"]


# ── Stats / snapshots ──────────────────────────────────────────────────


class TestStateAndStats:
    def test_capacity_status(self, graph, memory):
        graph.add_or_reinforce("astronomy")
        status = memory.get_capacity_status()
        assert status["short_term"]["used"] == 1
        assert status["short_term"]["max"] == 50
        assert status["short_term"]["percentage"] == pytest.approx(2.0)
        assert status["long_term"] == {"count": 0, "clusters": 0}

    def test_consolidation_stats(self, graph):
        memory = MemoryConsolidator(graph, MemoryConfig(promotion_threshold=0.0))
        graph.add_or_reinforce("astronomy", now=0.0)
        memory.consolidate(now=7.0)
        stats = memory.get_consolidation_stats()
        assert stats["total_consolidations"] == 1
        assert stats["last_consolidation"] == 7.0
        assert stats["average_promotions"] == 1.0
        assert stats["clusters"][0]["name"] == "astronomy"

    def test_import_restores_into_graph(self, graph):
        memory = MemoryConsolidator(graph, MemoryConfig(promotion_threshold=0.0))
        graph.add_or_reinforce("astronomy", now=0.0)
        memory.consolidate(now=0.0)
        data = memory.export_state()

        fresh_graph = InterestGraph()
        fresh = MemoryConsolidator(fresh_graph)
        fresh.import_state(data)
        assert [e.topic for e in fresh.long_term] == ["astronomy"]
        assert fresh.clusters == {"astronomy": ["astronomy"]}
        assert fresh_graph.get("astronomy").memory_type == MemoryType.LONG_TERM

    def test_import_version_mismatch(self, memory):
        with pytest.raises(IncompatibleSnapshotError):
            memory.import_state({"version": 0})
