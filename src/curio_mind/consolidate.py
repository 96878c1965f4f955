"""Memory consolidation. Strong short-term interests move to long-term memory."""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import TYPE_CHECKING, Callable, Iterable

from curio_mind.config import MemoryConfig
from curio_mind.errors import check_version
from curio_mind.events import Event, EventBus, EventKind
from curio_mind.keywords import extract_keywords, jaccard
from curio_mind.models import (
    ConsolidationResult,
    LongTermEntry,
    MemoryType,
    NodeView,
    PromotionScore,
)

if TYPE_CHECKING:
    from curio_mind.graph import InterestGraph

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

MAX_CONNECTIONS = 10
MAX_ACCESS = 50
MAX_AGE = 7 * 24 * 3600  # 7 días

SimilarityFn = Callable[[str, str], float]


def topic_similarity(a: str, b: str) -> float:
    """Keyword Jaccard straight from the topic strings."""
    return jaccard(extract_keywords(a), extract_keywords(b))


def score_for_promotion(node: NodeView, now: float | None = None,
                        max_weight: float = 1.0) -> PromotionScore:
    """Weighted promotion score in [0, 1].

    30% weight, 30% connections (saturating at 10), 20% access frequency
    (log scale, saturating at 50), 20% recency (linear over 7 days).
    """
    if now is None:
        now = time.time()

    weight = min(node.weight / max_weight, 1.0)
    connections = min(len(node.connections) / MAX_CONNECTIONS, 1.0)
    access = min(math.log(node.access_count + 1) / math.log(MAX_ACCESS + 1), 1.0)
    age = now - node.last_active
    recency = max(1.0 - age / MAX_AGE, 0.0)

    total = weight * 0.30 + connections * 0.30 + access * 0.20 + recency * 0.20
    return PromotionScore(total=total, weight=weight, connections=connections,
                          access=access, recency=recency)


def retention(node: NodeView, elapsed: float) -> float:
    """Ebbinghaus forgetting curve: exp(-hours / (strength * 24)).

    strength = 1 + 0.1 * access_count + 0.2 * connections. Not used by
    consolidate(); available to callers that want a retention estimate.
    """
    strength = 1 + node.access_count * 0.1 + len(node.connections) * 0.2
    hours = elapsed / 3600
    return math.exp(-hours / (strength * 24))


def cluster_topics(entries: Iterable[LongTermEntry], similarity: SimilarityFn,
                   threshold: float = 0.3) -> dict[str, list[str]]:
    """Group long-term topics, first fit in stored order.

    Each unassigned entry joins the existing cluster with the highest average
    similarity above threshold, or starts a new one named after itself. Its
    unassigned connections are then pulled into the same cluster.
    """
    clusters: dict[str, list[str]] = {}
    assigned: set[str] = set()

    for entry in entries:
        if entry.topic in assigned:
            continue

        name = _best_cluster(entry.topic, clusters, similarity, threshold)
        if name is None:
            name = entry.topic
            clusters[name] = []

        members = clusters[name]
        members.append(entry.topic)
        assigned.add(entry.topic)

        for topic in entry.connections:
            if topic not in assigned:
                members.append(topic)
                assigned.add(topic)

    return clusters


def _best_cluster(topic: str, clusters: dict[str, list[str]],
                  similarity: SimilarityFn, threshold: float) -> str | None:
    best_name = None
    best_score = 0.0
    for name, members in clusters.items():
        if not members:
            continue
        avg = sum(similarity(topic, m) for m in members) / len(members)
        if avg > threshold and avg > best_score:
            best_score = avg
            best_name = name
    return best_name


class MemoryConsolidator:
    """Long-term store on top of an InterestGraph.

    API:
        consolidate()                  — promote, report forgotten, re-cluster
        cluster_memories()             — rebuild clusters from scratch
        retrieve_long_term_memories()  — put long-term entries back in the graph
    """

    def __init__(self, graph: InterestGraph | None,
                 config: MemoryConfig | None = None,
                 bus: EventBus | None = None) -> None:
        self.graph = graph
        self.config = config or MemoryConfig()
        if bus is None:
            bus = graph.bus if graph is not None else EventBus()
        self.bus = bus
        # Share the graph's lock: a pass must look atomic to graph writers
        self._lock = graph.lock if graph is not None else threading.RLock()
        self._entries: dict[str, LongTermEntry] = {}
        self._clusters: dict[str, list[str]] = {}
        self._history: list[ConsolidationResult] = []

    # ── consolidate ────────────────────────────────────────────────────

    def consolidate(self, now: float | None = None) -> ConsolidationResult:
        """Promote qualifying short-term interests and rebuild clusters."""
        if now is None:
            now = time.time()
        result = ConsolidationResult(timestamp=now)
        if self.graph is None:
            logger.warning("Consolidation skipped: no interest graph")
            return result

        max_weight = self.graph.config.max_weight
        events: list[Event] = []
        with self._lock:
            for node in self.graph.get_interests_by_type(MemoryType.SHORT_TERM):
                score = score_for_promotion(node, now, max_weight)
                if score.total >= self.config.promotion_threshold:
                    self._promote(node, now)
                    result.promoted.append((node.topic, score.total))
                    events.append(Event(EventKind.MEMORY_PROMOTED, node.topic,
                                        {"score": score.total}, now))
                elif node.weight < self.config.forget_threshold:
                    # Decay removes it; here it is only reported
                    result.forgotten.append((node.topic, node.weight))

            self.cluster_memories()
            result.clusters = list(self._clusters)

            self._history.append(result)
            if len(self._history) > self.config.max_history:
                del self._history[:-self.config.max_history]

        events.append(Event(EventKind.CONSOLIDATED, "",
                            {"promoted": len(result.promoted),
                             "forgotten": len(result.forgotten),
                             "clusters": len(result.clusters)}, now))
        logger.info("Consolidation complete: %d promoted, %d forgotten, %d clusters",
                    len(result.promoted), len(result.forgotten), len(result.clusters))
        self.bus.publish_all(events)
        return result

    def _promote(self, node: NodeView, now: float) -> None:
        self.graph.set_memory_type(node.topic, MemoryType.LONG_TERM)
        existing = self._entries.get(node.topic)
        if existing is not None:
            existing.merge(node, now)
            return
        self._entries[node.topic] = LongTermEntry(
            topic=node.topic,
            weight=node.weight,
            connections=list(node.connections),
            keywords=sorted(node.keywords),
            access_count=node.access_count,
            last_active=node.last_active,
            created_at=node.created_at,
            promoted_at=now,
        )

    def cluster_memories(self) -> dict[str, list[str]]:
        with self._lock:
            similarity = self.graph.similarity if self.graph is not None else topic_similarity
            self._clusters = cluster_topics(
                self._entries.values(), similarity,
                self.config.cluster_similarity_threshold,
            )
            return {name: list(members) for name, members in self._clusters.items()}

    def find_best_cluster(self, topic: str) -> str | None:
        with self._lock:
            similarity = self.graph.similarity if self.graph is not None else topic_similarity
            return _best_cluster(topic, self._clusters, similarity,
                                 self.config.cluster_similarity_threshold)

    # ── retrieval ──────────────────────────────────────────────────────

    def retrieve_long_term_memories(self) -> int:
        """Restore long-term entries missing from the graph. Returns how many."""
        if self.graph is None:
            return 0
        restored = 0
        with self._lock:
            for entry in list(self._entries.values()):
                if self.graph.restore(entry) is not None:
                    restored += 1
        if restored:
            logger.info("Restored %d long-term memories into the graph", restored)
        return restored

    # ── queries ────────────────────────────────────────────────────────

    @property
    def long_term(self) -> list[LongTermEntry]:
        with self._lock:
            return list(self._entries.values())

    @property
    def clusters(self) -> dict[str, list[str]]:
        with self._lock:
            return {name: list(members) for name, members in self._clusters.items()}

    @property
    def history(self) -> list[ConsolidationResult]:
        with self._lock:
            return list(self._history)

    def get_capacity_status(self) -> dict:
        short_term = 0
        capacity = 0
        if self.graph is not None:
            short_term = len(self.graph.get_interests_by_type(MemoryType.SHORT_TERM))
            capacity = self.graph.config.max_short_term_interests
        return {
            "short_term": {
                "used": short_term,
                "max": capacity,
                "percentage": (short_term / capacity) * 100 if capacity else 0.0,
            },
            "long_term": {
                "count": len(self._entries),
                "clusters": len(self._clusters),
            },
        }

    def get_consolidation_stats(self) -> dict:
        with self._lock:
            recent = self._history[-10:]
            return {
                "total_consolidations": len(self._history),
                "last_consolidation": self._history[-1].timestamp if self._history else None,
                "average_promotions": (
                    sum(len(r.promoted) for r in recent) / len(recent) if recent else 0.0
                ),
                "clusters": [
                    {"name": name, "size": len(members), "topics": list(members)}
                    for name, members in self._clusters.items()
                ],
            }

    # ── snapshots ──────────────────────────────────────────────────────

    def export_state(self) -> dict:
        with self._lock:
            return {
                "version": SNAPSHOT_VERSION,
                "exported_at": time.time(),
                "long_term_memory": [e.to_dict() for e in self._entries.values()],
                "topic_clusters": [[name, list(members)]
                                   for name, members in self._clusters.items()],
                "consolidation_history": [r.to_dict() for r in self._history],
                "stats": self.get_consolidation_stats(),
            }

    def import_state(self, data: dict, restore: bool = True) -> None:
        """Replace the long-term store, then (optionally) restore it into the graph."""
        check_version("memory", data)

        entries = {}
        for raw in data.get("long_term_memory", []):
            entry = LongTermEntry.from_dict(raw)
            entries[entry.topic] = entry
        clusters = {name: list(members)
                    for name, members in data.get("topic_clusters", [])}
        history = [ConsolidationResult.from_dict(r)
                   for r in data.get("consolidation_history", [])]

        with self._lock:
            self._entries = entries
            self._clusters = clusters
            self._history = history[-self.config.max_history:]
        logger.info("Imported %d long-term memories", len(entries))

        if restore:
            self.retrieve_long_term_memories()

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()
            self._clusters.clear()
            self._history.clear()

    def __repr__(self) -> str:
        return (f"MemoryConsolidator(long_term={len(self._entries)}, "
                f"clusters={len(self._clusters)})")
