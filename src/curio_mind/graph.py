"""Interest graph: topics that grow, link, decay and get evicted."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import asdict

from curio_mind.config import GraphConfig
from curio_mind.decay import apply_decay
from curio_mind.errors import check_version
from curio_mind.events import Event, EventBus, EventKind
from curio_mind.keywords import extract_keywords, jaccard, normalize_topic
from curio_mind.models import (
    Connection,
    ConnectionOrigin,
    DecayReport,
    GraphStats,
    InterestNode,
    LongTermEntry,
    MemoryType,
    NodeView,
)

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class InterestGraph:
    """Weighted, undirected graph of interests.

    Nodes live in an arena keyed by integer handle; adjacency is a set of
    handles on each node. Topic strings are only a lookup key.

    Every public mutator holds ``lock`` (re-entrant). Collaborators that need
    several steps to look atomic (a dream session, a consolidation pass) take
    the same lock around the whole sequence.
    """

    def __init__(self, config: GraphConfig | None = None,
                 bus: EventBus | None = None) -> None:
        self.config = config or GraphConfig()
        self.bus = bus if bus is not None else EventBus()
        self.lock = threading.RLock()
        self._nodes: dict[int, InterestNode] = {}
        self._handles: dict[str, int] = {}
        self._next_handle = 0
        self._log: list[Connection] = []

    # ── add / reinforce ────────────────────────────────────────────────

    def add_or_reinforce(self, topic: str, strength: float = 0.1,
                         now: float | None = None) -> NodeView | None:
        """Add a new interest or reinforce an existing one."""
        key = normalize_topic(topic)
        if not key:
            logger.debug("Ignoring blank topic %r", topic)
            return None
        if now is None:
            now = time.time()

        events: list[Event] = []
        with self.lock:
            handle = self._handles.get(key)
            if handle is not None:
                node = self._nodes[handle]
                self._reinforce(node, strength, now, events)
            else:
                if len(self._nodes) >= self.config.max_short_term_interests:
                    self._evict_weakest(events)
                node = self._insert(key, now)
                events.append(Event(EventKind.INTEREST_ADDED, key,
                                    {"weight": node.weight}, now))
                self._discover_connections(node, now, events)
            self._update_core_status(self._nodes.values(), events)
            view = self._view(node)

        self.bus.publish_all(events)
        return view

    def reinforce(self, topic: str, strength: float = 0.1,
                  now: float | None = None) -> NodeView | None:
        """Reinforce an existing interest. Unknown topic -> None."""
        if now is None:
            now = time.time()
        events: list[Event] = []
        with self.lock:
            node = self._lookup(topic)
            if node is None:
                return None
            self._reinforce(node, strength, now, events)
            self._update_core_status(self._nodes.values(), events)
            view = self._view(node)
        self.bus.publish_all(events)
        return view

    def _reinforce(self, node: InterestNode, strength: float, now: float,
                   events: list[Event]) -> None:
        cap = self.config.max_weight
        node.weight = min(node.weight + strength, cap)
        node.last_active = now
        node.access_count += 1

        # Los vecinos ganan una fracción
        spill = strength * self.config.reinforcement_factor
        for handle in sorted(node.links):
            neighbour = self._nodes[handle]
            neighbour.weight = min(neighbour.weight + spill, cap)
            neighbour.last_active = now

        events.append(Event(EventKind.INTEREST_UPDATED, node.topic,
                            {"weight": node.weight,
                             "access_count": node.access_count}, now))

    def _insert(self, key: str, now: float) -> InterestNode:
        node = InterestNode(
            topic=key,
            handle=self._next_handle,
            weight=self.config.initial_weight,
            keywords=extract_keywords(key),
            last_active=now,
            created_at=now,
        )
        self._nodes[node.handle] = node
        self._handles[key] = node.handle
        self._next_handle += 1
        return node

    def _discover_connections(self, node: InterestNode, now: float,
                              events: list[Event]) -> None:
        """Link the new node to every node with enough keyword overlap."""
        for other in list(self._nodes.values()):
            if other is node:
                continue
            sim = jaccard(node.keywords, other.keywords)
            if sim < self.config.connection_threshold:
                continue
            node.links.add(other.handle)
            other.links.add(node.handle)
            self._log.append(Connection(node.topic, other.topic, sim,
                                        ConnectionOrigin.ORGANIC, now))
            # Relacionarse mantiene vivo al otro
            other.weight = min(other.weight + self.config.association_boost,
                               self.config.max_weight)
            events.append(Event(EventKind.CONNECTION_CREATED, node.topic,
                                {"to": other.topic, "strength": sim,
                                 "origin": ConnectionOrigin.ORGANIC.value}, now))

    # ── decay ──────────────────────────────────────────────────────────

    def decay_tick(self, now: float | None = None) -> DecayReport:
        """Decay every node, drop the forgotten ones, re-evaluate core status."""
        if now is None:
            now = time.time()
        report = DecayReport()
        events: list[Event] = []
        with self.lock:
            before = {h: n.weight for h, n in self._nodes.items()}
            alive, dead = apply_decay(
                list(self._nodes.values()), now,
                self.config.decay_rate, self.config.min_weight,
            )
            report.decayed = sum(
                1 for n in alive + dead if n.weight < before[n.handle]
            )
            for node in dead:
                self._remove(node, events, now)
                report.removed.append(node.topic)
            self._update_core_status(alive, events, report)

        if report.removed:
            logger.debug("Decay removed %d interests: %s",
                         len(report.removed), report.removed)
        self.bus.publish_all(events)
        return report

    def _update_core_status(self, nodes, events: list[Event],
                            report: DecayReport | None = None) -> None:
        """Core only at >= core_threshold; core falls back to long-term, never short-term."""
        threshold = self.config.core_threshold
        for node in nodes:
            was_core = node.is_core
            node.is_core = node.weight >= threshold
            if node.is_core:
                if node.memory_type != MemoryType.CORE:
                    node.memory_type = MemoryType.CORE
                if not was_core:
                    events.append(Event(EventKind.CORE_CHANGED, node.topic,
                                        {"core": True, "weight": node.weight}))
                    if report is not None:
                        report.became_core.append(node.topic)
            elif node.memory_type == MemoryType.CORE:
                node.memory_type = MemoryType.LONG_TERM
                events.append(Event(EventKind.CORE_CHANGED, node.topic,
                                    {"core": False, "weight": node.weight}))
                if report is not None:
                    report.left_core.append(node.topic)

    # ── removal ────────────────────────────────────────────────────────

    def evict_weakest(self) -> str | None:
        """Remove the lowest-weight non-core node. None if there is none."""
        events: list[Event] = []
        with self.lock:
            topic = self._evict_weakest(events)
        self.bus.publish_all(events)
        return topic

    def _evict_weakest(self, events: list[Event]) -> str | None:
        weakest = None
        for node in self._nodes.values():
            if node.is_core:
                continue
            if weakest is None or node.weight < weakest.weight:
                weakest = node
        if weakest is None:
            logger.debug("Capacity eviction skipped: every interest is core")
            return None
        self._remove(weakest, events)
        return weakest.topic

    def remove(self, topic: str) -> bool:
        events: list[Event] = []
        with self.lock:
            node = self._lookup(topic)
            if node is None:
                return False
            self._remove(node, events)
        self.bus.publish_all(events)
        return True

    def _remove(self, node: InterestNode, events: list[Event],
                now: float | None = None) -> None:
        for handle in node.links:
            neighbour = self._nodes.get(handle)
            if neighbour is not None:
                neighbour.links.discard(node.handle)
        del self._nodes[node.handle]
        del self._handles[node.topic]
        self._log = [c for c in self._log
                     if c.source != node.topic and c.target != node.topic]
        events.append(Event(EventKind.INTEREST_REMOVED, node.topic,
                            {"weight": node.weight},
                            now if now is not None else time.time()))

    # ── similarity ─────────────────────────────────────────────────────

    def similarity(self, topic_a: str, topic_b: str) -> float:
        """Jaccard index of the two topics' keyword sets. Pure."""
        return jaccard(self.keywords(topic_a), self.keywords(topic_b))

    def keywords(self, topic: str) -> frozenset[str]:
        node = self._lookup(topic)
        if node is not None:
            return node.keywords
        return extract_keywords(topic)

    # ── links used by collaborators ────────────────────────────────────

    def is_linked(self, topic_a: str, topic_b: str) -> bool:
        a, b = self._lookup(topic_a), self._lookup(topic_b)
        if a is None or b is None:
            return False
        return b.handle in a.links

    def connect(self, topic_a: str, topic_b: str, strength: float,
                origin: ConnectionOrigin = ConnectionOrigin.ORGANIC,
                now: float | None = None) -> bool:
        """Create a symmetric link. False if unknown, identical or already linked."""
        if now is None:
            now = time.time()
        events: list[Event] = []
        with self.lock:
            a, b = self._lookup(topic_a), self._lookup(topic_b)
            if a is None or b is None or a is b or b.handle in a.links:
                return False
            a.links.add(b.handle)
            b.links.add(a.handle)
            self._log.append(Connection(a.topic, b.topic, strength, origin, now))
            events.append(Event(EventKind.CONNECTION_CREATED, a.topic,
                                {"to": b.topic, "strength": strength,
                                 "origin": origin.value}, now))
        self.bus.publish_all(events)
        return True

    def boost(self, topic: str, amount: float) -> float | None:
        """Add weight without counting as activity. Returns the new weight."""
        events: list[Event] = []
        with self.lock:
            node = self._lookup(topic)
            if node is None:
                return None
            node.weight = min(max(node.weight + amount, 0.0), self.config.max_weight)
            self._update_core_status((node,), events)
            weight = node.weight
        self.bus.publish_all(events)
        return weight

    def set_memory_type(self, topic: str, memory_type: MemoryType) -> bool:
        """Change a node's memory tier. Core status is owned by weight, so
        core nodes and the CORE tier itself cannot be set from outside."""
        with self.lock:
            node = self._lookup(topic)
            if node is None or node.is_core or memory_type == MemoryType.CORE:
                return False
            node.memory_type = memory_type
            return True

    def restore(self, entry: LongTermEntry) -> NodeView | None:
        """Bring a long-term entry back into the graph. No-op if already present."""
        key = normalize_topic(entry.topic)
        events: list[Event] = []
        with self.lock:
            if not key or key in self._handles:
                return None
            node = InterestNode(
                topic=key,
                handle=self._next_handle,
                weight=min(max(entry.weight, 0.0), self.config.max_weight),
                keywords=frozenset(entry.keywords) or extract_keywords(key),
                last_active=entry.last_active,
                created_at=entry.created_at,
                access_count=max(1, entry.access_count),
                memory_type=MemoryType.LONG_TERM,
            )
            self._nodes[node.handle] = node
            self._handles[key] = node.handle
            self._next_handle += 1
            for topic in entry.connections:
                other = self._lookup(topic)
                if other is not None and other is not node:
                    node.links.add(other.handle)
                    other.links.add(node.handle)
            self._update_core_status((node,), events)
            events.insert(0, Event(EventKind.INTEREST_ADDED, key,
                                   {"weight": node.weight, "restored": True}))
            view = self._view(node)
        self.bus.publish_all(events)
        return view

    # ── queries ────────────────────────────────────────────────────────

    def get(self, topic: str) -> NodeView | None:
        with self.lock:
            node = self._lookup(topic)
            return self._view(node) if node is not None else None

    def topics(self) -> list[str]:
        with self.lock:
            return [n.topic for n in self._nodes.values()]

    def nodes(self) -> list[NodeView]:
        """All nodes in insertion order."""
        with self.lock:
            return [self._view(n) for n in self._nodes.values()]

    def neighbors(self, topic: str) -> list[str]:
        with self.lock:
            node = self._lookup(topic)
            if node is None:
                return []
            return [self._nodes[h].topic for h in sorted(node.links)]

    def get_interests_sorted(self) -> list[NodeView]:
        return sorted(self.nodes(), key=lambda n: n.weight, reverse=True)

    def get_top_interests(self, count: int = 5) -> list[NodeView]:
        return self.get_interests_sorted()[:count]

    def get_interests_by_type(self, memory_type: MemoryType) -> list[NodeView]:
        return [n for n in self.nodes() if n.memory_type == memory_type]

    @property
    def connection_log(self) -> list[Connection]:
        with self.lock:
            return list(self._log)

    def get_stats(self) -> GraphStats:
        with self.lock:
            nodes = list(self._nodes.values())
            total = len(nodes)
            return GraphStats(
                short_term=sum(1 for n in nodes if n.memory_type == MemoryType.SHORT_TERM),
                long_term=sum(1 for n in nodes if n.memory_type == MemoryType.LONG_TERM),
                core=sum(1 for n in nodes if n.is_core),
                total=total,
                connections=len(self._log),
                average_weight=sum(n.weight for n in nodes) / total if total else 0.0,
            )

    # ── snapshots ──────────────────────────────────────────────────────

    def export_state(self) -> dict:
        with self.lock:
            return {
                "version": SNAPSHOT_VERSION,
                "exported_at": time.time(),
                "interests": [[n.topic, self._view(n).to_dict()]
                              for n in self._nodes.values()],
                "connections": [c.to_dict() for c in self._log],
                "stats": asdict(self.get_stats()),
            }

    def import_state(self, data: dict) -> None:
        """Replace the whole graph. Raises IncompatibleSnapshotError on a version
        mismatch; malformed content raises before anything is replaced."""
        check_version("brain", data)

        nodes: dict[int, InterestNode] = {}
        handles: dict[str, int] = {}
        wanted: dict[int, list[str]] = {}
        for handle, (topic, raw) in enumerate(data.get("interests", [])):
            key = normalize_topic(topic)
            if key in handles:
                raise ValueError(f"Duplicate topic in snapshot: {key!r}")
            node = InterestNode(
                topic=key,
                handle=handle,
                weight=float(raw["weight"]),
                keywords=frozenset(raw.get("keywords") or extract_keywords(key)),
                last_active=float(raw["last_active"]),
                created_at=float(raw.get("created_at", raw["last_active"])),
                access_count=int(raw.get("access_count", 1)),
                is_core=bool(raw.get("is_core", False)),
                memory_type=MemoryType(raw.get("memory_type", "short-term")),
            )
            nodes[handle] = node
            handles[key] = handle
            wanted[handle] = list(raw.get("connections", []))

        # Adjacency is rebuilt symmetric; dangling topics are dropped
        for handle, targets in wanted.items():
            for topic in targets:
                other = handles.get(normalize_topic(topic))
                if other is not None and other != handle:
                    nodes[handle].links.add(other)
                    nodes[other].links.add(handle)

        log = [Connection.from_dict(c) for c in data.get("connections", [])]

        with self.lock:
            self._nodes = nodes
            self._handles = handles
            self._next_handle = len(nodes)
            self._log = log
            self._update_core_status(self._nodes.values(), [])
        logger.info("Imported %d interests", len(nodes))

    def reset(self) -> None:
        with self.lock:
            self._nodes.clear()
            self._handles.clear()
            self._log.clear()
            self._next_handle = 0

    # ── helpers ────────────────────────────────────────────────────────

    def _lookup(self, topic: str) -> InterestNode | None:
        handle = self._handles.get(normalize_topic(topic))
        return self._nodes.get(handle) if handle is not None else None

    def _view(self, node: InterestNode) -> NodeView:
        return NodeView(
            topic=node.topic,
            weight=node.weight,
            keywords=node.keywords,
            connections=tuple(self._nodes[h].topic for h in sorted(node.links)),
            last_active=node.last_active,
            created_at=node.created_at,
            access_count=node.access_count,
            is_core=node.is_core,
            memory_type=node.memory_type,
        )

    def __contains__(self, topic: str) -> bool:
        return normalize_topic(topic) in self._handles

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"InterestGraph(interests={len(self._nodes)}, connections={len(self._log)})"
