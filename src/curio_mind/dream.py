"""Dream replay. Random walks over the graph surface hidden associations."""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Callable, Iterable

import numpy as np

from curio_mind.config import DreamConfig
from curio_mind.errors import check_version
from curio_mind.events import Event, EventBus, EventKind
from curio_mind.keywords import jaccard, normalize_topic
from curio_mind.models import (
    ConnectionOrigin,
    Discovery,
    DreamConnection,
    DreamResult,
    DreamSession,
    Insight,
)

if TYPE_CHECKING:
    from curio_mind.graph import InterestGraph

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1
MIN_INTERESTS = 3
COOCCURRENCE_BONUS = 0.3

DiscoverySource = Callable[[], Iterable[Discovery]]


class DreamReplayEngine:
    """Replays chains of interests and links the ones that belong together.

    Only one session runs at a time; an overlapping dream() is rejected
    immediately. The whole session holds the graph lock.
    """

    def __init__(self, graph: InterestGraph | None,
                 config: DreamConfig | None = None,
                 rng: np.random.Generator | None = None,
                 discoveries: DiscoverySource | None = None,
                 bus: EventBus | None = None) -> None:
        self.graph = graph
        self.config = config or DreamConfig()
        self.rng = rng if rng is not None else np.random.default_rng()
        self._discoveries = discoveries
        if bus is None:
            bus = graph.bus if graph is not None else EventBus()
        self.bus = bus
        self._session_lock = threading.Lock()
        self._log: list[DreamSession] = []
        self._discovered: list[DreamConnection] = []

    @property
    def is_dreaming(self) -> bool:
        return self._session_lock.locked()

    # ── dream ──────────────────────────────────────────────────────────

    def dream(self, now: float | None = None) -> DreamResult:
        """Run one dream session. Returns a rejected result instead of raising."""
        if self.graph is None:
            return DreamResult(False, reason="Brain not initialized")
        if not self._session_lock.acquire(blocking=False):
            return DreamResult(False, reason="Already dreaming")

        events: list[Event] = []
        try:
            with self.graph.lock:
                topics = self.graph.topics()
                if len(topics) < MIN_INTERESTS:
                    return DreamResult(
                        False, reason=f"Need at least {MIN_INTERESTS} interests to dream")

                start = now if now is not None else time.time()
                events.append(Event(EventKind.DREAM_STARTED, "",
                                    {"interests": len(topics)}, start))
                session = DreamSession(start_time=start)
                discoveries = self._snapshot_discoveries()

                for _ in range(self.config.chains_per_dream):
                    chain = self.generate_chain(topics)
                    session.chains.append(chain)
                    for conn in self.analyze_chain(chain, discoveries, start):
                        self._apply(conn, session, events, start)

                session.insights = self.generate_insights(session.chains)
                session.end_time = now if now is not None else time.time()

                self._log.append(session)
                del self._log[:-self.config.max_log]
                del self._discovered[:-self.config.max_discovered]
        finally:
            self._session_lock.release()

        events.append(Event(EventKind.DREAM_ENDED, "",
                            {"chains": len(session.chains),
                             "new_connections": len(session.new_connections),
                             "insights": len(session.insights)},
                            session.end_time))
        logger.info("Dream complete: %d chains, %d new connections, %d insights",
                    len(session.chains), len(session.new_connections),
                    len(session.insights))
        self.bus.publish_all(events)
        return DreamResult(True, session=session)

    def _apply(self, conn: DreamConnection, session: DreamSession,
               events: list[Event], now: float) -> None:
        graph = self.graph
        if graph.is_linked(conn.source, conn.target):
            boost = self.config.strengthen_boost
            graph.boost(conn.source, boost)
            graph.boost(conn.target, boost)
            session.strengthened_connections.append(conn)
            return

        if not graph.connect(conn.source, conn.target, conn.similarity,
                             ConnectionOrigin.DREAM, now):
            return
        boost = self.config.serendipity_boost * 0.5
        graph.boost(conn.source, boost)
        graph.boost(conn.target, boost)
        session.new_connections.append(conn)
        self._discovered.append(conn)
        events.append(Event(EventKind.DREAM_CONNECTION, conn.source,
                            {"to": conn.target, "similarity": conn.similarity}, now))
        logger.debug("Dream connection discovered: %r <-> %r", conn.source, conn.target)

    # ── chains ─────────────────────────────────────────────────────────

    def generate_chain(self, topics: list[str]) -> list[str]:
        """Walk up to replay_chain_length distinct topics.

        Each step follows an unused neighbour with follow_probability,
        otherwise (or when there is none) jumps to any unused topic.
        """
        if not topics:
            return []
        current = topics[int(self.rng.integers(len(topics)))]
        chain = [current]
        used = {current}

        for _ in range(self.config.replay_chain_length - 1):
            nxt = None

            neighbours = self.graph.neighbors(current)
            if self.rng.random() < self.config.follow_probability and neighbours:
                available = [t for t in neighbours if t not in used]
                if available:
                    nxt = available[int(self.rng.integers(len(available)))]

            # Salto aleatorio, lógica de sueño
            if nxt is None:
                available = [t for t in topics if t not in used]
                if available:
                    nxt = available[int(self.rng.integers(len(available)))]

            if nxt is None:
                break
            chain.append(nxt)
            used.add(nxt)
            current = nxt

        return chain

    def analyze_chain(self, chain: list[str],
                      discoveries: list[Discovery] | None = None,
                      now: float | None = None) -> list[DreamConnection]:
        """Score every non-adjacent pair (i, j >= i + 2) of the chain."""
        if now is None:
            now = time.time()
        if discoveries is None:
            discoveries = self._snapshot_discoveries()
        found = []
        for i in range(len(chain) - 2):
            for j in range(i + 2, len(chain)):
                sim = self.dream_similarity(chain[i], chain[j], discoveries)
                if sim >= self.config.connection_threshold:
                    found.append(DreamConnection(chain[i], chain[j], sim, j - i, now))
        return found

    def dream_similarity(self, topic_a: str, topic_b: str,
                         discoveries: list[Discovery] | None = None) -> float:
        """Lenient similarity: keywords, shared neighbours, co-discovery, noise.

        0.4 * keyword jaccard + 0.3 * shared / max(1, min(|Ca|, |Cb|))
        + 0.2 * (0.3 if discovered together) + 0.1 * U[0, 1)
        """
        a, b = self.graph.get(topic_a), self.graph.get(topic_b)
        if a is None or b is None:
            return 0.0

        keyword_sim = jaccard(a.keywords, b.keywords)

        conns_a, conns_b = set(a.connections), set(b.connections)
        shared = len(conns_a & conns_b)
        connection_sim = shared / max(1, min(len(conns_a), len(conns_b)))

        if discoveries is None:
            discoveries = self._snapshot_discoveries()
        cooccurrence = 0.0
        if discoveries:
            ids_a = _discovery_ids(a.topic, discoveries)
            ids_b = _discovery_ids(b.topic, discoveries)
            if ids_a & ids_b:
                cooccurrence = COOCCURRENCE_BONUS

        return (keyword_sim * 0.4
                + connection_sim * 0.3
                + cooccurrence * 0.2
                + float(self.rng.random()) * 0.1)

    def generate_insights(self, chains: list[list[str]]) -> list[Insight]:
        """Themes (topics seen in >= 2 chains) then bridges, capped."""
        insights: list[Insight] = []

        frequency: dict[str, int] = {}
        for chain in chains:
            for topic in chain:
                frequency[topic] = frequency.get(topic, 0) + 1

        for topic, count in frequency.items():
            if count >= 2:
                insights.append(Insight(
                    kind="theme", topic=topic, frequency=count,
                    message=f'"{topic}" appeared in {count} dream sequences',
                ))

        for chain in chains:
            if len(chain) >= 4:
                first, last = chain[0], chain[-1]
                bridge = chain[len(chain) // 2]
                insights.append(Insight(
                    kind="bridge", topic=bridge, source=first, target=last,
                    message=f'"{bridge}" may connect "{first}" to "{last}"',
                ))

        return insights[:self.config.max_insights]

    def _snapshot_discoveries(self) -> list[Discovery]:
        if self._discoveries is None:
            return []
        return list(self._discoveries())

    # ── queries ────────────────────────────────────────────────────────

    @property
    def dream_log(self) -> list[DreamSession]:
        return list(self._log)

    @property
    def discovered_connections(self) -> list[DreamConnection]:
        return list(self._discovered)

    def get_stats(self) -> dict:
        log = self._log
        return {
            "total_dreams": len(log),
            "total_connections_discovered": len(self._discovered),
            "last_dream": log[-1].end_time if log else None,
            "average_connections_per_dream": (
                sum(len(s.new_connections) for s in log) / len(log) if log else 0.0
            ),
        }

    # ── snapshots ──────────────────────────────────────────────────────

    def export_state(self) -> dict:
        return {
            "version": SNAPSHOT_VERSION,
            "exported_at": time.time(),
            "dream_log": [s.to_dict() for s in self._log],
            "discovered_connections": [c.to_dict() for c in self._discovered],
            "stats": self.get_stats(),
        }

    def import_state(self, data: dict) -> None:
        check_version("dreams", data)
        log = [DreamSession.from_dict(s) for s in data.get("dream_log", [])]
        discovered = [DreamConnection.from_dict(c)
                      for c in data.get("discovered_connections", [])]
        self._log = log[-self.config.max_log:]
        self._discovered = discovered[-self.config.max_discovered:]
        logger.info("Imported %d dream sessions", len(self._log))

    def reset(self) -> None:
        self._log = []
        self._discovered = []

    def __repr__(self) -> str:
        return f"DreamReplayEngine(dreams={len(self._log)}, dreaming={self.is_dreaming})"


def _discovery_ids(topic: str, discoveries: list[Discovery]) -> set[str]:
    topic = normalize_topic(topic)
    return {
        d.id for d in discoveries
        if topic in (k.lower() for k in d.keywords)
        or normalize_topic(d.search_topic) == topic
    }
