"""Core data models. An interest has a lifecycle. A strategy evolves."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum

DEFAULT_API_SOURCES = ("wikipedia", "hacker_news", "reddit", "open_library")

GENE_NAMES = (
    "exploration_bias",
    "breadth_preference",
    "recency_weight",
    "connection_affinity",
    "novelty_seeking",
    "time_preference",
    "risk_tolerance",
    "memory_influence",
    "serendipity_factor",
)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def new_strategy_id() -> str:
    return f"strat_{_new_id()}"


class MemoryType(str, Enum):
    SHORT_TERM = "short-term"   # recién llegado, decae rápido
    LONG_TERM = "long-term"     # consolidado
    CORE = "core"               # cruzó core_threshold


class ConnectionOrigin(str, Enum):
    ORGANIC = "organic"   # keyword overlap at insertion time
    DREAM = "dream"       # found during replay


# ── Interest graph ─────────────────────────────────────────────────────


@dataclass
class InterestNode:
    """Un interés vivo. Su peso decae si nadie lo toca."""

    topic: str
    handle: int
    weight: float = 0.5
    keywords: frozenset[str] = frozenset()
    links: set[int] = field(default_factory=set)  # handles, never topics
    last_active: float = field(default_factory=time.time)
    created_at: float = field(default_factory=time.time)
    access_count: int = 1
    is_core: bool = False
    memory_type: MemoryType = MemoryType.SHORT_TERM


@dataclass(frozen=True)
class NodeView:
    """Read-only snapshot of a node. Connections are resolved to topics."""

    topic: str
    weight: float
    keywords: frozenset[str]
    connections: tuple[str, ...]
    last_active: float
    created_at: float
    access_count: int
    is_core: bool
    memory_type: MemoryType

    def to_dict(self) -> dict:
        return {
            "topic": self.topic,
            "weight": self.weight,
            "keywords": sorted(self.keywords),
            "connections": list(self.connections),
            "last_active": self.last_active,
            "created_at": self.created_at,
            "access_count": self.access_count,
            "is_core": self.is_core,
            "memory_type": self.memory_type.value,
        }


@dataclass
class Connection:
    """Log entry. The adjacency on the nodes is what decides 'linked'."""

    source: str
    target: str
    strength: float
    origin: ConnectionOrigin = ConnectionOrigin.ORGANIC
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "from": self.source,
            "to": self.target,
            "strength": self.strength,
            "origin": self.origin.value,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Connection:
        return cls(
            source=data["from"],
            target=data["to"],
            strength=float(data["strength"]),
            origin=ConnectionOrigin(data.get("origin", "organic")),
            created_at=float(data.get("created_at", time.time())),
        )


@dataclass
class DecayReport:
    decayed: int = 0
    removed: list[str] = field(default_factory=list)
    became_core: list[str] = field(default_factory=list)
    left_core: list[str] = field(default_factory=list)


@dataclass
class GraphStats:
    short_term: int = 0
    long_term: int = 0
    core: int = 0
    total: int = 0
    connections: int = 0
    average_weight: float = 0.0


# ── Long-term memory ───────────────────────────────────────────────────


@dataclass
class LongTermEntry:
    """A promoted interest. Survives in the long-term store even if the graph forgets it."""

    topic: str
    weight: float
    connections: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    access_count: int = 1
    last_active: float = field(default_factory=time.time)
    created_at: float = field(default_factory=time.time)
    promoted_at: float = field(default_factory=time.time)

    def merge(self, node: NodeView, now: float) -> None:
        """Fold a re-promoted node into this entry."""
        self.weight = max(self.weight, node.weight)
        self.access_count += node.access_count
        for topic in node.connections:
            if topic not in self.connections:
                self.connections.append(topic)
        self.last_active = now

    def to_dict(self) -> dict:
        return {
            "topic": self.topic,
            "weight": self.weight,
            "connections": list(self.connections),
            "keywords": list(self.keywords),
            "access_count": self.access_count,
            "last_active": self.last_active,
            "created_at": self.created_at,
            "promoted_at": self.promoted_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> LongTermEntry:
        return cls(
            topic=data["topic"],
            weight=float(data["weight"]),
            connections=list(data.get("connections", [])),
            keywords=list(data.get("keywords", [])),
            access_count=int(data.get("access_count", 1)),
            last_active=float(data.get("last_active", time.time())),
            created_at=float(data.get("created_at", time.time())),
            promoted_at=float(data.get("promoted_at", time.time())),
        )


@dataclass
class PromotionScore:
    total: float
    weight: float
    connections: float
    access: float
    recency: float


@dataclass
class ConsolidationResult:
    promoted: list[tuple[str, float]] = field(default_factory=list)
    forgotten: list[tuple[str, float]] = field(default_factory=list)
    clusters: list[str] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "promoted": [[t, s] for t, s in self.promoted],
            "forgotten": [[t, w] for t, w in self.forgotten],
            "clusters": list(self.clusters),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ConsolidationResult:
        return cls(
            promoted=[(t, float(s)) for t, s in data.get("promoted", [])],
            forgotten=[(t, float(w)) for t, w in data.get("forgotten", [])],
            clusters=list(data.get("clusters", [])),
            timestamp=float(data["timestamp"]),
        )


# ── Dreams ─────────────────────────────────────────────────────────────


@dataclass
class Discovery:
    """Something the explorer found. Only used here for co-occurrence."""

    title: str
    search_topic: str = ""
    source: str = ""
    keywords: list[str] = field(default_factory=list)
    id: str = field(default_factory=_new_id)


@dataclass
class DreamConnection:
    source: str
    target: str
    similarity: float
    distance: int
    discovered_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "from": self.source,
            "to": self.target,
            "similarity": self.similarity,
            "distance": self.distance,
            "discovered_at": self.discovered_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> DreamConnection:
        return cls(
            source=data["from"],
            target=data["to"],
            similarity=float(data["similarity"]),
            distance=int(data.get("distance", 2)),
            discovered_at=float(data.get("discovered_at", time.time())),
        )


@dataclass
class Insight:
    kind: str               # "theme" | "bridge"
    topic: str
    message: str
    frequency: int = 0
    source: str = ""
    target: str = ""

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "topic": self.topic,
            "message": self.message,
            "frequency": self.frequency,
            "from": self.source,
            "to": self.target,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Insight:
        return cls(
            kind=data["kind"],
            topic=data["topic"],
            message=data.get("message", ""),
            frequency=int(data.get("frequency", 0)),
            source=data.get("from", ""),
            target=data.get("to", ""),
        )


@dataclass
class DreamSession:
    start_time: float
    end_time: float = 0.0
    chains: list[list[str]] = field(default_factory=list)
    new_connections: list[DreamConnection] = field(default_factory=list)
    strengthened_connections: list[DreamConnection] = field(default_factory=list)
    insights: list[Insight] = field(default_factory=list)

    @property
    def duration(self) -> float:
        return max(0.0, self.end_time - self.start_time)

    def to_dict(self) -> dict:
        return {
            "start_time": self.start_time,
            "end_time": self.end_time,
            "chains": [list(c) for c in self.chains],
            "new_connections": [c.to_dict() for c in self.new_connections],
            "strengthened_connections": [
                c.to_dict() for c in self.strengthened_connections
            ],
            "insights": [i.to_dict() for i in self.insights],
        }

    @classmethod
    def from_dict(cls, data: dict) -> DreamSession:
        return cls(
            start_time=float(data["start_time"]),
            end_time=float(data.get("end_time", data["start_time"])),
            chains=[list(c) for c in data.get("chains", [])],
            new_connections=[
                DreamConnection.from_dict(c) for c in data.get("new_connections", [])
            ],
            strengthened_connections=[
                DreamConnection.from_dict(c)
                for c in data.get("strengthened_connections", [])
            ],
            insights=[Insight.from_dict(i) for i in data.get("insights", [])],
        )


@dataclass
class DreamResult:
    success: bool
    session: DreamSession | None = None
    reason: str = ""


# ── Strategies ─────────────────────────────────────────────────────────


@dataclass
class Genes:
    """Continuous behaviour genes, all in [0, 1]."""

    exploration_bias: float = 0.5      # 0=existing interests, 1=new areas
    breadth_preference: float = 0.5    # 0=deep, 1=broad
    recency_weight: float = 0.5
    connection_affinity: float = 0.5
    novelty_seeking: float = 0.5
    time_preference: float = 0.5       # 0=morning, 1=evening
    risk_tolerance: float = 0.5
    memory_influence: float = 0.5
    serendipity_factor: float = 0.5
    api_preferences: dict[str, float] = field(default_factory=dict)

    @classmethod
    def random(cls, rng, sources=DEFAULT_API_SOURCES) -> Genes:
        values = {name: float(rng.random()) for name in GENE_NAMES}
        prefs = {src: float(rng.random()) for src in sources}
        return cls(api_preferences=prefs, **values)

    def scalars(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in GENE_NAMES}

    def copy(self) -> Genes:
        return Genes(api_preferences=dict(self.api_preferences), **self.scalars())

    def to_dict(self) -> dict:
        data = self.scalars()
        data["api_preferences"] = dict(self.api_preferences)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Genes:
        values = {name: float(data[name]) for name in GENE_NAMES}
        prefs = {k: float(v) for k, v in data.get("api_preferences", {}).items()}
        return cls(api_preferences=prefs, **values)


@dataclass
class Genome:
    """Una estrategia de exploración con su fitness acumulado."""

    genes: Genes = field(default_factory=Genes)
    generation: int = 0
    fitness: float = 0.0
    explorations: int = 0
    discoveries: int = 0
    created_at: float = field(default_factory=time.time)
    last_used: float | None = None
    id: str = field(default_factory=new_strategy_id)

    def copy(self) -> Genome:
        """Value copy. Genes and api_preferences are not shared."""
        return Genome(
            genes=self.genes.copy(),
            generation=self.generation,
            fitness=self.fitness,
            explorations=self.explorations,
            discoveries=self.discoveries,
            created_at=self.created_at,
            last_used=self.last_used,
            id=self.id,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "generation": self.generation,
            "fitness": self.fitness,
            "explorations": self.explorations,
            "discoveries": self.discoveries,
            "created_at": self.created_at,
            "last_used": self.last_used,
            "genes": self.genes.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> Genome:
        return cls(
            id=data["id"],
            generation=int(data.get("generation", 0)),
            fitness=float(data.get("fitness", 0.0)),
            explorations=int(data.get("explorations", 0)),
            discoveries=int(data.get("discoveries", 0)),
            created_at=float(data.get("created_at", time.time())),
            last_used=data.get("last_used"),
            genes=Genes.from_dict(data["genes"]),
        )


@dataclass
class Outcome:
    """What happened after exploring with a strategy."""

    discoveries: int = 0
    new_connections: int = 0
    reinforced: int = 0
    failures: int = 0
    user_clicks: int = 0


@dataclass
class EvolutionResult:
    evolved: bool
    generation: int
    population: list[Genome] = field(default_factory=list)
    best: Genome | None = None
    reason: str = ""


# ── Observability ──────────────────────────────────────────────────────


@dataclass
class Trace:
    """Registro de una operación: qué entró, qué salió, cuánto tardó."""

    operation: str
    input_text: str = ""
    output_text: str = ""
    duration_ms: float | None = None
    metadata: dict = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    id: str = field(default_factory=_new_id)


@dataclass
class TickReport:
    decay: DecayReport
    consolidation: ConsolidationResult | None = None
