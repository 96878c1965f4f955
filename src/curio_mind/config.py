"""Tunables. Defaults reproduce the stock curiosity engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from curio_mind.models import DEFAULT_API_SOURCES

# Pérdida de peso por segundo de inactividad
DEFAULT_DECAY_RATE = 1e-4
DEFAULT_CONSOLIDATION_INTERVAL = 6 * 3600  # 6 horas


@dataclass
class GraphConfig:
    decay_rate: float = DEFAULT_DECAY_RATE
    reinforcement_factor: float = 0.3   # share of a gain passed to neighbours
    connection_threshold: float = 0.2
    core_threshold: float = 0.7
    max_short_term_interests: int = 50
    initial_weight: float = 0.5
    max_weight: float = 1.0
    min_weight: float = 0.05            # below this the interest is forgotten
    association_boost: float = 0.05     # bump for a newly linked neighbour


@dataclass
class MemoryConfig:
    promotion_threshold: float = 0.6
    cluster_similarity_threshold: float = 0.3
    forget_threshold: float = 0.1
    max_history: int = 100
    consolidation_interval: float = DEFAULT_CONSOLIDATION_INTERVAL


@dataclass
class DreamConfig:
    replay_chain_length: int = 5
    chains_per_dream: int = 10
    connection_threshold: float = 0.15
    serendipity_boost: float = 0.3
    follow_probability: float = 0.6
    strengthen_boost: float = 0.05
    max_insights: int = 5
    max_log: int = 50
    max_discovered: int = 100


@dataclass
class EvolutionConfig:
    population_size: int = 10
    mutation_rate: float = 0.15
    crossover_rate: float = 0.7
    elitism_count: int = 2
    fitness_decay: float = 0.95        # applied on every recorded outcome
    tournament_size: int = 3
    mutation_scale: float = 0.15       # scalar noise is U[-scale, +scale]
    api_sources: tuple[str, ...] = DEFAULT_API_SOURCES


@dataclass
class MindConfig:
    graph: GraphConfig = field(default_factory=GraphConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    dream: DreamConfig = field(default_factory=DreamConfig)
    evolution: EvolutionConfig = field(default_factory=EvolutionConfig)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["evolution"]["api_sources"] = list(self.evolution.api_sources)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MindConfig:
        """Build from a (possibly partial) nested dict. Unknown keys raise TypeError."""
        evolution = dict(data.get("evolution", {}))
        if "api_sources" in evolution:
            evolution["api_sources"] = tuple(evolution["api_sources"])
        return cls(
            graph=GraphConfig(**data.get("graph", {})),
            memory=MemoryConfig(**data.get("memory", {})),
            dream=DreamConfig(**data.get("dream", {})),
            evolution=EvolutionConfig(**evolution),
        )

    def validate(self) -> None:
        """Raise ValueError on nonsensical settings."""
        g, m, d, e = self.graph, self.memory, self.dream, self.evolution
        if not 0 <= g.min_weight <= g.initial_weight <= g.max_weight:
            raise ValueError("need 0 <= min_weight <= initial_weight <= max_weight")
        if not g.min_weight <= g.core_threshold <= g.max_weight:
            raise ValueError("core_threshold must lie within [min_weight, max_weight]")
        if g.decay_rate < 0:
            raise ValueError("decay_rate must be >= 0")
        if g.max_short_term_interests < 1:
            raise ValueError("max_short_term_interests must be >= 1")
        for name, value in (
            ("reinforcement_factor", g.reinforcement_factor),
            ("connection_threshold", g.connection_threshold),
            ("promotion_threshold", m.promotion_threshold),
            ("cluster_similarity_threshold", m.cluster_similarity_threshold),
            ("follow_probability", d.follow_probability),
            ("mutation_rate", e.mutation_rate),
            ("crossover_rate", e.crossover_rate),
            ("fitness_decay", e.fitness_decay),
        ):
            if not 0 <= value <= 1:
                raise ValueError(f"{name} must be 0-1, got {value}")
        if d.replay_chain_length < 1 or d.chains_per_dream < 0:
            raise ValueError("replay_chain_length must be >= 1 and chains_per_dream >= 0")
        if e.population_size < 1:
            raise ValueError("population_size must be >= 1")
        if not 0 <= e.elitism_count <= e.population_size:
            raise ValueError("elitism_count must be within [0, population_size]")
        if e.tournament_size < 1:
            raise ValueError("tournament_size must be >= 1")
