"""Strategy evolution. Exploration behaviours that pay off survive and breed."""

from __future__ import annotations

import logging
import threading
import time
from typing import Sequence

import numpy as np

from curio_mind.config import EvolutionConfig
from curio_mind.errors import check_version
from curio_mind.events import Event, EventBus, EventKind
from curio_mind.models import (
    GENE_NAMES,
    EvolutionResult,
    Genes,
    Genome,
    NodeView,
    Outcome,
    new_strategy_id,
)

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

# Probabilidades del torneo: mejor, segundo, tercero
TOURNAMENT_ODDS = (0.7, 0.9)

OUTCOME_WEIGHTS = {
    "discoveries": 0.3,
    "new_connections": 0.5,
    "reinforced": 0.1,
    "failures": -0.2,
    "user_clicks": 0.4,
}

TRAITS = (
    ("Explorer", lambda g: g.exploration_bias),
    ("Deep Diver", lambda g: 1 - g.breadth_preference),
    ("Connector", lambda g: g.connection_affinity),
    ("Novelty Seeker", lambda g: g.novelty_seeking),
    ("Risk Taker", lambda g: g.risk_tolerance),
    ("Random Walker", lambda g: g.serendipity_factor),
)


def fitness_gain(outcome: Outcome) -> float:
    return sum(getattr(outcome, name) * w for name, w in OUTCOME_WEIGHTS.items())


def dominant_trait(genome: Genome) -> str:
    """Name of the strongest behavioural trait. Ties go to the first listed."""
    best_name, best_value = TRAITS[0][0], TRAITS[0][1](genome.genes)
    for name, value_of in TRAITS[1:]:
        value = value_of(genome.genes)
        if value > best_value:
            best_name, best_value = name, value
    return best_name


class ExplorationPlan:
    """What a genome means to the explorer: concrete exploration decisions."""

    def __init__(self, genome: Genome, rng: np.random.Generator,
                 api_sources: Sequence[str]) -> None:
        self.genome = genome
        self.genes = genome.genes
        self.rng = rng
        self._api_sources = tuple(api_sources)

    def select_topic(self, interests: Sequence[NodeView],
                     now: float | None = None) -> str | None:
        """Pick a topic from interests (sorted by weight, strongest first)."""
        if not interests:
            return None
        if now is None:
            now = time.time()
        genes = self.genes

        # Explorar: intereses débiles
        if self.rng.random() < genes.exploration_bias:
            weak = [i for i in interests if i.weight < 0.5]
            if weak:
                return weak[int(self.rng.integers(len(weak)))].topic

        scored = []
        for interest in interests:
            recency = 1 - (now - interest.last_active) / (24 * 3600)
            score = (interest.weight * (1 - genes.recency_weight)
                     + max(0.0, recency) * genes.recency_weight)
            scored.append((score, interest.topic))
        scored.sort(key=lambda s: s[0], reverse=True)

        # Breadth decides how far down the list we may reach
        reach = max(1, int(len(scored) * genes.breadth_preference))
        return scored[int(self.rng.integers(reach))][1]

    def api_order(self) -> list[str]:
        prefs = self.genes.api_preferences
        sources = list(self._api_sources)
        sources += [s for s in prefs if s not in sources]
        return sorted(sources, key=lambda s: prefs.get(s, 0.0), reverse=True)

    def result_limit(self) -> int:
        return int(3 + self.genes.breadth_preference * 7)  # 3-10 results

    def should_follow_connection(self) -> bool:
        return bool(self.rng.random() < self.genes.connection_affinity)

    def should_take_risk(self) -> bool:
        return bool(self.rng.random() < self.genes.risk_tolerance)

    def add_serendipity(self) -> bool:
        return bool(self.rng.random() < self.genes.serendipity_factor)


class StrategyEvolution:
    """Fixed-size population of exploration genomes.

    API:
        select_strategy()               — tournament pick for the next exploration
        record_outcome(genome, outcome) — online fitness update
        evolve()                        — elitism + crossover + mutation
        apply_strategy(genome)          — genome -> ExplorationPlan
    """

    def __init__(self, config: EvolutionConfig | None = None,
                 rng: np.random.Generator | None = None,
                 bus: EventBus | None = None) -> None:
        self.config = config or EvolutionConfig()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.bus = bus if bus is not None else EventBus()
        self._lock = threading.RLock()
        self.population: list[Genome] = []
        self.generation = 0
        self.history: list[dict] = []
        self.best_strategy: Genome | None = None

    # ── population ─────────────────────────────────────────────────────

    def create_random_strategy(self, now: float | None = None) -> Genome:
        return Genome(
            genes=Genes.random(self.rng, self.config.api_sources),
            generation=self.generation,
            created_at=now if now is not None else time.time(),
        )

    def initialize_population(self, now: float | None = None) -> None:
        with self._lock:
            self.population = [self.create_random_strategy(now)
                               for _ in range(self.config.population_size)]
        logger.info("Initialized population with %d strategies",
                    self.config.population_size)

    def ensure_population(self) -> None:
        with self._lock:
            if not self.population:
                self.initialize_population()

    # ── selection ──────────────────────────────────────────────────────

    def select_strategy(self) -> Genome:
        """Tournament of tournament_size draws; best wins 70%, second 20%, third 10%."""
        with self._lock:
            self.ensure_population()
            size = len(self.population)
            picks = self.rng.integers(size, size=self.config.tournament_size)
            tournament = [self.population[int(i)] for i in picks]
            tournament.sort(key=lambda g: g.fitness, reverse=True)

            roll = self.rng.random()
            if roll < TOURNAMENT_ODDS[0]:
                selected = tournament[0]
            elif roll < TOURNAMENT_ODDS[1]:
                selected = tournament[1] if len(tournament) > 1 else tournament[0]
            else:
                selected = tournament[2] if len(tournament) > 2 else tournament[0]

        self.bus.publish(Event(EventKind.STRATEGY_SELECTED, selected.id,
                               {"fitness": selected.fitness}))
        return selected

    def record_outcome(self, genome: Genome | str, outcome: Outcome,
                       now: float | None = None) -> float | None:
        """Fold an outcome into the genome's fitness. Returns the new fitness.

        fitness = fitness * fitness_decay + gain. Order of calls matters.
        Unknown genome -> None.
        """
        genome_id = genome if isinstance(genome, str) else genome.id
        with self._lock:
            target = self._find(genome_id)
            if target is None:
                logger.warning("Outcome for unknown strategy %s ignored", genome_id)
                return None
            target.explorations += 1
            target.discoveries += outcome.discoveries
            target.fitness = target.fitness * self.config.fitness_decay + fitness_gain(outcome)
            target.last_used = now if now is not None else time.time()
            fitness = target.fitness

        logger.debug("Strategy %s fitness: %.2f", genome_id[-4:], fitness)
        self.bus.publish(Event(EventKind.OUTCOME_RECORDED, genome_id,
                               {"fitness": fitness}))
        return fitness

    def _find(self, genome_id: str) -> Genome | None:
        for g in self.population:
            if g.id == genome_id:
                return g
        return None

    # ── evolution ──────────────────────────────────────────────────────

    def evolve(self, now: float | None = None) -> EvolutionResult:
        """Produce the next generation. Fewer than 2 genomes -> no-op result."""
        if now is None:
            now = time.time()
        with self._lock:
            if len(self.population) < 2:
                logger.warning("Not enough strategies to evolve")
                return EvolutionResult(False, self.generation,
                                       reason="Population too small to evolve")

            self.population.sort(key=lambda g: g.fitness, reverse=True)
            next_generation = self.generation + 1

            # Tamaño actual de la población, no el de la config
            size = len(self.population)
            new_population = []
            for elite in self.population[:min(self.config.elitism_count, size)]:
                survivor = elite.copy()
                survivor.generation = next_generation
                new_population.append(survivor)

            while len(new_population) < size:
                parent1 = self.select_parent()
                parent2 = self.select_parent()

                if self.rng.random() < self.config.crossover_rate:
                    offspring = self.crossover(parent1, parent2)
                else:
                    offspring = parent1.copy()

                self.mutate(offspring)

                offspring.id = new_strategy_id()
                offspring.generation = next_generation
                offspring.fitness = 0.0
                offspring.explorations = 0
                offspring.discoveries = 0
                offspring.created_at = now
                offspring.last_used = None
                new_population.append(offspring)

            fitnesses = np.array([g.fitness for g in self.population])
            self.history.append({
                "generation": self.generation,
                "timestamp": now,
                "best_fitness": float(fitnesses[0]),
                "average_fitness": float(fitnesses.mean()),
                "best_strategy_id": self.population[0].id,
            })

            self.population = new_population
            self.generation = next_generation
            self.best_strategy = self.population[0]
            result = EvolutionResult(True, self.generation,
                                     population=list(self.population),
                                     best=self.best_strategy)

        logger.info("Generation %d created with %d strategies",
                    result.generation, len(result.population))
        self.bus.publish(Event(EventKind.NEW_GENERATION, "",
                               {"generation": result.generation,
                                "best": result.best.id if result.best else None}, now))
        return result

    def select_parent(self) -> Genome:
        """Roulette wheel over fitness shifted so the minimum becomes 1."""
        fitnesses = np.array([g.fitness for g in self.population], dtype=float)
        adjusted = fitnesses - fitnesses.min() + 1
        spin = self.rng.random() * adjusted.sum()
        for genome, share in zip(self.population, adjusted):
            spin -= share
            if spin <= 0:
                return genome
        return self.population[0]

    def crossover(self, parent1: Genome, parent2: Genome) -> Genome:
        """Uniform crossover: each gene (and each api preference) from either parent."""
        values = {}
        for name in GENE_NAMES:
            source = parent1 if self.rng.random() < 0.5 else parent2
            values[name] = getattr(source.genes, name)

        prefs = {}
        p1, p2 = parent1.genes.api_preferences, parent2.genes.api_preferences
        for api in list(p1) + [k for k in p2 if k not in p1]:
            chosen, other = (p1, p2) if self.rng.random() < 0.5 else (p2, p1)
            prefs[api] = chosen[api] if api in chosen else other[api]

        return Genome(genes=Genes(api_preferences=prefs, **values),
                      generation=parent1.generation)

    def mutate(self, genome: Genome) -> Genome:
        """Mutate in place.

        Scalars: with mutation_rate, add U[-scale, +scale] and clamp to [0, 1].
        api_preferences: gated once with mutation_rate, then each entry is
        replaced by a fresh uniform value with mutation_rate.
        """
        rate = self.config.mutation_rate
        scale = self.config.mutation_scale
        genes = genome.genes
        for name in GENE_NAMES:
            if self.rng.random() < rate:
                value = getattr(genes, name) + self.rng.uniform(-scale, scale)
                setattr(genes, name, float(min(1.0, max(0.0, value))))

        if self.rng.random() < rate:
            for api in genes.api_preferences:
                if self.rng.random() < rate:
                    genes.api_preferences[api] = float(self.rng.random())
        return genome

    # ── strategy -> parameters ─────────────────────────────────────────

    def apply_strategy(self, genome: Genome) -> ExplorationPlan:
        return ExplorationPlan(genome, self.rng, self.config.api_sources)

    # ── queries ────────────────────────────────────────────────────────

    def get_stats(self) -> dict:
        with self._lock:
            fitnesses = [g.fitness for g in self.population]
            return {
                "generation": self.generation,
                "population_size": len(self.population),
                "best_fitness": max(fitnesses) if fitnesses else 0.0,
                "average_fitness": float(np.mean(fitnesses)) if fitnesses else 0.0,
                "total_evolutions": len(self.history),
                "best_strategy": self.best_strategy.id if self.best_strategy else None,
            }

    def population_summary(self) -> list[dict]:
        with self._lock:
            return [
                {
                    "id": g.id,
                    "fitness": g.fitness,
                    "explorations": g.explorations,
                    "discoveries": g.discoveries,
                    "dominant_trait": dominant_trait(g),
                    "generation": g.generation,
                }
                for g in self.population
            ]

    # ── snapshots ──────────────────────────────────────────────────────

    def export_state(self) -> dict:
        with self._lock:
            return {
                "version": SNAPSHOT_VERSION,
                "exported_at": time.time(),
                "population": [g.to_dict() for g in self.population],
                "generation": self.generation,
                "best_strategy": self.best_strategy.id if self.best_strategy else None,
                "evolution_history": [dict(h) for h in self.history],
                "stats": self.get_stats(),
            }

    def import_state(self, data: dict) -> None:
        check_version("genetics", data)
        population = [Genome.from_dict(g) for g in data.get("population", [])]
        generation = int(data.get("generation", 0))
        history = [dict(h) for h in data.get("evolution_history", [])]
        best_id = data.get("best_strategy")

        with self._lock:
            self.population = population
            self.generation = generation
            self.history = history
            self.best_strategy = next((g for g in population if g.id == best_id), None)
        logger.info("Imported generation %d with %d strategies",
                    generation, len(population))

    def reset(self) -> None:
        with self._lock:
            self.population = []
            self.generation = 0
            self.history = []
            self.best_strategy = None
            self.initialize_population()

    def __len__(self) -> int:
        return len(self.population)

    def __repr__(self) -> str:
        return f"StrategyEvolution(generation={self.generation}, population={len(self.population)})"
