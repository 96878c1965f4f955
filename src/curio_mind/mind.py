"""CuriousMind: the facade. One graph, one long-term store, one dreamer, one population."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict
from pathlib import Path
from typing import Callable, Iterable

import numpy as np

from curio_mind.config import MindConfig
from curio_mind.consolidate import MemoryConsolidator
from curio_mind.dream import DiscoverySource, DreamReplayEngine
from curio_mind.errors import check_version
from curio_mind.events import Event, EventBus, EventKind
from curio_mind.evolution import ExplorationPlan, StrategyEvolution
from curio_mind.graph import InterestGraph
from curio_mind.models import (
    ConsolidationResult,
    DecayReport,
    DreamResult,
    EvolutionResult,
    Genome,
    NodeView,
    Outcome,
    TickReport,
    Trace,
)
from curio_mind.storage import Storage

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class CuriousMind:
    """Una mente curiosa. Un archivo SQLite = una mente.

    API:
        mind.add_interest(topic)        — algo llamó la atención
        mind.tick(now)                  — decay + consolidación cuando toca
        mind.dream()                    — replay y conexiones ocultas
        mind.select_strategy()          — cómo explorar ahora
        mind.record_outcome(g, outcome) — qué salió de explorar
        mind.evolve()                   — siguiente generación de estrategias
        mind.save() / mind.load()       — snapshots versionados
        mind.traces()                   — consultar trazas de operaciones
    """

    def __init__(self, path: str | Path = ":memory:",
                 config: MindConfig | None = None,
                 seed: int | None = None,
                 rng: np.random.Generator | None = None,
                 discoveries: DiscoverySource | None = None,
                 enable_traces: bool = False,
                 autoload: bool = False,
                 _storage: Storage | None = None) -> None:
        self.config = config or MindConfig()
        self.config.validate()
        self._storage = _storage or Storage(path)
        self._enable_traces = enable_traces
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.bus = EventBus()

        self.graph = InterestGraph(self.config.graph, self.bus)
        self.memory = MemoryConsolidator(self.graph, self.config.memory, self.bus)
        self.dreamer = DreamReplayEngine(self.graph, self.config.dream, self.rng,
                                         discoveries, self.bus)
        self.evolution = StrategyEvolution(self.config.evolution, self.rng, self.bus)
        self._last_consolidation: float | None = None

        if autoload:
            self.load()
        self.evolution.ensure_population()

    # ── interests ──────────────────────────────────────────────────────

    def add_interest(self, topic: str, strength: float = 0.1,
                     now: float | None = None) -> NodeView | None:
        """Añade o refuerza un interés."""
        t0 = time.time()
        view = self.graph.add_or_reinforce(topic, strength, now)
        self._trace("add_interest", topic,
                    f"weight={view.weight:.3f}" if view else "ignored", t0)
        return view

    def get_top_interests(self, count: int = 5) -> list[NodeView]:
        return self.graph.get_top_interests(count)

    def get_interests_sorted(self) -> list[NodeView]:
        return self.graph.get_interests_sorted()

    # ── periodic work ──────────────────────────────────────────────────

    def decay(self, now: float | None = None) -> DecayReport:
        t0 = time.time()
        report = self.graph.decay_tick(now)
        self._trace("decay", f"{len(self.graph) + len(report.removed)} interests",
                    f"{len(report.removed)} forgotten", t0)
        return report

    def consolidate(self, now: float | None = None) -> ConsolidationResult:
        t0 = time.time()
        result = self.memory.consolidate(now)
        self._last_consolidation = result.timestamp
        self._trace("consolidate", f"{len(self.graph)} interests",
                    f"{len(result.promoted)} promoted, {len(result.clusters)} clusters", t0)
        return result

    def tick(self, now: float | None = None) -> TickReport:
        """One scheduler beat: always decay, consolidate when the interval has passed."""
        if now is None:
            now = time.time()
        report = TickReport(decay=self.decay(now))
        interval = self.config.memory.consolidation_interval
        if self._last_consolidation is None:
            self._last_consolidation = now
        elif now - self._last_consolidation >= interval:
            report.consolidation = self.consolidate(now)
        return report

    def dream(self, now: float | None = None) -> DreamResult:
        t0 = time.time()
        result = self.dreamer.dream(now)
        if result.success:
            output = f"{len(result.session.new_connections)} new connections"
        else:
            output = f"rejected: {result.reason}"
        self._trace("dream", f"{len(self.graph)} interests", output, t0)
        return result

    # ── strategies ─────────────────────────────────────────────────────

    def select_strategy(self) -> Genome:
        return self.evolution.select_strategy()

    def apply_strategy(self, genome: Genome) -> ExplorationPlan:
        return self.evolution.apply_strategy(genome)

    def record_outcome(self, genome: Genome | str, outcome: Outcome,
                       now: float | None = None) -> float | None:
        t0 = time.time()
        fitness = self.evolution.record_outcome(genome, outcome, now)
        genome_id = genome if isinstance(genome, str) else genome.id
        self._trace("record_outcome", genome_id,
                    f"fitness={fitness:.3f}" if fitness is not None else "unknown", t0)
        return fitness

    def evolve(self, now: float | None = None) -> EvolutionResult:
        t0 = time.time()
        result = self.evolution.evolve(now)
        self._trace("evolve", f"generation {self.evolution.generation}",
                    "evolved" if result.evolved else result.reason, t0)
        return result

    # ── events ─────────────────────────────────────────────────────────

    def subscribe(self, callback: Callable[[Event], None],
                  kinds: Iterable[EventKind] | None = None) -> Callable[[], None]:
        return self.bus.subscribe(callback, kinds)

    # ── stats ──────────────────────────────────────────────────────────

    def get_stats(self) -> dict:
        return {
            "interests": asdict(self.graph.get_stats()),
            "memory": self.memory.get_capacity_status(),
            "dreams": self.dreamer.get_stats(),
            "evolution": self.evolution.get_stats(),
        }

    # ── persistence ────────────────────────────────────────────────────

    def _subsystems(self) -> list[tuple[str, object]]:
        # Orden importa: el grafo antes que la memoria de largo plazo
        return [
            ("brain", self.graph),
            ("memory", self.memory),
            ("dreams", self.dreamer),
            ("genetics", self.evolution),
        ]

    def save(self) -> None:
        """Write every subsystem snapshot to storage."""
        t0 = time.time()
        for name, subsystem in self._subsystems():
            self._storage.save_snapshot(name, subsystem.export_state())
        self._trace("save", "", f"{len(self.graph)} interests", t0)

    def load(self) -> None:
        """Load snapshots from storage.

        Every stored version is checked before anything is replaced; a
        mismatch raises IncompatibleSnapshotError and leaves the live state
        alone. Malformed data is logged and that subsystem starts empty.
        """
        t0 = time.time()
        snapshots = [(name, sub, self._storage.load_snapshot(name))
                     for name, sub in self._subsystems()]
        for name, _, data in snapshots:
            if data is not None:
                check_version(name, data)

        for name, subsystem, data in snapshots:
            if data is None:
                continue
            try:
                if name == "memory":
                    subsystem.import_state(data, restore=False)
                else:
                    subsystem.import_state(data)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                logger.warning("Malformed %s snapshot, starting empty: %s", name, exc)
                subsystem.reset()
        self._trace("load", str(self._storage.path), f"{len(self.graph)} interests", t0)

    def export_state(self) -> dict:
        state = {"version": SNAPSHOT_VERSION, "exported_at": time.time()}
        for name, subsystem in self._subsystems():
            state[name] = subsystem.export_state()
        return state

    def import_state(self, data: dict) -> None:
        """Replace state from an export. All or nothing.

        Every section's version is checked before anything is touched; if a
        section turns out to be malformed the previous state is put back and
        the error re-raised.
        """
        t0 = time.time()
        check_version("mind", data)
        sections = [(name, sub) for name, sub in self._subsystems() if name in data]
        for name, _ in sections:
            check_version(name, data[name])

        backup = self.export_state()
        try:
            for name, subsystem in sections:
                subsystem.import_state(data[name])
        except Exception:
            logger.warning("Import failed, restoring previous state")
            for name, subsystem in self._subsystems():
                if name == "memory":
                    subsystem.import_state(backup[name], restore=False)
                else:
                    subsystem.import_state(backup[name])
            raise
        self._trace("import", ", ".join(n for n, _ in sections),
                    f"{len(self.graph)} interests", t0)

    def reset(self) -> None:
        """Borra todo: grafo, memoria, sueños, población."""
        for name, subsystem in self._subsystems():
            subsystem.reset()
            self._storage.delete_snapshot(name)
        self._last_consolidation = None
        logger.info("Reset complete")

    # ── traces (observability) ─────────────────────────────────────────

    def _trace(self, operation: str, input_text: str,
               output_text: str, t0: float) -> None:
        """Registra un trace si enable_traces=True."""
        if not self._enable_traces:
            return
        duration_ms = (time.time() - t0) * 1000
        trace = Trace(
            operation=operation,
            input_text=str(input_text)[:500],
            output_text=str(output_text)[:500],
            duration_ms=duration_ms,
        )
        self._storage.save_trace(trace)

    def traces(self, operation: str | None = None,
               limit: int = 100) -> list[Trace]:
        """Consulta trazas de operaciones."""
        return self._storage.load_traces(operation=operation, limit=limit)

    # ── utilidades ─────────────────────────────────────────────────────

    @property
    def count(self) -> int:
        """Cuántos intereses hay."""
        return len(self.graph)

    def close(self) -> None:
        self._storage.close()

    def __enter__(self) -> CuriousMind:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __repr__(self) -> str:
        return (f"CuriousMind(interests={self.count}, "
                f"generation={self.evolution.generation})")
