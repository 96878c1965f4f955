"""curio-mind: interest graph, memory consolidation, dream replay and strategy evolution."""

from curio_mind.config import MindConfig
from curio_mind.consolidate import MemoryConsolidator
from curio_mind.dream import DreamReplayEngine
from curio_mind.errors import CurioError, IncompatibleSnapshotError
from curio_mind.events import Event, EventBus, EventKind
from curio_mind.evolution import StrategyEvolution
from curio_mind.graph import InterestGraph
from curio_mind.mind import CuriousMind
from curio_mind.models import Discovery, Genome, MemoryType, NodeView, Outcome

__version__ = "0.1.0"
__all__ = [
    "CuriousMind", "MindConfig",
    "InterestGraph", "MemoryConsolidator", "DreamReplayEngine", "StrategyEvolution",
    "Event", "EventBus", "EventKind",
    "Discovery", "Genome", "MemoryType", "NodeView", "Outcome",
    "CurioError", "IncompatibleSnapshotError",
]
