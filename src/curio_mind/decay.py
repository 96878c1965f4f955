"""Weight decay. Interests that aren't touched fade away."""

from __future__ import annotations

import time
from typing import Iterable

from curio_mind.config import DEFAULT_DECAY_RATE
from curio_mind.models import InterestNode, MemoryType

# Los intereses core y de largo plazo resisten más
CORE_DECAY_MULTIPLIER = 0.1
LONG_TERM_DECAY_MULTIPLIER = 0.3


def decay_multiplier(node: InterestNode) -> float:
    core = CORE_DECAY_MULTIPLIER if node.is_core else 1.0
    memory = LONG_TERM_DECAY_MULTIPLIER if node.memory_type == MemoryType.LONG_TERM else 1.0
    return core * memory


def compute_decay(node: InterestNode, now: float | None = None,
                  decay_rate: float = DEFAULT_DECAY_RATE) -> float:
    """Return the node's weight after decay.

    Linear in the time since last activity:
    weight - decay_rate * elapsed * multipliers, floored at 0.
    The elapsed time is measured from last_active, not from the previous tick.
    """
    if now is None:
        now = time.time()

    elapsed = now - node.last_active
    if elapsed <= 0:
        return node.weight

    amount = decay_rate * elapsed * decay_multiplier(node)
    return max(node.weight - amount, 0.0)


def apply_decay(nodes: Iterable[InterestNode], now: float | None = None,
                decay_rate: float = DEFAULT_DECAY_RATE,
                min_weight: float = 0.05) -> tuple[list[InterestNode], list[InterestNode]]:
    """Apply decay in place.

    Returns:
        (alive, dead) - dead nodes fell below min_weight and must be removed
    """
    if now is None:
        now = time.time()
    alive = []
    dead = []

    for node in nodes:
        node.weight = compute_decay(node, now, decay_rate)
        if node.weight < min_weight:
            dead.append(node)
        else:
            alive.append(node)

    return alive, dead
