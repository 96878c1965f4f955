#!/usr/bin/env python3
"""
curio-mind demo: a curious mind over a few simulated days.

No network. No API keys. Just run it.
"""

import logging
import os
import tempfile

from curio_mind import CuriousMind, Discovery, MindConfig, Outcome
from curio_mind.config import MemoryConfig

HOUR = 3600


def header(text):
    print(f"\n{'='*64}")
    print(f"  {text}")
    print(f"{'='*64}\n")


def show(mind, label=""):
    interests = mind.get_interests_sorted()
    if label:
        print(f"  [{label}] {len(interests)} interests:")
    for node in interests:
        n = int(node.weight * 20)
        bar = "█" * n + "░" * (20 - n)
        links = f" ↔ {', '.join(node.connections)}" if node.connections else ""
        print(f"    {bar} {node.weight:.2f} {node.memory_type.value:<10} | "
              f"{node.topic}{links}")
    print()


def main():
    logging.basicConfig(level=logging.WARNING)

    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    found = [
        Discovery(title="Telescopes and jazz clubs", search_topic="astronomy",
                  keywords=["jazz piano"]),
    ]
    config = MindConfig(memory=MemoryConfig(consolidation_interval=6 * HOUR))
    mind = CuriousMind(db_path, config=config, seed=7, discoveries=lambda: found)

    header("CURIO-MIND: A Curious Day")

    # ── Day 1, morning ─────────────────────────────────────────────────

    header("DAY 1 — Things catch its attention")

    t = 0.0
    for topic in ("machine learning", "deep learning", "quantum physics",
                  "jazz piano", "astronomy", "medieval castles"):
        mind.add_interest(topic, now=t)
    mind.add_interest("machine learning", 0.2, now=t)
    mind.tick(now=t)

    show(mind, "Morning — fresh interests")

    # ── Explore with an evolved strategy ───────────────────────────────

    header("DAY 1 — Exploring")

    for hour in range(1, 6):
        t = hour * HOUR
        genome = mind.select_strategy()
        plan = mind.apply_strategy(genome)
        topic = plan.select_topic(mind.get_interests_sorted(), now=t)
        mind.add_interest(topic, 0.15, now=t)
        outcome = Outcome(discoveries=plan.result_limit() // 3,
                          new_connections=int(plan.should_follow_connection()))
        fitness = mind.record_outcome(genome, outcome, now=t)
        print(f"  {hour:>2}h  {genome.id}  explored {topic!r:<22} fitness={fitness:.2f}")
    print()

    # ── Night ──────────────────────────────────────────────────────────

    header("NIGHT — Consolidate and dream")

    t = 7 * HOUR
    report = mind.tick(now=t)
    if report.consolidation is not None:
        promoted = [topic for topic, _ in report.consolidation.promoted]
        print(f"  Promoted to long-term: {promoted or 'nothing'}")

    result = mind.dream(now=t)
    if result.success:
        session = result.session
        for conn in session.new_connections:
            print(f"  Dreamed a link: {conn.source} ↔ {conn.target} "
                  f"(similarity {conn.similarity:.2f})")
        for insight in session.insights:
            print(f"  Insight: {insight.message}")
    print()

    evolution = mind.evolve(now=t)
    print(f"  Strategies evolved to generation {evolution.generation}; "
          f"best fitness {evolution.best.fitness:.2f}\n")

    show(mind, "After the night")

    # ── Days later ─────────────────────────────────────────────────────

    header("DAY 3 — Idle interests fade")

    report = mind.tick(now=60 * HOUR)
    print(f"  Forgotten: {report.decay.removed or 'nothing'}\n")
    show(mind, "Survivors")

    mind.save()
    print(f"  Saved to {db_path}")
    print(f"  {mind!r}\n")

    mind.close()
    os.unlink(db_path)


if __name__ == "__main__":
    main()
