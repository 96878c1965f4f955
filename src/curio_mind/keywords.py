"""Keyword extraction and overlap. No NLP, just tokens."""

from __future__ import annotations

from typing import Iterable

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at",
    "to", "for", "of", "with", "by",
})

MIN_TOKEN_LENGTH = 3


def normalize_topic(topic: str) -> str:
    return topic.lower().strip()


def extract_keywords(topic: str) -> frozenset[str]:
    """Lower-case, split on whitespace, drop short tokens and stop words."""
    return frozenset(
        word for word in topic.lower().split()
        if len(word) >= MIN_TOKEN_LENGTH and word not in STOP_WORDS
    )


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    """Jaccard index. 0.0 when either side is empty."""
    set_a, set_b = set(a), set(b)
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)
