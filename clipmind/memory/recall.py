"""
Memory Recall Scoring
=====================

Ranks candidate memories gathered from every tier for a query.

    score = relevance(memory, query) * importance

    relevance = 1.0                               exact content match
              = 0.5 * exp(-hours_since_access / 24)  otherwise

Relevance is deliberately cheap: long-term candidates have already been
picked by semantic search, so the ranking only has to order them against
recent short-term and working entries. A memory that was never accessed
decays from its creation time.
"""

import math
from datetime import datetime

from clipmind.memory.models import Memory

EXACT_MATCH_RELEVANCE = 1.0
BASE_RELEVANCE = 0.5
DECAY_HOURS = 24.0


def relevance(memory: Memory, query: str, now: datetime | None = None) -> float:
    if memory.content == query:
        return EXACT_MATCH_RELEVANCE

    last_seen = memory.accessed_at or memory.created_at
    if last_seen is None:
        return BASE_RELEVANCE

    hours = max(((now or datetime.now()) - last_seen).total_seconds() / 3600, 0.0)
    return BASE_RELEVANCE * math.exp(-hours / DECAY_HOURS)


def score(memory: Memory, query: str, now: datetime | None = None) -> float:
    return relevance(memory, query, now) * memory.importance


def rank(
    candidates: list[Memory],
    query: str,
    top_k: int,
    now: datetime | None = None,
) -> list[Memory]:
    """
    Dedupe candidates by id, sort by score (highest first), keep `top_k`.

    The sort is stable, so ties keep tier order (working, short-term,
    long-term).
    """
    now = now or datetime.now()
    seen: set[str] = set()
    unique: list[Memory] = []
    for memory in candidates:
        if memory.id in seen:
            continue
        seen.add(memory.id)
        unique.append(memory)

    unique.sort(key=lambda m: score(m, query, now), reverse=True)
    return unique[:max(top_k, 0)]
