"""
Memory Records
==============

The single record type shared by every memory tier.

A Memory is written twice per conversational turn (user message and
assistant reply). Where it lands depends on its type and importance:

    type=working           -> WorkingStore only
    anything else          -> ShortTermStore
    importance > 0.7       -> additionally LongTermStore
    type=compressed        -> LongTermStore (written by the compressor)
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any


# Memories above this importance are promoted to long-term storage
LONG_TERM_IMPORTANCE_THRESHOLD = 0.7


class MemoryType(str, Enum):
    """Which tier a memory belongs to."""
    SHORT_TERM = "short_term"
    WORKING = "working"
    LONG_TERM = "long_term"
    COMPRESSED = "compressed"


@dataclass
class Memory:
    """
    A single remembered item.

    Attributes:
        id: Unique identifier (assigned by MemoryManager.store if empty)
        session_id: Conversation this memory belongs to
        type: Tier classification
        role: "user", "assistant" or "system"
        content: The remembered text
        embedding: Vector for long-term search (generated lazily)
        metadata: Free-form tags (intent, branch, user_id, ...)
        importance: 0..1, drives long-term promotion and retrieval ranking
        created_at: Creation time (assigned by MemoryManager.store if None)
        accessed_at: Last retrieval time, used for relevance decay
        access_count: Number of times returned by a search
        ttl: Optional per-record lifetime
    """
    session_id: str
    content: str
    type: MemoryType = MemoryType.SHORT_TERM
    role: str = "user"
    id: str = ""
    embedding: list[float] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    importance: float = 0.5
    created_at: datetime | None = None
    accessed_at: datetime | None = None
    access_count: int = 0
    ttl: timedelta | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.importance <= 1.0:
            raise ValueError(f"importance must be within [0, 1], got {self.importance}")

    @property
    def should_promote(self) -> bool:
        """True if this memory also belongs in long-term storage."""
        return self.importance > LONG_TERM_IMPORTANCE_THRESHOLD

    def touch(self) -> None:
        """Record an access."""
        self.accessed_at = datetime.now()
        self.access_count += 1

    def age(self, now: datetime | None = None) -> timedelta:
        """Time since creation (zero if never stamped)."""
        if self.created_at is None:
            return timedelta(0)
        return (now or datetime.now()) - self.created_at

    def to_dict(self) -> dict:
        """Serializable form without the embedding vector."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "type": self.type.value,
            "role": self.role,
            "content": self.content,
            "metadata": self.metadata,
            "importance": self.importance,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "accessed_at": self.accessed_at.isoformat() if self.accessed_at else None,
            "access_count": self.access_count,
        }
