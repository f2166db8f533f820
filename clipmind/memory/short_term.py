"""
Short-Term Memory
=================

In-memory, per-session ring of recent memories.

- Holds at most `max_items` memories per session (oldest dropped first)
- Every entry shares one TTL; expiry is lazy: `get` filters out expired
  entries and rewrites the session's list before returning
- Lives only in RAM (cleared on restart)

Concurrency:
    All access to the session map goes through a single lock. Each
    operation is a short critical section, so concurrent requests for the
    same session never observe a half-written list.
"""

import threading
from datetime import datetime, timedelta

from clipmind.memory.models import Memory


class ShortTermStore:
    """
    Bounded, TTL-filtered conversation memory per session.

    Example:
        stm = ShortTermStore(max_items=50, ttl=timedelta(hours=24))

        stm.set(Memory(session_id="s1", content="Hello", role="user"))
        recent = stm.get("s1")

        stm.clear("s1")
    """

    def __init__(self, max_items: int = 1000, ttl: timedelta = timedelta(hours=24)):
        """
        Args:
            max_items: Maximum memories kept per session
            ttl: Age after which an entry is no longer returned
        """
        if max_items < 1:
            raise ValueError("max_items must be at least 1")

        self.max_items = max_items
        self.ttl = ttl
        # session_id -> memories, oldest first
        self._store: dict[str, list[Memory]] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> list[Memory]:
        """
        Get a session's unexpired memories, oldest first.

        Expired entries are removed from the backing list as a side effect.
        """
        with self._lock:
            memories = self._store.get(session_id)
            if memories is None:
                return []

            valid = self._unexpired(memories, datetime.now())
            if valid:
                self._store[session_id] = valid
            else:
                del self._store[session_id]
            return list(valid)

    def set(self, memory: Memory) -> None:
        """Append a memory, keeping only the most recent `max_items`."""
        with self._lock:
            memories = self._store.setdefault(memory.session_id, [])
            memories.append(memory)

            if len(memories) > self.max_items:
                self._store[memory.session_id] = memories[-self.max_items:]

    def count(self, session_id: str) -> int:
        """Number of stored entries, including any not yet swept."""
        with self._lock:
            return len(self._store.get(session_id, []))

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._store.pop(session_id, None)

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._store.keys())

    def sweep(self) -> int:
        """
        Remove expired entries across all sessions.

        Returns:
            Number of entries removed
        """
        removed = 0
        now = datetime.now()
        with self._lock:
            for session_id in list(self._store.keys()):
                memories = self._store[session_id]
                valid = self._unexpired(memories, now)
                removed += len(memories) - len(valid)
                if valid:
                    self._store[session_id] = valid
                else:
                    del self._store[session_id]
        return removed

    def _unexpired(self, memories: list[Memory], now: datetime) -> list[Memory]:
        valid = []
        for memory in memories:
            ttl = memory.ttl if memory.ttl is not None else self.ttl
            if memory.age(now) < ttl:
                valid.append(memory)
        return valid
