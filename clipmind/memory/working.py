"""
Working Memory
==============

Per-session key-value scratchpad.

Working memory holds values that only matter for the current pipeline run
or a short user session: intermediate results, `working`-typed memories,
notes a stage wants to hand to a later turn. It is never persisted.

Eviction:
    Each session holds at most `max_size` keys. When a new key would
    exceed that, the key inserted earliest is evicted (FIFO). Updating an
    existing key keeps its original position.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class WorkingNote:
    """A single scratchpad entry."""
    key: str
    value: Any
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


class WorkingStore:
    """
    Bounded per-session scratchpad with FIFO eviction.

    Example:
        wm = WorkingStore(max_size=100)

        wm.set("s1", "current_video", "BV1234567890")
        wm.get("s1", "current_video")   # "BV1234567890"
        wm.get_all("s1")                # {"current_video": "BV1234567890"}
        wm.clear("s1")
    """

    def __init__(self, max_size: int = 100):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")

        self.max_size = max_size
        # session_id -> {key: note}; dicts preserve insertion order
        self._storage: dict[str, dict[str, WorkingNote]] = {}
        self._lock = threading.Lock()

    def set(self, session_id: str, key: str, value: Any) -> None:
        """Store or update a value, evicting the oldest key if over capacity."""
        with self._lock:
            notes = self._storage.setdefault(session_id, {})

            if key in notes:
                note = notes[key]
                note.value = value
                note.updated_at = datetime.now()
                return

            notes[key] = WorkingNote(key=key, value=value)

            while len(notes) > self.max_size:
                oldest = next(iter(notes))
                del notes[oldest]

    def get(self, session_id: str, key: str) -> Any | None:
        with self._lock:
            note = self._storage.get(session_id, {}).get(key)
            return note.value if note else None

    def get_all(self, session_id: str) -> dict[str, Any]:
        """Copy of all values for a session, in insertion order."""
        with self._lock:
            notes = self._storage.get(session_id, {})
            return {key: note.value for key, note in notes.items()}

    def delete(self, session_id: str, key: str) -> bool:
        """
        Returns:
            True if the key existed and was deleted
        """
        with self._lock:
            notes = self._storage.get(session_id)
            if notes is None or key not in notes:
                return False
            del notes[key]
            return True

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._storage.pop(session_id, None)

    def size(self, session_id: str) -> int:
        with self._lock:
            return len(self._storage.get(session_id, {}))
