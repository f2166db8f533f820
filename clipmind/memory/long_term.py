"""
Long-Term Memory
================

Durable, semantically searchable memory.

Long-term memory holds two kinds of records:
- Turns whose importance is above the promotion threshold
- Compressed session digests (importance 0.9)

Storage is split in two collaborators:

    VectorIndex     id -> embedding (+ session tag), cosine search
    MetadataStore   id -> full Memory record

Search asks the index for twice as many candidates as requested, since
the index is shared across sessions and some hits will belong to other
conversations. The candidates are then filtered to the requested session
and cut to `top_k`.
"""

import threading
from datetime import datetime
from typing import Protocol

from clipmind.errors import MemoryPersistError
from clipmind.memory.models import Memory
from clipmind.memory.vectorstore import VectorIndex
from clipmind.utils.logger import Logger

logger = Logger("LongTermMemory")


class Embedder(Protocol):
    async def generate(self, text: str) -> list[float]: ...


class MetadataStore:
    """Thread-safe id -> Memory map."""

    def __init__(self):
        self._records: dict[str, Memory] = {}
        self._lock = threading.Lock()

    def save(self, memory: Memory) -> None:
        with self._lock:
            self._records[memory.id] = memory

    def get(self, id: str) -> Memory | None:
        with self._lock:
            return self._records.get(id)

    def delete(self, id: str) -> bool:
        with self._lock:
            return self._records.pop(id, None) is not None

    def by_session(self, session_id: str) -> list[Memory]:
        with self._lock:
            return [m for m in self._records.values() if m.session_id == session_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class LongTermStore:
    """
    Embedding-backed memory store.

    Example:
        ltm = LongTermStore(VectorIndex(), MetadataStore(), embedder)

        await ltm.store(memory)
        related = await ltm.search("editing tips", session_id="s1", top_k=5)
    """

    def __init__(
        self,
        vector_index: VectorIndex,
        metadata_store: MetadataStore,
        embedder: Embedder,
    ):
        self.vector_index = vector_index
        self.metadata_store = metadata_store
        self.embedder = embedder

    async def store(self, memory: Memory) -> None:
        """
        Persist a memory, embedding its content first if needed.

        Raises:
            MemoryPersistError: If embedding or indexing fails
        """
        try:
            if memory.embedding is None:
                memory.embedding = await self.embedder.generate(memory.content)

            await self.vector_index.insert(
                memory.id,
                memory.embedding,
                {"session_id": memory.session_id, "type": memory.type.value},
            )
        except MemoryPersistError:
            raise
        except Exception as e:
            raise MemoryPersistError(f"Long-term store failed for {memory.id}: {e}") from e

        self.metadata_store.save(memory)
        logger.debug("Stored long-term memory", {"id": memory.id, "session_id": memory.session_id})

    async def search(
        self,
        query: str,
        session_id: str | None = None,
        top_k: int = 5,
    ) -> list[Memory]:
        """
        Semantic search, optionally restricted to one session.

        Every returned memory has its access time and count bumped.
        """
        if top_k <= 0:
            return []

        vector = await self.embedder.generate(query)
        hits = await self.vector_index.search(vector, top_k * 2)

        results: list[Memory] = []
        for hit in hits:
            memory = self.metadata_store.get(hit.id)
            if memory is None:
                continue
            if session_id is not None and memory.session_id != session_id:
                continue
            results.append(memory)
            if len(results) == top_k:
                break

        for memory in results:
            memory.touch()

        return results

    async def delete(self, id: str) -> bool:
        removed = await self.vector_index.delete(id)
        return self.metadata_store.delete(id) or removed

    def get(self, id: str) -> Memory | None:
        return self.metadata_store.get(id)

    def get_by_session(self, session_id: str) -> list[Memory]:
        """All long-term memories of a session, oldest first."""
        memories = self.metadata_store.by_session(session_id)
        return sorted(memories, key=lambda m: m.created_at or datetime.min)
