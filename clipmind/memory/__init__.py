"""
Memory System
=============

Tiered session memory behind a single facade:

1. SHORT-TERM: Recent turns per session, bounded and TTL-filtered (RAM)
2. WORKING: Per-session scratchpad, FIFO-bounded (RAM)
3. LONG-TERM: Embedded records searchable by meaning (vector index)
4. COMPRESSED: Digests of long sessions, kept in long-term storage

The MemoryManager is created once and injected into the Orchestrator;
nothing in this package keeps module-level session state.

Usage:
    from clipmind.memory import MemoryManager, Memory

    memory = MemoryManager.from_config(config, embedder)

    await memory.store(Memory(session_id="s1", content="Hello!", role="user"))
    related = await memory.retrieve("Hello!", session_id="s1", top_k=5)
    history = memory.get_session_history("s1", limit=20)
"""

import asyncio
import threading
import uuid
from datetime import datetime, timedelta

from clipmind.errors import MemoryPersistError
from clipmind.memory.compressor import Compressor
from clipmind.memory.embeddings import EmbeddingGenerator
from clipmind.memory.long_term import LongTermStore, MetadataStore
from clipmind.memory.models import Memory, MemoryType
from clipmind.memory.recall import rank
from clipmind.memory.short_term import ShortTermStore
from clipmind.memory.vectorstore import VectorIndex
from clipmind.memory.working import WorkingStore
from clipmind.utils.logger import Logger

logger = Logger("Memory")

COMPRESSED_IMPORTANCE = 0.9


class MemoryManager:
    """
    Facade for the tiered memory system.

    Routing on store:
    - `working` memories go to the WorkingStore only
    - everything else goes to the ShortTermStore
    - memories with importance > 0.7 are also written to the LongTermStore

    Every `compression_threshold` short-term writes to a session, the
    session's short-term entries are folded into one compressed digest
    and written to long-term storage.

    Example:
        memory = MemoryManager(ShortTermStore(), WorkingStore(), long_term_store)

        await memory.store(Memory(session_id="s1", content="Hi", role="user"))
        await memory.retrieve("Hi", "s1", top_k=5)
        memory.clear_session("s1")
    """

    def __init__(
        self,
        short_term: ShortTermStore,
        working: WorkingStore,
        long_term: LongTermStore,
        compressor: Compressor | None = None,
        compression_threshold: int = 10,
        long_term_timeout: float | None = 30.0,
    ):
        """
        Args:
            short_term: Recent-turn store
            working: Scratchpad store
            long_term: Embedding-backed durable store
            compressor: Digest builder (defaults to the template compressor)
            compression_threshold: Short-term size that triggers compression
            long_term_timeout: Seconds allowed for each long-term store/search
        """
        self.short_term = short_term
        self.working = working
        self.long_term = long_term
        self.compressor = compressor or Compressor()
        self.compression_threshold = compression_threshold
        self.long_term_timeout = long_term_timeout

        # session_id -> short-term writes since the last compression
        self._pending: dict[str, int] = {}
        self._pending_lock = threading.Lock()

        logger.info("Memory system initialized")

    @classmethod
    def from_config(cls, config, embedder: EmbeddingGenerator) -> "MemoryManager":
        """Build all tiers from the application config."""
        memory_config = config.memory
        return cls(
            short_term=ShortTermStore(
                max_items=memory_config.short_term_max_items,
                ttl=timedelta(hours=memory_config.short_term_ttl_hours),
            ),
            working=WorkingStore(max_size=memory_config.working_max_size),
            long_term=LongTermStore(
                VectorIndex(memory_config.vector_store_dir),
                MetadataStore(),
                embedder,
            ),
            compression_threshold=memory_config.compression_threshold,
            long_term_timeout=config.pipeline.long_term_timeout_seconds,
        )

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def store(self, memory: Memory) -> Memory:
        """
        Store a memory in the tiers its type and importance call for.

        Assigns an id and creation time when absent.

        Returns:
            The stored memory (with id and timestamps set)

        Raises:
            MemoryPersistError: If the long-term write fails. The short-term
                write has already happened at that point.
        """
        if not memory.id:
            memory.id = str(uuid.uuid4())
        if memory.created_at is None:
            memory.created_at = datetime.now()
        if memory.accessed_at is None:
            memory.accessed_at = memory.created_at

        if memory.type == MemoryType.WORKING:
            self.working.set(memory.session_id, memory.id, memory)
            logger.debug("Stored working memory", {"session_id": memory.session_id})
            return memory

        self.short_term.set(memory)

        if memory.should_promote:
            await self._store_long_term(memory)

        if self._should_compress(memory.session_id):
            try:
                await self.compress(memory.session_id)
            except MemoryPersistError as e:
                logger.warning(f"Compression skipped for {memory.session_id}: {e}")

        return memory

    async def _store_long_term(self, memory: Memory) -> None:
        try:
            await asyncio.wait_for(self.long_term.store(memory), timeout=self.long_term_timeout)
        except asyncio.TimeoutError as e:
            raise MemoryPersistError(f"Long-term store timed out for {memory.id}") from e

    def _should_compress(self, session_id: str) -> bool:
        with self._pending_lock:
            count = self._pending.get(session_id, 0) + 1
            if count >= self.compression_threshold:
                self._pending[session_id] = 0
                return True
            self._pending[session_id] = count
            return False

    async def compress(self, session_id: str) -> Memory | None:
        """
        Fold a session's short-term entries into one long-term digest.

        Returns:
            The compressed memory, or None if the session is below the
            threshold
        """
        memories = self.short_term.get(session_id)
        if len(memories) < self.compression_threshold:
            return None

        digest = Memory(
            id=str(uuid.uuid4()),
            session_id=session_id,
            type=MemoryType.COMPRESSED,
            role="system",
            content=self.compressor.compress(memories),
            importance=COMPRESSED_IMPORTANCE,
            created_at=datetime.now(),
            metadata={"source_count": len(memories)},
        )
        digest.accessed_at = digest.created_at

        await self._store_long_term(digest)
        logger.info(f"Compressed {len(memories)} memories", {"session_id": session_id})
        return digest

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def retrieve(self, query: str, session_id: str, top_k: int = 5) -> list[Memory]:
        """
        Gather candidates from every tier and return the best `top_k`.

        Long-term search failures are logged and the remaining tiers are
        still ranked.
        """
        candidates: list[Memory] = []

        for key, value in self.working.get_all(session_id).items():
            if isinstance(value, Memory):
                candidates.append(value)
            else:
                candidates.append(Memory(
                    id=key,
                    session_id=session_id,
                    type=MemoryType.WORKING,
                    content=str(value),
                ))

        candidates.extend(self.short_term.get(session_id))

        try:
            candidates.extend(await asyncio.wait_for(
                self.long_term.search(query, session_id=session_id, top_k=top_k),
                timeout=self.long_term_timeout,
            ))
        except asyncio.TimeoutError:
            logger.warning("Long-term search timed out", {"session_id": session_id})
        except Exception as e:
            logger.error("Long-term search failed", e)

        return rank(candidates, query, top_k)

    def get_session_history(self, session_id: str, limit: int = 20) -> list[Memory]:
        """Last `limit` short-term entries of a session, oldest first."""
        memories = self.short_term.get(session_id)
        if limit <= 0:
            return []
        return memories[-limit:]

    # ==========================================================================
    # Maintenance
    # ==========================================================================

    def clear_session(self, session_id: str) -> None:
        """Drop a session's short-term and working memory. Long-term stays."""
        self.short_term.clear(session_id)
        self.working.clear(session_id)
        with self._pending_lock:
            self._pending.pop(session_id, None)
        logger.info(f"Cleared session {session_id}")

    def sweep(self) -> int:
        """Remove expired short-term entries across all sessions."""
        removed = self.short_term.sweep()
        if removed:
            logger.debug(f"Swept {removed} expired short-term memories")
        return removed

    def sessions(self) -> list[str]:
        return self.short_term.session_ids()


__all__ = [
    "MemoryManager",
    "Memory",
    "MemoryType",
    "ShortTermStore",
    "WorkingStore",
    "LongTermStore",
    "MetadataStore",
    "VectorIndex",
    "EmbeddingGenerator",
    "Compressor",
]
