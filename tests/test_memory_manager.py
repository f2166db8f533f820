"""Tests for the MemoryManager facade and the long-term tier."""

from datetime import datetime, timedelta

import pytest

from clipmind.errors import MemoryPersistError
from clipmind.memory.compressor import Compressor
from clipmind.memory.models import Memory, MemoryType
from clipmind.memory.recall import rank, relevance
from clipmind.memory.vectorstore import VectorIndex

from conftest import FakeEmbedder, build_memory


class TestMemoryModel:

    def test_importance_out_of_range_is_rejected(self):
        with pytest.raises(ValueError):
            Memory(session_id="s1", content="x", importance=1.5)

    def test_promotion_threshold_is_exclusive(self):
        assert Memory(session_id="s1", content="x", importance=0.71).should_promote
        assert not Memory(session_id="s1", content="x", importance=0.7).should_promote


class TestStore:

    @pytest.mark.asyncio
    async def test_assigns_id_and_timestamps(self, memory):
        stored = await memory.store(Memory(session_id="s1", content="hi"))

        assert stored.id
        assert stored.created_at is not None
        assert stored.accessed_at == stored.created_at

    @pytest.mark.asyncio
    async def test_important_memory_is_promoted(self, memory):
        stored = await memory.store(Memory(session_id="s1", content="key fact", importance=0.71))

        assert memory.long_term.get(stored.id) is stored
        assert memory.short_term.get("s1") == [stored]

    @pytest.mark.asyncio
    async def test_ordinary_memory_stays_short_term(self, memory):
        stored = await memory.store(Memory(session_id="s1", content="chit chat", importance=0.69))

        assert memory.long_term.get(stored.id) is None
        assert memory.short_term.get("s1") == [stored]

    @pytest.mark.asyncio
    async def test_working_memory_goes_to_working_store_only(self, memory):
        stored = await memory.store(Memory(
            session_id="s1",
            content="draft title",
            type=MemoryType.WORKING,
            importance=0.9,
        ))

        assert memory.short_term.get("s1") == []
        assert memory.long_term.get(stored.id) is None
        assert memory.working.get("s1", stored.id) is stored

    @pytest.mark.asyncio
    async def test_long_term_failure_raises_after_short_term_write(self):
        memory = build_memory(FakeEmbedder(fail=True))

        with pytest.raises(MemoryPersistError):
            await memory.store(Memory(session_id="s1", content="key fact", importance=0.9))

        assert [m.content for m in memory.short_term.get("s1")] == ["key fact"]


class TestCompression:

    @pytest.mark.asyncio
    async def test_every_threshold_writes_compress_the_session(self):
        memory = build_memory(compression_threshold=3)
        for i in range(3):
            await memory.store(Memory(session_id="s1", content=f"turn {i}"))

        digests = memory.long_term.get_by_session("s1")
        assert len(digests) == 1
        assert digests[0].type == MemoryType.COMPRESSED
        assert digests[0].importance == 0.9
        assert digests[0].content.startswith("Session contains 3 memories. Main content:")
        assert "- turn 0" in digests[0].content

    @pytest.mark.asyncio
    async def test_below_threshold_nothing_is_compressed(self):
        memory = build_memory(compression_threshold=3)
        await memory.store(Memory(session_id="s1", content="turn"))

        assert await memory.compress("s1") is None
        assert memory.long_term.get_by_session("s1") == []

    def test_compressor_excerpts_first_three_and_truncates(self):
        memories = [Memory(session_id="s1", content=c) for c in ("a" * 150, "b", "c", "d")]
        digest = Compressor().compress(memories)

        lines = digest.split("\n")
        assert lines[0] == "Session contains 4 memories. Main content:"
        assert lines[1] == "- " + "a" * 100 + "..."
        assert lines[2:] == ["- b", "- c"]


class TestRetrieve:

    @pytest.mark.asyncio
    async def test_exact_match_ranks_first(self, memory):
        await memory.store(Memory(session_id="s1", content="something else", importance=0.9))
        await memory.store(Memory(session_id="s1", content="thumbnail tips", importance=0.5))

        results = await memory.retrieve("thumbnail tips", "s1", top_k=2)

        assert results[0].content == "thumbnail tips"
        assert len(results) == 2

    @pytest.mark.asyncio
    async def test_results_are_deduplicated(self, memory):
        # Promoted memories live in both short-term and long-term
        await memory.store(Memory(session_id="s1", content="key fact", importance=0.9))

        results = await memory.retrieve("key fact", "s1", top_k=5)

        assert len(results) == 1

    @pytest.mark.asyncio
    async def test_other_sessions_are_not_returned(self, memory):
        await memory.store(Memory(session_id="s2", content="private", importance=0.9))

        assert await memory.retrieve("private", "s1", top_k=5) == []

    @pytest.mark.asyncio
    async def test_long_term_failure_still_ranks_other_tiers(self):
        embedder = FakeEmbedder()
        memory = build_memory(embedder)
        await memory.store(Memory(session_id="s1", content="hello"))
        embedder.fail = True

        results = await memory.retrieve("hello", "s1")

        assert [m.content for m in results] == ["hello"]

    def test_relevance_decays_with_time(self):
        now = datetime.now()
        fresh = Memory(session_id="s1", content="x", accessed_at=now)
        stale = Memory(session_id="s1", content="x", accessed_at=now - timedelta(hours=24))

        assert relevance(fresh, "query", now) == pytest.approx(0.5)
        assert relevance(stale, "query", now) == pytest.approx(0.5 / 2.718281828, rel=1e-3)
        assert relevance(fresh, "x", now) == 1.0

    def test_rank_respects_top_k(self):
        now = datetime.now()
        candidates = [
            Memory(session_id="s1", content=str(i), id=str(i), importance=i / 10, created_at=now)
            for i in range(5)
        ]

        assert [m.id for m in rank(candidates, "q", top_k=2, now=now)] == ["4", "3"]


class TestSessions:

    @pytest.mark.asyncio
    async def test_history_is_limited_and_ordered(self, memory):
        for i in range(5):
            await memory.store(Memory(session_id="s1", content=f"m{i}"))

        assert [m.content for m in memory.get_session_history("s1", limit=2)] == ["m3", "m4"]

    @pytest.mark.asyncio
    async def test_clear_session_keeps_long_term(self, memory):
        stored = await memory.store(Memory(session_id="s1", content="key", importance=0.9))
        memory.clear_session("s1")

        assert memory.get_session_history("s1") == []
        assert memory.long_term.get(stored.id) is stored


class TestVectorIndex:

    @pytest.mark.asyncio
    async def test_search_orders_by_cosine_similarity(self):
        index = VectorIndex()
        await index.insert("x", [1.0, 0.0])
        await index.insert("y", [0.0, 1.0])
        await index.insert("xy", [1.0, 1.0])

        hits = await index.search([1.0, 0.1], top_k=2)

        assert [h.id for h in hits] == ["x", "xy"]

    @pytest.mark.asyncio
    async def test_dimension_mismatch_is_rejected(self):
        index = VectorIndex()
        await index.insert("a", [1.0, 0.0])

        with pytest.raises(ValueError):
            await index.insert("b", [1.0, 0.0, 0.0])

    @pytest.mark.asyncio
    async def test_delete(self):
        index = VectorIndex()
        await index.insert("a", [1.0, 0.0])

        assert await index.delete("a") is True
        assert await index.delete("a") is False
        assert len(index) == 0

    @pytest.mark.asyncio
    async def test_persists_to_directory(self, tmp_path):
        index = VectorIndex(tmp_path)
        await index.insert("a", [1.0, 0.0], {"session_id": "s1"})

        reloaded = VectorIndex(tmp_path)

        assert len(reloaded) == 1
        assert reloaded.metadata("a") == {"session_id": "s1"}
