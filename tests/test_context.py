"""Tests for token budgeting and context assembly."""

import json

import pytest

from clipmind.agent.context import ContextAssembler, ContextBuilder, estimate_tokens
from clipmind.agent.state import PipelineState
from clipmind.memory.models import Memory

# 20 ASCII bytes -> 15 estimated tokens
TWENTY_BYTES = "x" * 20


class TestEstimateTokens:

    def test_ascii(self):
        assert estimate_tokens(TWENTY_BYTES) == 15

    def test_counts_utf8_bytes(self):
        # Each CJK character is three bytes
        assert estimate_tokens("视频") == int(6 * 0.75)


class TestContextBuilder:

    def test_messages_within_budget_are_kept(self):
        builder = ContextBuilder(max_tokens=100)
        for _ in range(6):
            assert builder.add_message("user", TWENTY_BYTES)

        assert len(builder.build()) == 6
        assert builder.total_tokens == 90

    def test_overflow_folds_older_messages_into_summary(self):
        builder = ContextBuilder(max_tokens=100)
        for i in range(6):
            builder.add_message("user" if i % 2 == 0 else "assistant", TWENTY_BYTES)

        assert builder.add_message("user", TWENTY_BYTES)

        messages = builder.build()
        assert len(messages) == 5
        assert messages[0].role == "system"
        assert messages[0].content == "Earlier conversation summary: 3 messages"
        assert builder.total_tokens == sum(m.token_estimate for m in messages)
        assert builder.total_tokens <= 100

    def test_message_too_large_even_after_compression_is_rejected(self):
        builder = ContextBuilder(max_tokens=100)
        builder.add_message("user", TWENTY_BYTES)

        assert builder.add_message("user", "y" * 200) is False
        assert len(builder.build()) == 1

    def test_few_messages_are_never_compressed(self):
        builder = ContextBuilder(max_tokens=40)
        builder.add_message("user", TWENTY_BYTES)
        builder.add_message("user", TWENTY_BYTES)

        assert builder.add_message("user", TWENTY_BYTES) is False
        assert all(m.role == "user" for m in builder.build())

    def test_to_json(self):
        builder = ContextBuilder(max_tokens=100)
        builder.add_message("user", "hi")

        assert json.loads(builder.to_json()) == [
            {"role": "user", "content": "hi", "token_estimate": 1}
        ]


class TestContextAssembler:

    @pytest.mark.asyncio
    async def test_history_precedes_current_message(self, memory):
        await memory.store(Memory(session_id="s1", content="earlier question", role="user"))
        await memory.store(Memory(session_id="s1", content="earlier answer", role="assistant"))
        current = await memory.store(Memory(session_id="s1", content="new question", role="user"))

        state = PipelineState(session_id="s1", user_id="u1", original_message="new question")
        state.metadata["user_memory_id"] = current.id

        context = await ContextAssembler(memory).assemble(state, "SYSTEM")
        messages = context.to_openai_messages()

        assert messages[0]["role"] == "system"
        assert messages[0]["content"].startswith("SYSTEM")
        assert [m["content"] for m in messages[1:]] == [
            "earlier question", "earlier answer", "new question",
        ]

    @pytest.mark.asyncio
    async def test_related_memories_are_added_to_system_message(self, memory):
        # A promoted memory from a session whose short-term entries are gone
        await memory.store(Memory(session_id="s1", content="channel is about cooking", importance=0.9))
        memory.short_term.clear("s1")

        state = PipelineState(session_id="s1", user_id="u1", original_message="ideas?")
        context = await ContextAssembler(memory).assemble(state, "SYSTEM")

        assert "## Relevant Memory" in context.system_message
        assert "- channel is about cooking" in context.system_message
        assert [m.content for m in context.related] == ["channel is about cooking"]
