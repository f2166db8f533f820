"""Tests for intent recognition and routing."""

import pytest

from clipmind.agent.intent import (
    IntentClassifier,
    IntentType,
    extract_entities,
    extract_json_object,
    extract_video_id,
    rule_based_classify,
)
from clipmind.agent.router import (
    BRANCH_GENERAL_CHAT,
    BRANCH_KNOWLEDGE,
    BRANCH_TOOL_AUGMENTED,
    route,
    uses_tools,
)
from clipmind.errors import LLMConnectionError

from conftest import FakeLLM


class TestVideoIdExtraction:

    def test_bv_id_is_normalized(self):
        assert extract_video_id("analyze bv1234567890 please") == "BV1234567890"

    def test_bv_suffix_case_is_preserved(self):
        assert extract_video_id("analyze bv1xT4y1k7Qa please") == "BV1xT4y1k7Qa"

    def test_numeric_id_fallback(self):
        assert extract_video_id("video 170001234 stats") == "170001234"

    def test_short_numbers_are_ignored(self):
        assert extract_video_id("top 10 videos of 2024") is None

    def test_bv_wins_over_numeric(self):
        assert extract_video_id("12345678 or BV1234567890") == "BV1234567890"

    def test_entities_include_urls(self):
        entities = extract_entities("see https://example.com/video/BV1234567890")

        assert [e.type for e in entities] == ["video_id", "url"]


class TestRuleBasedClassify:

    @pytest.mark.parametrize("query, expected", [
        ("分析视频 BV1234567890", IntentType.VIDEO_ANALYSIS),
        ("推荐一些类似的视频", IntentType.RECOMMENDATION),
        ("Show my weekly report", IntentType.WEEKLY_REPORT),
        ("这个选题怎么样", IntentType.TOPIC_ANALYSIS),
        ("什么是完播率", IntentType.KNOWLEDGE_QA),
        ("hello!", IntentType.GENERAL_CHAT),
    ])
    def test_keyword_categories(self, query, expected):
        assert rule_based_classify(query).type == expected

    def test_confidences(self):
        assert rule_based_classify("分析视频").confidence == 0.8
        assert rule_based_classify("what is a CTR").confidence == 0.7
        assert rule_based_classify("hello").confidence == 0.5

    def test_source_is_rules(self):
        assert rule_based_classify("hello").source == "rules"


class TestExtractJsonObject:

    def test_fenced_json(self):
        assert extract_json_object('```json\n{"type": "general_chat"}\n```') == {"type": "general_chat"}

    def test_no_object(self):
        with pytest.raises(ValueError):
            extract_json_object("I cannot classify that")


class TestIntentClassifier:

    @pytest.mark.asyncio
    async def test_confident_llm_result_is_used(self):
        llm = FakeLLM(['{"type": "recommendation", "confidence": 0.92}'])

        intent = await IntentClassifier(llm).recognize("find me something to watch")

        assert intent.type == IntentType.RECOMMENDATION
        assert intent.confidence == 0.92
        assert intent.source == "llm"

    @pytest.mark.asyncio
    async def test_low_confidence_defers_to_more_confident_rules(self):
        llm = FakeLLM(['{"type": "general_chat", "confidence": 0.3}'])

        intent = await IntentClassifier(llm).recognize("分析视频 BV1234567890")

        assert intent.type == IntentType.VIDEO_ANALYSIS
        assert intent.confidence == 0.8
        assert intent.source == "rules"
        assert intent.entity("video_id") == "BV1234567890"

    @pytest.mark.asyncio
    async def test_low_confidence_kept_when_rules_are_weaker(self):
        llm = FakeLLM(['{"type": "trend_tracking", "confidence": 0.6}'])

        intent = await IntentClassifier(llm).recognize("hmm")

        assert intent.type == IntentType.TREND_TRACKING
        assert intent.source == "llm"

    @pytest.mark.asyncio
    async def test_llm_failure_falls_back_to_rules(self):
        llm = FakeLLM([LLMConnectionError("down")])

        intent = await IntentClassifier(llm).recognize("分析视频 BV1234567890")

        assert intent.type == IntentType.VIDEO_ANALYSIS
        assert intent.source == "rules"

    @pytest.mark.asyncio
    async def test_unparsable_output_falls_back_to_rules(self):
        llm = FakeLLM(["video analysis, definitely"])

        intent = await IntentClassifier(llm).recognize("hello")

        assert intent.type == IntentType.GENERAL_CHAT
        assert intent.source == "rules"

    @pytest.mark.asyncio
    async def test_timeout_falls_back_to_rules(self):
        llm = FakeLLM(['{"type": "recommendation", "confidence": 0.9}'], delay=1.0)

        intent = await IntentClassifier(llm, timeout=0.05).recognize("推荐视频")

        assert intent.source == "rules"
        assert intent.type == IntentType.RECOMMENDATION

    @pytest.mark.asyncio
    async def test_unknown_label_becomes_general_chat(self):
        llm = FakeLLM(['{"type": "dance_party", "confidence": 0.9}'])

        intent = await IntentClassifier(llm).recognize("let's dance")

        assert intent.type == IntentType.GENERAL_CHAT
        assert intent.confidence == 0.9

    @pytest.mark.asyncio
    async def test_confidence_is_clamped(self):
        llm = FakeLLM(['{"type": "recommendation", "confidence": 7}'])

        intent = await IntentClassifier(llm).recognize("recommend")

        assert intent.confidence == 1.0


class TestRouter:

    def test_every_intent_has_a_branch(self):
        for intent_type in IntentType:
            assert route(intent_type) in (BRANCH_KNOWLEDGE, BRANCH_TOOL_AUGMENTED, BRANCH_GENERAL_CHAT)

    def test_branches(self):
        assert route(IntentType.VIDEO_ANALYSIS) == BRANCH_TOOL_AUGMENTED
        assert route(IntentType.KNOWLEDGE_QA) == BRANCH_KNOWLEDGE
        assert route(IntentType.KNOWLEDGE_BASE) == BRANCH_KNOWLEDGE
        assert route(IntentType.GENERAL_CHAT) == BRANCH_GENERAL_CHAT

    def test_unknown_label_routes_to_general_chat(self):
        assert route("not_an_intent") == BRANCH_GENERAL_CHAT

    def test_uses_tools(self):
        assert uses_tools(BRANCH_TOOL_AUGMENTED)
        assert uses_tools(BRANCH_KNOWLEDGE)
        assert not uses_tools(BRANCH_GENERAL_CHAT)
