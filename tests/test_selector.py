"""Tests for tool selection and parameter repair."""

import json

import pytest

from clipmind.agent.intent import Intent, IntentType
from clipmind.agent.selector import ToolSelector, parse_selection, repair_params
from clipmind.agent.state import PipelineState
from clipmind.errors import LLMError, ProtocolError, ToolSelectionError
from clipmind.tools import ToolCatalog, ToolSpec

from conftest import FakeLLM, FakeToolClient, VIDEO_TOOLS


def _state(message="分析视频 BV1234567890", intent_type=IntentType.VIDEO_ANALYSIS) -> PipelineState:
    state = PipelineState(session_id="s1", user_id="u1", original_message=message)
    state.intent = Intent(intent_type, 0.9, message)
    return state


def _selection(*tools) -> str:
    return json.dumps({"tools": list(tools)}, ensure_ascii=False)


VIDEO_INFO = ToolSpec(
    name="get_video_info",
    parameters={
        "type": "object",
        "properties": {"video_id": {"type": "string"}},
        "required": ["video_id"],
    },
)


class TestRepairParams:

    def test_placeholder_key_is_renamed(self):
        assert repair_params({"参数值": "BV1234567890"}, VIDEO_INFO, None) == {"video_id": "BV1234567890"}

    def test_bvid_is_renamed(self):
        assert repair_params({"bvid": "BV1234567890"}, VIDEO_INFO, None) == {"video_id": "BV1234567890"}

    def test_real_value_wins_over_placeholder(self):
        repaired = repair_params({"video_id": "BVreal000000", "param": "BVfake000000"}, VIDEO_INFO, None)

        assert repaired == {"video_id": "BVreal000000"}

    def test_extracted_id_is_injected(self):
        assert repair_params({}, VIDEO_INFO, "BV1234567890") == {"video_id": "BV1234567890"}

    def test_no_injection_for_tools_without_video_id(self):
        search = ToolSpec(
            name="search_videos",
            parameters={"type": "object", "properties": {"keyword": {"type": "string"}}, "required": ["keyword"]},
        )

        assert repair_params({"value": "cooking"}, search, "BV1234567890") == {"keyword": "cooking"}

    def test_schema_keys_are_not_treated_as_placeholders(self):
        lookup = ToolSpec(
            name="lookup",
            parameters={"type": "object", "properties": {"id": {"type": "string"}}, "required": ["id"]},
        )

        assert repair_params({"id": "42"}, lookup, None) == {"id": "42"}

    def test_prompt_example_keys_are_renamed(self):
        repaired = repair_params({"<parameter name>": "BV1234567890"}, VIDEO_INFO, None)

        assert repaired == {"video_id": "BV1234567890"}

    def test_undeclared_key_moves_to_required_param(self):
        search = ToolSpec(
            name="search_videos",
            parameters={"type": "object", "properties": {"keyword": {"type": "string"}}, "required": ["keyword"]},
        )

        assert repair_params({"query": "cooking"}, search, "BV1234567890") == {"keyword": "cooking"}

    def test_schemaless_tool_keeps_its_params(self):
        free_form = ToolSpec(name="ping", parameters={"type": "object"})

        assert repair_params({"host": "example.com"}, free_form, None) == {"host": "example.com"}


class TestParseSelection:

    def test_missing_tools_list(self):
        with pytest.raises(ToolSelectionError):
            parse_selection('{"selection": []}')

    def test_non_json(self):
        with pytest.raises(ToolSelectionError):
            parse_selection("call get_video_info")


class TestToolSelector:

    @pytest.mark.asyncio
    async def test_selects_and_repairs(self, catalog):
        llm = FakeLLM([_selection(
            {"name": "get_video_info", "params": {"参数值": "BV1234567890"}, "reason": "stats", "confidence": 0.9},
        )])

        selections = await ToolSelector(llm, catalog).select_tools(_state())

        assert len(selections) == 1
        assert selections[0].name == "get_video_info"
        assert selections[0].params == {"video_id": "BV1234567890"}
        assert selections[0].confidence == 0.9

    @pytest.mark.asyncio
    async def test_copied_prompt_example_is_repaired(self, catalog):
        llm = FakeLLM([_selection(
            {"name": "get_video_info", "params": {"<parameter name>": "BV1234567890"}},
            {"name": "search_videos", "params": {"<parameter value>": "cooking"}},
        )])

        selections = await ToolSelector(llm, catalog).select_tools(_state())

        assert [s.params for s in selections] == [
            {"video_id": "BV1234567890"},
            {"keyword": "cooking"},
        ]

    @pytest.mark.asyncio
    async def test_unknown_tools_are_dropped(self, catalog):
        llm = FakeLLM([_selection(
            {"name": "delete_channel", "params": {}},
            {"name": "get_comments", "params": {"limit": "20"}},
        )])

        selections = await ToolSelector(llm, catalog).select_tools(_state())

        assert [s.name for s in selections] == ["get_comments"]
        assert selections[0].params == {"limit": "20", "video_id": "BV1234567890"}

    @pytest.mark.asyncio
    async def test_prompt_lists_catalog_and_video_id(self, catalog):
        llm = FakeLLM([_selection()])

        await ToolSelector(llm, catalog).select_tools(_state())

        prompt = llm.calls[0][-1]["content"]
        assert "Video ID: BV1234567890" in prompt
        for tool in VIDEO_TOOLS:
            assert tool["name"] in prompt

    @pytest.mark.asyncio
    async def test_sets_video_id_on_state(self, catalog):
        state = _state()
        await ToolSelector(FakeLLM([_selection()]), catalog).select_tools(state)

        assert state.video_id == "BV1234567890"

    @pytest.mark.asyncio
    async def test_llm_failure_yields_no_tools(self, catalog):
        state = _state()
        selections = await ToolSelector(FakeLLM([LLMError("boom")]), catalog).select_tools(state)

        assert selections == []
        assert "boom" in state.metadata["tool_selection_error"]

    @pytest.mark.asyncio
    async def test_unreachable_catalog_yields_no_tools(self):
        catalog = ToolCatalog(FakeToolClient(discover_error=ProtocolError("connection refused")))
        llm = FakeLLM()
        state = _state()

        selections = await ToolSelector(llm, catalog).select_tools(state)

        assert selections == []
        assert "connection refused" in state.metadata["tool_selection_error"]
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_empty_catalog_skips_llm(self):
        llm = FakeLLM()
        selections = await ToolSelector(llm, ToolCatalog(FakeToolClient())).select_tools(_state())

        assert selections == []
        assert llm.calls == []
