"""Tests for pulling video fields out of tool results."""

import json

from clipmind.agent.extraction import extract_video_fields, merge_video_fields, unwrap_payload

from conftest import mcp_envelope


class TestExtractVideoFields:

    def test_base64_envelope(self):
        raw = mcp_envelope({"data": {"video": {"view_count": 12345, "title": "Cooking 101"}}})

        fields = extract_video_fields(raw)

        assert fields["view_count"] == 12345
        assert isinstance(fields["view_count"], int)
        assert fields["title"] == "Cooking 101"

    def test_plain_json_envelope(self):
        raw = json.dumps({"content": [{"type": "text", "text": json.dumps({"video": {"like_count": 7}})}]})

        assert extract_video_fields(raw)["like_count"] == 7

    def test_top_level_fields(self):
        fields = extract_video_fields({"comment_count": "1,234", "author": {"username": "chef"}})

        assert fields["comment_count"] == 1234
        assert fields["author"] == "chef"

    def test_large_counts_keep_exact_value(self):
        fields = extract_video_fields('{"video": {"view_count": 9007199254740993}}')

        assert fields["view_count"] == 9007199254740993

    def test_integral_float_is_converted(self):
        assert extract_video_fields({"view_count": 42.0})["view_count"] == 42

    def test_garbage_gives_defaults(self):
        fields = extract_video_fields("not json at all")

        assert fields == {
            "view_count": 0,
            "like_count": 0,
            "comment_count": 0,
            "title": "",
            "description": "",
            "author": "",
        }

    def test_unparsable_count_is_zero(self):
        assert extract_video_fields({"view_count": "lots"})["view_count"] == 0

    def test_author_as_plain_string(self):
        assert extract_video_fields({"author": "chef"})["author"] == "chef"


class TestUnwrapPayload:

    def test_non_object_is_none(self):
        assert unwrap_payload("[1, 2, 3]") is None

    def test_bad_envelope_is_none(self):
        assert unwrap_payload('{"content": [{"text": "%%%"}]}') is None


class TestMergeVideoFields:

    def test_later_results_fill_missing_fields(self):
        stats = mcp_envelope({"data": {"video": {"view_count": 100, "like_count": 5}}})
        meta = json.dumps({"video": {"title": "Cooking 101", "view_count": 0}})

        merged = merge_video_fields([stats, meta, None])

        assert merged["view_count"] == 100
        assert merged["like_count"] == 5
        assert merged["title"] == "Cooking 101"
