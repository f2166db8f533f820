"""
Tool Result Extraction
======================

Pulls canonical video fields out of whatever a tool returned.

Tool payloads arrive in several shapes:

    '{"data": {"video": {...}}}'                   plain JSON text
    '{"content": [{"text": "<base64 JSON>"}]}'     MCP envelope, base64 body
    '{"content": [{"type": "text", "text": "{...}"}]}'   MCP envelope, JSON body
    {"video": {...}} / {...}                        already-parsed objects

Fields are looked up under `data.video`, then `video`, then the top
level. Counts are returned as Python ints; JSON integers keep their exact
value, integral floats and numeric strings are converted.
"""

import base64
import binascii
import json
import math
from typing import Any

from clipmind.utils.logger import Logger

logger = Logger("Extraction")

COUNT_FIELDS = ("view_count", "like_count", "comment_count")
TEXT_FIELDS = ("title", "description")


def empty_video_fields() -> dict[str, Any]:
    return {
        "view_count": 0,
        "like_count": 0,
        "comment_count": 0,
        "title": "",
        "description": "",
        "author": "",
    }


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        try:
            return int(text)
        except ValueError:
            try:
                return int(float(text))
            except (ValueError, OverflowError):
                return 0
    return 0


def _to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _author_name(value: Any) -> str:
    if isinstance(value, dict):
        return _to_str(value.get("username") or value.get("name") or "")
    return _to_str(value)


def _decode_text(text: str) -> Any:
    """An envelope's text is base64-encoded JSON, or sometimes JSON as is."""
    try:
        decoded = base64.b64decode(text, validate=True)
        return json.loads(decoded)
    except (binascii.Error, ValueError):
        pass
    return json.loads(text)


def unwrap_payload(raw: Any) -> dict | None:
    """
    Turn one raw tool result into a dict, unwrapping an MCP envelope.

    Returns:
        The payload dict, or None if it cannot be parsed
    """
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning(f"Tool result is not JSON: {raw[:200]}")
            return None

    if not isinstance(raw, dict):
        return None

    content = raw.get("content")
    if isinstance(content, list) and content:
        first = content[0]
        if isinstance(first, dict) and isinstance(first.get("text"), str):
            try:
                raw = _decode_text(first["text"])
            except ValueError:
                logger.warning("Could not decode tool result envelope")
                return None

    return raw if isinstance(raw, dict) else None


def _video_section(payload: dict) -> dict:
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("video"), dict):
        return data["video"]
    if isinstance(payload.get("video"), dict):
        return payload["video"]
    return payload


def extract_video_fields(raw: Any) -> dict[str, Any]:
    """
    Canonical video fields of one tool result, with defaults for anything
    missing.

    Example:
        extract_video_fields('{"data": {"video": {"view_count": 12345}}}')
        # {"view_count": 12345, "like_count": 0, ..., "author": ""}
    """
    fields = empty_video_fields()
    payload = unwrap_payload(raw)
    if payload is None:
        return fields

    video = _video_section(payload)
    for name in COUNT_FIELDS:
        if name in video:
            fields[name] = _to_int(video[name])
    for name in TEXT_FIELDS:
        if name in video:
            fields[name] = _to_str(video[name])
    if "author" in video:
        fields["author"] = _author_name(video["author"])

    return fields


def merge_video_fields(raw_results: list[Any]) -> dict[str, Any]:
    """
    Fold several tool results into one field set.

    Later results override earlier ones only for fields they actually
    carry, so a statistics tool and a metadata tool can each fill their part.
    """
    merged = empty_video_fields()
    defaults = empty_video_fields()
    for raw in raw_results:
        if raw is None:
            continue
        for name, value in extract_video_fields(raw).items():
            if value != defaults[name]:
                merged[name] = value
    return merged
