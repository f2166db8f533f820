"""
Tool Selection
==============

Asks the LLM which catalog tools to call for a request, then repairs the
answer before anyone acts on it.

The LLM sees the catalog (name, description, JSON-Schema params), the
intent, the utterance and any video id found in it, and answers:

    {"tools": [{"name": ..., "params": {...}, "reason": ..., "confidence": 0.9}]}

Repairs applied to every selection:
1. Tools that are not in the catalog are dropped
2. Placeholder keys copied from the prompt's example ("<parameter name>",
   "参数值", "param", "bvid", ...) and any other key the tool's schema does
   not declare are renamed to the tool's real identifier key
3. If the tool takes `video_id` and the params lack it, the id extracted
   from the utterance is injected

Failures never escape: on catalog or LLM trouble the selector returns no
tools and records why in `state.metadata["tool_selection_error"]`.
"""

import asyncio
import json
from typing import Any

from clipmind.agent.intent import extract_json_object, extract_video_id
from clipmind.agent.state import PipelineState, ToolSelection
from clipmind.errors import LLMError, ProtocolError, ToolSelectionError
from clipmind.tools import ToolCatalog, ToolSpec
from clipmind.utils.logger import Logger

logger = Logger("ToolSelector")

CANONICAL_ID_KEY = "video_id"

# Keys the model invents instead of the schema's real parameter name,
# including the literal placeholders of SELECTION_PROMPT's example
PLACEHOLDER_KEYS = (
    "<parameter name>", "<parameter value>",
    "参数值", "参数名", "param", "value", "id", "identifier", "video", "bvid",
)

SELECTION_PROMPT = """You select which tools to call for a user's request.

User intent: {intent}
User message: {message}
Video ID: {video_id}

Available tools:
{tools}

Return the tools to call as strict JSON:
{{
  "tools": [
    {{
      "name": "<tool name>",
      "params": {{"<parameter name>": "<parameter value>"}},
      "reason": "<why this tool>",
      "confidence": 0.95
    }}
  ]
}}

Rules:
1. name must be one of the available tools
2. parameter names must be the real names from the tool's schema
3. if a video ID is given ({video_id}), pass it to the tools that take one
4. select only the tools that are really needed; return {{"tools": []}} if none are"""


def _format_catalog(tools: list[ToolSpec]) -> str:
    lines = []
    for i, tool in enumerate(tools, 1):
        lines.append(f"{i}. {tool.name} - {tool.description}")
        if tool.properties:
            lines.append(f"   params: {json.dumps(tool.parameters, ensure_ascii=False)}")
    return "\n".join(lines)


def _identifier_key(spec: ToolSpec) -> str:
    """
    The parameter a placeholder value most likely belongs to.

    `video_id` if the schema has it, otherwise the first required
    parameter, otherwise the first declared one.
    """
    if spec.has_param(CANONICAL_ID_KEY):
        return CANONICAL_ID_KEY
    if spec.required:
        return spec.required[0]
    if spec.properties:
        return next(iter(spec.properties))
    return CANONICAL_ID_KEY


def repair_params(params: dict[str, Any], spec: ToolSpec, video_id: str | None) -> dict[str, Any]:
    """Rename placeholder and undeclared keys, then inject the extracted video id."""
    repaired = dict(params)
    target = _identifier_key(spec)

    stray = [key for key in PLACEHOLDER_KEYS if key in repaired]
    if spec.properties:
        stray += [key for key in repaired if key not in stray and not spec.has_param(key)]

    for key in stray:
        if key == target or spec.has_param(key):
            continue
        value = repaired.pop(key)
        repaired.setdefault(target, value)

    if video_id and spec.has_param(CANONICAL_ID_KEY) and not repaired.get(CANONICAL_ID_KEY):
        repaired[CANONICAL_ID_KEY] = video_id

    return repaired


def parse_selection(content: str) -> list[dict[str, Any]]:
    """
    Raises:
        ToolSelectionError: If the reply holds no usable `tools` list
    """
    try:
        parsed = extract_json_object(content)
    except ValueError as e:
        raise ToolSelectionError(f"unparsable tool selection: {e}") from e

    tools = parsed.get("tools")
    if not isinstance(tools, list):
        raise ToolSelectionError("tool selection has no 'tools' list")
    return [t for t in tools if isinstance(t, dict)]


class ToolSelector:
    """
    LLM-driven tool selection over the live catalog.

    Example:
        selector = ToolSelector(llm, catalog, timeout=30)
        state.selected_tools = await selector.select_tools(state)
    """

    def __init__(self, llm, catalog: ToolCatalog, timeout: float = 30.0):
        self.llm = llm
        self.catalog = catalog
        self.timeout = timeout

    async def select_tools(self, state: PipelineState) -> list[ToolSelection]:
        if state.video_id is None:
            state.video_id = extract_video_id(state.original_message)

        try:
            catalog = await self.catalog.list_tools()
        except ProtocolError as e:
            logger.warning(f"Tool catalog unavailable: {e}")
            state.metadata["tool_selection_error"] = str(e)
            return []

        if not catalog:
            logger.info("Tool catalog is empty")
            return []

        try:
            raw_selections = await self._ask_llm(state, catalog)
        except ToolSelectionError as e:
            logger.warning(f"Tool selection failed: {e}")
            state.metadata["tool_selection_error"] = str(e)
            return []

        return self._repair(raw_selections, {t.name: t for t in catalog}, state.video_id)

    async def _ask_llm(self, state: PipelineState, catalog: list[ToolSpec]) -> list[dict]:
        prompt = SELECTION_PROMPT.format(
            intent=state.intent.type.value if state.intent else "",
            message=state.original_message,
            video_id=state.video_id or "",
            tools=_format_catalog(catalog),
        )

        try:
            content = await asyncio.wait_for(
                self.llm.generate([{"role": "user", "content": prompt}], timeout=self.timeout),
                timeout=self.timeout,
            )
        except (LLMError, asyncio.TimeoutError) as e:
            raise ToolSelectionError(f"LLM tool selection failed: {str(e) or type(e).__name__}") from e

        return parse_selection(content)

    def _repair(
        self,
        raw_selections: list[dict],
        catalog: dict[str, ToolSpec],
        video_id: str | None,
    ) -> list[ToolSelection]:
        selections = []
        for raw in raw_selections:
            name = raw.get("name")
            spec = catalog.get(name)
            if spec is None:
                logger.warning(f"Dropping unknown tool: {name}")
                continue

            params = raw.get("params")
            if not isinstance(params, dict):
                params = {}

            try:
                confidence = float(raw.get("confidence", 0.0))
            except (TypeError, ValueError):
                confidence = 0.0

            selections.append(ToolSelection(
                name=spec.name,
                params=repair_params(params, spec, video_id),
                reason=str(raw.get("reason", "")),
                confidence=confidence,
            ))

        logger.debug(f"Selected {len(selections)} tools", {"tools": [s.name for s in selections]})
        return selections
