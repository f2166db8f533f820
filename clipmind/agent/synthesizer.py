"""
Response Synthesis
==================

Turns tool results (or just the conversation) into the reply.

Tool branches (tool_augmented, knowledge):
    1. Extract canonical video fields from the tool results
    2. Ask the LLM for a report using an intent-specific prompt
    3. If the LLM fails, build a template report from the raw data

General chat:
    One LLM call over the assembled context. If it fails, a fixed
    apology is returned, unless the model endpoint is unreachable
    altogether; then ServiceUnavailableError is raised, since no other
    source of reply exists for a tool-less turn.
"""

import asyncio
import json
from typing import AsyncIterator

from clipmind.agent.context import AssembledContext
from clipmind.agent.extraction import merge_video_fields
from clipmind.agent.intent import IntentType
from clipmind.agent.router import BRANCH_KNOWLEDGE, uses_tools
from clipmind.agent.state import PipelineState
from clipmind.errors import LLMConnectionError, LLMError, ServiceUnavailableError, SynthesisError
from clipmind.utils.logger import Logger

logger = Logger("Synthesizer")

SERVICE_UNAVAILABLE_REPLY = (
    "Sorry, the service is temporarily unavailable. Please try again later."
)

SYSTEM_PROMPT = """You are ClipMind, an assistant for video creators.

Guidelines:
- Be helpful, concise and concrete
- Base every number on the data you are given; never invent statistics
- Answer in the language the user wrote in"""

VIDEO_REPORT_PROMPT = """Analyze the video below and summarize it for the creator.

User request: {message}

Video data (JSON):
{fields}

Raw tool results:
{raw}

Use exactly this structure:
[Summary] one sentence based on the title and description
[Data] views {view_count}, likes {like_count}, comments {comment_count} (use these exact numbers)
[Sentiment] positive / negative / neutral
[Key points] 1. title  2. theme  3. performance
[Suggestions] 1. optimization  2. promotion"""

# Intent-specific instructions for the non-video tool branches
TASK_PROMPTS: dict[IntentType, str] = {
    IntentType.RECOMMENDATION: "Recommend videos that fit the request, explaining each pick briefly.",
    IntentType.WEEKLY_REPORT: "Write a weekly performance report: key numbers, trends, and next steps.",
    IntentType.TOPIC_ANALYSIS: "Evaluate the topic: audience interest, competition, and angles to try.",
    IntentType.CONTENT_CREATION: "Draft the requested content (titles, scripts or copy), offering 2-3 options.",
    IntentType.DANMAKU_ANALYSIS: "Analyze the audience comments: main themes, sentiment, notable reactions.",
    IntentType.TREND_TRACKING: "Summarize the current trends and how the creator could use them.",
    IntentType.COMPETITOR_ANALYSIS: "Compare the channels: strengths, weaknesses, and what to learn.",
    IntentType.USER_PROFILE: "Describe the user's interests and preferences shown by the data.",
}

KNOWLEDGE_PROMPT = """Answer the user's question.

User question: {message}

Reference material from tools (may be empty):
{raw}

Use the reference material where it is relevant and say so when it does
not cover the question."""

TASK_PROMPT = """{task}

User request: {message}

Data from tools (JSON):
{raw}"""

VIDEO_INTENTS = (IntentType.VIDEO_ANALYSIS,)


def _raw_results(state: PipelineState) -> str:
    entries = []
    for result in state.tool_results:
        entries.append({
            "tool": result.tool_name,
            "params": result.params,
            "result": result.raw_result,
            "error": result.error,
        })
    return json.dumps(entries, ensure_ascii=False, indent=2)


def _intent_label(state: PipelineState) -> str:
    return state.intent.type.value if state.intent else IntentType.GENERAL_CHAT.value


def build_fallback_analysis(state: PipelineState) -> str:
    """Deterministic report listing the extracted data and per-tool status."""
    fields = merge_video_fields([r.raw_result for r in state.tool_results if r.succeeded])

    lines = [
        "## Analysis Report (simplified)",
        "",
        "The AI analysis service is busy right now, so here is the raw data:",
        "",
        "### Extracted Data",
    ]
    for name, value in fields.items():
        lines.append(f"- {name}: {value}")

    lines += ["", "### Tools"]
    for result in state.tool_results:
        status = "ok" if result.succeeded else f"failed ({result.error})"
        lines.append(f"- {result.tool_name}: {status}, {result.duration_ms}ms")

    lines += ["", "Please try again later for a full analysis."]
    return "\n".join(lines)


def build_fallback_reply(state: PipelineState) -> str:
    return (
        f"Sorry, I could not complete your request (intent: {_intent_label(state)}). "
        "Please try again later."
    )


class ResponseSynthesizer:
    """
    Produces the reply for every branch.

    Example:
        synthesizer = ResponseSynthesizer(llm, analysis_timeout=240, chat_timeout=30)

        reply = await synthesizer.synthesize(state, context)
    """

    def __init__(self, llm, analysis_timeout: float = 240.0, chat_timeout: float = 30.0):
        self.llm = llm
        self.analysis_timeout = analysis_timeout
        self.chat_timeout = chat_timeout

    # ==========================================================================
    # Tool branches
    # ==========================================================================

    def analysis_prompt(self, state: PipelineState) -> str:
        raw = _raw_results(state)
        intent_type = state.intent.type if state.intent else IntentType.GENERAL_CHAT

        if state.branch == BRANCH_KNOWLEDGE:
            return KNOWLEDGE_PROMPT.format(message=state.original_message, raw=raw)

        if intent_type in VIDEO_INTENTS or intent_type not in TASK_PROMPTS:
            fields = merge_video_fields([r.raw_result for r in state.tool_results if r.succeeded])
            return VIDEO_REPORT_PROMPT.format(
                message=state.original_message,
                fields=json.dumps(fields, ensure_ascii=False, indent=2),
                raw=raw,
                **fields,
            )

        return TASK_PROMPT.format(
            task=TASK_PROMPTS[intent_type],
            message=state.original_message,
            raw=raw,
        )

    async def analyze(self, state: PipelineState, context: AssembledContext) -> str:
        """
        LLM analysis of the tool results.

        Raises:
            SynthesisError: If the LLM fails or returns nothing
        """
        messages = context.to_openai_messages()
        messages[-1] = {"role": "user", "content": self.analysis_prompt(state)}

        try:
            reply = await asyncio.wait_for(
                self.llm.generate(messages, timeout=self.analysis_timeout),
                timeout=self.analysis_timeout,
            )
        except (LLMError, asyncio.TimeoutError) as e:
            raise SynthesisError(f"Analysis failed: {str(e) or type(e).__name__}") from e

        if not reply.strip():
            raise SynthesisError("Analysis returned an empty reply")
        return reply

    async def synthesize_tools(self, state: PipelineState, context: AssembledContext) -> str:
        try:
            return await self.analyze(state, context)
        except SynthesisError as e:
            logger.warning(f"{e}, using template report")
            state.metadata["synthesis_fallback"] = True
            if state.tool_results:
                return build_fallback_analysis(state)
            return build_fallback_reply(state)

    # ==========================================================================
    # General chat
    # ==========================================================================

    async def chat(self, context: AssembledContext) -> str:
        """
        Direct LLM reply.

        Raises:
            ServiceUnavailableError: If the model endpoint is unreachable
        """
        try:
            return await asyncio.wait_for(
                self.llm.generate(context.to_openai_messages(), timeout=self.chat_timeout),
                timeout=self.chat_timeout,
            )
        except LLMConnectionError as e:
            raise ServiceUnavailableError(str(e)) from e
        except (LLMError, asyncio.TimeoutError) as e:
            logger.warning(f"Chat reply failed: {str(e) or type(e).__name__}")
            return SERVICE_UNAVAILABLE_REPLY

    async def chat_stream(self, context: AssembledContext) -> AsyncIterator[str]:
        """
        Stream a direct LLM reply.

        Raises:
            ServiceUnavailableError: If the model endpoint is unreachable
                before anything was streamed
        """
        streamed = False
        try:
            async for delta in self.llm.stream(context.to_openai_messages(), timeout=self.chat_timeout):
                streamed = True
                yield delta
        except LLMConnectionError as e:
            if not streamed:
                raise ServiceUnavailableError(str(e)) from e
            logger.warning(f"Chat stream interrupted: {e}")
        except (LLMError, asyncio.TimeoutError) as e:
            logger.warning(f"Chat stream failed: {str(e) or type(e).__name__}")
            if not streamed:
                yield SERVICE_UNAVAILABLE_REPLY

    # ==========================================================================
    # Entry point
    # ==========================================================================

    async def synthesize(self, state: PipelineState, context: AssembledContext) -> str:
        if uses_tools(state.branch):
            return await self.synthesize_tools(state, context)
        return await self.chat(context)
