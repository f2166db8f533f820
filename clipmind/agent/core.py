"""
Orchestrator
============

Runs one request through the pipeline and records the turn in memory.

Pipeline:
    intent
      │
      ▼
    route ──── general_chat ─────────────────────┐
      │                                           │
      │ tool_augmented / knowledge                │
      ▼                                           │
    tool_selection                                │
      │                                           │
      ▼                                           │
    tool_execution                                │
      │                                           │
      ▼                                           ▼
    synthesis ◄───────────────────────────────────┘
      │
      ▼
    output

Every stage is `async (state) -> state`. The stage table is fixed and
`_next_stage` is the only branching point, so the pipeline cannot loop.

Memory:
    The user's message is stored right after intent recognition (tagged
    with the intent); the reply is stored by the output stage (tagged with
    intent, branch and agent). A failed memory write is logged and the
    reply is still delivered.

Timeouts:
    Each external call runs under its own stage timeout, and the whole run
    under `request_timeout`. When the request deadline hits, whatever the
    stages produced so far is turned into a fallback reply: the data report
    when tools already returned, a short apology otherwise. The output stage
    then runs again, and each turn still stores exactly one user and one
    assistant memory.
"""

import asyncio
import time
import uuid
from typing import AsyncIterator, Awaitable, Callable

from clipmind.agent.context import ContextAssembler
from clipmind.agent.intent import IntentClassifier, IntentType, extract_video_id
from clipmind.agent.router import BRANCH_GENERAL_CHAT, route, uses_tools
from clipmind.agent.selector import ToolSelector
from clipmind.agent.state import HistoryEntry, PipelineOutput, PipelineState
from clipmind.agent.synthesizer import (
    SYSTEM_PROMPT,
    ResponseSynthesizer,
    build_fallback_analysis,
    build_fallback_reply,
)
from clipmind.agent.tools_executor import ToolExecutor
from clipmind.errors import MemoryPersistError
from clipmind.memory import MemoryManager
from clipmind.memory.models import Memory
from clipmind.tools import ToolCatalog
from clipmind.utils.config import PipelineConfig
from clipmind.utils.logger import Logger

logger = Logger("Orchestrator")

STAGE_INTENT = "intent"
STAGE_ROUTE = "route"
STAGE_TOOL_SELECTION = "tool_selection"
STAGE_TOOL_EXECUTION = "tool_execution"
STAGE_SYNTHESIS = "synthesis"
STAGE_OUTPUT = "output"

USER_IMPORTANCE = 0.5
CHAT_REPLY_IMPORTANCE = 0.5
# Tool-grounded analyses are worth finding again later
ANALYSIS_REPLY_IMPORTANCE = 0.8

Stage = Callable[[PipelineState], Awaitable[PipelineState]]


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def default_pipeline_config() -> PipelineConfig:
    return PipelineConfig(
        request_timeout_seconds=300.0,
        intent_timeout_seconds=10.0,
        selection_timeout_seconds=30.0,
        tool_timeout_seconds=30.0,
        synthesis_timeout_seconds=240.0,
        chat_timeout_seconds=30.0,
        max_context_tokens=4000,
        tool_concurrency=1,
        long_term_timeout_seconds=30.0,
    )


class Orchestrator:
    """
    The session-facing API of ClipMind.

    Example:
        orchestrator = Orchestrator(llm, memory, catalog, config.pipeline)

        output = await orchestrator.execute(user_id="U1", message="分析视频 BV1234567890")
        output.reply, output.intent, output.metadata

        orchestrator.get_history(output.session_id, limit=20)
        orchestrator.clear_session(output.session_id)
    """

    def __init__(
        self,
        llm,
        memory: MemoryManager,
        catalog: ToolCatalog,
        pipeline: PipelineConfig | None = None,
    ):
        """
        Args:
            llm: LLMClient shared by all stages
            memory: Session memory (injected, one instance per process)
            catalog: Remote tool catalog
            pipeline: Stage timeouts and budgets
        """
        self.llm = llm
        self.memory = memory
        self.catalog = catalog
        self.pipeline = pipeline or default_pipeline_config()

        self.classifier = IntentClassifier(llm, timeout=self.pipeline.intent_timeout_seconds)
        self.selector = ToolSelector(llm, catalog, timeout=self.pipeline.selection_timeout_seconds)
        self.executor = ToolExecutor(
            catalog,
            timeout=self.pipeline.tool_timeout_seconds,
            concurrency=self.pipeline.tool_concurrency,
        )
        self.synthesizer = ResponseSynthesizer(
            llm,
            analysis_timeout=self.pipeline.synthesis_timeout_seconds,
            chat_timeout=self.pipeline.chat_timeout_seconds,
        )
        self.assembler = ContextAssembler(memory, max_tokens=self.pipeline.max_context_tokens)

        self._stages: dict[str, Stage] = {
            STAGE_INTENT: self._intent_stage,
            STAGE_ROUTE: self._route_stage,
            STAGE_TOOL_SELECTION: self._tool_selection_stage,
            STAGE_TOOL_EXECUTION: self._tool_execution_stage,
            STAGE_SYNTHESIS: self._synthesis_stage,
            STAGE_OUTPUT: self._output_stage,
        }

        logger.info("Orchestrator initialized")

    # ==========================================================================
    # Sequencing
    # ==========================================================================

    @staticmethod
    def _next_stage(current: str, state: PipelineState) -> str | None:
        if current == STAGE_INTENT:
            return STAGE_ROUTE
        if current == STAGE_ROUTE:
            return STAGE_TOOL_SELECTION if uses_tools(state.branch) else STAGE_SYNTHESIS
        if current == STAGE_TOOL_SELECTION:
            return STAGE_TOOL_EXECUTION
        if current == STAGE_TOOL_EXECUTION:
            return STAGE_SYNTHESIS
        if current == STAGE_SYNTHESIS:
            return STAGE_OUTPUT
        return None

    async def _run(
        self,
        state: PipelineState,
        start: str = STAGE_INTENT,
        stop: tuple[str, ...] = (),
    ) -> PipelineState:
        """Run stages from `start` until the pipeline ends or a `stop` stage is next."""
        stage = start
        while stage is not None and stage not in stop:
            stage_start = time.perf_counter()
            logger.debug(f"Stage {stage} start", {"session_id": state.session_id})

            state = await self._stages[stage](state)

            state.metadata[f"{stage}_duration_ms"] = _elapsed_ms(stage_start)
            stage = self._next_stage(stage, state)
        return state

    # ==========================================================================
    # Stages
    # ==========================================================================

    async def _intent_stage(self, state: PipelineState) -> PipelineState:
        intent = await self.classifier.recognize(state.original_message)
        state.intent = intent
        state.video_id = intent.entity("video_id") or extract_video_id(state.original_message)
        state.metadata["intent_confidence"] = intent.confidence
        state.metadata["intent_source"] = intent.source

        await self._remember_user(state)

        logger.info(
            f"Recognized {intent.type.value} ({intent.confidence:.2f}, {intent.source})",
            {"video_id": state.video_id} if state.video_id else None,
        )
        return state

    async def _route_stage(self, state: PipelineState) -> PipelineState:
        state.branch = route(state.intent.type)
        if not uses_tools(state.branch):
            state.metadata["tool_selection_skipped"] = True
            state.metadata["tool_execution_skipped"] = True
        logger.debug(f"Routed to {state.branch}")
        return state

    async def _tool_selection_stage(self, state: PipelineState) -> PipelineState:
        state.selected_tools = await self.selector.select_tools(state)
        state.metadata["selected_tools_count"] = len(state.selected_tools)
        return state

    async def _tool_execution_stage(self, state: PipelineState) -> PipelineState:
        if not state.selected_tools:
            state.metadata["tool_execution_skipped"] = True
            return state

        state.tool_results = await self.executor.execute(state.selected_tools)
        state.metadata["tool_execution_count"] = len(state.tool_results)
        state.metadata["tool_errors"] = sum(1 for r in state.tool_results if r.error)
        return state

    async def _synthesis_stage(self, state: PipelineState) -> PipelineState:
        context = await self.assembler.assemble(state, SYSTEM_PROMPT)

        if uses_tools(state.branch):
            state.analysis_result = await self.synthesizer.synthesize_tools(state, context)
        else:
            state.metadata["analysis_skipped"] = True
            state.final_reply = await self.synthesizer.chat(context)
        return state

    async def _output_stage(self, state: PipelineState) -> PipelineState:
        if uses_tools(state.branch):
            state.final_reply = state.analysis_result or self._fallback_reply(state)

        # Re-entered after a request timeout; the reply is already stored
        if "reply_memory_id" in state.metadata:
            return state

        reply_memory = Memory(
            id=str(uuid.uuid4()),
            session_id=state.session_id,
            content=state.final_reply,
            role="assistant",
            importance=self._reply_importance(state),
            metadata={
                "user_id": state.user_id,
                "intent": self._intent_label(state),
                "branch": state.branch,
                "agent": self._agent_name(state),
            },
        )
        state.metadata["reply_memory_id"] = reply_memory.id
        await self._remember(state, reply_memory)
        return state

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _remember_user(self, state: PipelineState) -> None:
        if "user_memory_id" in state.metadata:
            return

        user_memory = Memory(
            id=str(uuid.uuid4()),
            session_id=state.session_id,
            content=state.original_message,
            role="user",
            importance=USER_IMPORTANCE,
            metadata={"user_id": state.user_id, "intent": self._intent_label(state)},
        )
        state.metadata["user_memory_id"] = user_memory.id
        await self._remember(state, user_memory)

    async def _remember(self, state: PipelineState, memory: Memory) -> Memory:
        try:
            return await self.memory.store(memory)
        except MemoryPersistError as e:
            logger.error("Memory write failed", e)
            state.metadata.setdefault("memory_errors", []).append(str(e))
            return memory

    @staticmethod
    def _fallback_reply(state: PipelineState) -> str:
        if state.tool_results:
            state.metadata["synthesis_fallback"] = True
            return build_fallback_analysis(state)
        return build_fallback_reply(state)

    @staticmethod
    def _intent_label(state: PipelineState) -> str:
        return state.intent.type.value if state.intent else IntentType.GENERAL_CHAT.value

    @staticmethod
    def _agent_name(state: PipelineState) -> str:
        if not state.branch or state.branch == BRANCH_GENERAL_CHAT:
            return BRANCH_GENERAL_CHAT
        return state.intent.type.value

    @staticmethod
    def _reply_importance(state: PipelineState) -> float:
        if (
            uses_tools(state.branch)
            and state.tool_results
            and not state.metadata.get("synthesis_fallback")
        ):
            return ANALYSIS_REPLY_IMPORTANCE
        return CHAT_REPLY_IMPORTANCE

    def _new_state(self, user_id: str, message: str, session_id: str | None) -> PipelineState:
        return PipelineState(
            session_id=session_id or str(uuid.uuid4()),
            user_id=user_id,
            original_message=message,
        )

    def _to_output(self, state: PipelineState) -> PipelineOutput:
        return PipelineOutput(
            session_id=state.session_id,
            reply=state.final_reply,
            intent=self._intent_label(state),
            agent=self._agent_name(state),
            metadata=state.metadata,
        )

    # ==========================================================================
    # Session-facing API
    # ==========================================================================

    async def execute(
        self,
        user_id: str,
        message: str,
        session_id: str | None = None,
    ) -> PipelineOutput:
        """
        Answer one message.

        Args:
            user_id: Caller id, stored with both memory records
            message: The user's utterance
            session_id: Conversation id; a new one is created if omitted

        Returns:
            PipelineOutput with the reply and stage metadata

        Raises:
            ServiceUnavailableError: A general-chat turn found the LLM unreachable
        """
        state = self._new_state(user_id, message, session_id)
        start = time.perf_counter()
        logger.info("Pipeline start", {"session_id": state.session_id, "user_id": user_id})

        try:
            state = await asyncio.wait_for(
                self._run(state),
                timeout=self.pipeline.request_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Request deadline exceeded for session {state.session_id}")
            state.metadata["request_timeout"] = True
            if not state.analysis_result:
                state.analysis_result = self._fallback_reply(state)
            if not state.final_reply:
                state.final_reply = state.analysis_result
            await self._remember_user(state)
            await self._run(state, start=STAGE_OUTPUT)

        state.metadata["total_duration_ms"] = _elapsed_ms(start)
        logger.info(
            f"Pipeline done: {self._intent_label(state)} via {state.branch or 'none'}",
            {"duration_ms": state.metadata["total_duration_ms"], "reply_chars": len(state.final_reply)},
        )
        return self._to_output(state)

    async def execute_stream(
        self,
        user_id: str,
        message: str,
        session_id: str,
    ) -> AsyncIterator[str]:
        """
        Answer one message, yielding the reply as it is produced.

        General-chat replies stream LLM deltas; tool branches yield the
        finished reply in one chunk. Both memory records are written.

        Raises:
            ServiceUnavailableError: A general-chat turn found the LLM unreachable
        """
        state = self._new_state(user_id, message, session_id)
        state = await self._run(state, stop=(STAGE_TOOL_SELECTION, STAGE_SYNTHESIS))

        if uses_tools(state.branch):
            state = await self._run(state, start=STAGE_TOOL_SELECTION)
            yield state.final_reply
            return

        state.metadata["analysis_skipped"] = True
        context = await self.assembler.assemble(state, SYSTEM_PROMPT)
        chunks = []
        async for delta in self.synthesizer.chat_stream(context):
            chunks.append(delta)
            yield delta

        state.final_reply = "".join(chunks)
        await self._run(state, start=STAGE_OUTPUT)

    def get_history(self, session_id: str, limit: int = 20) -> list[HistoryEntry]:
        """Recent turns of a session, oldest first."""
        return [
            HistoryEntry(
                id=memory.id,
                session_id=memory.session_id,
                role=memory.role,
                content=memory.content,
                timestamp_ms=int(memory.created_at.timestamp() * 1000) if memory.created_at else 0,
            )
            for memory in self.memory.get_session_history(session_id, limit)
        ]

    def clear_session(self, session_id: str) -> bool:
        """Forget a session's short-term and working memory."""
        self.memory.clear_session(session_id)
        return True
