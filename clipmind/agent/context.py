"""
Context Assembly
================

Builds the message list sent to the LLM for synthesis and chat.

Sources:
- Session history (short-term memory)
- Related memories (long-term search, including compressed digests)
- The current user message

Token Budget:
    The conversation part of the prompt is held to `max_tokens` by a
    ContextBuilder. Tokens are estimated from UTF-8 length, with no
    tokenizer dependency:

        tokens ≈ int(len(text.encode("utf-8")) * 0.75)

    When an append would overflow the budget, every message except the
    three most recent is folded into one system summary message. If the
    append still does not fit, it is rejected.

    The system prompt and the current user message are kept outside the
    builder, so compression never drops them.
"""

import json
from dataclasses import dataclass, field

from clipmind.agent.state import PipelineState
from clipmind.memory import MemoryManager
from clipmind.memory.models import Memory
from clipmind.utils.logger import Logger

logger = Logger("Context")

TOKENS_PER_BYTE = 0.75
KEEP_RECENT = 3


def estimate_tokens(text: str) -> int:
    return int(len(text.encode("utf-8")) * TOKENS_PER_BYTE)


@dataclass
class ContextMessage:
    role: str
    content: str
    token_estimate: int = 0

    def to_openai(self) -> dict:
        return {"role": self.role, "content": self.content}


class ContextBuilder:
    """
    Token-bounded message list.

    Example:
        builder = ContextBuilder(max_tokens=100)

        builder.add_message("user", "hi")          # True
        builder.add_message("assistant", "hello")  # True
        builder.total_tokens                       # running estimate
        builder.build()                            # [ContextMessage, ...]
    """

    def __init__(self, max_tokens: int, keep_recent: int = KEEP_RECENT):
        self.max_tokens = max_tokens
        self.keep_recent = keep_recent
        self._messages: list[ContextMessage] = []
        self._total_tokens = 0

    @property
    def total_tokens(self) -> int:
        return self._total_tokens

    def add_message(self, role: str, content: str) -> bool:
        """
        Append a message, compressing older ones if the budget requires it.

        Returns:
            False if the message does not fit even after compression
        """
        tokens = estimate_tokens(content)

        if self._total_tokens + tokens > self.max_tokens:
            self._compress()

        if self._total_tokens + tokens > self.max_tokens:
            logger.debug(f"Rejected {tokens}-token message (budget {self.max_tokens})")
            return False

        self._messages.append(ContextMessage(role, content, tokens))
        self._total_tokens += tokens
        return True

    def _compress(self) -> None:
        if len(self._messages) <= self.keep_recent:
            return

        older = self._messages[:-self.keep_recent]
        recent = self._messages[-self.keep_recent:]

        content = f"Earlier conversation summary: {self._summarize(older)}"
        summary = ContextMessage("system", content, estimate_tokens(content))

        self._messages = [summary] + recent
        self._total_tokens = sum(m.token_estimate for m in self._messages)
        logger.debug(f"Compressed {len(older)} messages into a summary")

    @staticmethod
    def _summarize(messages: list[ContextMessage]) -> str:
        return f"{len(messages)} messages"

    def build(self) -> list[ContextMessage]:
        return list(self._messages)

    def to_json(self) -> str:
        return json.dumps([vars(m) for m in self._messages], ensure_ascii=False)


@dataclass
class AssembledContext:
    """
    The fully assembled context for the LLM.

    Attributes:
        system_message: Prompt plus related-memory section
        messages: Budgeted history followed by the current user message
        related: Long-term memories that were included
    """
    system_message: str
    messages: list[ContextMessage]
    related: list[Memory] = field(default_factory=list)

    def to_openai_messages(self) -> list[dict]:
        result = [{"role": "system", "content": self.system_message}]
        result.extend(m.to_openai() for m in self.messages)
        return result


class ContextAssembler:
    """
    Assembles LLM context for a pipeline run.

    Example:
        assembler = ContextAssembler(memory, max_tokens=4000)

        context = await assembler.assemble(state, system_prompt)
        reply = await llm.generate(context.to_openai_messages())
    """

    def __init__(
        self,
        memory: MemoryManager,
        max_tokens: int = 4000,
        history_limit: int = 10,
        related_limit: int = 3,
    ):
        """
        Args:
            memory: Memory manager instance
            max_tokens: Budget for history plus the current message
            history_limit: Most recent turns to consider
            related_limit: Long-term memories to add to the system message
        """
        self.memory = memory
        self.max_tokens = max_tokens
        self.history_limit = history_limit
        self.related_limit = related_limit

    async def assemble(self, state: PipelineState, system_prompt: str) -> AssembledContext:
        current_id = state.metadata.get("user_memory_id")

        history = [
            m for m in self.memory.get_session_history(state.session_id, self.history_limit + 1)
            if m.id != current_id
        ][-self.history_limit:]

        related = await self._related(state, {m.id for m in history} | {current_id})

        user_tokens = estimate_tokens(state.original_message)
        builder = ContextBuilder(max(self.max_tokens - user_tokens, 0))
        for memory in history:
            builder.add_message(memory.role, memory.content)

        messages = builder.build()
        messages.append(ContextMessage("user", state.original_message, user_tokens))

        logger.debug(
            f"Assembled context: {len(messages)} messages, {len(related)} related memories",
            {"tokens": builder.total_tokens + user_tokens},
        )

        return AssembledContext(
            system_message=self._system_message(system_prompt, related),
            messages=messages,
            related=related,
        )

    async def _related(self, state: PipelineState, exclude: set) -> list[Memory]:
        if self.related_limit <= 0:
            return []

        candidates = await self.memory.retrieve(
            state.original_message,
            state.session_id,
            top_k=self.related_limit + len(exclude),
        )
        # History already carries recent turns verbatim
        related = [m for m in candidates if m.id not in exclude]
        return related[:self.related_limit]

    @staticmethod
    def _system_message(system_prompt: str, related: list[Memory]) -> str:
        if not related:
            return system_prompt

        lines = [system_prompt, "", "## Relevant Memory"]
        for memory in related:
            lines.append(f"- {memory.content[:300]}")
        return "\n".join(lines)
