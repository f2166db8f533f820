"""
Pipeline State
==============

Data carried through one request.

A PipelineState is created when a message arrives, handed to each stage
in turn (every stage takes the state and returns it), and thrown away
once the reply is built. Stages communicate only through its fields.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from clipmind.agent.intent import Intent


def _now_ms() -> int:
    return int(datetime.now().timestamp() * 1000)


@dataclass
class ToolSelection:
    """A tool the selector decided to call."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)
    reason: str = ""
    confidence: float = 0.0


@dataclass
class ToolExecutionResult:
    """
    Outcome of one tool call.

    A failed call keeps its entry with `error` set and `raw_result` empty,
    so the synthesizer can report which tools did not answer.
    """
    tool_name: str
    params: dict[str, Any]
    raw_result: str | None = None
    error: str | None = None
    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def duration_ms(self) -> int:
        if self.end_time is None:
            return 0
        return int((self.end_time - self.start_time).total_seconds() * 1000)


@dataclass
class PipelineState:
    """
    Everything one pipeline run knows.

    Attributes:
        session_id: Conversation id
        user_id: Caller id
        original_message: The user's utterance, unmodified
        intent: Set by the intent stage
        branch: Set by the route stage
        video_id: Identifier extracted from the utterance, if any
        selected_tools: Set by the tool-selection stage
        tool_results: Set by the tool-execution stage
        analysis_result: Reply produced by synthesis
        final_reply: Reply returned to the caller
        metadata: Stage timings, counts, skip flags and recovered errors
    """
    session_id: str
    user_id: str
    original_message: str
    intent: Intent | None = None
    branch: str = ""
    video_id: str | None = None
    selected_tools: list[ToolSelection] = field(default_factory=list)
    tool_results: list[ToolExecutionResult] = field(default_factory=list)
    analysis_result: str = ""
    final_reply: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class PipelineOutput:
    """What Orchestrator.execute returns to the API layer."""
    session_id: str
    reply: str
    intent: str
    agent: str
    timestamp_ms: int = field(default_factory=_now_ms)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "reply": self.reply,
            "intent": self.intent,
            "agent": self.agent,
            "timestamp_ms": self.timestamp_ms,
            "metadata": self.metadata,
        }


@dataclass
class HistoryEntry:
    """One turn of a session's history."""
    id: str
    session_id: str
    role: str
    content: str
    timestamp_ms: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "role": self.role,
            "content": self.content,
            "timestamp_ms": self.timestamp_ms,
        }
