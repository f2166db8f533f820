"""
Error Hierarchy
===============

Typed failures for every pipeline stage. Most of these never reach the
caller: each stage catches its own error kind and degrades to a fallback.

    ClipMindError
    ├── ClassificationError      -> rule-based intent fallback
    ├── ToolSelectionError       -> empty tool set, recorded in metadata
    ├── ToolInvocationError      -> captured in that tool's result record
    ├── ProtocolError            -> catalog unreachable, no tools available
    ├── SynthesisError           -> deterministic template reply
    ├── MemoryPersistError       -> logged, reply still delivered
    ├── LLMError
    │   ├── LLMTimeoutError
    │   └── LLMConnectionError
    └── ServiceUnavailableError  -> raised to the API boundary

ServiceUnavailableError is the only one that escapes Orchestrator.execute:
it is raised when a general-chat turn has no language model to answer it.
"""


class ClipMindError(Exception):
    """Base class for all ClipMind errors."""


class ClassificationError(ClipMindError):
    """The language model could not classify the utterance."""


class ToolSelectionError(ClipMindError):
    """The language model returned no usable tool selection."""


class ToolInvocationError(ClipMindError):
    """A single remote tool call failed."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' failed: {message}")


class ProtocolError(ClipMindError):
    """The remote tool server could not be reached or returned garbage."""


class SynthesisError(ClipMindError):
    """The language model could not produce an analysis reply."""


class MemoryPersistError(ClipMindError):
    """A memory tier rejected a write."""


class LLMError(ClipMindError):
    """Base for language-model service failures."""


class LLMTimeoutError(LLMError):
    """The model call exceeded its stage timeout."""


class LLMConnectionError(LLMError):
    """The model endpoint is unreachable."""


class ServiceUnavailableError(ClipMindError):
    """No reply source is available for this turn."""


__all__ = [
    "ClipMindError",
    "ClassificationError",
    "ToolSelectionError",
    "ToolInvocationError",
    "ProtocolError",
    "SynthesisError",
    "MemoryPersistError",
    "LLMError",
    "LLMTimeoutError",
    "LLMConnectionError",
    "ServiceUnavailableError",
]
