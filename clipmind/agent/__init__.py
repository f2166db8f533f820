"""
Agent System
============

The request pipeline. For each user message it:
1. Classifies the intent (LLM with keyword fallback)
2. Routes to a branch (tool_augmented, knowledge, general_chat)
3. Selects and runs remote tools when the branch needs data
4. Synthesizes the reply from tool results and conversation context
5. Records both turns in session memory

This module provides:
- Orchestrator: the session-facing API (execute, history, clear)
- LLMClient: OpenAI-compatible chat client
- The individual stages, for callers that need just one of them
"""

from clipmind.agent.core import Orchestrator
from clipmind.agent.context import ContextAssembler, ContextBuilder
from clipmind.agent.intent import Intent, IntentClassifier, IntentType
from clipmind.agent.llm import LLMClient
from clipmind.agent.router import route
from clipmind.agent.selector import ToolSelector
from clipmind.agent.state import PipelineOutput, PipelineState
from clipmind.agent.synthesizer import ResponseSynthesizer
from clipmind.agent.tools_executor import ToolExecutor

__all__ = [
    "Orchestrator",
    "ContextAssembler",
    "ContextBuilder",
    "Intent",
    "IntentClassifier",
    "IntentType",
    "LLMClient",
    "route",
    "ToolSelector",
    "PipelineOutput",
    "PipelineState",
    "ResponseSynthesizer",
    "ToolExecutor",
]
