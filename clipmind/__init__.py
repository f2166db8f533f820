"""
ClipMind - Conversational Assistant for Video Creators
======================================================

An agent backend that classifies each message, grounds its answer with
remote MCP tools when needed, and keeps the conversation in tiered memory.

This package provides:
- Orchestrator pipeline: intent, routing, tool selection and execution, synthesis
- Tiered memory (short-term, working, long-term, compressed)
- MCP tool catalog over JSON-RPC
- Slack front end and maintenance scheduler
"""

__version__ = "0.1.0"
