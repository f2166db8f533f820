"""
Tool Catalog
============

The set of remote tools the pipeline can call, as reported by the MCP
server.

Tools are not defined locally: the catalog asks the server which tools
exist (name, description, JSON-Schema params), caches the answer, and
forwards calls back to the server. The server can add or remove tools at
any time, so the cache is refreshed on demand and periodically by the
maintenance scheduler.

How Tools Are Used:
1. ToolSelector shows the catalog to the LLM and gets back a selection
2. ToolExecutor invokes each selected tool through the catalog
3. ResponseSynthesizer turns the raw results into a reply

This module provides:
- ToolSpec: one tool's name, description and parameter schema
- ToolClient: the protocol the catalog talks to (MCPClient implements it)
- ToolCatalog: cached discovery plus timed invocation
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from clipmind.errors import ProtocolError, ToolInvocationError
from clipmind.utils.logger import Logger

logger = Logger("Tools")


@dataclass
class ToolSpec:
    """
    Definition of a remote tool.

    Attributes:
        name: Unique identifier for the tool
        description: What the tool does (shown to the LLM)
        parameters: JSON Schema for the arguments

    Example:
        ToolSpec(
            name="get_video_info",
            description="Fetch title, author and statistics for a video",
            parameters={
                "type": "object",
                "properties": {"video_id": {"type": "string"}},
                "required": ["video_id"],
            },
        )
    """
    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)

    @property
    def properties(self) -> dict[str, Any]:
        return self.parameters.get("properties") or {}

    @property
    def required(self) -> list[str]:
        return list(self.parameters.get("required") or [])

    def has_param(self, name: str) -> bool:
        return name in self.properties

    def to_prompt_dict(self) -> dict:
        """Compact form for embedding in an LLM prompt."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


class ToolClient(Protocol):
    async def discover(self) -> list[dict[str, Any]]: ...

    async def invoke(self, name: str, params_json: str) -> str: ...


class ToolCatalog:
    """
    Cached view of the remote tool server.

    Example:
        catalog = ToolCatalog(MCPClient(url))

        specs = await catalog.list_tools()       # discovers on first call
        await catalog.refresh()                  # force rediscovery
        result = await catalog.invoke("get_video_info", {"video_id": "BV1234567890"})
    """

    def __init__(self, client: ToolClient | None, invoke_timeout: float | None = 30.0):
        """
        Args:
            client: Protocol client; None means no tool server is configured
            invoke_timeout: Seconds allowed for each tool call
        """
        self.client = client
        self.invoke_timeout = invoke_timeout
        self._tools: dict[str, ToolSpec] | None = None
        self._refreshed_at: datetime | None = None
        self._lock = asyncio.Lock()

    @property
    def refreshed_at(self) -> datetime | None:
        return self._refreshed_at

    async def refresh(self) -> list[ToolSpec]:
        """
        Rediscover the server's tools and replace the cache.

        Raises:
            ProtocolError: If discovery fails (the previous cache is kept)
        """
        if self.client is None:
            raise ProtocolError("No tool server configured")

        async with self._lock:
            try:
                raw_tools = await self.client.discover()
            except ProtocolError:
                raise
            except Exception as e:
                raise ProtocolError(f"Tool discovery failed: {e}") from e

            tools = {}
            for raw in raw_tools:
                spec = ToolSpec(
                    name=raw["name"],
                    description=raw.get("description", ""),
                    parameters=raw.get("parameters") or {},
                )
                tools[spec.name] = spec

            self._tools = tools
            self._refreshed_at = datetime.now()

        logger.info(f"Tool catalog refreshed: {len(tools)} tools")
        return list(tools.values())

    async def list_tools(self) -> list[ToolSpec]:
        """
        Cached tool list, discovering on first use.

        Raises:
            ProtocolError: If the first discovery fails
        """
        if self._tools is None:
            return await self.refresh()
        return list(self._tools.values())

    async def get(self, name: str) -> ToolSpec | None:
        tools = await self.list_tools()
        return next((t for t in tools if t.name == name), None)

    def list_names(self) -> list[str]:
        """Names in the current cache without triggering discovery."""
        return list(self._tools.keys()) if self._tools else []

    async def invoke(self, name: str, params: dict[str, Any]) -> str:
        """
        Call a tool with a per-call timeout.

        Returns:
            The raw JSON result string

        Raises:
            ToolInvocationError: On any failure, including timeout
        """
        if self.client is None:
            raise ToolInvocationError(name, "no tool server configured")

        logger.info(f"Executing tool: {name}")
        try:
            return await asyncio.wait_for(
                self.client.invoke(name, json.dumps(params, ensure_ascii=False)),
                timeout=self.invoke_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ToolInvocationError(name, f"timed out after {self.invoke_timeout}s") from e
        except ToolInvocationError:
            raise
        except Exception as e:
            raise ToolInvocationError(name, str(e)) from e


__all__ = [
    "ToolSpec",
    "ToolClient",
    "ToolCatalog",
]
