"""
MCP Client
==========

JSON-RPC 2.0 client for a remote Model Context Protocol tool server over
streamable HTTP.

Protocol flow:
    1. initialize                 (once, lazily, on first request)
    2. notifications/initialized  (fire-and-forget)
    3. tools/list                 -> tool specs with JSON-Schema params
    4. tools/call {name, arguments}

The server may answer a POST either with a plain JSON body or with a
short `text/event-stream` whose `data:` lines carry the JSON-RPC reply.
Both are accepted. If the server issues an `Mcp-Session-Id` header during
initialize, it is echoed on every later request.

Errors:
    Transport failures and malformed replies on discovery -> ProtocolError
    Failures of a single tools/call                       -> ToolInvocationError
"""

import asyncio
import itertools
import json
from typing import Any

import httpx

from clipmind.errors import ProtocolError, ToolInvocationError
from clipmind.utils.logger import Logger

logger = Logger("MCPClient")

PROTOCOL_VERSION = "2025-03-26"
SESSION_HEADER = "Mcp-Session-Id"


class MCPClient:
    """
    Async MCP client.

    Example:
        client = MCPClient("http://localhost:8080/mcp", timeout=30)

        specs = await client.discover()
        result_json = await client.invoke("get_video_info", '{"video_id": "BV1234567890"}')

        await client.close()
    """

    def __init__(
        self,
        server_url: str,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
        client_name: str = "clipmind",
    ):
        """
        Args:
            server_url: Full JSON-RPC endpoint URL
            timeout: HTTP timeout per request in seconds
            http_client: Pre-built httpx client (tests pass one with a mock transport)
            client_name: Name reported during the initialize handshake
        """
        self.server_url = server_url
        self.client_name = client_name
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)
        self._session_id: str | None = None
        self._initialized = False
        self._init_lock = asyncio.Lock()

    # ==========================================================================
    # Transport
    # ==========================================================================

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
        }
        if self._session_id:
            headers[SESSION_HEADER] = self._session_id
        return headers

    @staticmethod
    def _parse_body(response: httpx.Response) -> dict:
        content_type = response.headers.get("content-type", "")

        if "text/event-stream" in content_type:
            message = None
            for line in response.text.splitlines():
                if line.startswith("data:"):
                    payload = line[len("data:"):].strip()
                    if payload:
                        message = json.loads(payload)
            if message is None:
                raise ValueError("event stream carried no data")
            return message

        return response.json()

    async def _post(self, payload: dict) -> httpx.Response:
        response = await self._http.post(self.server_url, json=payload, headers=self._headers())
        if response.status_code >= 400:
            raise ProtocolError(
                f"MCP server returned HTTP {response.status_code}: {response.text[:200]}"
            )
        return response

    async def _request(self, method: str, params: dict | None = None) -> dict:
        """
        Send one JSON-RPC request and return its `result`.

        Raises:
            ProtocolError: Transport failure, bad JSON, or a JSON-RPC error object
        """
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method}
        if params is not None:
            payload["params"] = params

        try:
            response = await self._post(payload)
            message = self._parse_body(response)
        except httpx.HTTPError as e:
            raise ProtocolError(f"MCP request '{method}' failed: {e}") from e
        except ValueError as e:
            raise ProtocolError(f"MCP response to '{method}' is not valid JSON: {e}") from e

        if SESSION_HEADER in response.headers:
            self._session_id = response.headers[SESSION_HEADER]

        if message.get("error"):
            error = message["error"]
            raise ProtocolError(
                f"MCP error [{error.get('code')}] on '{method}': {error.get('message')}"
            )

        return message.get("result") or {}

    async def _notify(self, method: str) -> None:
        try:
            await self._post({"jsonrpc": "2.0", "method": method})
        except (httpx.HTTPError, ProtocolError) as e:
            logger.warning(f"Notification {method} failed: {e}")

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            result = await self._request("initialize", {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": self.client_name, "version": "0.1.0"},
            })
            await self._notify("notifications/initialized")

            self._initialized = True
            server = result.get("serverInfo", {})
            logger.info(
                f"Connected to MCP server: {server.get('name', 'unknown')} "
                f"{server.get('version', '')}".rstrip()
            )

    # ==========================================================================
    # Public API
    # ==========================================================================

    async def discover(self) -> list[dict[str, Any]]:
        """
        List the server's tools.

        Returns:
            [{"name", "description", "parameters"}] where parameters is the
            tool's JSON Schema

        Raises:
            ProtocolError: If the server is unreachable or misbehaves
        """
        await self._ensure_initialized()

        tools: list[dict[str, Any]] = []
        cursor = None
        while True:
            result = await self._request("tools/list", {"cursor": cursor} if cursor else None)
            for tool in result.get("tools", []):
                tools.append({
                    "name": tool["name"],
                    "description": tool.get("description", ""),
                    "parameters": tool.get("inputSchema") or {"type": "object", "properties": {}},
                })
            cursor = result.get("nextCursor")
            if not cursor:
                break

        logger.debug(f"Discovered {len(tools)} tools")
        return tools

    async def invoke(self, name: str, params_json: str) -> str:
        """
        Call a tool.

        Args:
            name: Tool name
            params_json: JSON object of arguments

        Returns:
            The JSON-encoded `result` object of tools/call

        Raises:
            ToolInvocationError: If the call fails or the tool reports isError
        """
        try:
            arguments = json.loads(params_json) if params_json else {}
        except json.JSONDecodeError as e:
            raise ToolInvocationError(name, f"invalid params JSON: {e}") from e

        try:
            await self._ensure_initialized()
            result = await self._request("tools/call", {"name": name, "arguments": arguments})
        except ProtocolError as e:
            raise ToolInvocationError(name, str(e)) from e

        if result.get("isError"):
            texts = [
                item.get("text", "")
                for item in result.get("content", [])
                if isinstance(item, dict)
            ]
            raise ToolInvocationError(name, " ".join(t for t in texts if t) or "tool reported an error")

        return json.dumps(result, ensure_ascii=False)

    async def close(self) -> None:
        await self._http.aclose()
