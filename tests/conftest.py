"""
Shared fakes and fixtures.

The pipeline talks to three outside services: the language model, the
embeddings endpoint and the MCP tool server. Each has a scripted fake
here so tests never touch the network.
"""

import asyncio
import base64
import json
from datetime import timedelta

import pytest

from clipmind.memory import MemoryManager
from clipmind.memory.long_term import LongTermStore, MetadataStore
from clipmind.memory.short_term import ShortTermStore
from clipmind.memory.vectorstore import VectorIndex
from clipmind.memory.working import WorkingStore
from clipmind.tools import ToolCatalog


class FakeLLM:
    """
    Scripted language model.

    Each `generate` call consumes the next scripted response. A response
    that is an exception instance is raised instead of returned.
    """

    def __init__(self, responses=None, delay: float = 0.0, model: str = "fake-model"):
        self.responses = list(responses or [])
        self.delay = delay
        self.model = model
        self.calls: list[list[dict]] = []

    def _next(self):
        if not self.responses:
            raise AssertionError("FakeLLM ran out of scripted responses")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def generate(self, messages, timeout=None):
        self.calls.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self._next()

    async def stream(self, messages, timeout=None):
        self.calls.append(messages)
        reply = self._next()
        for i in range(0, len(reply), 4):
            yield reply[i:i + 4]


class FakeEmbedder:
    """
    Deterministic 8-dimensional character histogram.

    `delays` maps a text to seconds to sleep before embedding it.
    """

    def __init__(self, fail: bool = False, delays=None):
        self.fail = fail
        self.delays = dict(delays or {})
        self.calls = 0

    async def generate(self, text: str) -> list[float]:
        self.calls += 1
        if text in self.delays:
            await asyncio.sleep(self.delays[text])
        if self.fail:
            raise RuntimeError("embeddings endpoint down")
        vector = [1.0] * 8
        for char in text:
            vector[ord(char) % 8] += 1.0
        return vector


class FakeToolClient:
    """
    In-process tool server.

    `results` maps a tool name to its raw JSON string, or to an exception
    to raise. `delays` maps a tool name to seconds to sleep first.
    """

    def __init__(self, tools=None, results=None, delays=None, discover_error=None):
        self.tools = list(tools or [])
        self.results = dict(results or {})
        self.delays = dict(delays or {})
        self.discover_error = discover_error
        self.calls: list[tuple[str, dict]] = []
        self.discover_calls = 0

    async def discover(self):
        self.discover_calls += 1
        if self.discover_error is not None:
            raise self.discover_error
        return list(self.tools)

    async def invoke(self, name: str, params_json: str) -> str:
        self.calls.append((name, json.loads(params_json)))
        if name in self.delays:
            await asyncio.sleep(self.delays[name])
        result = self.results.get(name, "{}")
        if isinstance(result, Exception):
            raise result
        return result


def tool_spec(name: str, *params: str, required=None, description: str = "") -> dict:
    """Raw tool description as MCPClient.discover returns it."""
    return {
        "name": name,
        "description": description or f"{name} tool",
        "parameters": {
            "type": "object",
            "properties": {p: {"type": "string"} for p in params},
            "required": list(required if required is not None else params[:1]),
        },
    }


def mcp_envelope(payload: dict) -> str:
    """Tool result in the MCP content envelope with a base64 JSON body."""
    encoded = base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")
    return json.dumps({"content": [{"type": "text", "text": encoded}]})


VIDEO_TOOLS = [
    tool_spec("get_video_info", "video_id", description="Fetch video title and statistics"),
    tool_spec("get_comments", "video_id", "limit", description="Fetch top comments"),
    tool_spec("search_videos", "keyword", description="Search videos by keyword"),
]


def build_memory(
    embedder=None,
    compression_threshold: int = 10,
    ttl=timedelta(hours=24),
    long_term_timeout: float = 30.0,
):
    return MemoryManager(
        short_term=ShortTermStore(max_items=1000, ttl=ttl),
        working=WorkingStore(max_size=100),
        long_term=LongTermStore(VectorIndex(), MetadataStore(), embedder or FakeEmbedder()),
        compression_threshold=compression_threshold,
        long_term_timeout=long_term_timeout,
    )


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def memory(embedder):
    return build_memory(embedder)


@pytest.fixture
def tool_client():
    return FakeToolClient(tools=VIDEO_TOOLS)


@pytest.fixture
def catalog(tool_client):
    return ToolCatalog(tool_client, invoke_timeout=5.0)
