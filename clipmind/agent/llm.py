"""
Language Model Client
=====================

Thin wrapper over `openai.AsyncOpenAI` that every pipeline stage shares.

Any OpenAI-compatible endpoint works (OpenAI, Azure, a local Ollama at
http://localhost:11434/v1), selected by LLM_BASE_URL.

The wrapper exists for two reasons:
1. Stages talk in plain `[{"role": ..., "content": ...}]` lists and get
   plain strings back
2. SDK exceptions are mapped onto the ClipMind error hierarchy, so stages
   can tell "the model timed out" from "the model is unreachable"

    openai.APITimeoutError / asyncio.TimeoutError  -> LLMTimeoutError
    openai.APIConnectionError                      -> LLMConnectionError
    any other openai.APIError                      -> LLMError
"""

import asyncio
from typing import AsyncIterator

import openai
from openai import AsyncOpenAI

from clipmind.errors import LLMConnectionError, LLMError, LLMTimeoutError
from clipmind.utils.logger import Logger

logger = Logger("LLM")

Message = dict[str, str]


def _map_error(e: Exception) -> LLMError:
    # APITimeoutError subclasses APIConnectionError, so it is checked first
    if isinstance(e, (openai.APITimeoutError, asyncio.TimeoutError)):
        return LLMTimeoutError(f"Model call timed out: {e}")
    if isinstance(e, openai.APIConnectionError):
        return LLMConnectionError(f"Model endpoint unreachable: {e}")
    return LLMError(f"Model call failed: {e}")


class LLMClient:
    """
    Chat-completion client.

    Example:
        llm = LLMClient(api_key="sk-...", model="gpt-4o-mini")

        reply = await llm.generate(
            [{"role": "user", "content": "Hello"}],
            timeout=30,
        )

        async for delta in llm.stream(messages):
            print(delta, end="")
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        client: AsyncOpenAI | None = None,
        temperature: float = 0.3,
    ):
        """
        Args:
            api_key: API key (any non-empty value for local Ollama)
            model: Chat model name
            base_url: OpenAI-compatible endpoint, None for api.openai.com
            client: Pre-built client, mainly for tests
            temperature: Sampling temperature for every call
        """
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.model = model
        self.temperature = temperature

        logger.info(f"LLM client initialized with model: {model}")

    async def generate(self, messages: list[Message], timeout: float | None = None) -> str:
        """
        Run one chat completion and return the reply text.

        Raises:
            LLMTimeoutError: The call exceeded `timeout`
            LLMConnectionError: The endpoint could not be reached
            LLMError: Any other API failure
        """
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=self.temperature,
                ),
                timeout=timeout,
            )
        except (openai.APIError, asyncio.TimeoutError) as e:
            raise _map_error(e) from e

        content = response.choices[0].message.content or ""
        logger.debug(f"Generated {len(content)} chars")
        return content

    async def stream(
        self,
        messages: list[Message],
        timeout: float | None = None,
    ) -> AsyncIterator[str]:
        """
        Stream reply deltas as they arrive.

        `timeout` bounds opening the stream; once deltas flow, the
        caller's own deadline applies.
        """
        try:
            stream = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=self.temperature,
                    stream=True,
                ),
                timeout=timeout,
            )
        except (openai.APIError, asyncio.TimeoutError) as e:
            raise _map_error(e) from e

        try:
            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except openai.APIError as e:
            raise _map_error(e) from e
