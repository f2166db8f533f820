"""
Embedding Generation
====================

Turns memory text into vectors for long-term semantic search, using any
OpenAI-compatible embeddings endpoint.

Caching:
    Embeddings are cached by content hash. A conversation repeats the same
    short phrases often ("thanks", "continue"), and long-term search
    embeds the query on every retrieve.
"""

import hashlib
from typing import Sequence

from openai import AsyncOpenAI

from clipmind.utils.logger import Logger

logger = Logger("Embeddings")


class EmbeddingGenerator:
    """
    Generates text embeddings through the OpenAI embeddings API.

    Example:
        generator = EmbeddingGenerator(api_key="sk-...", model="text-embedding-3-small")

        vector = await generator.generate("What is this video about?")
        vectors = await generator.generate_batch(["first", "second"])
    """

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        base_url: str | None = None,
        client: AsyncOpenAI | None = None,
    ):
        """
        Args:
            api_key: API key for the embeddings endpoint
            model: Embedding model name
            base_url: Optional OpenAI-compatible endpoint (e.g. local Ollama)
            client: Pre-built client, mainly for tests
        """
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.model = model
        self._cache: dict[str, list[float]] = {}

        logger.info(f"Embedding generator initialized with model: {model}")

    def _hash_text(self, text: str) -> str:
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    async def generate(self, text: str) -> list[float]:
        """Embed a single text."""
        cache_key = self._hash_text(text)
        if cache_key in self._cache:
            logger.debug("Embedding cache hit")
            return self._cache[cache_key]

        response = await self.client.embeddings.create(model=self.model, input=text)
        embedding = response.data[0].embedding

        self._cache[cache_key] = embedding
        logger.debug(f"Generated embedding (dim={len(embedding)})")
        return embedding

    async def generate_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Embed several texts with a single API call for the uncached ones.

        Returns:
            Vectors in the same order as `texts`
        """
        if not texts:
            return []

        results: list[list[float] | None] = []
        pending: list[tuple[int, str]] = []

        for i, text in enumerate(texts):
            cached = self._cache.get(self._hash_text(text))
            results.append(cached)
            if cached is None:
                pending.append((i, text))

        if pending:
            logger.debug(f"Generating {len(pending)} embeddings (batch)")
            response = await self.client.embeddings.create(
                model=self.model,
                input=[text for _, text in pending],
            )
            for (index, text), item in zip(pending, response.data):
                results[index] = item.embedding
                self._cache[self._hash_text(text)] = item.embedding

        return [r for r in results if r is not None]

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Embedding cache cleared")

    def get_cache_size(self) -> int:
        return len(self._cache)
