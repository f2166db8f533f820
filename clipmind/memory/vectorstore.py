"""
Vector Index
============

Local cosine-similarity index behind the long-term memory tier.

The index only knows ids, vectors and a small metadata dict; full Memory
records live in the MetadataStore. Keeping the two apart means the index
can be swapped for a hosted vector database without touching the records.

Search:
    cos(A, B) = (A · B) / (||A|| * ||B||)

    All vectors sit in one numpy matrix so a search is a single
    matrix-vector product.

Persistence (optional):
    When a storage directory is given, the index is written to
    `vectors.npy` + `index.json` after every mutation and reloaded on
    startup. File I/O runs in a worker thread.
"""

import asyncio
import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from clipmind.utils.logger import Logger

logger = Logger("VectorIndex")


@dataclass
class VectorHit:
    """A search result: record id and cosine similarity."""
    id: str
    score: float


class VectorIndex:
    """
    In-process vector index with cosine search.

    Example:
        index = VectorIndex(storage_path=Path("data/vectors"))

        await index.insert("mem_1", [0.1, 0.2, ...], {"session_id": "s1"})
        hits = await index.search([0.1, 0.19, ...], top_k=5)
        await index.delete("mem_1")
    """

    def __init__(self, storage_path: Path | None = None):
        self.storage_path = storage_path
        self._ids: list[str] = []
        self._metadata: dict[str, dict[str, Any]] = {}
        self._vectors: np.ndarray | None = None
        self._lock = threading.Lock()

        if storage_path is not None:
            storage_path.mkdir(parents=True, exist_ok=True)
            self._load()

        logger.info(f"Vector index initialized with {len(self._ids)} vectors")

    @property
    def _vectors_file(self) -> Path:
        return self.storage_path / "vectors.npy"

    @property
    def _index_file(self) -> Path:
        return self.storage_path / "index.json"

    def _load(self) -> None:
        if not self._index_file.exists():
            return

        try:
            data = json.loads(self._index_file.read_text(encoding="utf-8"))
            self._ids = data["ids"]
            self._metadata = data.get("metadata", {})
            if self._ids and self._vectors_file.exists():
                self._vectors = np.load(self._vectors_file)
        except (OSError, ValueError, KeyError) as e:
            logger.error("Error loading vector index", e)
            self._ids, self._metadata, self._vectors = [], {}, None

    def _save_sync(self, ids: list[str], metadata: dict, vectors: np.ndarray | None) -> None:
        self._index_file.write_text(
            json.dumps({"ids": ids, "metadata": metadata}, ensure_ascii=False),
            encoding="utf-8",
        )
        if vectors is not None:
            np.save(self._vectors_file, vectors)
        elif self._vectors_file.exists():
            self._vectors_file.unlink()

    async def _persist(self) -> None:
        if self.storage_path is None:
            return
        with self._lock:
            snapshot = (
                list(self._ids),
                dict(self._metadata),
                None if self._vectors is None else self._vectors.copy(),
            )
        await asyncio.to_thread(self._save_sync, *snapshot)

    async def insert(
        self,
        id: str,
        vector: list[float],
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Add or replace a vector."""
        row = np.asarray(vector, dtype=np.float32)

        with self._lock:
            if self._vectors is not None and row.shape[0] != self._vectors.shape[1]:
                raise ValueError(
                    f"Vector dimension {row.shape[0]} does not match index dimension "
                    f"{self._vectors.shape[1]}"
                )

            if id in self._metadata:
                self._vectors[self._ids.index(id)] = row
            elif self._vectors is None:
                self._vectors = row.reshape(1, -1)
                self._ids.append(id)
            else:
                self._vectors = np.vstack([self._vectors, row])
                self._ids.append(id)

            self._metadata[id] = metadata or {}

        await self._persist()

    async def search(self, vector: list[float], top_k: int = 10) -> list[VectorHit]:
        """
        Find the `top_k` most similar vectors.

        Returns:
            Hits sorted by similarity, highest first
        """
        if top_k <= 0:
            return []

        query = np.asarray(vector, dtype=np.float32)

        with self._lock:
            if self._vectors is None:
                return []
            vectors = self._vectors
            ids = list(self._ids)

        query_norm = np.linalg.norm(query) or 1.0
        norms = np.linalg.norm(vectors, axis=1)
        norms = np.where(norms == 0, 1, norms)
        similarities = vectors @ query / (norms * query_norm)

        order = np.argsort(-similarities)[:top_k]
        return [VectorHit(id=ids[i], score=float(similarities[i])) for i in order]

    async def delete(self, id: str) -> bool:
        """
        Returns:
            True if the id existed and was removed
        """
        with self._lock:
            if id not in self._metadata:
                return False

            position = self._ids.index(id)
            del self._ids[position]
            del self._metadata[id]
            if self._ids:
                self._vectors = np.delete(self._vectors, position, axis=0)
            else:
                self._vectors = None

        await self._persist()
        return True

    def metadata(self, id: str) -> dict[str, Any] | None:
        with self._lock:
            return self._metadata.get(id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)
