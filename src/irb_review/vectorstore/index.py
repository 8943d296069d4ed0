"""Append-only vector index persisted as a single JSON blob."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from irb_review.asyncio_utils import maybe_await
from irb_review.embeddings import EmbeddingProvider
from irb_review.models import Chunk, VectorEntry
from irb_review.storage import BlobStore, InMemoryBlobStore

from .errors import VectorDimensionError, VectorStoreError

LOGGER = logging.getLogger(__name__)

DEFAULT_STORE_KEY = "vector_store.json"


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Return the cosine similarity of two vectors (``0.0`` if either is zero)."""

    a = np.asarray(vec_a, dtype=float)
    b = np.asarray(vec_b, dtype=float)
    if a.shape != b.shape:
        raise VectorDimensionError("Vectors must be of the same dimension")
    magnitude = float(np.linalg.norm(a) * np.linalg.norm(b))
    if magnitude == 0.0:
        return 0.0
    return float(np.dot(a, b) / magnitude)


class VectorIndex:
    """Ordered collection of :class:`VectorEntry` with cosine search.

    The whole index is rewritten to the blob store after every insertion and
    loaded back verbatim on construction.
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        *,
        store: Optional[BlobStore] = None,
        store_key: str = DEFAULT_STORE_KEY,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._store = store if store is not None else InMemoryBlobStore()
        self._store_key = store_key
        self._entries: List[VectorEntry] = []
        self._matrix: Optional[np.ndarray] = None
        self._lock = asyncio.Lock()
        self._load()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Tuple[VectorEntry, ...]:
        return tuple(self._entries)

    @property
    def dimension(self) -> Optional[int]:
        if not self._entries:
            return None
        return len(self._entries[0].embedding)

    async def add_chunk(self, chunk: Chunk) -> None:
        """Embed ``chunk`` and append it; embedding failures propagate."""

        embedding = await self._embed(chunk.content)
        async with self._lock:
            self._check_dimension(embedding)
            self._entries.append(
                VectorEntry(
                    id=chunk.id,
                    content=chunk.content,
                    embedding=embedding,
                    metadata=dict(chunk.metadata),
                )
            )
            self._matrix = None
            self._save()

    async def search(self, query: str, top_k: int = 3) -> List[str]:
        """Return the contents of the ``top_k`` most similar entries."""

        if top_k <= 0 or not self._entries:
            return []

        query_embedding = np.asarray(await self._embed(query), dtype=float)
        entries = list(self._entries)
        matrix = self._embedding_matrix(entries)
        if query_embedding.shape[0] != matrix.shape[1]:
            raise VectorDimensionError(
                f"Query embedding has dimension {query_embedding.shape[0]}, index expects {matrix.shape[1]}"
            )

        magnitudes = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_embedding)
        with np.errstate(divide="ignore", invalid="ignore"):
            similarities = np.where(magnitudes > 0, (matrix @ query_embedding) / magnitudes, 0.0)

        order = np.argsort(-similarities, kind="stable")[:top_k]
        LOGGER.debug(
            "Vector search over %s entries returned %s results (best=%.4f)",
            len(entries),
            len(order),
            float(similarities[order[0]]) if len(order) else 0.0,
        )
        return [entries[int(index)].content for index in order]

    async def _embed(self, text: str) -> List[float]:
        vectors = await maybe_await(self._embedding_provider.embed_texts([text]))
        if vectors is None or len(vectors) == 0 or len(vectors[0]) == 0:
            raise VectorStoreError("Embedding provider returned no vector")
        return [float(value) for value in vectors[0]]

    def _embedding_matrix(self, entries: List[VectorEntry]) -> np.ndarray:
        if self._matrix is None or self._matrix.shape[0] != len(entries):
            self._matrix = np.asarray([entry.embedding for entry in entries], dtype=float)
        return self._matrix

    def _check_dimension(self, embedding: List[float]) -> None:
        expected = self.dimension
        if expected is not None and len(embedding) != expected:
            raise VectorDimensionError(
                f"Embedding has dimension {len(embedding)}, index expects {expected}"
            )

    def _load(self) -> None:
        try:
            raw = self._store.read(self._store_key)
        except OSError as exc:
            raise VectorStoreError("Failed to read vector store", cause=exc) from exc
        if raw is None:
            LOGGER.info("No vector store at '%s'; starting empty", self._store_key)
            return

        try:
            records = json.loads(raw.decode("utf-8"))
            entries = [VectorEntry.from_dict(record) for record in records]
        except (UnicodeDecodeError, ValueError, TypeError, AttributeError) as exc:
            raise VectorStoreError(f"Vector store '{self._store_key}' is corrupt", cause=exc) from exc

        dimensions = {len(entry.embedding) for entry in entries}
        if len(dimensions) > 1:
            raise VectorDimensionError(
                f"Vector store '{self._store_key}' mixes embedding dimensions {sorted(dimensions)}"
            )
        self._entries = entries
        LOGGER.info("Loaded %s vectors from storage.", len(entries))

    def _save(self) -> None:
        payload = json.dumps([entry.to_dict() for entry in self._entries], ensure_ascii=False)
        try:
            self._store.write(self._store_key, payload.encode("utf-8"))
        except OSError as exc:
            raise VectorStoreError("Failed to persist vector store", cause=exc) from exc
        LOGGER.debug("Saved %s vectors to storage.", len(self._entries))


__all__ = ["DEFAULT_STORE_KEY", "VectorIndex", "cosine_similarity"]
