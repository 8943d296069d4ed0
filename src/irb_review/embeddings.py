"""Embedding providers used to index and query the reference corpus."""
from __future__ import annotations

import logging
import time
from functools import lru_cache
from typing import Any, List, Optional, Protocol, Sequence

from openai import OpenAI

from irb_review.config import Settings, get_settings

LOGGER = logging.getLogger(__name__)

DEFAULT_OPENAI_EMBEDDING_MODEL = "text-embedding-ada-002"


class EmbeddingProvider(Protocol):
    """Protocol describing the embedding provider contract.

    Implementations may be synchronous or return an awaitable.
    """

    def embed_texts(self, texts: Sequence[str]) -> Any:
        """Return one fixed-length vector per input text."""


class SentenceTransformerEmbeddingProvider:
    """Wrapper around a local SentenceTransformer model."""

    def __init__(self, model_name_or_path: str, *, device: str | None = None) -> None:
        from sentence_transformers import SentenceTransformer

        self.model_name = model_name_or_path
        self._model = SentenceTransformer(model_name_or_path, device=device)
        self._dimension = int(self._model.get_sentence_embedding_dimension())
        LOGGER.info("Loaded embedding model '%s' (dimension=%s)", model_name_or_path, self._dimension)

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        started = time.perf_counter()
        embeddings = self._model.encode(
            list(texts),
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=False,
        )
        LOGGER.debug(
            "Embedded %s texts with %s in %.1fms",
            len(texts),
            self.model_name,
            (time.perf_counter() - started) * 1000.0,
        )
        return embeddings.tolist()


class OpenAIEmbeddingProvider:
    """Remote embeddings from the OpenAI embeddings endpoint."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: str = DEFAULT_OPENAI_EMBEDDING_MODEL,
        client: Optional[OpenAI] = None,
    ) -> None:
        self.model_name = model
        self._client = client or OpenAI(api_key=api_key)

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        started = time.perf_counter()
        response = self._client.embeddings.create(model=self.model_name, input=list(texts))
        vectors = [list(item.embedding) for item in sorted(response.data, key=lambda item: item.index)]
        LOGGER.debug(
            "Embedded %s texts with %s in %.1fms",
            len(texts),
            self.model_name,
            (time.perf_counter() - started) * 1000.0,
        )
        return vectors


def build_embedding_provider(settings: Settings) -> EmbeddingProvider:
    """Instantiate the provider selected by ``EMBEDDING_PROVIDER``."""

    backend = settings.embedding_provider
    if backend in {"sentence-transformers", "sentence_transformers", "local"}:
        return SentenceTransformerEmbeddingProvider(settings.embedding_model)
    if backend == "openai":
        model = settings.embedding_model
        if model.startswith("sentence-transformers/"):
            model = DEFAULT_OPENAI_EMBEDDING_MODEL
        return OpenAIEmbeddingProvider(api_key=settings.openai_api_key, model=model)
    if backend == "mock":
        from irb_review.providers import MockEmbeddingProvider

        LOGGER.warning("EMBEDDING_PROVIDER=mock; using deterministic hash embeddings.")
        return MockEmbeddingProvider()
    raise ValueError(f"Unsupported EMBEDDING_PROVIDER: {backend!r}")


@lru_cache()
def get_embedding_provider() -> EmbeddingProvider:
    """Return a cached embedding provider instance."""

    return build_embedding_provider(get_settings())


def reset_embedding_provider_cache() -> None:
    """Clear the cached embedding provider (primarily for testing)."""

    get_embedding_provider.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "EmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "SentenceTransformerEmbeddingProvider",
    "build_embedding_provider",
    "get_embedding_provider",
    "reset_embedding_provider_cache",
]
