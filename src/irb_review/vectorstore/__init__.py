"""Vector index over the reference corpus."""

from __future__ import annotations

from functools import lru_cache

from .errors import VectorDimensionError, VectorStoreError
from .index import DEFAULT_STORE_KEY, VectorIndex, cosine_similarity


@lru_cache()
def get_vector_index() -> VectorIndex:
    """Return the process-wide vector index backed by ``DATA_DIR``."""

    from irb_review.config import get_settings
    from irb_review.embeddings import get_embedding_provider
    from irb_review.storage import LocalFileStore

    settings = get_settings()
    return VectorIndex(get_embedding_provider(), store=LocalFileStore(settings.data_dir))


def reset_vector_index_cache() -> None:
    """Clear the cached vector index (primarily for testing)."""

    get_vector_index.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "DEFAULT_STORE_KEY",
    "VectorDimensionError",
    "VectorIndex",
    "VectorStoreError",
    "cosine_similarity",
    "get_vector_index",
    "reset_vector_index_cache",
]
