"""Provider exports for embedding and LLM mocks."""
from __future__ import annotations

from .mock_embedding import MockEmbeddingProvider
from .mock_llm import MockLLM

__all__ = ["MockEmbeddingProvider", "MockLLM"]
