"""Offline embedding provider with stable, text-derived vectors."""
from __future__ import annotations

import hashlib
from typing import List, Sequence

import numpy as np


class MockEmbeddingProvider:
    """Hash each text into a seed and draw a unit-length vector from it.

    Identical texts always embed identically, so cosine search over a corpus
    indexed with this provider is reproducible across processes. Similarity
    carries no meaning beyond exact repeats.
    """

    def __init__(self, dimension: int = 8) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be a positive integer")
        self.dimension = dimension

    def _vector(self, text: str) -> np.ndarray:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        rng = np.random.default_rng(int.from_bytes(digest[:8], "big"))
        vector = rng.uniform(-1.0, 1.0, self.dimension)
        norm = float(np.linalg.norm(vector))
        return vector / norm if norm else vector

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        return [self._vector(text).tolist() for text in texts]


__all__ = ["MockEmbeddingProvider"]
