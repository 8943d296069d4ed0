"""Common exceptions for the vector index."""
from __future__ import annotations


class VectorStoreError(RuntimeError):
    """Raised when the vector index cannot be loaded, written or queried."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class VectorDimensionError(VectorStoreError, ValueError):
    """Raised when an embedding does not match the index dimensionality."""
