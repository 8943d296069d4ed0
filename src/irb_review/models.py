"""Data models shared by the ingestion and evaluation flows."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(slots=True)
class Document:
    """Raw text handed over by the document source."""

    id: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def title(self) -> str:
        return str(self.metadata.get("title") or self.id)


@dataclass(slots=True)
class Chunk:
    """A bounded slice of a document ready to be embedded."""

    id: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class VectorEntry:
    """Chunk content paired with its embedding."""

    id: str
    content: str
    embedding: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "embedding": list(map(float, self.embedding)),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> "VectorEntry":
        return cls(
            id=str(record.get("id", "")),
            content=str(record.get("content", "")),
            embedding=[float(value) for value in record.get("embedding", [])],
            metadata=dict(record.get("metadata") or {}),
        )


__all__ = ["Chunk", "Document", "VectorEntry"]
