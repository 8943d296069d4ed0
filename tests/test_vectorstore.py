import asyncio
import json
import math

import pytest

from irb_review.models import Chunk
from irb_review.storage import InMemoryBlobStore, LocalFileStore
from irb_review.vectorstore import (
    DEFAULT_STORE_KEY,
    VectorDimensionError,
    VectorIndex,
    VectorStoreError,
    cosine_similarity,
)


def _chunk(index: int, content: str) -> Chunk:
    return Chunk(id=f"doc-chunk-{index}", content=content, metadata={"title": "doc", "chunk_index": index})


def test_cosine_similarity_properties() -> None:
    a = [1.0, 2.0, 3.0]
    b = [-2.0, 0.5, 4.0]

    assert math.isclose(cosine_similarity(a, a), 1.0)
    assert math.isclose(cosine_similarity(a, b), cosine_similarity(b, a))
    assert cosine_similarity([0.0, 0.0, 0.0], a) == 0.0


def test_cosine_similarity_rejects_mismatched_dimensions() -> None:
    with pytest.raises(VectorDimensionError):
        cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


def test_search_orders_by_similarity_without_duplicates(vector_index) -> None:
    contents = [
        "privacy of stored data",
        "consent of children",
        "payment for participation",
        "consent consent risk",
    ]

    async def scenario():
        for index, content in enumerate(contents):
            await vector_index.add_chunk(_chunk(index, content))
        return await vector_index.search("consent risk", top_k=3), await vector_index.search("anything", top_k=10)

    top, everything = asyncio.run(scenario())

    assert top[0] == "consent consent risk"
    assert top[1] == "consent of children"
    assert len(top) == 3
    assert len(set(top)) == 3
    assert len(everything) == len(contents)


def test_ties_keep_insertion_order(vector_index) -> None:
    async def scenario():
        await vector_index.add_chunk(_chunk(0, "risk first"))
        await vector_index.add_chunk(_chunk(1, "risk second"))
        return await vector_index.search("risk", top_k=2)

    assert asyncio.run(scenario()) == ["risk first", "risk second"]


def test_search_on_empty_index_returns_nothing(vector_index, embedder) -> None:
    assert asyncio.run(vector_index.search("consent")) == []
    assert embedder.calls == 0


def test_index_persists_after_every_insert(embedder) -> None:
    store = InMemoryBlobStore()
    index = VectorIndex(embedder, store=store)

    asyncio.run(index.add_chunk(_chunk(0, "consent form")))

    records = json.loads(store.read(DEFAULT_STORE_KEY).decode("utf-8"))
    assert [record["id"] for record in records] == ["doc-chunk-0"]
    assert records[0]["metadata"]["chunk_index"] == 0

    reloaded = VectorIndex(embedder, store=store)
    assert len(reloaded) == 1
    assert reloaded.entries[0].embedding == index.entries[0].embedding


def test_local_file_store_round_trip(tmp_path, embedder) -> None:
    store = LocalFileStore(tmp_path)
    index = VectorIndex(embedder, store=store)
    asyncio.run(index.add_chunk(_chunk(0, "privacy data")))

    assert (tmp_path / DEFAULT_STORE_KEY).exists()
    assert asyncio.run(VectorIndex(embedder, store=store).search("privacy", top_k=1)) == ["privacy data"]


def test_corrupt_store_raises(embedder) -> None:
    store = InMemoryBlobStore()
    store.write(DEFAULT_STORE_KEY, b"{not json")

    with pytest.raises(VectorStoreError):
        VectorIndex(embedder, store=store)


def test_insert_with_other_dimension_is_rejected(embedder) -> None:
    class ShortEmbedder:
        def embed_texts(self, texts):
            return [[1.0, 0.0] for _ in texts]

    store = InMemoryBlobStore()
    index = VectorIndex(embedder, store=store)
    asyncio.run(index.add_chunk(_chunk(0, "consent")))

    mismatched = VectorIndex(ShortEmbedder(), store=store)
    with pytest.raises(VectorDimensionError):
        asyncio.run(mismatched.add_chunk(_chunk(1, "risk")))
    assert len(mismatched) == 1


def test_embedding_failures_propagate() -> None:
    class BrokenEmbedder:
        def embed_texts(self, texts):
            raise RuntimeError("embedding service down")

    index = VectorIndex(BrokenEmbedder())

    with pytest.raises(RuntimeError, match="embedding service down"):
        asyncio.run(index.add_chunk(_chunk(0, "consent")))
    assert len(index) == 0


def test_async_embedding_provider_is_awaited() -> None:
    class AsyncEmbedder:
        async def embed_texts(self, texts):
            return [[float(len(text)), 1.0] for text in texts]

    index = VectorIndex(AsyncEmbedder())

    asyncio.run(index.add_chunk(_chunk(0, "abc")))

    assert index.dimension == 2
