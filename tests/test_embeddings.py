from types import SimpleNamespace

import pytest

from irb_review.config import Settings
from irb_review.embeddings import (
    DEFAULT_OPENAI_EMBEDDING_MODEL,
    OpenAIEmbeddingProvider,
    build_embedding_provider,
)
from irb_review.providers import MockEmbeddingProvider


class FakeEmbeddings:
    def __init__(self) -> None:
        self.requests = []

    def create(self, *, model, input):
        self.requests.append((model, list(input)))
        # The API may return items out of order; ``index`` is authoritative.
        data = [
            SimpleNamespace(index=position, embedding=[float(position), float(len(text))])
            for position, text in enumerate(input)
        ]
        return SimpleNamespace(data=list(reversed(data)))


def test_openai_provider_orders_vectors_by_index() -> None:
    embeddings = FakeEmbeddings()
    provider = OpenAIEmbeddingProvider(client=SimpleNamespace(embeddings=embeddings))

    vectors = provider.embed_texts(["consent", "risk"])

    assert vectors == [[0.0, 7.0], [1.0, 4.0]]
    assert embeddings.requests == [(DEFAULT_OPENAI_EMBEDDING_MODEL, ["consent", "risk"])]


def test_openai_provider_skips_empty_batches() -> None:
    embeddings = FakeEmbeddings()
    provider = OpenAIEmbeddingProvider(client=SimpleNamespace(embeddings=embeddings))

    assert provider.embed_texts([]) == []
    assert embeddings.requests == []


def test_mock_backend_is_selectable() -> None:
    assert isinstance(build_embedding_provider(Settings(embedding_provider="mock")), MockEmbeddingProvider)


def test_openai_backend_replaces_local_model_name() -> None:
    provider = build_embedding_provider(Settings(embedding_provider="openai", openai_api_key="sk-test"))

    assert isinstance(provider, OpenAIEmbeddingProvider)
    assert provider.model_name == DEFAULT_OPENAI_EMBEDDING_MODEL


def test_unknown_backend_is_rejected() -> None:
    with pytest.raises(ValueError):
        build_embedding_provider(Settings(embedding_provider="word2vec"))
