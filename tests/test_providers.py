import asyncio
import math

import pytest

from irb_review.llm_provider import user_message
from irb_review.providers import MockEmbeddingProvider, MockLLM


def test_mock_embeddings_are_deterministic() -> None:
    provider = MockEmbeddingProvider(dimension=4)

    first = provider.embed_texts(["consent", "risk"])
    second = provider.embed_texts(["consent"])

    assert len(first) == 2
    assert all(len(vector) == 4 for vector in first)
    assert first[0] == second[0]
    assert first[0] != first[1]
    assert all(-1.0 <= value <= 1.0 for value in first[0])


def test_mock_embeddings_have_unit_length() -> None:
    vectors = MockEmbeddingProvider(dimension=16).embed_texts(["Respect for persons", ""])

    for vector in vectors:
        assert math.isclose(math.sqrt(sum(value * value for value in vector)), 1.0)


def test_mock_embeddings_require_positive_dimension() -> None:
    with pytest.raises(ValueError):
        MockEmbeddingProvider(dimension=0)


def test_mock_llm_echoes_prompt_prefix() -> None:
    llm = MockLLM(prefix="EVAL")
    prompt = "x" * 150

    response = asyncio.run(llm.complete(user_message(prompt)))

    assert response == "EVAL: " + "x" * 100
    assert llm.calls == 1
    assert llm.status().ready is True
    assert llm.status().provider == "mock"
