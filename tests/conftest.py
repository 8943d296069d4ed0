"""Shared fakes for the tokenizer, embeddings, language model and clock."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import pytest

from irb_review.config import Settings, reset_settings_cache
from irb_review.llm_provider import LLM, ChatMessage, reset_llm
from irb_review.ratelimit import RateLimiter
from irb_review.services import reset_service_caches
from irb_review.tokenizer import Tokenizer
from irb_review.vectorstore import VectorIndex


class WordEncoder:
    """One token per whitespace-separated word."""

    def encode(self, text: str) -> List[int]:
        return list(range(len(text.split())))


class KeywordEmbeddingProvider:
    """Embed text as counts of a fixed vocabulary, so similarity is predictable."""

    def __init__(self, vocabulary: Sequence[str]) -> None:
        self.vocabulary = [word.lower() for word in vocabulary]
        self.calls = 0

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls += 1
        vectors = []
        for text in texts:
            words = re.findall(r"[a-z]+", text.lower())
            vectors.append([float(words.count(word)) for word in self.vocabulary])
        return vectors


class ScriptedLLM(LLM):
    """LLM whose answer is computed by ``handler(prompt)``; records each call."""

    def __init__(self, handler: Optional[Callable[[str], str]] = None) -> None:
        self.handler = handler or (lambda prompt: "evaluation")
        self.calls: List[dict] = []

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        model: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 512,
    ) -> str:
        prompt = messages[-1]["content"]
        self.calls.append({"prompt": prompt, "temperature": temperature, "max_tokens": max_tokens})
        return self.handler(prompt)

    @property
    def provider(self) -> str:
        return "scripted"

    @property
    def model_name(self) -> str:
        return "scripted-model"

    @property
    def ready(self) -> bool:
        return True

    def prompts_containing(self, marker: str) -> List[str]:
        return [call["prompt"] for call in self.calls if marker in call["prompt"]]


class FakeClock:
    """Manual clock whose ``sleep`` advances time instead of waiting."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture(autouse=True)
def _reset_caches():
    reset_settings_cache()
    reset_service_caches()
    yield
    reset_settings_cache()
    reset_service_caches()
    reset_llm()


@pytest.fixture
def tokenizer() -> Tokenizer:
    return Tokenizer(WordEncoder())


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rate_limiter(clock: FakeClock) -> RateLimiter:
    return RateLimiter(tokens_per_minute=100_000, requests_per_day=100_000, clock=clock, sleep=clock.sleep)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        data_dir=tmp_path / "data",
        default_documents_dir=tmp_path / "default_documents",
        log_dir=tmp_path / "logs",
        max_context_tokens=1000,
        reserved_response_tokens=10,
        evaluation_chunk_tokens=40,
        summary_chunk_tokens=60,
        corpus_chunk_tokens=20,
        retrieval_top_k=3,
        max_summary_iterations=6,
        evaluation_timeout_seconds=5.0,
    )


@pytest.fixture
def embedder() -> KeywordEmbeddingProvider:
    return KeywordEmbeddingProvider(["consent", "risk", "privacy", "data", "children", "payment"])


@pytest.fixture
def vector_index(embedder: KeywordEmbeddingProvider) -> VectorIndex:
    return VectorIndex(embedder)
