"""Process-wide service instances shared by concurrent requests."""
from __future__ import annotations

from functools import lru_cache

from irb_review.config import get_settings
from irb_review.embeddings import reset_embedding_provider_cache
from irb_review.llm_provider import get_llm, reset_llm
from irb_review.ratelimit import RateLimiter
from irb_review.storage import LocalFileStore
from irb_review.tokenizer import Tokenizer
from irb_review.vectorstore import get_vector_index, reset_vector_index_cache

from .corpus import CorpusIngestResult, CorpusService
from .evaluation import EvaluationResult, EvaluationService, EvaluationWarning


@lru_cache()
def get_tokenizer() -> Tokenizer:
    return Tokenizer()


@lru_cache()
def get_rate_limiter() -> RateLimiter:
    """Return the single limiter every model call in this process goes through."""

    settings = get_settings()
    return RateLimiter(
        tokens_per_minute=settings.tokens_per_minute,
        requests_per_day=settings.requests_per_day,
        retry_delay_seconds=settings.rate_limit_retry_seconds,
    )


@lru_cache()
def get_evaluation_service() -> EvaluationService:
    return EvaluationService(
        llm=get_llm(),
        vector_index=get_vector_index(),
        rate_limiter=get_rate_limiter(),
        tokenizer=get_tokenizer(),
        settings=get_settings(),
    )


@lru_cache()
def get_corpus_service() -> CorpusService:
    settings = get_settings()
    return CorpusService(
        vector_index=get_vector_index(),
        tokenizer=get_tokenizer(),
        store=LocalFileStore(settings.data_dir),
        settings=settings,
    )


def reset_service_caches() -> None:
    """Drop every cached service instance (primarily for testing)."""

    for factory in (get_tokenizer, get_rate_limiter, get_evaluation_service, get_corpus_service):
        factory.cache_clear()  # type: ignore[attr-defined]
    reset_vector_index_cache()
    reset_embedding_provider_cache()
    reset_llm()


__all__ = [
    "CorpusIngestResult",
    "CorpusService",
    "EvaluationResult",
    "EvaluationService",
    "EvaluationWarning",
    "get_corpus_service",
    "get_evaluation_service",
    "get_rate_limiter",
    "get_tokenizer",
    "reset_service_caches",
]
