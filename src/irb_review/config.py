"""Environment driven configuration for the evaluation service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

LOGGER = logging.getLogger(__name__)

DEFAULT_LLM_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_LLM_MODEL = "llama3-8b-8192"
DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_TOKENIZER_NAME = "gpt2"


def env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value or default


def env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


@dataclass(frozen=True, slots=True)
class Settings:
    """Resolved runtime settings.

    Every field maps to one environment variable; see :func:`load_settings`.
    """

    llm_api_key: Optional[str] = None
    llm_base_url: str = DEFAULT_LLM_BASE_URL
    llm_model: str = DEFAULT_LLM_MODEL
    llm_stub: bool = False
    llm_provider: str = "openai-compatible"

    embedding_provider: str = "sentence-transformers"
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    openai_api_key: Optional[str] = None
    tokenizer_name: str = DEFAULT_TOKENIZER_NAME

    data_dir: Path = Path("data")
    default_documents_dir: Path = Path("default_documents")
    log_dir: Path = Path("logs")
    ingest_default_documents: bool = True

    tokens_per_minute: int = 59_000
    requests_per_day: int = 100_000
    rate_limit_retry_seconds: float = 1.0

    max_context_tokens: int = 8192
    reserved_response_tokens: int = 10
    evaluation_chunk_tokens: int = 2000
    summary_chunk_tokens: int = 4000
    corpus_chunk_tokens: int = 500
    retrieval_top_k: int = 3
    max_summary_iterations: int = 6

    evaluation_timeout_seconds: float = 1800.0
    frontend_url: str = "http://localhost:3000"
    host: str = "0.0.0.0"
    port: int = 3001


def load_settings() -> Settings:
    """Build :class:`Settings` from the current process environment."""

    return Settings(
        llm_api_key=env_str("LLM_API_KEY") or env_str("GROQ_API_KEY"),
        llm_base_url=env_str("LLM_BASE_URL", DEFAULT_LLM_BASE_URL) or DEFAULT_LLM_BASE_URL,
        llm_model=env_str("LLM_MODEL", DEFAULT_LLM_MODEL) or DEFAULT_LLM_MODEL,
        llm_stub=env_flag("LLM_STUB"),
        llm_provider=(env_str("LLM_PROVIDER", "openai-compatible") or "").lower(),
        embedding_provider=(env_str("EMBEDDING_PROVIDER", "sentence-transformers") or "").lower(),
        embedding_model=env_str("EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL) or DEFAULT_EMBEDDING_MODEL,
        openai_api_key=env_str("OPENAI_API_KEY"),
        tokenizer_name=env_str("TOKENIZER_NAME", DEFAULT_TOKENIZER_NAME) or DEFAULT_TOKENIZER_NAME,
        data_dir=Path(env_str("DATA_DIR", "data") or "data"),
        default_documents_dir=Path(
            env_str("DEFAULT_DOCUMENTS_DIR", "default_documents") or "default_documents"
        ),
        log_dir=Path(env_str("LOG_DIR", "logs") or "logs"),
        ingest_default_documents=env_flag("INGEST_DEFAULT_DOCUMENTS", True),
        tokens_per_minute=env_int("TOKENS_PER_MINUTE", 59_000),
        requests_per_day=env_int("REQUESTS_PER_DAY", 100_000),
        rate_limit_retry_seconds=env_float("RATE_LIMIT_RETRY_SECONDS", 1.0),
        max_context_tokens=env_int("MAX_CONTEXT_TOKENS", 8192),
        reserved_response_tokens=env_int("RESERVED_RESPONSE_TOKENS", 10),
        evaluation_chunk_tokens=env_int("EVALUATION_CHUNK_TOKENS", 2000),
        summary_chunk_tokens=env_int("SUMMARY_CHUNK_TOKENS", 4000),
        corpus_chunk_tokens=env_int("CORPUS_CHUNK_TOKENS", 500),
        retrieval_top_k=env_int("RETRIEVAL_TOP_K", 3),
        max_summary_iterations=env_int("MAX_SUMMARY_ITERATIONS", 6),
        evaluation_timeout_seconds=env_float("EVALUATION_TIMEOUT_SECONDS", 1800.0),
        frontend_url=env_str("FRONTEND_URL", "http://localhost:3000") or "http://localhost:3000",
        host=env_str("HOST", "0.0.0.0") or "0.0.0.0",
        port=env_int("PORT", 3001),
    )


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings for the running process."""

    return load_settings()


def reset_settings_cache() -> None:
    """Clear the cached settings (primarily for testing)."""

    get_settings.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "Settings",
    "env_flag",
    "env_float",
    "env_int",
    "env_str",
    "get_settings",
    "load_settings",
    "reset_settings_cache",
]
