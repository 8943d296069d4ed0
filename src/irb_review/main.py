import logging
from dataclasses import asdict
from typing import Any, Callable, TypeVar

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from irb_review.api import evaluation_router
from irb_review.config import get_settings
from irb_review.logging_config import configure_logging
from irb_review.services import get_corpus_service, get_evaluation_service

configure_logging()

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="IRB Review API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().frontend_url],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
)
app.include_router(evaluation_router)


T = TypeVar("T")


def _resolve_dependency(factory: Callable[[], T]) -> T:
    """Resolve a dependency while respecting FastAPI overrides."""

    override: Any | None = app.dependency_overrides.get(factory)
    resolved: Any = override if override is not None else factory
    return resolved() if callable(resolved) else resolved


@app.on_event("startup")
async def _ingest_default_documents() -> None:
    """Load the bundled reference documents into the index once."""

    settings = get_settings()
    if not settings.ingest_default_documents:
        LOGGER.info("INGEST_DEFAULT_DOCUMENTS disabled; skipping default corpus")
        return
    try:
        corpus = _resolve_dependency(get_corpus_service)
        await corpus.initialize_default_documents(settings.default_documents_dir)
    except Exception:
        LOGGER.exception("Error initializing with default documents")


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"


@app.get("/healthz")
def healthcheck() -> dict[str, object]:
    """Expose limiter counters, index size and model status."""

    service = _resolve_dependency(get_evaluation_service)
    corpus = _resolve_dependency(get_corpus_service)
    llm_status = service.llm.status()
    payload: dict[str, object] = {
        "status": "ok",
        "llm": asdict(llm_status),
        "vector_index": {
            "entries": len(corpus.vector_index),
            "dimension": corpus.vector_index.dimension,
        },
        "rate_limiter": asdict(service.rate_limiter.snapshot()),
    }
    return payload
