"""Ingestion of reference documents into the vector index."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from irb_review.config import Settings, get_settings
from irb_review.extract import SUPPORTED_SUFFIXES, extract_file
from irb_review.logging_config import AUDIT_LOGGER_NAME
from irb_review.models import Chunk, Document
from irb_review.storage import BlobStore
from irb_review.tokenizer import Tokenizer
from irb_review.vectorstore import VectorIndex

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)

DEFAULT_DOCUMENTS_FLAG = "default_documents_processed"


@dataclass(slots=True)
class CorpusIngestResult:
    """Outcome of :meth:`CorpusService.initialize_default_documents`."""

    documents: int = 0
    chunks: int = 0
    failed: List[str] = field(default_factory=list)
    skipped: bool = False
    duration_seconds: float = 0.0


class CorpusService:
    """Chunk reference documents and add them to the shared index."""

    def __init__(
        self,
        *,
        vector_index: VectorIndex,
        tokenizer: Tokenizer,
        store: BlobStore,
        settings: Settings | None = None,
    ) -> None:
        self._vector_index = vector_index
        self._tokenizer = tokenizer
        self._store = store
        self._settings = settings or get_settings()

    @property
    def vector_index(self) -> VectorIndex:
        return self._vector_index

    async def add_document(self, document: Document) -> int:
        """Index ``document`` as ``{id}-chunk-{i}`` chunks and return their count."""

        chunks = self._tokenizer.chunk_document(document, self._settings.corpus_chunk_tokens)
        for index, content in enumerate(chunks):
            await self._vector_index.add_chunk(
                Chunk(
                    id=f"{document.id}-chunk-{index}",
                    content=content,
                    metadata={
                        **document.metadata,
                        "title": document.title,
                        "chunk_index": index,
                        "total_chunks": len(chunks),
                    },
                )
            )
        LOGGER.info("Added document %s: %s chunks", document.id, len(chunks))
        AUDIT_LOGGER.info({"event": "add_document", "document_id": document.id, "chunk_count": len(chunks)})
        return len(chunks)

    async def initialize_default_documents(self, directory: Path | None = None) -> CorpusIngestResult:
        """Ingest every supported file in ``directory`` once.

        The presence flag is written after the pass even when single files
        failed, so a broken file is not re-ingested on every start.
        """

        if self._store.exists(DEFAULT_DOCUMENTS_FLAG):
            LOGGER.info("Default documents already processed. Skipping initialization.")
            return CorpusIngestResult(skipped=True)

        directory = Path(directory or self._settings.default_documents_dir)
        if not directory.is_dir():
            LOGGER.warning("Default documents directory %s does not exist; skipping", directory)
            return CorpusIngestResult(skipped=True)

        started = time.perf_counter()
        result = CorpusIngestResult()
        for path in sorted(directory.iterdir()):
            if not path.is_file() or path.suffix.lower() not in SUPPORTED_SUFFIXES:
                continue
            try:
                content = extract_file(path)
                count = await self.add_document(
                    Document(id=path.name, content=content, metadata={"title": path.name})
                )
            except Exception:
                LOGGER.exception("Error processing default document %s", path.name)
                result.failed.append(path.name)
                continue
            result.documents += 1
            result.chunks += count
            LOGGER.info("Processed %s: %s chunks", path.name, count)

        self._store.write(DEFAULT_DOCUMENTS_FLAG, b"processed")
        result.duration_seconds = time.perf_counter() - started
        LOGGER.info(
            "Initialized with %s default documents (%s total chunks, %s failed)",
            result.documents,
            result.chunks,
            len(result.failed),
        )
        return result


__all__ = ["CorpusIngestResult", "CorpusService", "DEFAULT_DOCUMENTS_FLAG"]
