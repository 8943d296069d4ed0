"""API router exposing study evaluation and corpus ingestion endpoints."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, Field

from irb_review.config import Settings, get_settings
from irb_review.errors import EmptyStudyError, EvaluationError
from irb_review.extract import ExtractionError, extract_text
from irb_review.models import Document
from irb_review.services import get_corpus_service, get_evaluation_service
from irb_review.services.corpus import CorpusService
from irb_review.services.evaluation import EvaluationResult, EvaluationService
from irb_review.storage import sanitize_key
from irb_review.vectorstore import VectorStoreError

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["evaluation"])


class EvaluationWarningModel(BaseModel):
    stage: str
    message: str
    section: Optional[str] = None
    chunk_index: Optional[int] = Field(None, alias="chunkIndex")


class EvaluateStudyResponse(BaseModel):
    """Response payload for the evaluate-study endpoint."""

    summary: str
    full_evaluation: str = Field(..., alias="fullEvaluation")
    warnings: list[EvaluationWarningModel] = Field(default_factory=list)


class AddDocumentResponse(BaseModel):
    """Response body returned from the add-document endpoint."""

    status: str
    document_id: str = Field(..., alias="documentId")
    chunks: int


async def _read_upload(upload: UploadFile) -> str:
    data = await upload.read()
    try:
        return extract_text(data, upload.filename or "")
    except ExtractionError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _document_id(filename: str) -> str:
    try:
        stem = Path(sanitize_key(filename)).stem
    except ValueError:
        stem = "document"
    return f"{stem}-{uuid4().hex[:12]}"


def _serialise_result(result: EvaluationResult) -> EvaluateStudyResponse:
    return EvaluateStudyResponse(
        summary=result.summary,
        fullEvaluation=result.full_evaluation,
        warnings=[
            EvaluationWarningModel(
                stage=warning.stage,
                message=warning.message,
                section=warning.section,
                chunkIndex=warning.chunk_index,
            )
            for warning in result.warnings
        ],
    )


@router.post("/evaluate-study", response_model=EvaluateStudyResponse)
async def evaluate_study(
    description: str = Form(""),
    file: Optional[UploadFile] = File(None),
    service: EvaluationService = Depends(get_evaluation_service),
    settings: Settings = Depends(get_settings),
) -> EvaluateStudyResponse:
    """Evaluate a study description and/or uploaded study document."""

    study_content = description or ""
    if file is not None and file.filename:
        LOGGER.info("File received: %s", file.filename)
        extracted = await _read_upload(file)
        study_content = f"{study_content}\n{extracted}" if study_content else extracted

    if not study_content.strip():
        raise HTTPException(status_code=400, detail="No study content provided")

    try:
        result = await asyncio.wait_for(
            service.query(study_content),
            timeout=settings.evaluation_timeout_seconds,
        )
    except EmptyStudyError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except asyncio.TimeoutError as exc:
        LOGGER.warning("Evaluation timed out after %ss", settings.evaluation_timeout_seconds)
        raise HTTPException(status_code=504, detail="Evaluation timed out") from exc
    except EvaluationError as exc:
        LOGGER.error("Error evaluating study: %s", exc)
        raise HTTPException(
            status_code=502,
            detail={"error": "Error evaluating study", "stage": exc.stage, "details": str(exc)},
        ) from exc
    return _serialise_result(result)


@router.post("/add-document", response_model=AddDocumentResponse)
async def add_document(
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    corpus: CorpusService = Depends(get_corpus_service),
) -> AddDocumentResponse:
    """Add a reference document to the standards corpus."""

    filename = file.filename or "document.txt"
    content = await _read_upload(file)
    if not content.strip():
        raise HTTPException(status_code=400, detail="Document contains no text")

    document = Document(
        id=_document_id(filename),
        content=content,
        metadata={"title": title or filename, "source": filename},
    )
    try:
        chunks = await corpus.add_document(document)
    except VectorStoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return AddDocumentResponse(status="ok", documentId=document.id, chunks=chunks)


__all__ = ["router"]
