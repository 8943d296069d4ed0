"""Utilities for extracting text from supported document types."""
from __future__ import annotations

import io
import logging
from pathlib import Path

from pdfminer.high_level import extract_text as pdf_extract_text
from pdfminer.pdfparser import PDFSyntaxError

LOGGER = logging.getLogger(__name__)

TEXT_SUFFIXES = frozenset({".txt", ".md"})
SUPPORTED_SUFFIXES = TEXT_SUFFIXES | {".pdf"}


class ExtractionError(ValueError):
    """Raised when a document cannot be turned into text."""


def extract_text(data: bytes, filename: str) -> str:
    """Extract textual content from an uploaded or on-disk document.

    Plain text is decoded as UTF-8, then UTF-16, then Latin-1. PDFs go
    through pdfminer. Other types raise :class:`ExtractionError`.
    """

    suffix = Path(filename or "").suffix.lower()
    if suffix in TEXT_SUFFIXES:
        return _decode_text(data)
    if suffix == ".pdf":
        return _extract_pdf(data, filename)
    raise ExtractionError(f"Unsupported file type: {suffix or filename!r}")


def extract_file(path: Path) -> str:
    return extract_text(path.read_bytes(), path.name)


def _decode_text(data: bytes) -> str:
    for encoding in ("utf-8", "utf-16"):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode("latin-1")


def _extract_pdf(data: bytes, filename: str) -> str:
    try:
        text = pdf_extract_text(io.BytesIO(data)) or ""
    except (PDFSyntaxError, ValueError, TypeError) as error:
        LOGGER.warning("pdfminer failed to extract text from %s: %s", filename, error)
        raise ExtractionError(f"Could not read PDF {filename}") from error
    if not text.strip():
        LOGGER.info("PDF %s contains no extractable text", filename)
    return text


__all__ = ["ExtractionError", "SUPPORTED_SUFFIXES", "extract_file", "extract_text"]
