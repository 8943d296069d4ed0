"""Token counting and token-budgeted chunking."""
from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import List, Optional, Protocol, Sequence

from irb_review.config import get_settings
from irb_review.models import Document

LOGGER = logging.getLogger(__name__)

_SENTENCE_BOUNDARY_RE = re.compile(r"(?<=[.!?])\s+")
_WHITESPACE_RE = re.compile(r"\s+")


class TextEncoder(Protocol):
    """Anything that turns text into a sequence of token ids."""

    def encode(self, text: str) -> Sequence[int]:
        ...


class HuggingFaceEncoder:
    """Byte-pair encoder backed by a ``transformers`` tokenizer."""

    def __init__(self, name_or_path: str) -> None:
        from transformers import AutoTokenizer

        self.name = name_or_path
        self._tokenizer = AutoTokenizer.from_pretrained(name_or_path)
        # Chunking measures arbitrarily long text; the model limit does not apply here.
        self._tokenizer.model_max_length = int(1e12)
        LOGGER.info("Loaded tokenizer '%s'", name_or_path)

    def encode(self, text: str) -> Sequence[int]:
        return self._tokenizer.encode(text, add_special_tokens=False)


@lru_cache()
def get_default_encoder() -> HuggingFaceEncoder:
    """Return the cached process-wide encoder."""

    return HuggingFaceEncoder(get_settings().tokenizer_name)


class Tokenizer:
    """Count tokens and split text into chunks under a token budget."""

    def __init__(self, encoder: Optional[TextEncoder] = None) -> None:
        self._encoder = encoder

    @property
    def encoder(self) -> TextEncoder:
        if self._encoder is None:
            self._encoder = get_default_encoder()
        return self._encoder

    def count_tokens(self, text: str) -> int:
        if not text:
            return 0
        return len(self.encoder.encode(text))

    def chunk_document(self, document: Document, max_tokens: int = 500) -> List[str]:
        """Split ``document.content`` into ordered, non-overlapping chunks.

        Sentences are accumulated greedily. A sentence that does not fit on
        its own is split on word boundaries, and a word that still does not
        fit is cut into character runs.
        """

        return self.chunk_text(document.content, max_tokens)

    def chunk_text(self, text: str, max_tokens: int = 500) -> List[str]:
        if max_tokens < 1:
            raise ValueError("max_tokens must be a positive integer")
        text = (text or "").strip()
        if not text:
            return []

        chunks: List[str] = []
        current = ""
        for sentence in _SENTENCE_BOUNDARY_RE.split(text):
            if not sentence:
                continue
            candidate = f"{current} {sentence}" if current else sentence
            if self.count_tokens(candidate) <= max_tokens:
                current = candidate
                continue

            if current:
                chunks.append(current.strip())
                current = ""
            if self.count_tokens(sentence) > max_tokens:
                chunks.extend(self._chunk_long_sentence(sentence, max_tokens))
            else:
                current = sentence

        if current.strip():
            chunks.append(current.strip())
        return chunks

    def _chunk_long_sentence(self, sentence: str, max_tokens: int) -> List[str]:
        chunks: List[str] = []
        current = ""
        for word in _WHITESPACE_RE.split(sentence.strip()):
            if not word:
                continue
            candidate = f"{current} {word}" if current else word
            if self.count_tokens(candidate) <= max_tokens:
                current = candidate
                continue

            if current:
                chunks.append(current.strip())
                current = ""
            if self.count_tokens(word) > max_tokens:
                chunks.extend(self._split_word(word, max_tokens))
            else:
                current = word

        if current:
            chunks.append(current.strip())
        return chunks

    def _split_word(self, word: str, max_tokens: int) -> List[str]:
        pieces: List[str] = []
        for start in range(0, len(word), max_tokens):
            pieces.extend(self._fit_run(word[start : start + max_tokens], max_tokens))
        return pieces

    def _fit_run(self, run: str, max_tokens: int) -> List[str]:
        # Multi-byte characters can encode to several tokens each.
        if len(run) <= 1 or self.count_tokens(run) <= max_tokens:
            return [run]
        middle = len(run) // 2
        return self._fit_run(run[:middle], max_tokens) + self._fit_run(run[middle:], max_tokens)


__all__ = ["HuggingFaceEncoder", "TextEncoder", "Tokenizer", "get_default_encoder"]
