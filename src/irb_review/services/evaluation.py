"""Section-by-section evaluation of a study proposal and its summary."""
from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from irb_review.config import Settings, get_settings
from irb_review.errors import EmptyStudyError, EvaluationStageError, NoEvaluationGeneratedError
from irb_review.llm_provider import LLM, user_message
from irb_review.logging_config import AUDIT_LOGGER_NAME
from irb_review.prompt_builder import (
    DEFAULT_CRITERIA,
    build_criteria_prompt,
    build_evaluation_prompt,
    build_final_prompt,
    build_summary_prompt,
    parse_criteria,
)
from irb_review.ratelimit import RateLimiter
from irb_review.sections import Section, identify_sections
from irb_review.tokenizer import Tokenizer
from irb_review.vectorstore import VectorIndex

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)

CRITERIA_TEMPERATURE = 0.7
CRITERIA_MAX_TOKENS = 200
SUMMARY_TEMPERATURE = 0.5
SUMMARY_MAX_TOKENS = 1000
FINAL_MAX_TOKENS = 2000

CHUNK_FAILURE_STAGES = frozenset({"retrieve", "evaluate"})


@dataclass(slots=True)
class EvaluationWarning:
    """A recoverable problem met while evaluating a study."""

    stage: str
    message: str
    section: Optional[str] = None
    chunk_index: Optional[int] = None

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(slots=True)
class EvaluationResult:
    """Structured result returned from :meth:`EvaluationService.query`."""

    full_evaluation: str
    summary: str
    warnings: List[EvaluationWarning] = field(default_factory=list)
    sections: List[str] = field(default_factory=list)

    @property
    def failed_chunks(self) -> int:
        return sum(1 for warning in self.warnings if warning.stage in CHUNK_FAILURE_STAGES)


class EvaluationService:
    """Evaluate a study proposal section by section and summarise the verdict.

    Every model call goes through the shared :class:`RateLimiter`. A chunk
    whose retrieval or evaluation fails is skipped and reported as a warning;
    failures while summarising abort the request.
    """

    def __init__(
        self,
        *,
        llm: LLM,
        vector_index: VectorIndex,
        rate_limiter: RateLimiter,
        tokenizer: Tokenizer,
        settings: Settings | None = None,
        section_identifier: Callable[[str], List[Section]] = identify_sections,
    ) -> None:
        self._llm = llm
        self._vector_index = vector_index
        self._rate_limiter = rate_limiter
        self._tokenizer = tokenizer
        self._settings = settings or get_settings()
        self._identify_sections = section_identifier

    @property
    def llm(self) -> LLM:
        return self._llm

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    async def query(self, study_text: str) -> EvaluationResult:
        if not study_text or not study_text.strip():
            raise EmptyStudyError()

        started = time.perf_counter()
        warnings: List[EvaluationWarning] = []
        sections = self._identify_sections(study_text)
        LOGGER.info("Evaluating study with %s sections", len(sections))

        section_blocks: List[str] = []
        chunk_total = 0
        for section in sections:
            chunks = self._tokenizer.chunk_text(section.content, self._settings.evaluation_chunk_tokens)
            chunk_total += len(chunks)
            buffer = await self._evaluate_section(section, chunks, warnings)
            if buffer:
                section_blocks.append(f"## {section.title}\n\n{buffer}")

        full_evaluation = "\n\n".join(section_blocks)
        if not full_evaluation.strip():
            AUDIT_LOGGER.info(
                {
                    "event": "evaluation_failed",
                    "sections": len(sections),
                    "chunks": chunk_total,
                    "warnings": len(warnings),
                }
            )
            raise NoEvaluationGeneratedError()

        condensed = await self.recursive_summarize(full_evaluation, warnings=warnings)
        summary = await self.final_summarize(condensed)

        result = EvaluationResult(
            full_evaluation=full_evaluation,
            summary=summary,
            warnings=warnings,
            sections=[section.title for section in sections],
        )
        duration = time.perf_counter() - started
        LOGGER.info(
            "Evaluation finished in %.2fs (%s sections, %s chunks, %s failed)",
            duration,
            len(sections),
            chunk_total,
            result.failed_chunks,
        )
        AUDIT_LOGGER.info(
            {
                "event": "evaluation",
                "sections": len(sections),
                "chunks": chunk_total,
                "failed_chunks": result.failed_chunks,
                "warnings": len(warnings),
                "duration_seconds": round(duration, 3),
            }
        )
        return result

    async def _evaluate_section(
        self,
        section: Section,
        chunks: Sequence[str],
        warnings: List[EvaluationWarning],
    ) -> str:
        responses: List[str] = []
        for index, chunk in enumerate(chunks):
            LOGGER.info("Processing section '%s' chunk %s/%s", section.title, index + 1, len(chunks))
            try:
                contexts = await self._vector_index.search(chunk, top_k=self._settings.retrieval_top_k)
            except Exception as error:
                LOGGER.exception("Retrieval failed for section '%s' chunk %s", section.title, index + 1)
                warnings.append(EvaluationWarning("retrieve", str(error), section.title, index))
                continue

            criteria = await self.generate_evaluation_criteria(section.title, warnings=warnings)
            prompt = build_evaluation_prompt(
                section_title=section.title,
                chunk=chunk,
                chunk_number=index + 1,
                total_chunks=len(chunks),
                criteria=criteria,
                contexts=contexts,
                count_tokens=self._tokenizer.count_tokens,
                max_tokens=self._settings.max_context_tokens - self._settings.reserved_response_tokens,
            )
            LOGGER.debug(
                "Prompt for chunk %s: %s tokens, %s context passages",
                index + 1,
                prompt.token_count,
                prompt.context_passages,
            )

            try:
                response = await self._complete(
                    prompt.text,
                    temperature=0.0,
                    max_tokens=self._settings.max_context_tokens - prompt.token_count,
                    tokens=prompt.token_count,
                )
            except Exception as error:
                LOGGER.exception("Error processing section '%s' chunk %s", section.title, index + 1)
                warnings.append(EvaluationWarning("evaluate", str(error), section.title, index))
                continue

            if response.strip():
                responses.append(response.strip())
            else:
                warnings.append(EvaluationWarning("evaluate", "Empty response from model", section.title, index))
        return "\n\n".join(responses)

    async def generate_evaluation_criteria(
        self,
        section_title: str,
        *,
        warnings: List[EvaluationWarning] | None = None,
    ) -> List[str]:
        """Ask the model for 3-5 criteria; fall back to the defaults on any failure."""

        prompt = build_criteria_prompt(section_title)
        try:
            response = await self._complete(
                prompt,
                temperature=CRITERIA_TEMPERATURE,
                max_tokens=CRITERIA_MAX_TOKENS,
            )
        except Exception as error:
            LOGGER.warning("Error generating evaluation criteria for section '%s': %s", section_title, error)
            if warnings is not None:
                warnings.append(EvaluationWarning("criteria", str(error), section_title))
            return list(DEFAULT_CRITERIA)

        criteria = parse_criteria(response)
        if not criteria:
            LOGGER.warning("Model returned no criteria for section '%s'; using defaults", section_title)
            if warnings is not None:
                warnings.append(EvaluationWarning("criteria", "No criteria in model response", section_title))
            return list(DEFAULT_CRITERIA)
        return criteria

    async def recursive_summarize(
        self,
        text: str,
        max_tokens: int | None = None,
        *,
        warnings: List[EvaluationWarning] | None = None,
    ) -> str:
        """Condense ``text`` until it fits into a single chunk of ``max_tokens``.

        Text that already fits is returned as is without a model call. After
        ``max_summary_iterations`` passes, or once a pass stops shrinking the
        text, the first chunk is kept and the rest dropped.
        """

        budget = max_tokens or self._settings.summary_chunk_tokens
        current = text.strip()
        previous_tokens: Optional[int] = None
        passes = 0

        while True:
            chunks = self._tokenizer.chunk_text(current, budget)
            if len(chunks) <= 1:
                return current

            tokens = self._tokenizer.count_tokens(current)
            reason = None
            if passes >= self._settings.max_summary_iterations:
                reason = f"summaries did not fit in one chunk after {passes} passes"
            elif previous_tokens is not None and tokens >= previous_tokens:
                reason = f"summary pass {passes} did not shrink the text ({previous_tokens} -> {tokens} tokens)"
            if reason is not None:
                LOGGER.warning("Truncating evaluation to its first chunk: %s", reason)
                if warnings is not None:
                    warnings.append(EvaluationWarning("summarize", f"Evaluation truncated: {reason}"))
                return chunks[0]

            previous_tokens = tokens
            passes += 1
            LOGGER.info("Summary pass %s over %s chunks (%s tokens)", passes, len(chunks), tokens)
            summaries: List[str] = []
            for chunk in chunks:
                try:
                    summary = await self._complete(
                        build_summary_prompt(chunk),
                        temperature=SUMMARY_TEMPERATURE,
                        max_tokens=SUMMARY_MAX_TOKENS,
                    )
                except Exception as error:
                    raise EvaluationStageError("summarize", str(error), cause=error) from error
                if summary.strip():
                    summaries.append(summary.strip())
            current = "\n\n".join(summaries)

    async def final_summarize(self, text: str) -> str:
        try:
            return await self._complete(
                build_final_prompt(text),
                temperature=SUMMARY_TEMPERATURE,
                max_tokens=FINAL_MAX_TOKENS,
            )
        except Exception as error:
            raise EvaluationStageError("final_summary", str(error), cause=error) from error

    async def _complete(
        self,
        prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        tokens: int | None = None,
    ) -> str:
        if tokens is None:
            tokens = self._tokenizer.count_tokens(prompt)
        return await self._rate_limiter.limit(
            lambda: self._llm.complete(
                user_message(prompt),
                temperature=temperature,
                max_tokens=max_tokens,
            ),
            tokens,
        )


__all__ = ["EvaluationResult", "EvaluationService", "EvaluationWarning"]
