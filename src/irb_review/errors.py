"""Exceptions raised by the evaluation pipeline."""
from __future__ import annotations


class EvaluationError(RuntimeError):
    """Base class for terminal evaluation failures."""

    stage = "evaluate"


class EmptyStudyError(EvaluationError, ValueError):
    """Raised when the submitted study has no usable content."""

    stage = "input"

    def __init__(self, message: str = "No study content provided") -> None:
        super().__init__(message)


class NoEvaluationGeneratedError(EvaluationError):
    """Raised when every chunk of every section failed to produce output."""

    stage = "evaluate"

    def __init__(self, message: str = "No evaluation generated") -> None:
        super().__init__(message)


class EvaluationStageError(EvaluationError):
    """Raised when a mandatory stage (summarisation, final synthesis) fails."""

    def __init__(self, stage: str, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(f"{stage} failed: {message}")
        self.stage = stage
        self.__cause__ = cause


__all__ = [
    "EmptyStudyError",
    "EvaluationError",
    "EvaluationStageError",
    "NoEvaluationGeneratedError",
]
