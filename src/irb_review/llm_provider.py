"""Access to the remote chat-completion model used for evaluations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, TypedDict

import openai
from openai import AsyncOpenAI

from irb_review.config import Settings, get_settings

LOGGER = logging.getLogger(__name__)

DEFAULT_STUB_RESPONSE = "The language model is not configured. No evaluation could be produced."


class ChatMessage(TypedDict):
    role: str
    content: str


@dataclass(slots=True)
class LLMStatus:
    """Structured status information about the configured LLM backend."""

    ready: bool
    provider: str
    model_name: str
    error: Optional[str] = None


class LLMError(RuntimeError):
    """Base exception raised for LLM provider issues."""


class LLMGenerationError(LLMError):
    """Raised when a completion request fails."""


class LLMRateLimitError(LLMError):
    """Raised when the provider rejects a request because of its rate limits."""

    def __init__(self, message: str, *, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class LLMUnexpectedResponseError(LLMError):
    """Raised when a completion response lacks the expected choice structure."""


def user_message(content: str) -> List[ChatMessage]:
    return [{"role": "user", "content": content}]


class LLM:
    """Common interface exposed by language model implementations."""

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        model: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 512,
    ) -> str:
        """Return the text of the first choice for ``messages``."""

        raise NotImplementedError

    @property
    def provider(self) -> str:
        return "stub"

    @property
    def model_name(self) -> str:
        return "stub"

    @property
    def ready(self) -> bool:
        return False

    @property
    def last_error(self) -> Optional[str]:
        return None

    def status(self) -> LLMStatus:
        """Return structured diagnostic information for health checks."""

        return LLMStatus(
            ready=self.ready,
            provider=self.provider,
            model_name=self.model_name,
            error=self.last_error,
        )


class LLMStub(LLM):
    """Fallback implementation returning a fixed message."""

    def __init__(self, message: str = DEFAULT_STUB_RESPONSE, *, reason: str | None = None) -> None:
        self._message = message
        self._reason = reason or "LLM stub is active (model not configured)."

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        model: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 512,
    ) -> str:
        return self._message

    @property
    def last_error(self) -> Optional[str]:
        return self._reason


def _retry_after_seconds(error: Exception) -> Optional[float]:
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return None


class OpenAICompatibleLLM(LLM):
    """Chat completions against any OpenAI-compatible endpoint (Groq by default)."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str | None,
        model: str,
        client: Any | None = None,
    ) -> None:
        self._model = model
        self._base_url = base_url
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        self._last_error: Optional[str] = None

    @property
    def provider(self) -> str:
        return "openai-compatible"

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def ready(self) -> bool:
        return True

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        model: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 512,
    ) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=model or self._model,
                messages=list(messages),
                temperature=temperature,
                max_tokens=max(1, int(max_tokens)),
            )
        except openai.RateLimitError as error:
            self._last_error = str(error)
            raise LLMRateLimitError(
                f"Rate limit reached: {error}", retry_after=_retry_after_seconds(error)
            ) from error
        except openai.OpenAIError as error:
            self._last_error = str(error)
            LOGGER.warning("Completion request to %s failed: %s", self._base_url, error)
            raise LLMGenerationError(f"Completion request failed: {error}") from error

        choices = getattr(response, "choices", None)
        if not choices or getattr(choices[0], "message", None) is None:
            raise LLMUnexpectedResponseError("Unexpected response structure from language model API")
        return choices[0].message.content or ""


_GLOBAL_LLM: Optional[LLM] = None


def build_llm(settings: Settings) -> LLM:
    """Return the configured LLM or a stub when no credentials are available."""

    if settings.llm_stub:
        LOGGER.warning("LLM_STUB flag enabled; using stub responses only.")
        return LLMStub(reason="LLM_STUB flag enabled; remote model disabled.")

    if settings.llm_provider == "mock":
        from irb_review.providers import MockLLM

        LOGGER.warning("LLM_PROVIDER=mock; responses are generated locally.")
        return MockLLM()

    if not settings.llm_api_key:
        LOGGER.warning("LLM_API_KEY/GROQ_API_KEY are not configured; using stub responses.")
        return LLMStub(reason="LLM_API_KEY/GROQ_API_KEY are not configured.")

    LOGGER.info("Using %s at %s", settings.llm_model, settings.llm_base_url)
    return OpenAICompatibleLLM(
        api_key=settings.llm_api_key,
        base_url=settings.llm_base_url,
        model=settings.llm_model,
    )


def get_llm() -> LLM:
    """Return a lazily initialised process-wide LLM instance."""

    global _GLOBAL_LLM

    if _GLOBAL_LLM is None:
        _GLOBAL_LLM = build_llm(get_settings())
    return _GLOBAL_LLM


def reset_llm() -> None:
    """Forget the cached LLM instance (primarily for testing)."""

    global _GLOBAL_LLM
    _GLOBAL_LLM = None


__all__ = [
    "ChatMessage",
    "DEFAULT_STUB_RESPONSE",
    "LLM",
    "LLMError",
    "LLMGenerationError",
    "LLMRateLimitError",
    "LLMStatus",
    "LLMStub",
    "LLMUnexpectedResponseError",
    "OpenAICompatibleLLM",
    "build_llm",
    "get_llm",
    "reset_llm",
    "user_message",
]
