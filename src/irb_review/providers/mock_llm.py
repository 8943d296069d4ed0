"""Mock LLM that answers every prompt with a predictable string."""
from __future__ import annotations

from typing import Sequence

from irb_review.llm_provider import LLM, ChatMessage


class MockLLM(LLM):
    """Return a deterministic response for any prompt."""

    def __init__(self, prefix: str = "MOCK_EVALUATION") -> None:
        self.prefix = prefix
        self.calls = 0

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        model: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 512,
    ) -> str:
        del model, temperature, max_tokens  # Unused in the mock implementation.
        self.calls += 1
        prompt = messages[-1]["content"] if messages else ""
        return f"{self.prefix}: {prompt.strip()[:100]}"

    @property
    def provider(self) -> str:
        return "mock"

    @property
    def model_name(self) -> str:
        return "mock"

    @property
    def ready(self) -> bool:
        return True
