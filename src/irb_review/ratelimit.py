"""Process-wide pacing of outbound model calls."""
from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple, TypeVar, Union

from irb_review.asyncio_utils import maybe_await
from irb_review.llm_provider import LLMRateLimitError

LOGGER = logging.getLogger(__name__)

MINUTE_SECONDS = 60.0
DAY_SECONDS = 86_400.0
# Lower bound for a token wait while the budget is still exceeded.
MIN_WAIT_SECONDS = 0.001

T = TypeVar("T")
Operation = Callable[[], Union[Awaitable[T], T]]


@dataclass(frozen=True, slots=True)
class RateLimiterState:
    """Snapshot of the limiter counters."""

    tokens_used: int
    tokens_per_minute: int
    requests_today: int
    requests_per_day: int
    day_window_started: float
    oldest_token_usage: Optional[float]


def is_rate_limit_error(error: BaseException) -> bool:
    """Return whether ``error`` is the provider telling us to slow down."""

    if isinstance(error, LLMRateLimitError):
        return True
    return "rate limit reached" in str(error).lower()


class RateLimiter:
    """Pace calls against a per-minute token budget and a daily request budget.

    Token usage is kept as a log of ``(timestamp, tokens)`` entries that expire
    60 seconds after they were recorded, so the budget holds over any rolling
    minute. A request larger than the whole budget runs once the log is empty.
    Calls are executed one at a time under a single lock.
    """

    def __init__(
        self,
        *,
        tokens_per_minute: int = 59_000,
        requests_per_day: int = 100_000,
        retry_delay_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if tokens_per_minute <= 0:
            raise ValueError("tokens_per_minute must be a positive integer")
        if requests_per_day <= 0:
            raise ValueError("requests_per_day must be a positive integer")
        self.tokens_per_minute = tokens_per_minute
        self.requests_per_day = requests_per_day
        self.retry_delay_seconds = max(0.0, retry_delay_seconds)
        self._clock = clock
        self._sleep = sleep
        self._token_log: Deque[Tuple[float, int]] = deque()
        self._requests_today = 0
        self._day_started = clock()
        self._lock = asyncio.Lock()

    async def limit(self, operation: Operation[T], tokens_requested: int) -> T:
        """Run ``operation`` once the budgets allow ``tokens_requested`` more tokens.

        Provider rate-limit errors are retried without a cap; any other error
        propagates. Only successful calls are charged tokens, every attempt is
        charged one daily request.
        """

        tokens_requested = max(0, int(tokens_requested))
        async with self._lock:
            attempt = 0
            while True:
                attempt += 1
                await self._wait_for_token_budget(tokens_requested)
                await self._wait_for_daily_budget()

                started_at = self._clock()
                self._requests_today += 1
                try:
                    result = await maybe_await(operation())
                except Exception as error:
                    if not is_rate_limit_error(error):
                        raise
                    delay = getattr(error, "retry_after", None)
                    if delay is None:
                        delay = self.retry_delay_seconds
                    LOGGER.warning(
                        "Rate limit error caught (attempt %s); retrying in %.1fs: %s",
                        attempt,
                        delay,
                        error,
                    )
                    if delay > 0:
                        await self._sleep(delay)
                    continue

                if tokens_requested:
                    self._token_log.append((started_at, tokens_requested))
                LOGGER.debug(
                    "Added %s tokens. New total: %s",
                    tokens_requested,
                    self._tokens_used(self._clock()),
                )
                return result

    def snapshot(self) -> RateLimiterState:
        now = self._clock()
        used = self._tokens_used(now)
        return RateLimiterState(
            tokens_used=used,
            tokens_per_minute=self.tokens_per_minute,
            requests_today=self._requests_today,
            requests_per_day=self.requests_per_day,
            day_window_started=self._day_started,
            oldest_token_usage=self._token_log[0][0] if self._token_log else None,
        )

    def _expire_tokens(self, now: float) -> None:
        while self._token_log and now - self._token_log[0][0] >= MINUTE_SECONDS:
            self._token_log.popleft()

    def _tokens_used(self, now: float) -> int:
        self._expire_tokens(now)
        return sum(tokens for _, tokens in self._token_log)

    def _token_wait_seconds(self, tokens_requested: int, now: float) -> float:
        used = self._tokens_used(now)
        if not self._token_log or used + tokens_requested <= self.tokens_per_minute:
            return 0.0

        excess = used + tokens_requested - self.tokens_per_minute
        freed = 0
        for recorded_at, tokens in self._token_log:
            freed += tokens
            if freed >= excess:
                return max(MIN_WAIT_SECONDS, recorded_at + MINUTE_SECONDS - now)
        return max(MIN_WAIT_SECONDS, self._token_log[-1][0] + MINUTE_SECONDS - now)

    async def _wait_for_token_budget(self, tokens_requested: int) -> None:
        while True:
            wait = self._token_wait_seconds(tokens_requested, self._clock())
            if wait <= 0:
                return
            LOGGER.info(
                "Token budget exhausted (%s/%s used, %s requested). Waiting %.1fs.",
                self._tokens_used(self._clock()),
                self.tokens_per_minute,
                tokens_requested,
                wait,
            )
            await self._sleep(wait)

    async def _wait_for_daily_budget(self) -> None:
        now = self._clock()
        if now - self._day_started >= DAY_SECONDS:
            self._reset_daily_counter(now)
        if self._requests_today < self.requests_per_day:
            return

        wait = max(0.0, DAY_SECONDS - (now - self._day_started))
        LOGGER.warning("Daily request limit reached. Waiting %.0fs before continuing.", wait)
        if wait > 0:
            await self._sleep(wait)
        self._reset_daily_counter(self._clock())

    def _reset_daily_counter(self, now: float) -> None:
        self._requests_today = 0
        self._day_started = now
        LOGGER.info("Daily request count reset")


__all__ = [
    "DAY_SECONDS",
    "MINUTE_SECONDS",
    "RateLimiter",
    "RateLimiterState",
    "is_rate_limit_error",
]
