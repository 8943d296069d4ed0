import asyncio
import random

import pytest

from irb_review.llm_provider import LLMRateLimitError
from irb_review.ratelimit import DAY_SECONDS, MINUTE_SECONDS, RateLimiter, is_rate_limit_error


def _limiter(clock, **kwargs) -> RateLimiter:
    return RateLimiter(clock=clock, sleep=clock.sleep, **kwargs)


def test_call_runs_immediately_when_budget_allows(clock) -> None:
    limiter = _limiter(clock, tokens_per_minute=100)

    result = asyncio.run(limiter.limit(lambda: "done", 50))

    assert result == "done"
    assert clock.sleeps == []
    state = limiter.snapshot()
    assert state.tokens_used == 50
    assert state.requests_today == 1


def test_async_operations_are_awaited(clock) -> None:
    limiter = _limiter(clock)

    async def operation():
        return 42

    assert asyncio.run(limiter.limit(operation, 10)) == 42


def test_waits_for_the_window_when_budget_is_exhausted(clock) -> None:
    limiter = _limiter(clock, tokens_per_minute=100)

    async def scenario():
        await limiter.limit(lambda: "first", 60)
        return await limiter.limit(lambda: "second", 60)

    assert asyncio.run(scenario()) == "second"
    assert clock.sleeps == [MINUTE_SECONDS]
    assert limiter.snapshot().tokens_used == 60


def test_rolling_minute_never_exceeds_the_cap(clock) -> None:
    cap = 1000
    limiter = _limiter(clock, tokens_per_minute=cap)
    rng = random.Random(7)
    executed = []

    def operation(tokens):
        def run():
            executed.append((clock.now, tokens))
            clock.now += rng.uniform(0.5, 9.0)
            return tokens

        return run

    async def scenario():
        for _ in range(80):
            tokens = rng.randint(50, 600)
            await limiter.limit(operation(tokens), tokens)

    asyncio.run(scenario())

    for started, _ in executed:
        window = sum(tokens for other, tokens in executed if 0 <= started - other < MINUTE_SECONDS)
        assert window <= cap


def test_oversized_request_runs_once_the_window_is_clear(clock) -> None:
    limiter = _limiter(clock, tokens_per_minute=100)

    async def scenario():
        await limiter.limit(lambda: "small", 30)
        return await limiter.limit(lambda: "huge", 250)

    assert asyncio.run(scenario()) == "huge"
    assert clock.sleeps == [MINUTE_SECONDS]


def test_rate_limit_errors_are_retried(clock) -> None:
    limiter = _limiter(clock, tokens_per_minute=1000)
    attempts = []

    def operation():
        attempts.append(clock.now)
        if len(attempts) < 3:
            raise LLMRateLimitError("Rate limit reached", retry_after=2.0)
        return "ok"

    assert asyncio.run(limiter.limit(operation, 100)) == "ok"
    assert clock.sleeps == [2.0, 2.0]
    state = limiter.snapshot()
    assert state.requests_today == 3
    assert state.tokens_used == 100


def test_rate_limit_message_is_recognised(clock) -> None:
    limiter = _limiter(clock, retry_delay_seconds=0.5)
    attempts = []

    def operation():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("Rate limit reached for model llama3-8b-8192")
        return "ok"

    assert asyncio.run(limiter.limit(operation, 5)) == "ok"
    assert clock.sleeps == [0.5]


def test_other_errors_propagate_without_charging_tokens(clock) -> None:
    limiter = _limiter(clock)

    def operation():
        raise ValueError("bad request")

    with pytest.raises(ValueError, match="bad request"):
        asyncio.run(limiter.limit(operation, 500))

    state = limiter.snapshot()
    assert state.tokens_used == 0
    assert state.requests_today == 1
    assert clock.sleeps == []


def test_daily_request_cap_waits_for_the_next_day(clock) -> None:
    limiter = _limiter(clock, requests_per_day=2)

    async def scenario():
        for _ in range(3):
            await limiter.limit(lambda: None, 1)

    asyncio.run(scenario())

    assert clock.sleeps == [DAY_SECONDS]
    assert limiter.snapshot().requests_today == 1


def test_concurrent_calls_are_serialised(clock) -> None:
    limiter = _limiter(clock)
    events = []

    def operation(name):
        async def run():
            events.append(("start", name))
            await asyncio.sleep(0)
            events.append(("end", name))
            return name

        return run

    async def scenario():
        return await asyncio.gather(limiter.limit(operation("a"), 1), limiter.limit(operation("b"), 1))

    assert asyncio.run(scenario()) == ["a", "b"]
    assert events == [("start", "a"), ("end", "a"), ("start", "b"), ("end", "b")]


def test_invalid_limits_are_rejected(clock) -> None:
    with pytest.raises(ValueError):
        _limiter(clock, tokens_per_minute=0)
    with pytest.raises(ValueError):
        _limiter(clock, requests_per_day=-1)


def test_is_rate_limit_error() -> None:
    assert is_rate_limit_error(LLMRateLimitError("slow down"))
    assert is_rate_limit_error(RuntimeError("Rate limit reached"))
    assert not is_rate_limit_error(RuntimeError("timeout"))
