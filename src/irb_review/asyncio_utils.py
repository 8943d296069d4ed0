"""Small helpers for mixing sync and async collaborators."""
from __future__ import annotations

import inspect
from typing import Any


async def maybe_await(result: Any) -> Any:
    """Await result if it is awaitable."""

    if inspect.isawaitable(result):
        return await result
    return result
