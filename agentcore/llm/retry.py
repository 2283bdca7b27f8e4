"""Exponential backoff for transient LLM failures."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from agentcore.abort import AbortSignal
from agentcore.errors import LLMError, TransientLLMError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    return min(base_delay * (2**attempt), max_delay)


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    signal: AbortSignal | None = None,
) -> T:
    """Call *fn*, retrying TransientLLMError up to *max_retries* times.

    Non-transient errors propagate immediately. Exhaustion raises LLMError
    chained to the last transient failure. Waits honour ``retry_after`` and
    are cut short by *signal*.
    """
    attempt = 0
    while True:
        if signal is not None:
            signal.throw_if_aborted()
        try:
            return await fn()
        except TransientLLMError as e:
            if attempt >= max_retries:
                raise LLMError(f"LLM call failed after {attempt + 1} attempts: {e}") from e
            delay = backoff_delay(attempt, base_delay, max_delay)
            if e.retry_after is not None:
                delay = min(max(delay, e.retry_after), max_delay)
            logger.warning(
                "LLM call failed (attempt %d/%d), retrying in %.1fs: %s",
                attempt + 1,
                max_retries + 1,
                delay,
                e,
            )
            if signal is not None:
                await signal.race(asyncio.sleep(delay))
            else:
                await asyncio.sleep(delay)
            attempt += 1
