"""Bounded retry with exponential backoff for transient collaborator failures."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RetryOptions:
    """Retry budget: ``max_retries`` extra attempts after the first call."""

    max_retries: int
    delay_ms: float
    backoff_multiplier: float = 2.0
    on_retry: Callable[[Exception, int], None] | None = None


def backoff_delay_ms(delay_ms: float, backoff_multiplier: float, attempt: int) -> float:
    """Delay before the retry that follows zero-based ``attempt``."""
    return delay_ms * backoff_multiplier**attempt


async def sleep(ms: float) -> None:
    await asyncio.sleep(ms / 1000)


async def retry(fn: Callable[[], Awaitable[T]], options: RetryOptions) -> T:
    """Await ``fn`` until it succeeds or the retry budget is spent.

    The last error is re-raised once every attempt has failed.
    """
    last_error: Exception | None = None

    for attempt in range(options.max_retries + 1):
        try:
            return await fn()
        except Exception as exc:
            last_error = exc
            if attempt >= options.max_retries:
                break

            delay = backoff_delay_ms(options.delay_ms, options.backoff_multiplier, attempt)
            logger.warning(
                "retry_attempt_failed attempt=%s max_retries=%s delay_ms=%s error=%s",
                attempt + 1,
                options.max_retries,
                delay,
                exc,
            )
            if options.on_retry is not None:
                options.on_retry(exc, attempt + 1)
            await sleep(delay)

    assert last_error is not None
    logger.error(
        "retry_exhausted max_retries=%s error=%s", options.max_retries, last_error
    )
    raise last_error
