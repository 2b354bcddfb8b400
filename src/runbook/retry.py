"""Opt-in timeout and retry helpers.

Nothing in the session core retries on its own; callers that want retries
(e.g. a flaky interpreter start-up) wrap their call explicitly.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    attempts: int = 3,
    base_delay: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    max_delay: float = 30.0,
) -> T:
    """Await ``fn()`` until it succeeds, backing off exponentially.

    The last exception is re-raised once ``attempts`` are exhausted.
    """
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(retry_on),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=base_delay, min=base_delay, max=max_delay),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await fn()
    raise AssertionError("unreachable")  # pragma: no cover


async def with_timeout(
    awaitable: Awaitable[T], seconds: float, message: str = "Operation timed out"
) -> T:
    """Await with a deadline, raising ``TimeoutError(message)`` when it passes."""
    try:
        async with asyncio.timeout(seconds):
            return await awaitable
    except TimeoutError:
        raise TimeoutError(message) from None
