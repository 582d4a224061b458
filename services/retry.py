"""Bounded retry for upstream calls.

``attempt`` is a coroutine function taking the 1-based attempt number. Each
call is wrapped in its own timeout; on expiry the attempt is cancelled (which
aborts any in-flight request) before the next one starts. There is no delay
between attempts.
"""

import asyncio
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from logging_config import get_logger
from services.errors import TransientUpstreamError, UpstreamTimeout

logger = get_logger()

T = TypeVar("T")


async def run_with_retries(
    attempt: Callable[[int], Awaitable[T]],
    max_attempts: int,
    timeout_seconds: float,
    retry_on: Tuple[Type[BaseException], ...] = (TransientUpstreamError,),
) -> T:
    """Return the first successful attempt, or raise the last failure.

    Only exceptions in ``retry_on`` trigger another attempt; anything else
    propagates immediately. A timed-out attempt counts as ``UpstreamTimeout``.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: BaseException = RuntimeError("no attempts made")
    for number in range(1, max_attempts + 1):
        try:
            return await asyncio.wait_for(attempt(number), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            last_error = UpstreamTimeout(timeout_seconds)
        except retry_on as e:
            last_error = e

        logger.warning(
            f"Upstream attempt {number}/{max_attempts} failed: {last_error}",
            extra={
                "attempt": number,
                "max_attempts": max_attempts,
                "error_type": type(last_error).__name__,
            }
        )

    raise last_error
