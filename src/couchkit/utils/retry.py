"""Backoff retries for idempotent CouchDB reads."""

import asyncio
import functools
import random
from typing import Awaitable, Callable, Iterable, Optional, ParamSpec, Tuple, Type, TypeVar

import structlog

logger = structlog.get_logger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def backoff_delay(attempt: int, base: float, cap: Optional[float], jitter: bool) -> float:
    """Delay before retry number ``attempt`` (1-based)."""
    delay = base**attempt
    if cap is not None:
        delay = min(delay, cap)
    if jitter:
        delay *= random.uniform(0.5, 1.5)
    return delay


def async_retry(
    *,
    max_attempts: int = 3,
    backoff_base: float = 2.0,
    max_delay: Optional[float] = 30.0,
    retry_on: Iterable[Type[BaseException]] = (Exception,),
    jitter: bool = True,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """
    Retry an async callable when it raises one of ``retry_on``.

    Only wrap operations that are safe to repeat (GETs, view reads). The last
    failure is re-raised unchanged once ``max_attempts`` is used up.

    Args:
        max_attempts: Total attempts, including the first one.
        backoff_base: Wait ``backoff_base ** attempt`` seconds between attempts.
        max_delay: Upper bound for a single wait (None disables the cap).
        retry_on: Exception types that are considered transient.
        jitter: Multiply each wait by a random factor in [0.5, 1.5].
    """
    transient: Tuple[Type[BaseException], ...] = tuple(retry_on)

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except transient as exc:
                    if attempt >= max_attempts:
                        raise
                    delay = backoff_delay(attempt, backoff_base, max_delay, jitter)
                    logger.warning(
                        "couch_call_retry",
                        function=func.__qualname__,
                        attempt=attempt,
                        max_attempts=max_attempts,
                        delay_seconds=round(delay, 3),
                        error=str(exc),
                    )
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator


__all__ = ["async_retry", "backoff_delay"]
