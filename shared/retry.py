"""
Retry with exponential backoff for outbound calls to the storefront API.
"""

import asyncio
import functools
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Tuple, Type

from shared.logging import get_logger


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    jitter: float = 0.1


class RetryError(Exception):
    """All attempts failed; ``last_exception`` is the final failure."""

    def __init__(self, message: str, last_exception: Exception, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def backoff_delay(attempt: int, policy: RetryPolicy) -> float:
    """Delay after the given 1-based failed attempt, capped and jittered."""
    delay = min(policy.base_delay * (2 ** (attempt - 1)), policy.max_delay)
    spread = delay * policy.jitter
    return max(0.0, delay + random.uniform(-spread, spread))


def retry_async(
    retry_on: Tuple[Type[BaseException], ...],
    policy: RetryPolicy = RetryPolicy(),
) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[Any]]]:
    """Retry a coroutine function on ``retry_on``; other exceptions propagate at once."""

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        logger = get_logger(f"retry.{func.__qualname__}")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    if attempt >= policy.max_attempts:
                        logger.error("Giving up", attempts=attempt, error=str(e))
                        raise RetryError(
                            f"{func.__qualname__} failed after {attempt} attempts",
                            last_exception=e,
                            attempts=attempt,
                        ) from e

                    delay = backoff_delay(attempt, policy)
                    logger.warning("Attempt failed, retrying", attempt=attempt, delay=round(delay, 3), error=str(e))
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator
