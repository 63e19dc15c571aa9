"""
Retry policy for LLM provider calls.

Only judge calls made by LLM-backed comparators are retried. The workflow
under test is never retried by the core.
"""

from __future__ import annotations

import asyncio
import functools
import random
from typing import Any, Callable, TypeVar

from loguru import logger
from pydantic import BaseModel

from fieldcheck.config import settings

from .errors import RetryableError, ServiceError

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Exponential backoff with optional jitter.

    The delay for attempt N is min(base_delay * exponential_base ** N, max_delay),
    plus up to 25% jitter when enabled.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True

    model_config = {"frozen": True}

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.LLM_MAX_ATTEMPTS,
            base_delay=settings.LLM_RETRY_BASE_DELAY,
        )

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay in seconds before retrying after attempt (0-indexed)."""
        delay = self.base_delay * (self.exponential_base**attempt)
        delay = min(delay, self.max_delay)

        if self.jitter:
            delay += delay * 0.25 * random.random()

        return delay


def with_retry(
    policy: RetryPolicy | None = None,
    on_retry: Callable[[int, Exception, float], None] | None = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for retrying async functions on RetryableError.

    Args:
        policy: Retry policy to use. Defaults to RetryPolicy.from_settings().
        on_retry: Optional callback called before each retry with
                  (attempt, exception, delay).

    Example:
        @with_retry(RetryPolicy(max_attempts=5))
        async def call_provider(messages: list[Message]) -> LLMResult:
            ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            retry_policy = policy or RetryPolicy.from_settings()
            last_exception: Exception | None = None

            for attempt in range(retry_policy.max_attempts):
                try:
                    return await func(*args, **kwargs)
                except RetryableError as e:
                    last_exception = e
                    if attempt + 1 >= retry_policy.max_attempts:
                        logger.warning(
                            f"[{e.debug_id}] Max retries ({retry_policy.max_attempts}) "
                            f"exceeded for {func.__name__}: {e.message_safe}"
                        )
                        raise

                    delay = retry_policy.calculate_delay(attempt)
                    logger.info(
                        f"[{e.debug_id}] Retry {attempt + 1}/{retry_policy.max_attempts} "
                        f"for {func.__name__} in {delay:.2f}s: {e.message_safe}"
                    )

                    if on_retry:
                        on_retry(attempt, e, delay)

                    await asyncio.sleep(delay)
                except ServiceError:
                    raise

            if last_exception:
                raise last_exception
            raise RuntimeError(f"Retry loop exited unexpectedly in {func.__name__}")

        return wrapper  # type: ignore

    return decorator
