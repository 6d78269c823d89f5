"""
Async retry logic with exponential backoff.

Handles transient failures in provider calls (connection resets, timeouts).
Errors wrapped in NonRetryableError fail immediately.

Usage:
    result = await retry_async(client.chat, model="m", messages=msgs)

    @with_async_retry(max_attempts=3, initial_delay=0.5)
    async def call_api():
        return await api.request()
"""

import asyncio
import functools
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_factor: float = 0.1

    def delay_for(self, attempt: int) -> float:
        """Backoff delay in seconds after the given (1-based) failed attempt."""
        delay = min(self.initial_delay * (self.exponential_base ** (attempt - 1)), self.max_delay)
        if self.jitter:
            jitter_range = delay * self.jitter_factor
            delay += random.uniform(-jitter_range, jitter_range)
        return max(delay, 0.0)


TRANSIENT_EXCEPTIONS: Tuple[Type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)


class RetryableError(Exception):
    """Mark an error as retryable."""

    pass


class NonRetryableError(Exception):
    """Mark an error as non-retryable (fail immediately)."""

    pass


async def retry_async(
    func: Callable[..., Awaitable[Any]],
    *args: Any,
    retry_config: Optional[RetryConfig] = None,
    retryable_exceptions: Tuple[Type[BaseException], ...] = TRANSIENT_EXCEPTIONS,
    on_retry: Optional[Callable[[BaseException, int], None]] = None,
    **kwargs: Any,
) -> Any:
    """
    Await a coroutine function with exponential backoff retry.

    Args:
        func: Coroutine function to call
        *args: Positional arguments
        retry_config: Attempts and delay settings
        retryable_exceptions: Exception types that trigger retry
        on_retry: Callback on each retry (exception, attempt_number)
        **kwargs: Keyword arguments

    Returns:
        Result of func

    Raises:
        Last exception if all retries exhausted
    """
    cfg = retry_config or RetryConfig()
    name = getattr(func, "__name__", repr(func))

    for attempt in range(1, cfg.max_attempts + 1):
        try:
            return await func(*args, **kwargs)

        except NonRetryableError:
            raise

        except (RetryableError, *retryable_exceptions) as e:
            if attempt == cfg.max_attempts:
                logger.error(f"All {cfg.max_attempts} attempts failed for {name}: {e}")
                raise

            delay = cfg.delay_for(attempt)
            logger.warning(
                f"Attempt {attempt}/{cfg.max_attempts} failed for {name}: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            if on_retry:
                on_retry(e, attempt)
            await asyncio.sleep(delay)

    # max_attempts < 1
    raise ValueError("retry_async requires max_attempts >= 1")


def with_async_retry(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: bool = True,
    retryable_exceptions: Tuple[Type[BaseException], ...] = TRANSIENT_EXCEPTIONS,
):
    """Decorator form of retry_async."""
    cfg = RetryConfig(
        max_attempts=max_attempts,
        initial_delay=initial_delay,
        max_delay=max_delay,
        jitter=jitter,
    )

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            return await retry_async(
                func,
                *args,
                retry_config=cfg,
                retryable_exceptions=retryable_exceptions,
                **kwargs,
            )

        return wrapper

    return decorator
