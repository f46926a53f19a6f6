"""Async retry with exponential backoff and jitter.

Example:
    >>> config = RetryConfig(max_attempts=3, initial_delay_seconds=0.5)
    >>> reply = await retry_with_backoff(
    ...     session_post,
    ...     config,
    ...     (ExternalServiceError,),
    ...     payload,
    ...     should_retry=lambda exc: exc.retryable,
    ... )
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry logic.

    Attributes:
        max_attempts: Maximum number of attempts (including initial)
        initial_delay_seconds: Initial delay before first retry
        max_delay_seconds: Maximum delay between retries
        exponential_base: Base for exponential backoff (delay *= base ** attempt)
        jitter: Whether to add random jitter to delays
    """

    max_attempts: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1`` (0-based attempt)."""
        delay = min(
            self.initial_delay_seconds * (self.exponential_base ** attempt),
            self.max_delay_seconds,
        )
        if self.jitter:
            delay = delay * (0.5 + random.random())  # 50% to 150%
        return delay


async def retry_with_backoff(
    func: Callable[..., Awaitable[Any]],
    config: RetryConfig,
    retryable_exceptions: Tuple[Type[Exception], ...],
    *args,
    should_retry: Optional[Callable[[Exception], bool]] = None,
    **kwargs,
) -> Any:
    """Await ``func`` until it succeeds or attempts run out.

    Args:
        func: Coroutine function to execute
        config: Retry configuration
        retryable_exceptions: Exception types that may trigger a retry
        *args: Positional arguments for func
        should_retry: Optional predicate narrowing which caught exceptions
            are retried; others propagate immediately
        **kwargs: Keyword arguments for func

    Returns:
        Result from the successful call

    Raises:
        The last exception once all attempts fail. Cancellation is never retried.
    """
    for attempt in range(config.max_attempts):
        try:
            return await func(*args, **kwargs)
        except retryable_exceptions as e:
            if should_retry is not None and not should_retry(e):
                raise

            if attempt == config.max_attempts - 1:
                logger.error(
                    f"All {config.max_attempts} retry attempts failed",
                    extra={"retry_attempt": attempt + 1},
                )
                raise

            delay = config.delay_for(attempt)
            logger.warning(
                f"Attempt {attempt + 1}/{config.max_attempts} failed: "
                f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s...",
                extra={"retry_attempt": attempt + 1},
            )
            await asyncio.sleep(delay)

    raise ValueError("RetryConfig.max_attempts must be at least 1")
