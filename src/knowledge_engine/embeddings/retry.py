"""
Retry with exponential backoff for embedding provider calls.

Retries only errors flagged ``retryable`` (rate limits, timeouts, network
failures and 5xx responses); validation errors surface immediately.
"""

import random
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

T = TypeVar('T')


@dataclass
class RetryConfig:
    """Backoff schedule: min(max_delay, base_delay * exponential_base ** attempt) plus jitter."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter_factor: float = 0.1

    @classmethod
    def from_config(cls, retry_config: Optional[Dict[str, Any]] = None) -> 'RetryConfig':
        config = retry_config or {}
        return cls(
            max_attempts=max(1, int(config.get('max_attempts', 3))),
            base_delay=float(config.get('base_delay', 1.0)),
            max_delay=float(config.get('max_delay', 30.0)),
            exponential_base=float(config.get('exponential_base', 2.0)),
            jitter_factor=float(config.get('jitter_factor', 0.1))
        )

    def delay_for(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Delay before the retry following a failed ``attempt`` (0-based)."""
        delay = min(self.max_delay, self.base_delay * (self.exponential_base ** attempt))
        if retry_after is not None:
            delay = min(self.max_delay, max(delay, retry_after))
        jitter = delay * self.jitter_factor * random.random()
        return delay + jitter


def is_retryable(error: BaseException) -> bool:
    return bool(getattr(error, 'retryable', False))


async def retry_with_backoff(func: Callable[[], Awaitable[T]],
                             config: Optional[RetryConfig] = None,
                             should_retry: Callable[[BaseException], bool] = is_retryable,
                             sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                             description: str = 'operation') -> T:
    """Await ``func()`` until it succeeds or the attempts are exhausted.

    Args:
        func: Zero-argument coroutine factory, called once per attempt
        config: Backoff schedule (defaults to 3 attempts)
        should_retry: Predicate deciding whether an error is worth retrying
        sleep: Awaitable sleep, injectable for tests
        description: Name used in log messages

    Returns:
        Result of the first successful attempt

    Raises:
        The last error once attempts are exhausted, or the first non-retryable error.
        The number of attempts made is stored on the error as ``attempts``.
    """
    config = config or RetryConfig()

    for attempt in range(config.max_attempts):
        try:
            return await func()
        except Exception as e:
            e.attempts = attempt + 1
            if not should_retry(e):
                raise
            if attempt == config.max_attempts - 1:
                logging.error(f"All {config.max_attempts} attempts failed for {description}: "
                              f"{type(e).__name__}")
                raise

            delay = config.delay_for(attempt, getattr(e, 'retry_after', None))
            logging.warning(f"Attempt {attempt + 1}/{config.max_attempts} failed for {description}: "
                            f"{type(e).__name__}. Retrying in {delay:.2f}s...")
            await sleep(delay)

    raise RuntimeError("retry_with_backoff requires max_attempts >= 1")
