"""Retry logic with exponential backoff and jitter for backend calls.

This module provides retry configuration and utilities for retrying
failed order and appointment submissions.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_retries: Retries after the first attempt.
        base_delay_ms: Delay before the first retry in milliseconds.
        backoff_multiplier: Factor applied to the delay after each retry.
        jitter_factor: Up to this fraction of the delay is added at random.
    """

    max_retries: int = 3
    base_delay_ms: int = 1000
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.1

    @property
    def max_attempts(self) -> int:
        """Total attempts including the first."""
        return self.max_retries + 1

    def get_delay_ms(self, retry: int) -> float:
        """Calculate the delay before a retry, without jitter.

        Args:
            retry: The retry number (1 for the first retry).

        Returns:
            Delay in milliseconds.
        """
        if retry <= 0:
            return 0.0
        return self.base_delay_ms * (self.backoff_multiplier ** (retry - 1))

    def get_wait_ms(self, retry: int) -> float:
        """Calculate the delay before a retry with jitter applied.

        ``wait = delay + delay * jitter_factor * random()``
        """
        delay = self.get_delay_ms(retry)
        return delay + delay * self.jitter_factor * random.random()

    async def wait_before_retry(self, retry: int) -> None:
        """Sleep before the given retry."""
        wait_ms = self.get_wait_ms(retry)
        if wait_ms > 0:
            logger.debug("Waiting %.0fms before retry %d/%d", wait_ms, retry, self.max_retries)
            await asyncio.sleep(wait_ms / 1000.0)


@dataclass
class RetryResult:
    """Result of a retry operation.

    Attributes:
        success: Whether the operation succeeded.
        attempts: Number of attempts made.
        last_error: The last error encountered (if any).
    """

    success: bool
    attempts: int
    last_error: Exception | None = None


def is_retryable_error(error: Exception) -> bool:
    """Determine if an error should trigger a retry.

    Retryable errors include:
    - Connection errors and timeouts
    - 429 Too Many Requests
    - 5xx server errors

    Other 4xx responses and validation errors are not retried.

    Args:
        error: The exception to check.

    Returns:
        True if the error is retryable.
    """
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError, asyncio.TimeoutError)):
        return True

    flagged = getattr(error, "is_retryable", None)
    if flagged is not None:
        return bool(flagged)

    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        return status_code == 429 or 500 <= status_code < 600

    error_str = str(error).lower()
    return any(
        term in error_str
        for term in ["timeout", "timed out", "connection refused", "unavailable", "network"]
    )


async def retry_with_backoff(
    operation: Callable[[int], Awaitable[T]],
    config: RetryConfig | None = None,
    retryable: Callable[[Exception], bool] = is_retryable_error,
) -> tuple[T | None, RetryResult]:
    """Run an operation, retrying retryable failures.

    Args:
        operation: Coroutine factory called with the 1-based attempt number.
        config: Retry configuration; defaults to 3 retries from 1000ms.
        retryable: Predicate deciding whether a failure is retried.

    Returns:
        Tuple of (value or None, RetryResult). Errors are reported in the
        result, never raised.
    """
    config = config or RetryConfig()
    last_error: Exception | None = None

    for attempt in range(1, config.max_attempts + 1):
        if attempt > 1:
            await config.wait_before_retry(attempt - 1)
        try:
            value = await operation(attempt)
            return value, RetryResult(success=True, attempts=attempt)
        except Exception as e:
            last_error = e
            if not retryable(e):
                logger.warning("Non-retryable failure on attempt %d: %s", attempt, e)
                return None, RetryResult(success=False, attempts=attempt, last_error=e)
            logger.warning("Attempt %d/%d failed: %s", attempt, config.max_attempts, e)

    return None, RetryResult(success=False, attempts=config.max_attempts, last_error=last_error)
