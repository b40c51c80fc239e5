"""Retry utilities for the YouTube continuation API.

Status codes fall into four classes:

- success (200): the response is returned.
- terminal (403, 413): the platform refuses this request; retrying is useless
  and the call yields ``None`` immediately.
- backoff (429): rate limited; wait ``(base_delay + jitter) * 2**attempt``.
- anything else, and transport errors: wait ``fixed_delay`` and retry.

Exhausting all attempts yields ``None`` instead of raising.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx

from commentvault.constants import (
    CONTINUATION_BASE_DELAY,
    CONTINUATION_FIXED_DELAY,
    CONTINUATION_JITTER,
    CONTINUATION_MAX_ATTEMPTS,
)

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = CONTINUATION_MAX_ATTEMPTS
    base_delay: float = CONTINUATION_BASE_DELAY  # seconds
    jitter: float = CONTINUATION_JITTER  # seconds, uniform
    fixed_delay: float = CONTINUATION_FIXED_DELAY  # seconds
    exponential_base: float = 2.0
    max_delay: float = 60.0  # seconds
    retryable_exceptions: tuple = (
        httpx.TransportError,
        ConnectionError,
        TimeoutError,
    )
    success_status_codes: tuple = (200,)
    terminal_status_codes: tuple = (403, 413)
    backoff_status_codes: tuple = (429,)

    def backoff_delay(self, attempt: int) -> float:
        """Jittered exponential delay for a rate-limited attempt (0-based)."""
        delay = (self.base_delay + random.uniform(0, self.jitter)) * (
            self.exponential_base**attempt
        )
        return min(delay, self.max_delay)


DEFAULT_RETRY_CONFIG = RetryConfig()


async def retry_async(
    func: Callable[..., Awaitable[httpx.Response]],
    *args: Any,
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
    operation_name: str = "operation",
    **kwargs: Any,
) -> httpx.Response | None:
    """Execute an async HTTP call under the continuation retry policy.

    Args:
        func: Async function returning an ``httpx.Response``
        *args: Positional arguments for the function
        config: Retry configuration
        operation_name: Name of the operation for logging
        **kwargs: Keyword arguments for the function

    Returns:
        The successful response, or None on a terminal status or after all
        attempts failed
    """
    last_attempt = config.max_attempts - 1

    for attempt in range(config.max_attempts):
        try:
            response = await func(*args, **kwargs)
        except config.retryable_exceptions as e:
            logger.warning(
                f"{operation_name}: {type(e).__name__}: {e} "
                f"(attempt {attempt + 1}/{config.max_attempts})"
            )
            if attempt < last_attempt:
                await asyncio.sleep(config.fixed_delay)
            continue

        status = response.status_code
        if status in config.success_status_codes:
            return response

        if status in config.terminal_status_codes:
            logger.warning(f"{operation_name}: Got status {status}, giving up")
            return None

        if status in config.backoff_status_codes:
            if attempt < last_attempt:
                delay = config.backoff_delay(attempt)
                logger.warning(
                    f"{operation_name}: Got status {status}, "
                    f"retrying in {delay:.1f}s (attempt {attempt + 1}/{config.max_attempts})"
                )
                await asyncio.sleep(delay)
            continue

        logger.warning(
            f"{operation_name}: Got status {status} "
            f"(attempt {attempt + 1}/{config.max_attempts})"
        )
        if attempt < last_attempt:
            await asyncio.sleep(config.fixed_delay)

    logger.error(f"{operation_name}: Failed after {config.max_attempts} attempts")
    return None
