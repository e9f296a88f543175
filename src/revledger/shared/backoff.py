# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Exponential backoff shared by every network and database call site.

The policy is a pure function of the attempt number. Retry state is the
attempt counter threaded through ``retry_async``; nothing is kept on the
policy itself, so concurrent call sites never interfere.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from .errors import RetryExhaustedError, TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BASE_DELAY = 0.5  # seconds
DEFAULT_MAX_ATTEMPTS = 10


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Retry schedule: ``delay = base_delay * 2 ** attempt``.

    Attempts are 0-indexed. Attempt 0 runs immediately; attempt ``n > 0``
    runs after ``next_delay(n)``. Once ``attempt > max_attempts`` the
    operation is declared fatally failed.
    """

    base_delay: float = DEFAULT_BASE_DELAY
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def __post_init__(self):
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be non-negative")

    def next_delay(self, attempt: int) -> float:
        """
        Delay in seconds before the given attempt.

        Args:
            attempt: 0-indexed attempt number

        Returns:
            ``base_delay * 2 ** attempt``
        """
        if attempt < 0:
            raise ValueError("attempt must be non-negative")
        return self.base_delay * (2 ** attempt)

    def exceeded(self, attempt: int, max_attempts: Optional[int] = None) -> bool:
        """True when ``attempt`` is past the retry ceiling."""
        ceiling = self.max_attempts if max_attempts is None else max_attempts
        return attempt > ceiling


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: BackoffPolicy,
    *,
    description: str = "operation",
    retry_on: Tuple[Type[BaseException], ...] = (TransientError,),
    log_prefix: str = "",
    exhausted_error: Type[RetryExhaustedError] = RetryExhaustedError,
) -> T:
    """
    Run ``operation`` until it succeeds or the policy's ceiling is exceeded.

    Args:
        operation: Zero-argument factory returning a fresh awaitable per attempt
        policy: Backoff schedule
        description: Human-readable name for log lines
        retry_on: Exception types treated as transient; anything else propagates
        log_prefix: Prefix for log lines (component and pid)
        exhausted_error: RetryExhaustedError subclass raised at the ceiling

    Returns:
        Result of the first successful attempt

    Raises:
        RetryExhaustedError: After ``policy.max_attempts + 1`` failed attempts
    """
    attempt = 0
    last_error: Optional[BaseException] = None
    while True:
        if policy.exceeded(attempt):
            raise exhausted_error(
                f"{description} failed after maximum retries",
                attempts=attempt,
                cause=last_error,
            ) from last_error

        if attempt > 0:
            delay = policy.next_delay(attempt)
            logger.info(
                f"{log_prefix}Retrying {description} after {delay * 1000:.0f}ms "
                f"(attempt {attempt + 1})"
            )
            await asyncio.sleep(delay)

        try:
            result = await operation()
        except retry_on as e:
            last_error = e
            logger.error(f"{log_prefix}Error in {description} (attempt {attempt + 1}): {e}")
            attempt += 1
            continue

        if attempt > 0:
            logger.info(f"{log_prefix}{description} succeeded after {attempt + 1} attempts")
        return result
