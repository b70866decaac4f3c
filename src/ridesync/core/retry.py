"""Exponential backoff for transient trip API and storage failures."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from .exceptions import TransientError

T = TypeVar("T")
logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    max_attempts: int = 3
    base_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 30.0
    retryable_exceptions: tuple[type[Exception], ...] = field(
        default_factory=lambda: (TransientError,)
    )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the zero-based ``attempt`` failed."""
        return min(self.base_delay * (self.multiplier**attempt), self.max_delay)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    operation_name: str = "operation",
    on_retry: Callable[[Exception, int], None] | None = None,
) -> T:
    """Await ``operation`` until it succeeds or the attempts run out.

    Only ``config.retryable_exceptions`` are retried; anything else, and the
    last retryable failure, propagates unchanged.
    """
    config = config or RetryConfig()
    attempt = 0
    while True:
        try:
            return await operation()
        except config.retryable_exceptions as e:
            attempt += 1
            if attempt >= config.max_attempts:
                logger.error(f"{operation_name} gave up after {attempt} attempts: {e}")
                raise

            delay = config.delay_for(attempt - 1)
            logger.warning(
                f"{operation_name} failed ({attempt}/{config.max_attempts}), retrying in {delay:.1f}s: {e}"
            )
            if on_retry:
                on_retry(e, attempt - 1)
            await asyncio.sleep(delay)
