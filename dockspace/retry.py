"""Retry with exponential backoff for read-only engine queries.

Listing images or reading ``system df`` can fail transiently while the
daemon is busy (for example during another prune). Queries are retried;
mutations are never retried, since a repeated delete could report a
spurious failure for an object that is already gone.
"""

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts (including the first one)
        base_delay: Delay in seconds before the first retry
        max_delay: Cap for any single delay
        exponential_base: Growth factor between delays
        jitter: Randomize delays by up to ``jitter_range`` of their value
        jitter_range: Fraction of the delay used for jitter (0.0 to 1.0)
        retryable_exceptions: Exception types that trigger a retry
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.25
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if not 0 <= self.jitter_range <= 1:
            raise ValueError("jitter_range must be between 0 and 1")


@dataclass
class RetryResult:
    success: bool
    result: Any = None
    attempts: int = 0
    errors: list[Exception] = field(default_factory=list)

    @property
    def final_error(self) -> Exception | None:
        return self.errors[-1] if self.errors else None


class RetryManager:
    """Runs a callable until it succeeds or the attempts are exhausted."""

    def __init__(self, config: RetryConfig | None = None, sleep: Callable[[float], None] = time.sleep):
        self.config = config or RetryConfig()
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds after the given 0-indexed failed attempt."""
        delay = min(
            self.config.base_delay * (self.config.exponential_base**attempt),
            self.config.max_delay,
        )
        if self.config.jitter:
            spread = delay * self.config.jitter_range
            delay = max(0.0, delay + random.uniform(-spread, spread))
        return delay

    def execute(self, func: Callable[..., T], *args, **kwargs) -> RetryResult:
        errors: list[Exception] = []

        for attempt in range(self.config.max_attempts):
            try:
                return RetryResult(
                    success=True, result=func(*args, **kwargs), attempts=attempt + 1, errors=errors
                )
            except self.config.retryable_exceptions as e:
                errors.append(e)
                if attempt == self.config.max_attempts - 1:
                    logger.error(f"All {self.config.max_attempts} attempts failed. Final error: {e}")
                    break
                delay = self.delay_for(attempt)
                logger.warning(
                    f"Attempt {attempt + 1}/{self.config.max_attempts} failed: {e}. "
                    f"Retrying in {delay:.2f}s..."
                )
                self._sleep(delay)

        return RetryResult(success=False, attempts=len(errors), errors=errors)

    def call(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Like ``execute`` but returns the value or re-raises the last error."""
        outcome = self.execute(func, *args, **kwargs)
        if outcome.success:
            return outcome.result
        raise outcome.final_error
