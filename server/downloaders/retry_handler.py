"""Retry policy with exponential backoff for queued jobs.

A failed work item is retried after ``base_delay * multiplier ** (attempt - 1)``
seconds until ``max_attempts`` attempts have been made. With the defaults
(3 attempts, 5 s base, multiplier 2) a job that keeps failing runs at
t=0, t=5 s and t=15 s and then fails for good.
"""
import logging
from dataclasses import dataclass

from server.config import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff.

    Attributes:
        max_attempts: Total attempts, including the first one
        base_delay: Seconds before the second attempt
        multiplier: Growth factor between consecutive delays
    """
    max_attempts: int = 3
    base_delay: float = 5.0
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1 (got: {self.max_attempts})")
        if self.base_delay < 0:
            raise ValueError(f"base_delay cannot be negative (got: {self.base_delay})")

    def should_retry(self, attempts_made: int) -> bool:
        """Whether another attempt is allowed after ``attempts_made`` failures."""
        return attempts_made < self.max_attempts

    def delay_for(self, attempts_made: int) -> float:
        """Seconds to wait before the next attempt.

        Args:
            attempts_made: Attempts already made (1 after the first failure)

        Returns:
            Delay in seconds
        """
        return self.base_delay * (self.multiplier ** (attempts_made - 1))

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(
            max_attempts=config.JOB_MAX_ATTEMPTS,
            base_delay=config.JOB_RETRY_DELAY,
        )


__all__ = ["RetryPolicy"]
