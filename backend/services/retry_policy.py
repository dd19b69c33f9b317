"""Retry decisions for failed sync passes.

The core never sleeps or requeues; it only records what the external job
runner should do next.
"""

from dataclasses import dataclass

from config import settings
from integrations.exceptions import is_transient


@dataclass(frozen=True)
class RetryDecision:
    retry: bool
    delay_seconds: float | None = None
    attempt: int = 0
    max_attempts: int = 0

    def as_stats(self) -> dict:
        return {
            "retry": self.retry,
            "retry_delay_seconds": self.delay_seconds,
            "attempt": self.attempt,
            "max_attempts": self.max_attempts,
        }


class RetryPolicy:
    """Exponential backoff over a small, fixed number of attempts."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        max_delay: float = 60.0,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.SYNC_MAX_ATTEMPTS,
            base_delay=settings.SYNC_BACKOFF_BASE_SECONDS,
            max_delay=settings.SYNC_BACKOFF_MAX_SECONDS,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay before the attempt after ``attempt`` (1-based)."""
        return min(self.base_delay * (2 ** max(attempt - 1, 0)), self.max_delay)

    def should_retry(self, exc: BaseException, attempt: int) -> bool:
        return is_transient(exc) and attempt < self.max_attempts

    def decide(self, exc: BaseException, attempt: int) -> RetryDecision:
        if self.should_retry(exc, attempt):
            return RetryDecision(True, self.delay_for(attempt), attempt, self.max_attempts)
        return RetryDecision(False, None, attempt, self.max_attempts)
