"""Retry policy shared by download, upload and ping loops."""
from __future__ import annotations

from dataclasses import dataclass

from .constants import BACKOFF_BASE, BACKOFF_MAX, MAX_CONSECUTIVE_FAILURES


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retries with capped exponential backoff.

    ``max_attempts`` is the number of retries allowed after consecutive
    failures; the failure that exceeds it ends the loop.
    """

    max_attempts: int = MAX_CONSECUTIVE_FAILURES
    base_delay: float = BACKOFF_BASE
    max_delay: float = BACKOFF_MAX

    def exhausted(self, consecutive_failures: int) -> bool:
        return consecutive_failures > self.max_attempts

    def delay(self, consecutive_failures: int) -> float:
        """Seconds to wait after the *n*-th consecutive failure (n >= 1)."""
        if consecutive_failures <= 0 or self.base_delay <= 0:
            return 0.0
        return min(self.max_delay, self.base_delay * 2 ** consecutive_failures)
