# cenownik/notifications/retry.py

"""Attempt bookkeeping for notification retries.

The schedule only counts attempts and computes delays; callers do the
waiting through an injected sleeper so tests never touch the wall clock.
"""

from collections.abc import Callable
from dataclasses import dataclass

Sleeper = Callable[[float], None]


@dataclass
class RetrySchedule:
    """Attempt counter with exponential backoff (base, 2x base, 4x base...)."""

    max_attempts: int = 3
    base_delay: float = 1.0
    attempt: int = 0

    def next_attempt(self) -> bool:
        """Advance to the next attempt; False once the budget is spent."""
        if self.attempt >= self.max_attempts:
            return False
        self.attempt += 1
        return True

    @property
    def has_remaining(self) -> bool:
        return self.attempt < self.max_attempts

    def backoff_delay(self) -> float:
        """Delay to wait after the current (failed) attempt."""
        return self.base_delay * 2 ** (self.attempt - 1)
