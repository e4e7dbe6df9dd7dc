"""Reconnect backoff policy.

Exponential backoff with additive jitter, capped at a maximum delay.
"""

import random
from collections.abc import Callable
from dataclasses import dataclass

# Cap on the exponent so large attempt numbers cannot overflow a float
_MAX_EXPONENT = 64


@dataclass(frozen=True)
class BackoffPolicy:
    """Delay schedule between failed reconnection attempts.

    delay(n) = min(initial_delay * multiplier**(n-1) + jitter * U[0, 1), max_delay)

    This is an immutable value object owned by the supervisor.
    """

    initial_delay: float = 1.0  # seconds before the first retry
    multiplier: float = 2.0
    max_delay: float = 120.0  # hard ceiling, jitter included
    jitter: float = 1.0  # maximum random seconds added

    def __post_init__(self) -> None:
        if self.initial_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("Backoff delays must be non-negative")
        if self.multiplier < 1:
            raise ValueError("Backoff multiplier must be >= 1")

    def compute(self, attempt: int, *, minimum: float | None = None, rng: Callable[[], float] = random.random) -> float:
        """Calculate the delay before a reconnection attempt.

        Args:
            attempt: Consecutive failure count (1 for the first failure)
            minimum: Lower bound requested by the server (e.g. Retry-After)
            rng: Source of uniform randoms in [0, 1), injectable for tests

        Returns:
            Delay in seconds, never above max_delay
        """
        exponent = min(max(attempt - 1, 0), _MAX_EXPONENT)
        delay = self.initial_delay * (self.multiplier**exponent) + self.jitter * rng()
        if minimum is not None:
            delay = max(delay, minimum)
        return min(delay, self.max_delay)

    def to_dict(self) -> dict:
        """Serialize to dictionary for logging."""
        return {
            "initial_delay": self.initial_delay,
            "multiplier": self.multiplier,
            "max_delay": self.max_delay,
            "jitter": self.jitter,
        }
