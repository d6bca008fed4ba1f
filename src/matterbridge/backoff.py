"""Exponential reconnect backoff with jitter."""

from __future__ import annotations

import random

# Remote session defaults: 1s doubling up to 5 minutes
BACKOFF_MIN = 1.0
BACKOFF_MAX = 300.0
BACKOFF_FACTOR = 2.0


class Backoff:
    """Inspectable backoff state: ``attempt`` consecutive failures, ``last_delay`` seconds.

    The Nth call to :meth:`duration` after a reset returns
    ``min(max, min * factor ** (N - 1))``, scaled by a jitter factor in
    ``[0.5, 1.5]`` when jitter is enabled and clamped to ``max``.
    """

    def __init__(
        self,
        minimum: float = BACKOFF_MIN,
        maximum: float = BACKOFF_MAX,
        factor: float = BACKOFF_FACTOR,
        *,
        jitter: bool = True,
    ) -> None:
        self.minimum = minimum
        self.maximum = maximum
        self.factor = factor
        self.jitter = jitter
        self.attempt = 0
        self.last_delay = 0.0

    def base_delay(self, attempt: int) -> float:
        """Delay before jitter for the given 1-based attempt."""
        if attempt < 1:
            return 0.0
        # Cap the exponent; factor ** attempt overflows long before the clamp matters
        exponent = min(attempt - 1, 64)
        return min(self.maximum, self.minimum * (self.factor**exponent))

    def duration(self) -> float:
        """Record one failure and return how long to wait before retrying."""
        self.attempt += 1
        delay = self.base_delay(self.attempt)
        if self.jitter:
            delay = min(self.maximum, delay * random.uniform(0.5, 1.5))
        self.last_delay = delay
        return delay

    def reset(self) -> None:
        """Call after a success; the next failure waits ``minimum`` again."""
        self.attempt = 0
        self.last_delay = 0.0
