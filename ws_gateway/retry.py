"""
Reconnect backoff for the gateway's Redis subscriber.

Every gateway process loses Redis at the same moment when Redis restarts,
so delays are spread with random jitter around an exponential curve.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable

from shared.config.settings import Settings


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """
    When and how long to wait before re-subscribing.

    Attempt ``n`` (1-based) waits ``base_delay * multiplier ** (n - 1)``
    seconds, capped at ``max_delay``, then moved by up to ``jitter`` of
    itself in either direction. After ``max_attempts`` consecutive
    failures the subscriber stops.
    """

    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: float = 0.25
    max_attempts: int = 10

    def __post_init__(self) -> None:
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")
        if not 0 <= self.jitter <= 1:
            raise ValueError("jitter must be between 0 and 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReconnectPolicy":
        return cls(
            max_delay=float(settings.redis_max_reconnect_delay),
            max_attempts=settings.redis_max_reconnect_attempts,
        )

    def exhausted(self, attempt: int) -> bool:
        return attempt > self.max_attempts

    def delay_for(
        self,
        attempt: int,
        uniform: Callable[[float, float], float] = random.uniform,
    ) -> float:
        """Seconds to sleep before reconnect ``attempt`` (1-based)."""
        step = max(attempt, 1) - 1
        delay = min(self.base_delay * self.multiplier ** step, self.max_delay)
        spread = delay * self.jitter
        return max(0.0, delay + uniform(-spread, spread))
