"""
Retry delay strategies.

``ExponentialBackoff`` is what every trigger-enqueued job uses: the delay
before attempt *k* (1-based, counting the attempt that just failed) is
``base_delay * multiplier ** (k - 1)``. With the default 2000 ms base this
gives 2 s, 4 s, 8 s ...

Example:
    >>> backoff = ExponentialBackoff(base_delay=2.0)
    >>> [backoff.next_delay(k) for k in (1, 2, 3)]
    [2.0, 4.0, 8.0]
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta

from tickspine.queue.models import BackoffPolicy, BackoffType


class RetryStrategy(ABC):
    """Base class for retry delay strategies."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Seconds to wait after the *attempt*-th failed attempt (1-based)."""
        ...


@dataclass
class ExponentialBackoff(RetryStrategy):
    """Exponential backoff with optional cap and jitter.

    Attributes:
        base_delay: Delay in seconds after the first failure
        multiplier: Growth factor per attempt
        max_delay: Upper bound in seconds (None = unbounded)
        jitter: Add up to 10% random jitter
    """

    base_delay: float = 2.0
    multiplier: float = 2.0
    max_delay: float | None = None
    jitter: bool = False

    def next_delay(self, attempt: int) -> float:
        if attempt < 1:
            raise ValueError("attempt must be >= 1")
        delay = self.base_delay * (self.multiplier ** (attempt - 1))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        if self.jitter:
            delay += delay * 0.1 * random.random()
        return delay


@dataclass
class FixedBackoff(RetryStrategy):
    """Same delay after every failure."""

    delay: float = 2.0

    def next_delay(self, attempt: int) -> float:
        if attempt < 1:
            raise ValueError("attempt must be >= 1")
        return self.delay


def strategy_for(policy: BackoffPolicy) -> RetryStrategy:
    """Build the strategy described by a job's :class:`BackoffPolicy`."""
    base = policy.delay_ms / 1000.0
    if policy.type is BackoffType.FIXED:
        return FixedBackoff(delay=base)
    return ExponentialBackoff(base_delay=base)


def retry_delay(policy: BackoffPolicy, attempt: int) -> timedelta:
    """Delay before the next attempt after *attempt* failures."""
    return timedelta(seconds=strategy_for(policy).next_delay(attempt))
