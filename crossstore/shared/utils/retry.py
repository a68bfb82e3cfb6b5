"""Retry/backoff policy value shared by the lock manager and mirror writes.

A policy is plain data passed explicitly to the component that retries; the
component owns the loop. delay_for() is pure apart from the injected RNG so
tests can pin the jitter.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff with additive random jitter.

    Attributes:
        max_attempts: Total attempts including the first one (>= 1).
        base_delay: Delay in seconds before the second attempt.
        max_delay: Upper bound for the exponential part of the delay.
        jitter: Upper bound of the uniform random delay added on top.
    """

    max_attempts: int = 10
    base_delay: float = 0.1
    max_delay: float = 2.0
    jitter: float = 0.2
    rng: random.Random = field(default_factory=random.Random, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.jitter < 0:
            raise ValueError("base_delay and jitter must be >= 0")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given failed attempt (1-based)."""
        exponential = min(self.max_delay, self.base_delay * (2 ** max(0, attempt - 1)))
        if self.jitter:
            return exponential + self.rng.uniform(0, self.jitter)
        return exponential

    @property
    def max_total_wait(self) -> float:
        """Worst-case total sleep across all retries (bound on blocking time)."""
        return sum(
            min(self.max_delay, self.base_delay * (2 ** (n - 1))) + self.jitter
            for n in range(1, self.max_attempts)
        )

    @classmethod
    def from_milliseconds(
        cls,
        max_attempts: int,
        base_delay_ms: int,
        max_delay_ms: int,
        jitter_ms: int,
    ) -> RetryPolicy:
        """Build a policy from millisecond settings values."""
        return cls(
            max_attempts=max_attempts,
            base_delay=base_delay_ms / 1000,
            max_delay=max_delay_ms / 1000,
            jitter=jitter_ms / 1000,
        )
