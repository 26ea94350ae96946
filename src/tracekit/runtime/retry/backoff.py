"""Delay schedules between retries of tracking-server requests.

`delay(attempt)` takes the 0-indexed retry number and returns seconds to wait.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from tracekit.foundation.config import RetrySettings


@runtime_checkable
class Backoff(Protocol):
    def delay(self, attempt: int) -> float: ...


@dataclass(frozen=True, slots=True)
class ExponentialBackoff:
    """Doubling delay capped at `max_delay`.

    With `jitter`, the wait is drawn uniformly from the upper half of the
    capped delay so concurrent exporters do not retry in lockstep.

    Example:
        >>> [ExponentialBackoff(base=0.5, max_delay=1.5, jitter=False).delay(i) for i in range(3)]
        [0.5, 1.0, 1.5]
    """

    base: float = 0.5
    max_delay: float = 10.0
    multiplier: float = 2.0
    jitter: bool = True

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> ExponentialBackoff:
        return cls(base=settings.base_delay, max_delay=settings.max_delay, jitter=settings.jitter)

    def delay(self, attempt: int) -> float:
        capped = min(self.base * self.multiplier ** attempt, self.max_delay)
        return random.uniform(capped / 2, capped) if self.jitter else capped


@dataclass(frozen=True, slots=True)
class ConstantBackoff:
    """Same wait before every retry. `ConstantBackoff(0)` retries immediately (handy in tests)."""

    delay_seconds: float = 1.0

    def delay(self, attempt: int) -> float:
        return self.delay_seconds
