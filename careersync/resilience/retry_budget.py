"""Deadline-bounded exponential backoff.

A :class:`BackoffPolicy` describes *how* a phase retries: the total window
it may spend, the first wait, the growth factor and the ceiling.  Calling
:meth:`BackoffPolicy.start` with the current time yields a
:class:`RetryBudget`, an immutable value that knows its absolute deadline and
the next delay to use.

Backoff schedule
~~~~~~~~~~~~~~~~
::

    wait_n  = min(delay_n, deadline - now)
    delay_1 = initial_delay
    delay_n = min(delay_(n-1) × multiplier, cap_delay)

With the credential policy (0.5 s, ×1.5, cap 3 s) the waits are
0.5, 0.75, 1.125, 1.688, 2.532, 3.0, 3.0, … until the deadline clamps the
last one.

Typical usage::

    budget = policy.start(scheduler.now())
    while True:
        ...  # attempt
        wait, remaining = budget.next_delay(scheduler.now())
        if remaining <= 0:
            break
        await scheduler.sleep(wait)
        budget = budget.grow()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Final

__all__ = ["BackoffPolicy", "RetryBudget"]

logger = logging.getLogger(__name__)

#: Delays are rounded to whole milliseconds.
_DELAY_PRECISION: Final[int] = 3

#: Remainders below this many seconds count as exhausted (float drift).
_EXHAUSTED_EPSILON: Final[float] = 1e-6


@dataclass(frozen=True)
class BackoffPolicy:
    """Static description of a retry schedule.

    Attributes:
        window: Total seconds a phase may keep retrying.
        initial_delay: First wait between attempts.
        multiplier: Growth factor applied after every wait (≥ 1).
        cap_delay: Hard ceiling on a single wait.

    Raises:
        ValueError: If any bound is non-positive, ``multiplier < 1`` or
            ``initial_delay > cap_delay``.
    """

    window: float
    initial_delay: float
    multiplier: float
    cap_delay: float

    def __post_init__(self) -> None:
        if self.window <= 0 or self.initial_delay <= 0 or self.cap_delay <= 0:
            raise ValueError(f"Backoff bounds must be positive: {self!r}")
        if self.multiplier < 1:
            raise ValueError(f"multiplier must be ≥ 1, got {self.multiplier!r}")
        if self.initial_delay > self.cap_delay:
            raise ValueError(
                f"initial_delay ({self.initial_delay}) > cap_delay ({self.cap_delay})"
            )

    def start(self, now: float) -> RetryBudget:
        """Open a budget whose deadline is ``now + window``."""
        return RetryBudget(
            deadline=now + self.window,
            delay=self.initial_delay,
            multiplier=self.multiplier,
            cap_delay=self.cap_delay,
        )


@dataclass(frozen=True)
class RetryBudget:
    """Deadline plus the current position in a backoff schedule.

    Pure value type: every method is deterministic given its inputs and the
    instance is never mutated; :meth:`grow` returns a successor.

    Attributes:
        deadline: Absolute scheduler time after which no wait may end.
        delay: Wait to use before the next attempt (before clamping).
        multiplier: Growth factor for :meth:`grow`.
        cap_delay: Ceiling for :attr:`delay`.
    """

    deadline: float
    delay: float
    multiplier: float
    cap_delay: float

    def remaining(self, now: float) -> float:
        """Seconds left before the deadline (never negative)."""
        return max(0.0, self.deadline - now)

    def exhausted(self, now: float) -> bool:
        return self.remaining(now) <= _EXHAUSTED_EPSILON

    def next_delay(self, now: float) -> tuple[float, float]:
        """Return ``(wait, remaining)`` for the next sleep.

        ``wait`` is :attr:`delay` clamped so that ``now + wait`` never passes
        :attr:`deadline`.  ``remaining <= 0`` means the budget is exhausted
        and the caller must stop retrying.
        """
        remaining = self.remaining(now)
        return min(self.delay, remaining), remaining

    def grow(self) -> RetryBudget:
        """Return the budget for the following attempt.

        The delay grows by :attr:`multiplier` and saturates at
        :attr:`cap_delay`; it never decreases.
        """
        grown = round(self.delay * self.multiplier, _DELAY_PRECISION)
        return replace(self, delay=min(max(grown, self.delay), self.cap_delay))
