"""Tenacity integration for deadline-bounded retry loops.

:func:`budget_retrying` drives a :class:`tenacity.AsyncRetrying` whose
``wait`` and ``stop`` strategies come from a
:class:`~careersync.resilience.retry_budget.RetryBudget` and whose sleeps go
through the injected :class:`~careersync.resilience.scheduler.Scheduler`.

* **stop**: after a failed attempt, stop once the budget has no time left.
* **wait**: otherwise sleep ``min(delay, remaining)`` and grow the delay.
* **retry**: any :class:`Exception` except
  :class:`~careersync.core.exceptions.StaleRunError`, which must escape the
  loop immediately so a superseded run stops without another attempt.
* **deadline**: a retry only starts while time is left.  When the clamped
  sleep lands on the deadline, the failure of the previous attempt is
  re-raised instead of starting one more.

The caller sees the last attempt's exception once the budget is exhausted,
and maps it to its own terminal error.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable

from tenacity import (
    AsyncRetrying,
    AttemptManager,
    RetryCallState,
    retry_if_exception_type,
    retry_if_not_exception_type,
)

from careersync.core.exceptions import StaleRunError
from careersync.resilience.retry_budget import BackoffPolicy, RetryBudget
from careersync.resilience.scheduler import Scheduler

__all__ = ["BudgetTracker", "budget_retrying"]

logger = logging.getLogger(__name__)


class BudgetTracker:
    """Mutable holder advancing a :class:`RetryBudget` across attempts.

    Exposes tenacity-compatible ``stop`` and ``wait`` callables and keeps
    the most recent attempt failure.

    Args:
        policy: Backoff schedule for the phase.
        scheduler: Clock source; the deadline is fixed at construction time.
    """

    def __init__(self, policy: BackoffPolicy, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self.budget: RetryBudget = policy.start(scheduler.now())
        self.waits: list[float] = []
        self.last_error: BaseException | None = None

    def remaining(self) -> float:
        return self.budget.remaining(self._scheduler.now())

    def exhausted(self) -> bool:
        return self.budget.exhausted(self._scheduler.now())

    def stop(self, retry_state: RetryCallState) -> bool:
        exhausted = self.exhausted()
        if exhausted:
            logger.debug(
                "Retry budget exhausted after %d attempt(s).", retry_state.attempt_number
            )
        return exhausted

    def wait(self, retry_state: RetryCallState) -> float:
        wait, _ = self.budget.next_delay(self._scheduler.now())
        self.budget = self.budget.grow()
        self.waits.append(wait)
        return wait

    def record(self, retry_state: RetryCallState) -> None:
        """Remember the failure that is about to be retried."""
        if retry_state.outcome is not None and retry_state.outcome.failed:
            self.last_error = retry_state.outcome.exception()


async def budget_retrying(
    tracker: BudgetTracker,
    scheduler: Scheduler,
    *,
    before_sleep: Callable[[RetryCallState], None] | None = None,
) -> AsyncIterator[AttemptManager]:
    """Yield tenacity attempts bounded by *tracker*'s budget.

    Use as ``async for attempt in budget_retrying(...): with attempt: ...``.

    Args:
        tracker: Budget holder supplying ``stop`` and ``wait``.
        scheduler: Sleep implementation (real or virtual clock).
        before_sleep: Optional hook logging the failed attempt.

    Raises:
        Exception: The last attempt's failure, once the budget is spent.
    """

    def _before_sleep(retry_state: RetryCallState) -> None:
        tracker.record(retry_state)
        if before_sleep is not None:
            before_sleep(retry_state)

    retrying = AsyncRetrying(
        sleep=scheduler.sleep,
        stop=tracker.stop,
        wait=tracker.wait,
        retry=(
            retry_if_exception_type(Exception)
            & retry_if_not_exception_type(StaleRunError)
        ),
        reraise=True,
        before_sleep=_before_sleep,
    )
    async for attempt in retrying:
        if attempt.retry_state.attempt_number > 1 and tracker.exhausted():
            error = tracker.last_error
            if error is not None:
                logger.debug(
                    "Deadline reached while waiting; attempt %d not started.",
                    attempt.retry_state.attempt_number,
                )
                raise error
        yield attempt
