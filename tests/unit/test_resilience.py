"""Tests for the resilience layer.

Covers:

* :class:`~careersync.resilience.retry_budget.BackoffPolicy` validation.
* :class:`~careersync.resilience.retry_budget.RetryBudget` delay schedule,
  clamping to the deadline and the cap (backoff-bounds property).
* :class:`~careersync.resilience.cancellation.CancellationToken`.
* :func:`~careersync.resilience.retrying.budget_retrying` driven by the
  virtual-clock scheduler.
"""

from __future__ import annotations

import asyncio

import pytest

from careersync.core.exceptions import StaleRunError
from careersync.resilience.cancellation import CancellationToken
from careersync.resilience.retry_budget import BackoffPolicy, RetryBudget
from careersync.resilience.retrying import BudgetTracker, budget_retrying
from careersync.resilience.scheduler import AsyncioScheduler

TOKEN_POLICY = BackoffPolicy(window=20.0, initial_delay=0.5, multiplier=1.5, cap_delay=3.0)
LINK_POLICY = BackoffPolicy(window=20.0, initial_delay=0.9, multiplier=1.7, cap_delay=5.0)


# ---------------------------------------------------------------------------
# BackoffPolicy
# ---------------------------------------------------------------------------


class TestBackoffPolicy:
    def test_start_sets_absolute_deadline(self) -> None:
        budget = TOKEN_POLICY.start(100.0)
        assert budget.deadline == 120.0
        assert budget.delay == 0.5

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"window": 0.0},
            {"initial_delay": -1.0},
            {"cap_delay": 0.0},
            {"multiplier": 0.5},
            {"initial_delay": 4.0, "cap_delay": 3.0},
        ],
    )
    def test_invalid_bounds_rejected(self, kwargs: dict[str, float]) -> None:
        params = {"window": 20.0, "initial_delay": 0.5, "multiplier": 1.5, "cap_delay": 3.0}
        params.update(kwargs)
        with pytest.raises(ValueError):
            BackoffPolicy(**params)


# ---------------------------------------------------------------------------
# RetryBudget
# ---------------------------------------------------------------------------


class TestRetryBudget:
    def test_token_schedule_grows_then_caps(self) -> None:
        budget = TOKEN_POLICY.start(0.0)
        delays = []
        for _ in range(8):
            delays.append(budget.delay)
            budget = budget.grow()
        assert delays == [0.5, 0.75, 1.125, 1.688, 2.532, 3.0, 3.0, 3.0]

    def test_link_schedule_grows_then_caps(self) -> None:
        budget = LINK_POLICY.start(0.0)
        delays = []
        for _ in range(6):
            delays.append(budget.delay)
            budget = budget.grow()
        assert delays == [0.9, 1.53, 2.601, 4.422, 5.0, 5.0]

    def test_wait_is_clamped_to_remaining_time(self) -> None:
        budget = RetryBudget(deadline=10.0, delay=3.0, multiplier=1.5, cap_delay=3.0)
        wait, remaining = budget.next_delay(9.2)
        assert wait == pytest.approx(0.8)
        assert remaining == pytest.approx(0.8)

    def test_remaining_never_negative(self) -> None:
        budget = RetryBudget(deadline=10.0, delay=1.0, multiplier=1.5, cap_delay=3.0)
        wait, remaining = budget.next_delay(12.0)
        assert remaining == 0.0
        assert wait == 0.0
        assert budget.exhausted(12.0)

    def test_not_exhausted_before_deadline(self) -> None:
        budget = RetryBudget(deadline=10.0, delay=1.0, multiplier=1.5, cap_delay=3.0)
        assert not budget.exhausted(9.99)

    def test_grow_is_pure(self) -> None:
        budget = TOKEN_POLICY.start(0.0)
        grown = budget.grow()
        assert budget.delay == 0.5
        assert grown.delay == 0.75
        assert grown.deadline == budget.deadline

    @pytest.mark.parametrize("policy", [TOKEN_POLICY, LINK_POLICY])
    def test_waits_never_exceed_cap_or_deadline(self, policy: BackoffPolicy) -> None:
        now = 0.0
        budget = policy.start(now)
        while not budget.exhausted(now):
            wait, _ = budget.next_delay(now)
            assert 0.0 <= wait <= policy.cap_delay
            now += wait
            assert now <= budget.deadline + 1e-9
            budget = budget.grow()
        assert now == pytest.approx(policy.window)


# ---------------------------------------------------------------------------
# CancellationToken
# ---------------------------------------------------------------------------


class TestCancellationToken:
    def test_starts_at_zero(self) -> None:
        assert CancellationToken().current() == 0

    def test_bump_invalidates_earlier_generations(self) -> None:
        token = CancellationToken("sync")
        first = token.bump()
        assert not token.is_stale(first)
        second = token.bump()
        assert second == first + 1
        assert token.is_stale(first)
        assert not token.is_stale(second)

    def test_raise_if_stale(self) -> None:
        token = CancellationToken()
        generation = token.bump()
        token.raise_if_stale(generation)
        token.bump()
        with pytest.raises(StaleRunError) as exc_info:
            token.raise_if_stale(generation)
        assert exc_info.value.generation == generation
        assert exc_info.value.current == generation + 1

    def test_repr_names_token(self) -> None:
        assert "ranking" in repr(CancellationToken("ranking"))


# ---------------------------------------------------------------------------
# budget_retrying
# ---------------------------------------------------------------------------


class TestBudgetRetrying:
    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self, scheduler) -> None:
        tracker = BudgetTracker(TOKEN_POLICY, scheduler)
        calls = 0

        async for attempt in budget_retrying(tracker, scheduler):
            with attempt:
                calls += 1
                if calls < 3:
                    raise RuntimeError("not yet")

        assert calls == 3
        assert scheduler.sleeps == [0.5, 0.75]
        assert scheduler.now() == pytest.approx(1.25)

    @pytest.mark.asyncio
    async def test_reraises_last_error_when_budget_exhausted(self, scheduler) -> None:
        tracker = BudgetTracker(TOKEN_POLICY, scheduler)
        calls = 0

        with pytest.raises(RuntimeError, match="still failing"):
            async for attempt in budget_retrying(tracker, scheduler):
                with attempt:
                    calls += 1
                    raise RuntimeError("still failing")

        assert scheduler.now() == pytest.approx(20.0)
        assert sum(scheduler.sleeps) == pytest.approx(20.0)
        assert max(scheduler.sleeps) <= 3.0
        assert calls == len(scheduler.sleeps)

    @pytest.mark.asyncio
    async def test_no_attempt_starts_at_the_deadline(self, scheduler) -> None:
        tracker = BudgetTracker(LINK_POLICY, scheduler)
        started: list[float] = []

        with pytest.raises(ConnectionError, match="attempt 7"):
            async for attempt in budget_retrying(tracker, scheduler):
                with attempt:
                    started.append(scheduler.now())
                    raise ConnectionError(f"attempt {len(started)}")

        assert len(started) == 7
        assert all(t < 20.0 for t in started)
        assert scheduler.now() == pytest.approx(20.0)
        assert str(tracker.last_error) == "attempt 7"

    @pytest.mark.asyncio
    async def test_stale_run_is_not_retried(self, scheduler) -> None:
        tracker = BudgetTracker(TOKEN_POLICY, scheduler)
        calls = 0

        with pytest.raises(StaleRunError):
            async for attempt in budget_retrying(tracker, scheduler):
                with attempt:
                    calls += 1
                    raise StaleRunError(1, 2)

        assert calls == 1
        assert scheduler.sleeps == []

    @pytest.mark.asyncio
    async def test_before_sleep_sees_planned_wait(self, scheduler) -> None:
        tracker = BudgetTracker(LINK_POLICY, scheduler)
        planned: list[float] = []
        calls = 0

        async for attempt in budget_retrying(
            tracker, scheduler, before_sleep=lambda rs: planned.append(rs.next_action.sleep)
        ):
            with attempt:
                calls += 1
                if calls < 3:
                    raise ConnectionError("down")

        assert planned == [0.9, 1.53]
        assert tracker.waits == [0.9, 1.53]


class TestAsyncioScheduler:
    @pytest.mark.asyncio
    async def test_wait_for_raises_timeout(self) -> None:
        real = AsyncioScheduler()
        with pytest.raises(TimeoutError):
            await real.wait_for(asyncio.sleep(1.0), timeout=0.01)

    @pytest.mark.asyncio
    async def test_clock_is_monotonic(self) -> None:
        real = AsyncioScheduler()
        first = real.now()
        await real.sleep(0)
        assert real.now() >= first
