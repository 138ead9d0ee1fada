"""Retry budgets, generation-counter cancellation and the scheduler capability."""

from careersync.resilience.cancellation import CancellationToken
from careersync.resilience.retry_budget import BackoffPolicy, RetryBudget
from careersync.resilience.retrying import BudgetTracker, budget_retrying
from careersync.resilience.scheduler import AsyncioScheduler, Scheduler

__all__ = [
    "AsyncioScheduler",
    "BackoffPolicy",
    "BudgetTracker",
    "CancellationToken",
    "RetryBudget",
    "Scheduler",
    "budget_retrying",
]
