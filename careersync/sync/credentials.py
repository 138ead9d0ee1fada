"""Phase 1 of account sync: obtain a fresh bearer credential.

Right after an identity handoff the provider session exists but often cannot
mint a token for a few hundred milliseconds.  :class:`CredentialAcquirer`
keeps asking for a *force-fresh* credential until one arrives or the budget
runs out.  Exceptions and empty results are both treated as transient.

Default budget: 20 s window, 0.5 s initial wait, ×1.5 growth, 3 s cap.
"""

from __future__ import annotations

import logging

from tenacity import RetryCallState

from careersync.backend.identity import IdentityProvider
from careersync.core import events
from careersync.core.exceptions import (
    CredentialTimeoutError,
    CredentialUnavailableError,
    StaleRunError,
)
from careersync.resilience.cancellation import CancellationToken
from careersync.resilience.retry_budget import BackoffPolicy
from careersync.resilience.retrying import BudgetTracker, budget_retrying
from careersync.resilience.scheduler import AsyncioScheduler, Scheduler

__all__ = ["CredentialAcquirer", "DEFAULT_TOKEN_POLICY"]

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_POLICY = BackoffPolicy(
    window=20.0,
    initial_delay=0.5,
    multiplier=1.5,
    cap_delay=3.0,
)


class CredentialAcquirer:
    """Retry the identity collaborator until it yields a credential.

    Args:
        identity: Identity collaborator.
        token: Cancellation token shared with the owning orchestrator.
        policy: Backoff schedule for this phase.
        scheduler: Clock and sleep implementation.
        label: Prefix for log lines (e.g. ``"talent-signup"``).
    """

    def __init__(
        self,
        identity: IdentityProvider,
        token: CancellationToken,
        *,
        policy: BackoffPolicy = DEFAULT_TOKEN_POLICY,
        scheduler: Scheduler | None = None,
        label: str = "sync",
    ) -> None:
        self._identity = identity
        self._token = token
        self._policy = policy
        self._scheduler = scheduler or AsyncioScheduler()
        self._label = label

    async def acquire(self, generation: int) -> str:
        """Return a non-empty credential obtained under *generation*.

        Args:
            generation: Generation captured by the calling run.

        Returns:
            The bearer credential.

        Raises:
            CredentialTimeoutError: The budget expired without a credential.
            StaleRunError: The run was superseded while waiting.
        """
        tracker = BudgetTracker(self._policy, self._scheduler)
        credential: str | None = ""
        attempts = 0

        try:
            async for attempt in budget_retrying(
                tracker, self._scheduler, before_sleep=self._log_retry
            ):
                with attempt:
                    self._token.raise_if_stale(generation)
                    attempts = attempt.retry_state.attempt_number
                    credential = await self._identity.get_credential(force_fresh=True)
                    self._token.raise_if_stale(generation)
                    if not credential:
                        raise CredentialUnavailableError("Identity provider returned no credential.")
        except StaleRunError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "[%s] Could not obtain a credential after %d attempt(s).",
                self._label,
                attempts,
                extra={"event": events.TOKEN_TIMEOUT},
            )
            raise CredentialTimeoutError(attempts=attempts) from exc

        logger.info(
            "[%s] Credential acquired on attempt %d.",
            self._label,
            attempts,
            extra={"event": events.TOKEN_ACQUIRED},
        )
        return credential or ""

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "[%s] Credential not ready yet (attempt %d, %s). Retrying in %.2f s.",
            self._label,
            retry_state.attempt_number,
            type(exc).__name__ if exc else "?",
            wait,
            extra={"event": events.TOKEN_ATTEMPT_FAILED},
        )
