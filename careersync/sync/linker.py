"""Phase 2 of account sync: link the identity to a backend account record.

:class:`BackendLinker` POSTs the identity-provider user ID, email and a
bearer credential to the backend link endpoint until it succeeds or the
budget runs out.  Every attempt:

1. re-fetches the latest credential (the one captured in phase 1 may have
   aged), falling back to the captured one when nothing newer is available;
2. issues the request bounded by ``attempt_timeout`` through
   :meth:`Scheduler.wait_for`, which cancels a hung request;
3. checks the generation before the result is applied.

After a successful link a best-effort ``PATCH`` copies the user's names to
the backend profile.  Its failure is logged and recorded on the
:class:`LinkResult`; it never turns a successful link into a failure.

Default budget: 20 s window, 0.9 s initial wait, ×1.7 growth, 5 s cap,
10 s per attempt.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from tenacity import RetryCallState

from careersync.backend.http_client import BackendHttpClient, BackendResponse
from careersync.backend.identity import IdentityProvider
from careersync.core import events
from careersync.core.exceptions import BackendError, LinkTimeoutError, StaleRunError
from careersync.core.models import Identity
from careersync.resilience.cancellation import CancellationToken
from careersync.resilience.retry_budget import BackoffPolicy
from careersync.resilience.retrying import BudgetTracker, budget_retrying
from careersync.resilience.scheduler import AsyncioScheduler, Scheduler

__all__ = ["BackendLinker", "LinkResult", "DEFAULT_LINK_POLICY", "DEFAULT_ATTEMPT_TIMEOUT"]

logger = logging.getLogger(__name__)

DEFAULT_LINK_POLICY = BackoffPolicy(
    window=20.0,
    initial_delay=0.9,
    multiplier=1.7,
    cap_delay=5.0,
)

#: Upper bound for a single link request in seconds.
DEFAULT_ATTEMPT_TIMEOUT: float = 10.0


@dataclass(frozen=True)
class LinkResult:
    """Success marker returned by :meth:`BackendLinker.link`.

    Attributes:
        attempts: Number of link requests issued.
        profile_patched: ``True``/``False`` for the outcome of the profile
            patch, ``None`` when no patch was attempted.
        response: JSON body of the successful link response.
    """

    attempts: int
    profile_patched: bool | None = None
    response: Any = field(default_factory=dict)


class BackendLinker:
    """Submit the link request under a deadline-bounded retry budget.

    Args:
        client: Backend HTTP client.
        identity_provider: Source of fresh credentials for each attempt.
        token: Cancellation token shared with the owning orchestrator.
        policy: Backoff schedule for this phase.
        scheduler: Clock, sleep and timeout implementation.
        attempt_timeout: Seconds allowed for a single link request.
        link_endpoint: Path of the link endpoint.
        profile_endpoint: Path of the profile endpoint receiving the name patch.
        patch_profile: Send the non-gating name patch after a successful link.
        label: Prefix for log lines.
    """

    def __init__(
        self,
        client: BackendHttpClient,
        identity_provider: IdentityProvider,
        token: CancellationToken,
        *,
        policy: BackoffPolicy = DEFAULT_LINK_POLICY,
        scheduler: Scheduler | None = None,
        attempt_timeout: float = DEFAULT_ATTEMPT_TIMEOUT,
        link_endpoint: str = "/api/auth/clerk-sync/",
        profile_endpoint: str = "/api/users/profile/",
        patch_profile: bool = True,
        label: str = "sync",
    ) -> None:
        self._client = client
        self._identity_provider = identity_provider
        self._token = token
        self._policy = policy
        self._scheduler = scheduler or AsyncioScheduler()
        self._attempt_timeout = attempt_timeout
        self._link_endpoint = link_endpoint
        self._profile_endpoint = profile_endpoint
        self._patch_profile = patch_profile
        self._label = label

    async def link(self, identity: Identity, credential: str, generation: int) -> LinkResult:
        """Link *identity* to its backend account.

        Args:
            identity: The user handed over by the identity provider.
            credential: Credential obtained in phase 1, used when no fresher
                one is available.
            generation: Generation captured by the calling run.

        Returns:
            :class:`LinkResult` once the backend accepted the link.

        Raises:
            LinkTimeoutError: Every attempt failed until the budget expired.
            StaleRunError: The run was superseded while linking.
        """
        tracker = BudgetTracker(self._policy, self._scheduler)
        attempts = 0
        response: BackendResponse | None = None
        latest = credential

        try:
            async for attempt in budget_retrying(
                tracker, self._scheduler, before_sleep=self._log_retry
            ):
                with attempt:
                    self._token.raise_if_stale(generation)
                    attempts = attempt.retry_state.attempt_number
                    latest, response = await self._scheduler.wait_for(
                        self._attempt(identity, credential, generation),
                        self._attempt_timeout,
                    )
                    self._token.raise_if_stale(generation)
        except StaleRunError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "[%s] Backend link failed after %d attempt(s): %s",
                self._label,
                attempts,
                exc,
                extra={"event": events.LINK_TIMEOUT},
            )
            raise LinkTimeoutError(attempts=attempts) from exc

        logger.info(
            "[%s] Backend link succeeded on attempt %d.",
            self._label,
            attempts,
            extra={"event": events.LINK_OK},
        )

        profile_patched = await self._patch_names(identity, latest, generation)
        return LinkResult(
            attempts=attempts,
            profile_patched=profile_patched,
            response=response.json if response is not None else {},
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _attempt(
        self, identity: Identity, captured: str, generation: int
    ) -> tuple[str, BackendResponse]:
        """One link attempt: refresh the credential, then POST the link.

        Runs under the per-attempt timeout as a whole, so a hung identity
        collaborator is cut off the same way as a hung request.
        """
        latest = await self._latest_credential(captured)
        self._token.raise_if_stale(generation)
        response = await self._client.send_request(
            self._link_endpoint,
            "POST",
            {
                "clerk_user_id": identity.id,
                "email": identity.email,
                "token": latest,
            },
            credential=latest,
            timeout=self._attempt_timeout,
        )
        return latest, response

    async def _latest_credential(self, fallback: str) -> str:
        """Return a fresh credential, or *fallback* if none can be minted.

        Identity errors here do not fail the attempt; the captured
        credential may still be accepted by the backend.
        """
        try:
            fresh = await self._identity_provider.get_credential(force_fresh=True)
        except Exception as exc:  # noqa: BLE001
            logger.debug(
                "[%s] Fresh credential unavailable (%s); reusing the captured one.",
                self._label,
                exc,
            )
            return fallback
        return fresh or fallback

    async def _patch_names(
        self, identity: Identity, credential: str, generation: int
    ) -> bool | None:
        if not self._patch_profile or not identity.has_name:
            return None
        self._token.raise_if_stale(generation)
        try:
            await self._client.patch(
                self._profile_endpoint,
                {"first_name": identity.first_name, "last_name": identity.last_name},
                credential=credential,
            )
        except BackendError as exc:
            logger.warning(
                "[%s] Profile name update failed (non-fatal): %s",
                self._label,
                exc,
                extra={"event": events.PROFILE_PATCH_FAILED},
            )
            return False
        return True

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "[%s] Link attempt %d failed (%s). Retrying in %.2f s.",
            self._label,
            retry_state.attempt_number,
            exc if exc is not None else "?",
            wait,
            extra={"event": events.LINK_ATTEMPT_FAILED},
        )
