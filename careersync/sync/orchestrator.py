"""Account-sync state machine run after an identity-provider handoff.

:class:`SyncOrchestrator` owns one sync *run* at a time and drives it through
two phases:

1. **Acquiring token**: :class:`~careersync.sync.credentials.CredentialAcquirer`
   waits for the provider session to mint a credential.
2. **Linking backend**: :class:`~careersync.sync.linker.BackendLinker` links
   the identity to its backend account record.

State is owned by the orchestrator instance, never by module globals.  Every
asynchronous continuation checks the run's generation before touching it, so
a superseded or cancelled run can finish its in-flight await but can never
write phase, messages or fire the success side effect.

Presentation layers observe the orchestrator through :attr:`view` and
:meth:`subscribe`, and drive it through :meth:`start`, :meth:`retry` and
:meth:`cancel`.

Typical usage::

    orchestrator = SyncOrchestrator(identity_provider, client, identity)
    unsubscribe = orchestrator.subscribe(render)
    orchestrator.start()
    await orchestrator.wait()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from careersync.backend.http_client import BackendHttpClient
from careersync.backend.identity import IdentityProvider
from careersync.core import events
from careersync.core.exceptions import MISSING_EMAIL_MESSAGE, StaleRunError, SyncError
from careersync.core.logging_config import new_run_id, run_scope
from careersync.core.models import Identity, SyncPhase, SyncView
from careersync.core.settings import Settings
from careersync.resilience.cancellation import CancellationToken
from careersync.resilience.retry_budget import BackoffPolicy
from careersync.resilience.scheduler import AsyncioScheduler, Scheduler
from careersync.sync.credentials import DEFAULT_TOKEN_POLICY, CredentialAcquirer
from careersync.sync.linker import (
    DEFAULT_ATTEMPT_TIMEOUT,
    DEFAULT_LINK_POLICY,
    BackendLinker,
    LinkResult,
)

__all__ = ["SyncOrchestrator", "SUCCESS_MESSAGE", "SyncListener", "SuccessCallback"]

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE: str = "Account synced. Redirecting..."

SyncListener = Callable[[SyncView], None]
SuccessCallback = Callable[[LinkResult], "Awaitable[Any] | Any"]


class SyncOrchestrator:
    """Drive one account-sync run at a time.

    Args:
        identity_provider: Identity collaborator yielding bearer credentials.
        client: Backend HTTP client used for the link and profile requests.
        identity: The user handed over by the identity provider.
        token_policy: Backoff schedule for credential acquisition.
        link_policy: Backoff schedule for backend linking.
        scheduler: Clock, sleep and timeout implementation.
        attempt_timeout: Seconds allowed for a single link request.
        link_endpoint: Path of the link endpoint.
        profile_endpoint: Path of the profile endpoint.
        patch_profile: Send the non-gating profile-name patch.
        on_success: Side effect run once the account is linked (typically
            navigation).  May be a plain function or a coroutine function.
        label: Prefix for log lines (e.g. ``"talent-signup"``).
    """

    def __init__(
        self,
        identity_provider: IdentityProvider,
        client: BackendHttpClient,
        identity: Identity | None = None,
        *,
        token_policy: BackoffPolicy = DEFAULT_TOKEN_POLICY,
        link_policy: BackoffPolicy = DEFAULT_LINK_POLICY,
        scheduler: Scheduler | None = None,
        attempt_timeout: float = DEFAULT_ATTEMPT_TIMEOUT,
        link_endpoint: str = "/api/auth/clerk-sync/",
        profile_endpoint: str = "/api/users/profile/",
        patch_profile: bool = True,
        on_success: SuccessCallback | None = None,
        label: str = "sync",
    ) -> None:
        self._identity_provider = identity_provider
        self._identity = identity or Identity()
        self._scheduler = scheduler or AsyncioScheduler()
        self._token = CancellationToken("sync")
        self._on_success = on_success
        self._label = label

        self._acquirer = CredentialAcquirer(
            identity_provider,
            self._token,
            policy=token_policy,
            scheduler=self._scheduler,
            label=label,
        )
        self._linker = BackendLinker(
            client,
            identity_provider,
            self._token,
            policy=link_policy,
            scheduler=self._scheduler,
            attempt_timeout=attempt_timeout,
            link_endpoint=link_endpoint,
            profile_endpoint=profile_endpoint,
            patch_profile=patch_profile,
            label=label,
        )

        self._view = SyncView()
        self._task: asyncio.Task[LinkResult | None] | None = None
        self._listeners: list[SyncListener] = []
        self.last_result: LinkResult | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        identity_provider: IdentityProvider,
        client: BackendHttpClient,
        identity: Identity | None = None,
        *,
        scheduler: Scheduler | None = None,
        on_success: SuccessCallback | None = None,
        label: str = "sync",
    ) -> SyncOrchestrator:
        """Build an orchestrator using the budgets and endpoints in *settings*."""
        return cls(
            identity_provider,
            client,
            identity,
            token_policy=settings.token_backoff(),
            link_policy=settings.link_backoff(),
            scheduler=scheduler,
            attempt_timeout=settings.link_attempt_timeout,
            link_endpoint=settings.link_endpoint,
            profile_endpoint=settings.profile_endpoint,
            patch_profile=settings.patch_profile_names,
            on_success=on_success,
            label=label,
        )

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def view(self) -> SyncView:
        """Current :class:`SyncView` snapshot."""
        return self._view

    @property
    def phase(self) -> SyncPhase:
        return self._view.phase

    @property
    def is_busy(self) -> bool:
        return self._view.is_busy

    @property
    def error_message(self) -> str | None:
        return self._view.error_message

    @property
    def success_message(self) -> str | None:
        return self._view.success_message

    @property
    def generation(self) -> int:
        return self._token.current()

    def subscribe(self, listener: SyncListener) -> Callable[[], None]:
        """Register *listener* for state changes.

        Returns:
            A callable removing the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(
        self, identity: Identity | None = None, *, supersede: bool = False
    ) -> asyncio.Task[LinkResult | None] | None:
        """Begin a sync run.

        Must be called from inside a running event loop.

        Args:
            identity: Replace the identity to sync (e.g. once the provider
                has populated the user's email).
            supersede: When a run is already in flight, abandon it and start
                over instead of rejecting the call.

        Returns:
            The task executing the run.  When a live run exists and
            *supersede* is false, that run's task.  ``None`` when the
            identity is incomplete and the run failed immediately.
        """
        if self._view.is_busy and not supersede and self._task is not None:
            logger.info(
                "[%s] Sync already in progress; start() ignored.",
                self._label,
                extra={"event": events.SYNC_REJECTED},
            )
            return self._task

        if identity is not None:
            self._identity = identity

        generation = self._token.bump()

        if not self._identity.has_contact:
            logger.error(
                "[%s] Identity has no user ID or email; cannot sync.",
                self._label,
                extra={"event": events.SYNC_FAILED},
            )
            self._set_view(
                SyncView(
                    phase=SyncPhase.FAILED,
                    error_message=MISSING_EMAIL_MESSAGE,
                    failure_reason="identity",
                )
            )
            self._task = None
            return None

        run_id = new_run_id()
        self._set_view(SyncView(phase=SyncPhase.ACQUIRING_TOKEN))
        self._task = asyncio.create_task(
            self._run(generation, run_id), name=f"{self._label}-run-{generation}"
        )
        return self._task

    def retry(self, identity: Identity | None = None) -> asyncio.Task[LinkResult | None] | None:
        """Start a fresh run, superseding any run still in flight."""
        return self.start(identity, supersede=True)

    def cancel(self) -> None:
        """Abandon the live run without reporting a failure.

        Bumps the generation so every in-flight continuation discards its
        result.  Listeners are not notified.
        """
        self._token.bump()
        if self._view.is_busy:
            self._view = SyncView(phase=SyncPhase.CANCELLED)
        logger.info(
            "[%s] Sync cancelled.",
            self._label,
            extra={"event": events.SYNC_CANCELLED},
        )

    async def sign_out(self) -> None:
        """Cancel the live run, then end the identity-provider session.

        A failing sign-out is logged and otherwise ignored.
        """
        self.cancel()
        try:
            await self._identity_provider.sign_out()
        except Exception:  # noqa: BLE001
            logger.warning("[%s] Identity sign-out failed.", self._label, exc_info=True)

    async def wait(self) -> LinkResult | None:
        """Await the most recent run and return its link result, if any."""
        if self._task is None:
            return None
        return await self._task

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def _run(self, generation: int, run_id: str) -> LinkResult | None:
        with run_scope(run_id):
            return await self._execute(generation)

    async def _execute(self, generation: int) -> LinkResult | None:
        try:
            logger.info(
                "[%s] Sync run started for %s.",
                self._label,
                self._identity.email,
                extra={"event": events.SYNC_START},
            )
            identity = self._identity
            credential = await self._acquirer.acquire(generation)
            self._apply(generation, SyncView(phase=SyncPhase.LINKING_BACKEND))

            result = await self._linker.link(identity, credential, generation)
            self._apply(
                generation,
                SyncView(phase=SyncPhase.SUCCEEDED, success_message=SUCCESS_MESSAGE),
            )
            self.last_result = result
            logger.info(
                "[%s] Account synced after %d link attempt(s).",
                self._label,
                result.attempts,
                extra={"event": events.SYNC_SUCCEEDED},
            )
            await self._fire_success(result)
            return result
        except StaleRunError as exc:
            logger.debug(
                "[%s] Discarding superseded run: %s",
                self._label,
                exc,
                extra={"event": events.SYNC_STALE_DISCARDED},
            )
            return None
        except SyncError as exc:
            if self._token.is_stale(generation):
                logger.debug(
                    "[%s] Superseded run failed; outcome discarded.",
                    self._label,
                    extra={"event": events.SYNC_STALE_DISCARDED},
                )
                return None
            logger.error(
                "[%s] Sync failed (reason=%s, attempts=%d).",
                self._label,
                exc.reason,
                exc.attempts,
                extra={"event": events.SYNC_FAILED},
            )
            self._set_view(
                SyncView(
                    phase=SyncPhase.FAILED,
                    error_message=exc.user_message,
                    failure_reason=exc.reason,
                )
            )
            return None

    def _apply(self, generation: int, view: SyncView) -> None:
        """Publish *view* if *generation* is still live.

        Raises:
            StaleRunError: The run has been superseded.
        """
        self._token.raise_if_stale(generation)
        self._set_view(view)

    def _set_view(self, view: SyncView) -> None:
        self._view = view
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:  # noqa: BLE001
                logger.exception("[%s] Sync listener raised.", self._label)

    async def _fire_success(self, result: LinkResult) -> None:
        if self._on_success is None:
            return
        try:
            outcome = self._on_success(result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:  # noqa: BLE001
            logger.exception("[%s] Success callback raised.", self._label)
