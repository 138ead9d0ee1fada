"""careersync exception taxonomy.

Every custom exception inherits from :class:`CareerSyncError`.  Exceptions are
organised by layer so callers can catch at the right granularity:

    Layer hierarchy
    ---------------
    CareerSyncError
    ├── ConfigError
    ├── BackendError
    │   ├── BackendRequestError
    │   │   └── SessionExpiredError
    │   └── BackendUnavailableError
    ├── IdentityError
    │   └── CredentialUnavailableError
    ├── SyncError
    │   ├── CredentialTimeoutError
    │   └── LinkTimeoutError
    ├── PollingError
    └── StaleRunError

Only :class:`SyncError` subclasses (budget exhausted) and configuration errors
are meant to reach the presentation layer.  Backend and identity errors raised
during a retry attempt are absorbed by the retry loops; :class:`StaleRunError`
never leaves the orchestrator that raised it.

Usage:

    from careersync.core.exceptions import BackendRequestError

    raise BackendRequestError("Not found.", status=404) from exc
"""

from __future__ import annotations

import logging
from typing import Any

__all__ = [
    "CareerSyncError",
    # Config
    "ConfigError",
    # Backend
    "BackendError",
    "BackendRequestError",
    "SessionExpiredError",
    "BackendUnavailableError",
    # Identity
    "IdentityError",
    "CredentialUnavailableError",
    # Sync
    "SyncError",
    "CredentialTimeoutError",
    "LinkTimeoutError",
    # Polling
    "PollingError",
    # Cancellation
    "StaleRunError",
    # User-facing messages
    "SYNC_FAIL_MESSAGE",
    "SESSION_FAIL_MESSAGE",
    "MISSING_EMAIL_MESSAGE",
]

logger = logging.getLogger(__name__)

#: Shown when the link phase exhausts its budget.  The account itself was
#: created by the identity provider, so the message stresses that it is safe.
SYNC_FAIL_MESSAGE: str = (
    "Your account was created successfully, but we couldn't connect it to our "
    "system. This is usually a temporary issue. You can try again now or log "
    "in later - your account is safe."
)

#: Shown when no credential could be minted within the token budget.
SESSION_FAIL_MESSAGE: str = (
    "We couldn't establish a session with the sign-in provider. Please try "
    "again."
)

MISSING_EMAIL_MESSAGE: str = (
    "Unable to complete signup because your account email is missing."
)

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class CareerSyncError(Exception):
    """Root exception for all careersync errors.

    Catch this to handle any application-level error uniformly.  Prefer
    catching layer-specific subclasses wherever possible.
    """


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(CareerSyncError):
    """Raised when the application configuration is invalid or incomplete.

    Examples:
        - ``BACKEND_BASE_URL`` is empty when the CLI needs to talk to it.
        - No refresh token is configured for the identity collaborator.
    """


# ---------------------------------------------------------------------------
# Backend layer
# ---------------------------------------------------------------------------


class BackendError(CareerSyncError):
    """Base class for failures talking to the backend HTTP API."""


class BackendRequestError(BackendError):
    """Raised when the backend answers with a non-2xx status.

    Args:
        message: Human-readable error extracted from the response body.
        status: HTTP status code.
        data: Parsed JSON body (``{}`` when the body was not JSON).
    """

    def __init__(self, message: str, status: int, data: Any = None) -> None:
        self.status = status
        self.data = data if data is not None else {}
        super().__init__(message)


class SessionExpiredError(BackendRequestError):
    """Raised on HTTP 401 responses whose message points at authentication.

    Callers typically redirect the user to the login page.
    """


class BackendUnavailableError(BackendError):
    """Raised when the backend cannot be reached at all.

    Covers DNS failures, refused connections and transport timeouts.  The
    original :mod:`httpx` exception is chained as ``__cause__``.
    """


# ---------------------------------------------------------------------------
# Identity layer
# ---------------------------------------------------------------------------


class IdentityError(CareerSyncError):
    """Base class for errors raised by the identity collaborator."""


class CredentialUnavailableError(IdentityError):
    """Raised when the identity collaborator returned no credential.

    This is a *transient* condition right after an identity handoff: the
    provider session exists but cannot mint a token yet.  The credential
    acquirer retries it within its budget.
    """


# ---------------------------------------------------------------------------
# Sync layer
# ---------------------------------------------------------------------------


class SyncError(CareerSyncError):
    """Base class for terminal account-sync failures.

    Args:
        reason: Which phase ran out of budget: ``"token"`` or ``"sync"``.
        message: User-facing message.  Defaults to the subclass's
            :attr:`default_message`.
        attempts: Number of attempts made before giving up.
    """

    reason: str = "sync"
    default_message: str = SYNC_FAIL_MESSAGE

    def __init__(self, message: str | None = None, *, attempts: int = 0) -> None:
        self.attempts = attempts
        super().__init__(message or self.default_message)

    @property
    def user_message(self) -> str:
        """The message to show to the user."""
        return str(self)


class CredentialTimeoutError(SyncError):
    """Raised when no credential could be obtained within the token budget.

    Meaning for the user: *"we could not establish a session"*.
    """

    reason = "token"
    default_message = SESSION_FAIL_MESSAGE


class LinkTimeoutError(SyncError):
    """Raised when the backend link request kept failing for the whole budget.

    Meaning for the user: *"the session is fine, but linking the account
    failed; retry now or log in later"*.
    """

    reason = "sync"


# ---------------------------------------------------------------------------
# Polling layer
# ---------------------------------------------------------------------------


class PollingError(CareerSyncError):
    """Raised when a polling session cannot be started.

    Examples:
        - Triggering a ranking job was rejected by the backend.
        - A polling controller was configured with ``max_attempts < 1``.
    """


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class StaleRunError(CareerSyncError):
    """Raised inside a run whose generation has been superseded.

    Internal signal only: orchestrators catch it at the top of the run and
    discard the run silently.  It is never surfaced to the user.

    Args:
        generation: The generation the run was started under.
        current: The owner's current generation.
    """

    def __init__(self, generation: int, current: int) -> None:
        self.generation = generation
        self.current = current
        super().__init__(f"Run generation {generation} superseded by {current}")
