"""Core domain models, logging configuration, events and the exception taxonomy.

:class:`~careersync.core.settings.Settings` is deliberately not re-exported
here: it builds resilience and polling objects, and those layers import from
this package.
"""

from careersync.core.exceptions import (
    BackendError,
    BackendRequestError,
    BackendUnavailableError,
    CareerSyncError,
    ConfigError,
    CredentialTimeoutError,
    CredentialUnavailableError,
    IdentityError,
    LinkTimeoutError,
    PollingError,
    SessionExpiredError,
    StaleRunError,
    SyncError,
)
from careersync.core.logging_config import (
    JsonFormatter,
    configure_logging,
    new_run_id,
    run_scope,
)
from careersync.core.models import (
    Identity,
    PollOutcome,
    PollResult,
    PollView,
    SyncPhase,
    SyncView,
    TaskStatus,
)

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    "new_run_id",
    "run_scope",
    # Domain models
    "Identity",
    "SyncPhase",
    "SyncView",
    "TaskStatus",
    "PollOutcome",
    "PollResult",
    "PollView",
    # Exceptions: base
    "CareerSyncError",
    "ConfigError",
    # Exceptions: backend
    "BackendError",
    "BackendRequestError",
    "SessionExpiredError",
    "BackendUnavailableError",
    # Exceptions: identity
    "IdentityError",
    "CredentialUnavailableError",
    # Exceptions: sync
    "SyncError",
    "CredentialTimeoutError",
    "LinkTimeoutError",
    # Exceptions: polling / cancellation
    "PollingError",
    "StaleRunError",
]
